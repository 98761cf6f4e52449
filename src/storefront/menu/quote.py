"""Price a configured menu item into a frozen line snapshot.

Used when an item is added to a cart and again, server-side, when an order
is created, so a client-computed total is never trusted.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from protean.exceptions import ValidationError

from storefront.menu.catalog import get_catalog
from storefront.menu.options import MenuItem
from storefront.menu.pricing import item_total, price_of
from storefront.menu.selection import GroupSelection, build_selection
from storefront.menu.validation import validate_selections


@dataclass(frozen=True)
class PricedLine:
    line_key: str
    item_id: str
    name: str
    quantity: int
    base_price: int
    options_price: int
    total_price: int
    # [{group_id, group_name, choices: [{id, name, price, quantity?}]}]
    selected_options: tuple[dict, ...]

    @property
    def choice_count(self) -> int:
        return sum(len(g["choices"]) for g in self.selected_options)


def line_key(item_id: str, selections: Mapping[str, GroupSelection]) -> str:
    """Deterministic line id: the item id plus its sorted selected choice ids.

    Quantity choices carry their quantity so different amounts stay apart.
    """
    parts = []
    for selection in selections.values():
        if selection.quantities:
            parts.extend(f"{cid}x{qty}" for cid, qty in selection.quantities)
        else:
            parts.extend(selection.choice_ids)
    return ":".join([str(item_id), *sorted(parts)])


def _snapshot(item: MenuItem, selections: Mapping[str, GroupSelection]) -> tuple[dict, ...]:
    groups = []
    for group in item.option_groups:
        selection = selections.get(group.id)
        if selection is None:
            continue
        choices = []
        for choice in group.choices:
            if group.is_quantity_select:
                quantity = selection.quantity_of(choice.id)
                if quantity > 0:
                    choices.append(
                        {"id": choice.id, "name": choice.name, "price": choice.price_modifier, "quantity": quantity}
                    )
            elif choice.id in selection.choice_ids:
                choices.append({"id": choice.id, "name": choice.name, "price": choice.price_modifier})
        if choices:
            groups.append({"group_id": group.id, "group_name": group.name, "choices": choices})
    return tuple(groups)


def price_item(item: MenuItem, quantity: int, raw_selections: Mapping | None = None) -> PricedLine:
    """Validate and price one configured item.

    ``raw_selections`` maps group id to a list of choice ids, or to a
    mapping of choice id to quantity for quantity_select groups.
    """
    if quantity < 1:
        raise ValidationError({"quantity": ["Quantity must be at least 1"]})
    if not item.is_available:
        raise ValidationError({"item_id": [f"{item.name} is not available"]})

    raw_selections = raw_selections or {}
    unknown = [gid for gid in raw_selections if item.group(gid) is None]
    if unknown:
        raise ValidationError({"selections": [f"Unknown option group {gid} for {item.name}" for gid in unknown]})

    selections = {group.id: build_selection(group, raw_selections.get(group.id)) for group in item.option_groups}

    check = validate_selections(item.option_groups, selections)
    if not check.valid:
        raise ValidationError(check.as_messages())

    options = sum(price_of(group, selections[group.id]) for group in item.option_groups)
    return PricedLine(
        line_key=line_key(item.id, selections),
        item_id=item.id,
        name=item.name,
        quantity=quantity,
        base_price=item.price,
        options_price=options,
        total_price=item_total(item.price, quantity, options),
        selected_options=_snapshot(item, selections),
    )


def quote(store_id: str, item_id: str, quantity: int, raw_selections: Mapping | None = None) -> PricedLine:
    """Look the item up in the menu catalog and price it."""
    item = get_catalog().get_item(store_id, item_id)
    if item is None:
        raise ValidationError({"item_id": [f"Item {item_id} is not on the menu"]})
    return price_item(item, quantity, raw_selections)
