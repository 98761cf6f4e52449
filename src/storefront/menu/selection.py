"""Option selections: one immutable value per option group.

A selection is never edited in place: every change returns a new
``GroupSelection``. Changes are checked against the group as they are made,
so a selection can only ever hold choices the shopper was allowed to pick.
Whole-group rules (required groups, aggregate bounds) are checked separately
by ``storefront.menu.validation``.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from protean.exceptions import ValidationError

from storefront.menu.options import MenuItemChoice, MenuItemOptionGroup, OptionGroupType


@dataclass(frozen=True)
class GroupSelection:
    group_id: str
    choice_ids: frozenset[str] = frozenset()
    # (choice_id, quantity) pairs sorted by choice id; quantity_select only
    quantities: tuple[tuple[str, int], ...] = ()

    @classmethod
    def empty(cls, group: MenuItemOptionGroup) -> "GroupSelection":
        return cls(group_id=group.id)

    def quantity_of(self, choice_id: str) -> int:
        return dict(self.quantities).get(str(choice_id), 0)

    @property
    def total_quantity(self) -> int:
        return sum(qty for _, qty in self.quantities)

    @property
    def selected_ids(self) -> frozenset[str]:
        """Ids of every choice that contributes to the selection."""
        if self.quantities:
            return frozenset(cid for cid, qty in self.quantities if qty > 0)
        return self.choice_ids

    @property
    def count(self) -> int:
        return len(self.choice_ids)

    # -------------------------------------------------------------------
    # Changes (each returns a new selection)
    # -------------------------------------------------------------------
    def select(self, group: MenuItemOptionGroup, choice_id: str) -> "GroupSelection":
        self._check_group(group)
        if group.is_quantity_select:
            raise ValidationError({"choice_id": [f"Use quantities for quantity group {group.id}"]})
        choice = _available_choice(group, choice_id)

        if group.type == OptionGroupType.SINGLE_SELECT:
            return GroupSelection(group_id=group.id, choice_ids=frozenset({choice.id}))

        if choice.id in self.choice_ids:
            return self
        if group.max_selections is not None and len(self.choice_ids) >= group.max_selections:
            raise ValidationError(
                {"choice_id": [f"At most {group.max_selections} choices can be selected in {group.name}"]}
            )
        return GroupSelection(group_id=group.id, choice_ids=self.choice_ids | {choice.id})

    def deselect(self, group: MenuItemOptionGroup, choice_id: str) -> "GroupSelection":
        self._check_group(group)
        if group.is_quantity_select:
            return self.set_quantity(group, choice_id, 0)
        return GroupSelection(group_id=group.id, choice_ids=self.choice_ids - {str(choice_id)})

    def set_quantity(self, group: MenuItemOptionGroup, choice_id: str, quantity: int) -> "GroupSelection":
        self._check_group(group)
        if not group.is_quantity_select:
            raise ValidationError({"quantity": [f"Group {group.id} does not take quantities"]})

        choice = group.choice(choice_id)
        if choice is None:
            raise ValidationError({"choice_id": [f"Unknown choice {choice_id} in group {group.id}"]})
        if quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})
        if quantity > 0 and not choice.is_available:
            raise ValidationError({"choice_id": [f"Choice {choice.name} is not available"]})
        if quantity > 0 and quantity < choice.min_quantity:
            raise ValidationError({"quantity": [f"{choice.name} requires at least {choice.min_quantity}"]})
        if choice.max_quantity is not None and quantity > choice.max_quantity:
            raise ValidationError({"quantity": [f"{choice.name} allows at most {choice.max_quantity}"]})

        quantities = dict(self.quantities)
        if quantity == 0:
            quantities.pop(choice.id, None)
        else:
            quantities[choice.id] = quantity
        return GroupSelection(group_id=group.id, quantities=tuple(sorted(quantities.items())))

    def _check_group(self, group: MenuItemOptionGroup) -> None:
        if group.id != self.group_id:
            raise ValidationError({"group_id": [f"Selection for {self.group_id} cannot change group {group.id}"]})


def _available_choice(group: MenuItemOptionGroup, choice_id: str) -> MenuItemChoice:
    choice = group.choice(choice_id)
    if choice is None:
        raise ValidationError({"choice_id": [f"Unknown choice {choice_id} in group {group.id}"]})
    if not choice.is_available:
        raise ValidationError({"choice_id": [f"Choice {choice.name} is not available"]})
    return choice


def build_selection(group: MenuItemOptionGroup, raw) -> GroupSelection:
    """Build a selection from a request payload.

    ``raw`` is a list of choice ids for single/multi select groups, or a
    mapping of choice id to quantity for quantity_select groups.
    """
    selection = GroupSelection.empty(group)
    if raw is None:
        return selection

    if group.is_quantity_select:
        if not isinstance(raw, Mapping):
            raise ValidationError({"selections": [f"Group {group.id} expects a mapping of choice quantities"]})
        for choice_id, quantity in raw.items():
            selection = selection.set_quantity(group, str(choice_id), int(quantity))
        return selection

    if isinstance(raw, (str, Mapping)) or not isinstance(raw, Iterable):
        raise ValidationError({"selections": [f"Group {group.id} expects a list of choice ids"]})
    choice_ids = [str(cid) for cid in raw]
    if group.type == OptionGroupType.SINGLE_SELECT and len(set(choice_ids)) > 1:
        raise ValidationError({"selections": [f"Only one choice can be selected in {group.name}"]})
    for choice_id in choice_ids:
        selection = selection.select(group, choice_id)
    return selection


def default_selections(groups: Iterable[MenuItemOptionGroup]) -> dict[str, GroupSelection]:
    """Initial selections for a freshly opened item.

    Available defaults are pre-selected. A required single_select without a
    default gets its first available choice. In quantity_select groups a
    default choice starts at ``max(1, min_quantity)`` and every other
    choice at its ``min_quantity``.
    """
    selections = {}
    for group in groups:
        if group.is_quantity_select:
            quantities = {}
            for choice in group.choices:
                if not choice.is_available:
                    continue
                quantity = max(1, choice.min_quantity) if choice.is_default else choice.min_quantity
                if quantity > 0:
                    quantities[choice.id] = quantity
            selections[group.id] = GroupSelection(group_id=group.id, quantities=tuple(sorted(quantities.items())))
            continue

        defaults = [c.id for c in group.choices if c.is_default and c.is_available]
        if group.type == OptionGroupType.SINGLE_SELECT:
            defaults = defaults[:1]
            if not defaults and group.is_required:
                first = next((c for c in group.choices if c.is_available), None)
                if first is not None:
                    defaults = [first.id]
        elif group.max_selections is not None:
            defaults = defaults[: group.max_selections]
        selections[group.id] = GroupSelection(group_id=group.id, choice_ids=frozenset(defaults))
    return selections
