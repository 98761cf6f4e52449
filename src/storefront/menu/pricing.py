"""Option pricing engine.

Pure functions: given an option group and the shopper's selection, compute
the group's price contribution in cents. A group may grant a number of free
choices; the cheapest selected units are the free ones. Equal prices keep
their menu order, so the earlier choice is the one made free.
"""

from collections.abc import Iterable, Mapping

from storefront.menu.options import MenuItemOptionGroup
from storefront.menu.selection import GroupSelection


def _charged(prices: list[int], num_free: int) -> int:
    if num_free == 0 or not prices:
        return sum(prices)
    # sorted() is stable, so ties stay in menu order
    ordered = sorted(prices)
    return sum(ordered[min(num_free, len(ordered)) :])


def price_of(group: MenuItemOptionGroup, selection: GroupSelection | None) -> int:
    """Price contribution of one group's selection, in cents."""
    if selection is None:
        return 0

    if group.is_quantity_select:
        units = []
        for choice in group.choices:
            units.extend([choice.price_modifier] * selection.quantity_of(choice.id))
        return _charged(units, group.num_free_options)

    prices = [c.price_modifier for c in group.choices if c.id in selection.choice_ids]
    return _charged(prices, group.num_free_options)


def options_price(groups: Iterable[MenuItemOptionGroup], selections: Mapping[str, GroupSelection]) -> int:
    """Sum of every group's contribution for a single unit of the item."""
    return sum(price_of(group, selections.get(group.id)) for group in groups)


def item_total(base_price: int, quantity: int, options: int) -> int:
    """Line total: base plus options, multiplied once by the item quantity."""
    return (base_price + options) * quantity
