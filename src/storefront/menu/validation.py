"""Whole-group selection rules.

``validate_selections`` reports every group that fails, so a client can
point the shopper at the exact group that still needs attention.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from storefront.menu.options import MenuItemOptionGroup, OptionGroupType
from storefront.menu.selection import GroupSelection


@dataclass(frozen=True)
class GroupFailure:
    group_id: str
    group_name: str
    reason: str


@dataclass(frozen=True)
class SelectionCheck:
    failures: tuple[GroupFailure, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.failures

    def failed_group_ids(self) -> list[str]:
        return [f.group_id for f in self.failures]

    def as_messages(self) -> dict[str, list[str]]:
        messages: dict[str, list[str]] = {}
        for failure in self.failures:
            messages.setdefault(failure.group_id, []).append(failure.reason)
        return messages


def check_group(group: MenuItemOptionGroup, selection: GroupSelection | None) -> str | None:
    """Return the reason the group's selection is invalid, or None."""
    selection = selection or GroupSelection.empty(group)

    if group.type == OptionGroupType.QUANTITY_SELECT:
        total = selection.total_quantity
        if group.is_required or group.aggregate_min_quantity is not None:
            minimum = group.aggregate_min_quantity if group.aggregate_min_quantity is not None else 1
            if total < minimum:
                return f"Select at least {minimum} in {group.name}"
        if group.aggregate_max_quantity is not None and total > group.aggregate_max_quantity:
            return f"Select at most {group.aggregate_max_quantity} in {group.name}"
        return None

    if group.type == OptionGroupType.MULTI_SELECT and group.max_selections is not None:
        if selection.count > group.max_selections:
            return f"Select at most {group.max_selections} in {group.name}"

    if not group.is_required:
        return None

    minimum = group.min_selections
    if group.type == OptionGroupType.SINGLE_SELECT:
        minimum = max(minimum, 1)
    if selection.count < minimum:
        return f"Select at least {minimum} in {group.name}"
    return None


def validate_selections(
    groups: Iterable[MenuItemOptionGroup],
    selections: Mapping[str, GroupSelection],
) -> SelectionCheck:
    failures = []
    for group in groups:
        reason = check_group(group, selections.get(group.id))
        if reason is not None:
            failures.append(GroupFailure(group_id=group.id, group_name=group.name, reason=reason))
    return SelectionCheck(failures=tuple(failures))


def is_valid(groups: Iterable[MenuItemOptionGroup], selections: Mapping[str, GroupSelection]) -> bool:
    return validate_selections(groups, selections).valid
