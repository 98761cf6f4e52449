"""Menu item and option group types.

The menu itself is owned by the catalog service; these are read-only
snapshots of what it supplies. All prices are integer cents.
"""

from dataclasses import dataclass, field
from enum import Enum

from protean.exceptions import ValidationError


class OptionGroupType(Enum):
    SINGLE_SELECT = "single_select"
    MULTI_SELECT = "multi_select"
    QUANTITY_SELECT = "quantity_select"


@dataclass(frozen=True)
class MenuItemChoice:
    id: str
    name: str
    price_modifier: int = 0
    is_available: bool = True
    is_default: bool = False
    min_quantity: int = 0
    max_quantity: int | None = None

    def __post_init__(self):
        if self.min_quantity < 0:
            raise ValidationError({"min_quantity": [f"Choice {self.id} has a negative minimum quantity"]})
        if self.max_quantity is not None and self.max_quantity < self.min_quantity:
            raise ValidationError({"max_quantity": [f"Choice {self.id} has max_quantity below min_quantity"]})

    @classmethod
    def from_dict(cls, data: dict) -> "MenuItemChoice":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            price_modifier=int(data.get("price_modifier", 0)),
            is_available=data.get("is_available", True),
            is_default=data.get("is_default", False),
            min_quantity=data.get("min_quantity", 0),
            max_quantity=data.get("max_quantity"),
        )


@dataclass(frozen=True)
class MenuItemOptionGroup:
    id: str
    name: str
    type: OptionGroupType
    choices: tuple[MenuItemChoice, ...] = ()
    is_required: bool = False
    min_selections: int = 0
    max_selections: int | None = None
    aggregate_min_quantity: int | None = None
    aggregate_max_quantity: int | None = None
    num_free_options: int = 0

    def __post_init__(self):
        # Accept plain values from JSON payloads
        object.__setattr__(self, "type", OptionGroupType(self.type))
        object.__setattr__(self, "choices", tuple(self.choices))

        errors = {}
        if self.max_selections is not None and self.min_selections > self.max_selections:
            errors["min_selections"] = ["min_selections cannot exceed max_selections"]
        if (
            self.aggregate_min_quantity is not None
            and self.aggregate_max_quantity is not None
            and self.aggregate_min_quantity > self.aggregate_max_quantity
        ):
            errors["aggregate_min_quantity"] = ["aggregate_min_quantity cannot exceed aggregate_max_quantity"]
        if self.num_free_options < 0:
            errors["num_free_options"] = ["num_free_options cannot be negative"]
        ids = [c.id for c in self.choices]
        if len(ids) != len(set(ids)):
            errors["choices"] = ["Choice ids must be unique within a group"]
        if errors:
            raise ValidationError(errors)

    @property
    def is_quantity_select(self) -> bool:
        return self.type == OptionGroupType.QUANTITY_SELECT

    def choice(self, choice_id: str) -> MenuItemChoice | None:
        return next((c for c in self.choices if c.id == str(choice_id)), None)

    @classmethod
    def from_dict(cls, data: dict) -> "MenuItemOptionGroup":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            type=data["type"],
            choices=tuple(MenuItemChoice.from_dict(c) for c in data.get("choices", [])),
            is_required=data.get("is_required", False),
            min_selections=data.get("min_selections", 0),
            max_selections=data.get("max_selections"),
            aggregate_min_quantity=data.get("aggregate_min_quantity"),
            aggregate_max_quantity=data.get("aggregate_max_quantity"),
            num_free_options=data.get("num_free_options", 0),
        )


@dataclass(frozen=True)
class MenuItem:
    id: str
    name: str
    price: int
    option_groups: tuple[MenuItemOptionGroup, ...] = field(default=())
    is_available: bool = True

    def __post_init__(self):
        object.__setattr__(self, "option_groups", tuple(self.option_groups))
        if self.price < 0:
            raise ValidationError({"price": [f"Menu item {self.id} has a negative price"]})

    def group(self, group_id: str) -> MenuItemOptionGroup | None:
        return next((g for g in self.option_groups if g.id == str(group_id)), None)

    @classmethod
    def from_dict(cls, data: dict) -> "MenuItem":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            price=int(data["price"]),
            option_groups=tuple(MenuItemOptionGroup.from_dict(g) for g in data.get("option_groups", [])),
            is_available=data.get("is_available", True),
        )
