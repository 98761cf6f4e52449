"""Store aggregate (CQRS): opening hours, closures, order types, service points
and provider preference.

A store is open when the current time in its own timezone falls inside one
of its opening periods and no scheduled closure covers today. A period
whose close time is earlier than its open time runs past midnight into the
next day.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from protean.exceptions import ValidationError
from protean.fields import Boolean, Date, DateTime, HasMany, Identifier, String, Text

from storefront.domain import storefront

# Mirrors storefront.order.order.OrderType
ORDER_TYPES = ("dine_in", "takeaway", "delivery")


class Weekday(Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


# datetime.weekday() order
_WEEKDAYS = list(Weekday)


def _check_weekday(value) -> str:
    try:
        return Weekday(value).value
    except ValueError:
        raise ValidationError({"day_of_week": [f"{value!r} is not a day of the week"]}) from None


def _check_time(value: str, field: str) -> str:
    # "24:00" closes at the end of the day
    if field == "close_time" and value == "24:00":
        return value
    try:
        datetime.strptime(value, "%H:%M")
    except (TypeError, ValueError):
        raise ValidationError({field: [f"{value!r} is not a HH:MM time"]}) from None
    return value


@storefront.entity(part_of="Store")
class OpeningPeriod:
    day_of_week = String(choices=Weekday, required=True)
    open_time = String(required=True, max_length=5)  # HH:MM
    close_time = String(required=True, max_length=5)  # HH:MM

    @property
    def is_overnight(self) -> bool:
        return self.close_time < self.open_time

    def covers(self, current_time: str) -> bool:
        """Whether the period is open at ``current_time`` on its own day."""
        if self.is_overnight:
            return current_time >= self.open_time
        return self.open_time <= current_time < self.close_time

    def carries_over(self, current_time: str) -> bool:
        """Whether the period, begun the day before, is still open at ``current_time``."""
        return self.is_overnight and current_time < self.close_time


@storefront.entity(part_of="Store")
class Closure:
    start_date = Date(required=True)
    end_date = Date(required=True)
    reason = String(max_length=255)


@storefront.entity(part_of="Store")
class ServicePoint:
    """A table, counter or room an order can be served to."""

    name = String(required=True, max_length=100)
    is_active = Boolean(default=True)


@storefront.aggregate
class Store:
    merchant_id = Identifier(required=True)
    name = String(required=True, max_length=200)
    timezone = String(max_length=64, default="UTC")
    preferred_provider = String(max_length=50)
    order_types = Text()  # JSON list of enabled order types; empty means all
    opening_periods = HasMany(OpeningPeriod)
    closures = HasMany(Closure)
    service_points = HasMany(ServicePoint)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, merchant_id, name, timezone="UTC", preferred_provider=None):
        cls._check_timezone(timezone)
        now = datetime.now(UTC)
        return cls(
            merchant_id=str(merchant_id),
            name=name,
            timezone=timezone,
            preferred_provider=preferred_provider,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _check_timezone(timezone):
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError({"timezone": [f"Unknown timezone {timezone}"]}) from None

    # -------------------------------------------------------------------
    # Hours
    # -------------------------------------------------------------------
    def set_opening_hours(self, periods: list[dict]):
        """Replace the weekly schedule with ``[{day_of_week, open_time, close_time}]``."""
        for period in list(self.opening_periods):
            self.remove_opening_periods(period)
        for period in periods:
            self.add_opening_periods(
                OpeningPeriod(
                    day_of_week=_check_weekday(period["day_of_week"]),
                    open_time=_check_time(period["open_time"], "open_time"),
                    close_time=_check_time(period["close_time"], "close_time"),
                )
            )
        self.updated_at = datetime.now(UTC)

    def add_closure(self, start_date, end_date, reason=None):
        if end_date < start_date:
            raise ValidationError({"end_date": ["Closure cannot end before it starts"]})
        self.add_closures(Closure(start_date=start_date, end_date=end_date, reason=reason))
        self.updated_at = datetime.now(UTC)

    def set_preferred_provider(self, provider):
        self.preferred_provider = provider
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Order types
    # -------------------------------------------------------------------
    @property
    def enabled_order_types(self) -> list[str]:
        enabled = json.loads(self.order_types) if self.order_types else []
        return enabled or list(ORDER_TYPES)

    def set_order_types(self, order_types: list[str]):
        unknown = [t for t in order_types if t not in ORDER_TYPES]
        if unknown:
            raise ValidationError({"order_types": [f"Unknown order types: {', '.join(unknown)}"]})
        if not order_types:
            raise ValidationError({"order_types": ["At least one order type must stay enabled"]})
        self.order_types = json.dumps([t for t in ORDER_TYPES if t in order_types])
        self.updated_at = datetime.now(UTC)

    def accepts_order_type(self, order_type: str) -> bool:
        return order_type in self.enabled_order_types

    # -------------------------------------------------------------------
    # Service points
    # -------------------------------------------------------------------
    def add_service_point(self, name) -> str:
        point = ServicePoint(name=name, is_active=True)
        self.add_service_points(point)
        self.updated_at = datetime.now(UTC)
        return str(point.id)

    def service_point(self, service_point_id) -> ServicePoint | None:
        return next((p for p in self.service_points if str(p.id) == str(service_point_id)), None)

    def set_service_point_active(self, service_point_id, is_active: bool):
        point = self.service_point(service_point_id)
        if point is None:
            raise ValidationError({"service_point_id": [f"Unknown service point {service_point_id}"]})
        point.is_active = is_active
        self.updated_at = datetime.now(UTC)

    def has_active_service_point(self, service_point_id) -> bool:
        point = self.service_point(service_point_id)
        return point is not None and bool(point.is_active)

    def is_open_at(self, moment: datetime | None = None) -> bool:
        moment = moment or datetime.now(UTC)
        local = moment.astimezone(ZoneInfo(self.timezone or "UTC"))
        today = local.date()

        if any(c.start_date <= today <= c.end_date for c in self.closures):
            return False

        weekday = _WEEKDAYS[local.weekday()].value
        yesterday = _WEEKDAYS[local.weekday() - 1].value
        current_time = local.strftime("%H:%M")
        return any(
            (p.day_of_week == weekday and p.covers(current_time))
            or (p.day_of_week == yesterday and p.carries_over(current_time))
            for p in self.opening_periods
        )
