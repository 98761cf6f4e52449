"""Pickup and delivery time slots.

Takeaway orders always name a slot. Delivery orders name one only when the
store is closed, which makes them pre-orders. A slot lies at least
``MIN_ADVANCE`` in the future and inside the store's opening hours.
"""

from datetime import UTC, datetime, timedelta

from protean.exceptions import ValidationError

from storefront.merchant.store import Store
from storefront.order.order import OrderType

MIN_ADVANCE = timedelta(minutes=30)

# Order types a closed store still accepts as pre-orders
PRE_ORDER_TYPES = {OrderType.TAKEAWAY.value, OrderType.DELIVERY.value}


def needs_time_slot(order_type: str, is_open: bool) -> bool:
    if order_type == OrderType.TAKEAWAY.value:
        return True
    return order_type == OrderType.DELIVERY.value and not is_open


def _slot_error(message):
    return ValidationError({"scheduled_pickup_time": [message]})


def check_time_slot(store: Store, order_type: str, slot: datetime | None, now: datetime | None = None) -> None:
    """Raise ``ValidationError`` unless ``slot`` is acceptable for this order."""
    now = now or datetime.now(UTC)
    is_open = store.is_open_at(now)
    if not needs_time_slot(order_type, is_open) and (slot is None or order_type not in PRE_ORDER_TYPES):
        return

    label = "Pickup" if order_type == OrderType.TAKEAWAY.value else "Delivery"
    if slot is None:
        raise _slot_error(f"{label} time is required for {order_type} orders")

    if slot.tzinfo is None:
        slot = slot.replace(tzinfo=UTC)
    if slot <= now:
        raise _slot_error(f"{label} time must be in the future")
    if slot < now + MIN_ADVANCE:
        raise _slot_error(f"{label} time must be at least {int(MIN_ADVANCE.total_seconds() // 60)} minutes ahead")
    if not store.is_open_at(slot):
        raise _slot_error(f"The store is not open at the selected {label.lower()} time")
