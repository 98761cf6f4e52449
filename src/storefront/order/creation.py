"""Order creation: idempotent command and handler.

Orders are keyed by ``(store_id, idempotency_key)``. A repeated submission
with the same key (network retry, double click, back-and-retry) returns the
order created the first time. Items are re-priced against the menu catalog;
client-computed totals are only compared, never stored.

Order type, service point and time slot are checked against the store
before anything is priced or saved.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from shared.errors import IdempotencyConflict
from storefront.domain import storefront
from storefront.menu.quote import quote
from storefront.merchant.capabilities import ensure_can_place_orders, load_store
from storefront.merchant.store import Store
from storefront.order.order import Order
from storefront.order.scheduling import check_time_slot

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class CreateOrder:
    store_id = Identifier(required=True)
    idempotency_key = String(required=True, max_length=64)
    order_type = String(required=True, max_length=20)
    items = Text(required=True)  # JSON: [{item_id, quantity, selections, total_price?}]
    customer_name = String(max_length=100)
    customer_email = String(max_length=255)
    customer_phone = String(max_length=50)
    customer_notes = Text()
    scheduled_pickup_time = DateTime()
    tip_amount = Integer(default=0)
    service_point_id = Identifier()


def find_order_for_checkout(store_id, idempotency_key) -> Order | None:
    """Return the order already created for this checkout attempt, if any."""
    repo = current_domain.repository_for(Order)
    results = repo._dao.query.filter(checkout_key=Order.checkout_key_for(store_id, idempotency_key)).all()
    return results.items[0] if results.items else None


def claim_checkout_key(store_id, idempotency_key) -> None:
    """Raise ``IdempotencyConflict`` if the key already produced an order."""
    existing = find_order_for_checkout(store_id, idempotency_key)
    if existing is not None:
        raise IdempotencyConflict(str(existing.id))


def check_order_options(store: Store, order_type, service_point_id=None) -> None:
    """Reject order types the store has switched off and unusable service points."""
    if order_type and not store.accepts_order_type(order_type):
        raise ValidationError({"order_type": [f"Order type {order_type} is not available for this store"]})
    if service_point_id and not store.has_active_service_point(service_point_id):
        raise ValidationError({"service_point_id": ["Service point not found or is not active"]})


def price_order_items(store_id, items_data: list[dict]) -> list:
    """Re-price submitted items against the current menu."""
    if not items_data:
        raise ValidationError({"items": ["Cart is empty"]})

    lines = []
    for index, data in enumerate(items_data):
        try:
            line = quote(
                store_id,
                str(data["item_id"]),
                int(data.get("quantity", 1)),
                data.get("selections") or {},
            )
        except KeyError:
            raise ValidationError({"items": [f"Item {index + 1} has no item_id"]}) from None

        expected = data.get("total_price")
        if expected is not None and int(expected) != line.total_price:
            raise ValidationError(
                {"items": [f"Price of {line.name} has changed: submitted {expected}, current {line.total_price}"]}
            )
        lines.append(line)
    return lines


def place_order(
    store_id,
    idempotency_key,
    order_type,
    items_data,
    customer_name=None,
    customer_email=None,
    customer_phone=None,
    customer_notes=None,
    scheduled_pickup_time=None,
    tip_amount=0,
    service_point_id=None,
) -> str:
    """Create the order for a checkout attempt, or return the one it already created."""
    try:
        claim_checkout_key(store_id, idempotency_key)
    except IdempotencyConflict as conflict:
        logger.info(
            "Order creation replayed",
            order_id=conflict.order_id,
            store_id=str(store_id),
            idempotency_key=idempotency_key,
        )
        return conflict.order_id

    store = load_store(store_id)
    check_order_options(store, order_type, service_point_id)
    ensure_can_place_orders(store, order_type)
    check_time_slot(store, order_type, scheduled_pickup_time)
    lines = price_order_items(store_id, items_data)
    order = Order.create(
        store_id=store_id,
        idempotency_key=idempotency_key,
        order_type=order_type,
        lines=lines,
        customer_name=customer_name,
        customer_email=customer_email,
        customer_phone=customer_phone,
        customer_notes=customer_notes,
        scheduled_pickup_time=scheduled_pickup_time,
        tip_amount=tip_amount,
        service_point_id=service_point_id,
    )

    try:
        current_domain.repository_for(Order).add(order)
    except ValidationError as exc:
        # A concurrent submission won the unique checkout key
        winner = find_order_for_checkout(store_id, idempotency_key)
        if winner is None or "checkout_key" not in exc.messages:
            raise
        logger.info("Order creation lost checkout key race", order_id=str(winner.id))
        return str(winner.id)

    logger.info(
        "Order placed",
        order_id=str(order.id),
        store_id=str(store_id),
        total_amount=order.total_amount,
    )
    return str(order.id)


@storefront.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        return place_order(
            store_id=command.store_id,
            idempotency_key=command.idempotency_key,
            order_type=command.order_type,
            items_data=items_data,
            customer_name=command.customer_name,
            customer_email=command.customer_email,
            customer_phone=command.customer_phone,
            customer_notes=command.customer_notes,
            scheduled_pickup_time=command.scheduled_pickup_time,
            tip_amount=command.tip_amount or 0,
            service_point_id=command.service_point_id,
        )
