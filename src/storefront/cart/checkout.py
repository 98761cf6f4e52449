"""Cart checkout: commands and handler.

``CheckoutCart`` starts (or resumes) the cart's checkout attempt and places
the order with the attempt's idempotency key, so resubmitting the same cart
always lands on the same order. A cancelled order ends the attempt, so the
next checkout places a fresh order. ``CompleteCheckout`` empties the cart
once the order's payment is settled.
"""

import json

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from storefront.cart.cart import Cart
from storefront.domain import storefront
from storefront.order.creation import place_order
from storefront.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Cart")
class CheckoutCart:
    cart_id = Identifier(required=True)
    order_type = String(required=True, max_length=20)
    customer_name = String(max_length=100)
    customer_email = String(max_length=255)
    customer_phone = String(max_length=50)
    customer_notes = Text()
    scheduled_pickup_time = DateTime()
    tip_amount = Integer(default=0)
    service_point_id = Identifier()


@storefront.command(part_of="Cart")
class CompleteCheckout:
    cart_id = Identifier(required=True)


def _is_cancelled(order_id) -> bool:
    order = current_domain.repository_for(Order).get(order_id)
    return OrderStatus(order.order_status) == OrderStatus.CANCELLED


@storefront.command_handler(part_of=Cart)
class CartCheckoutHandler:
    @handle(CheckoutCart)
    def checkout_cart(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)

        if cart.checkout is not None and cart.checkout.order_id and _is_cancelled(cart.checkout.order_id):
            cart.end_checkout()
        idempotency_key = cart.begin_checkout()
        items_data = [
            {
                "item_id": str(line.item_id),
                "quantity": line.quantity,
                "selections": json.loads(line.selections) if line.selections else {},
                "total_price": line.total_price,
            }
            for line in cart.lines
        ]
        order_id = place_order(
            store_id=cart.store_id,
            idempotency_key=idempotency_key,
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
        cart.attach_order(order_id)
        repo.add(cart)
        return order_id

    @handle(CompleteCheckout)
    def complete_checkout(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        if cart.checkout is None or not cart.checkout.order_id:
            raise InvalidOperationError("No checkout in progress for this cart")

        order = current_domain.repository_for(Order).get(cart.checkout.order_id)
        if not order.is_payment_complete:
            raise InvalidOperationError(f"Order payment is not complete (payment status: {order.payment_status})")

        cart.clear()
        repo.add(cart)
        logger.info("Checkout completed", cart_id=str(cart.id), order_id=str(order.id))
        return str(order.id)
