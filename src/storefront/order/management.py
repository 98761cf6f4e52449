"""Merchant order actions: commands and handler.

Kitchen progress, cancellation, pay-at-counter and refunds. These are the
only ways to reach the PAY_AT_COUNTER and REFUNDED payment statuses.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class AdvanceOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=30)


@storefront.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@storefront.command(part_of="Order")
class MarkPayAtCounter:
    order_id = Identifier(required=True)


@storefront.command(part_of="Order")
class RefundOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@storefront.command_handler(part_of=Order)
class ManageOrderHandler:
    @handle(AdvanceOrderStatus)
    def advance_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous = order.order_status
        order.advance_status(command.status)
        repo.add(order)
        logger.info("Order status advanced", order_id=str(order.id), previous=previous, status=order.order_status)
        return order.order_status

    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(command.reason)
        repo.add(order)
        logger.info("Order cancelled", order_id=str(order.id), reason=command.reason)
        return order.order_status

    @handle(MarkPayAtCounter)
    def mark_pay_at_counter(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.mark_pay_at_counter()
        repo.add(order)
        logger.info("Order switched to pay at counter", order_id=str(order.id))
        return order.payment_status

    @handle(RefundOrder)
    def refund_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.refund(command.reason)
        repo.add(order)
        logger.info("Order refunded", order_id=str(order.id), reason=command.reason)
        return order.payment_status
