"""Order aggregate (CQRS): the authoritative record of one checkout.

An order freezes the priced items at creation and then carries two
independent status fields:

Order lifecycle:
    AWAITING_PAYMENT → CONFIRMED → PREPARING → READY → COMPLETED
    any non-terminal status → CANCELLED

Payment status (payer-facing flow, forward only):
    PENDING → AWAITING_CONFIRMATION → PAID | FAILED | EXPIRED

PAY_AT_COUNTER and REFUNDED are set only by merchant actions. A FAILED or
EXPIRED payment can be retried by opening a new session on the same order.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from storefront.domain import storefront
from storefront.order.events import OrderPlaced, OrderStatusChanged, PaymentStatusChanged


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    PENDING = "pending"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    PAID = "paid"
    PAY_AT_COUNTER = "pay_at_counter"
    FAILED = "failed"
    REFUNDED = "refunded"
    EXPIRED = "expired"


class OrderType(Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


_VALID_TRANSITIONS = {
    OrderStatus.AWAITING_PAYMENT: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_ORDER_STATUSES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

# Progress of the payer-facing flow. Only statuses listed here can be
# reported by a provider, and a merge only ever moves to a higher rank.
_PAYMENT_RANK = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.AWAITING_CONFIRMATION: 1,
    PaymentStatus.PAID: 2,
    PaymentStatus.FAILED: 2,
    PaymentStatus.EXPIRED: 2,
}

SETTLED_PAYMENT_STATUSES = {PaymentStatus.PAID, PaymentStatus.PAY_AT_COUNTER, PaymentStatus.REFUNDED}
RETRYABLE_PAYMENT_STATUSES = {PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.EXPIRED}

KITCHEN_VISIBLE_STATUSES = {OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY}
KITCHEN_PAYMENT_STATUSES = {PaymentStatus.PAID, PaymentStatus.PAY_AT_COUNTER}

def is_provider_reportable(status: PaymentStatus) -> bool:
    return status in _PAYMENT_RANK


def is_terminal_payment(status: PaymentStatus) -> bool:
    return _PAYMENT_RANK.get(status) == 2 or status in SETTLED_PAYMENT_STATUSES


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@storefront.entity(part_of="Order")
class OrderLine:
    item_id = Identifier(required=True)
    name = String(required=True, max_length=200)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    options_price = Integer(default=0, min_value=0)
    total_price = Integer(required=True, min_value=0)
    options = Text()  # JSON: [{group_id, group_name, choices: [{id, name, price, quantity?}]}]
    position = Integer(default=0)

    @property
    def selected_options(self) -> list[dict]:
        return json.loads(self.options) if self.options else []


# ---------------------------------------------------------------------------
# Order Aggregate
# ---------------------------------------------------------------------------
@storefront.aggregate
class Order:
    store_id = Identifier(required=True)
    idempotency_key = String(required=True, max_length=64)
    # "<store_id>:<idempotency_key>", unique per checkout attempt
    checkout_key = String(required=True, max_length=320, unique=True)
    items = HasMany(OrderLine)
    order_type = String(choices=OrderType, required=True)
    customer_name = String(max_length=100)
    customer_email = String(max_length=255)
    customer_phone = String(max_length=50)
    customer_notes = Text()
    service_point_id = Identifier()
    scheduled_pickup_time = DateTime()
    subtotal = Integer(default=0, min_value=0)
    tip_amount = Integer(default=0, min_value=0)
    total_amount = Integer(default=0, min_value=0)
    order_status = String(choices=OrderStatus, default=OrderStatus.AWAITING_PAYMENT.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_provider = String(max_length=50)
    payment_reference = String(max_length=255)
    payment_attempts = Integer(default=0)
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()
    confirmed_at = DateTime()
    cancelled_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        store_id,
        idempotency_key,
        order_type,
        lines,
        customer_name=None,
        customer_email=None,
        customer_phone=None,
        customer_notes=None,
        scheduled_pickup_time=None,
        tip_amount=0,
        service_point_id=None,
    ):
        """Create an order from priced lines (``storefront.menu.quote.PricedLine``)."""
        errors = {}
        if not lines:
            errors["items"] = ["Cart is empty"]
        if not idempotency_key:
            errors["idempotency_key"] = ["Idempotency key is required"]
        if not customer_name or not customer_name.strip():
            errors["customer_name"] = ["Customer name is required"]
        if tip_amount is not None and tip_amount < 0:
            errors["tip_amount"] = ["Tip cannot be negative"]

        try:
            kind = OrderType(order_type)
        except ValueError:
            errors["order_type"] = [f"Unknown order type {order_type}"]
        else:
            if kind == OrderType.DELIVERY and not customer_phone:
                errors["customer_phone"] = ["A phone number is required for delivery orders"]
        if errors:
            raise ValidationError(errors)

        now = datetime.now(UTC)
        subtotal = sum(line.total_price for line in lines)
        tip_amount = tip_amount or 0
        order = cls(
            store_id=str(store_id),
            idempotency_key=idempotency_key,
            checkout_key=cls.checkout_key_for(store_id, idempotency_key),
            items=[
                OrderLine(
                    item_id=line.item_id,
                    name=line.name,
                    quantity=line.quantity,
                    unit_price=line.base_price,
                    options_price=line.options_price,
                    total_price=line.total_price,
                    options=json.dumps(list(line.selected_options)),
                    position=position,
                )
                for position, line in enumerate(lines)
            ],
            order_type=kind.value,
            customer_name=customer_name.strip(),
            customer_email=customer_email or None,
            customer_phone=customer_phone,
            customer_notes=customer_notes,
            scheduled_pickup_time=scheduled_pickup_time,
            subtotal=subtotal,
            service_point_id=str(service_point_id) if service_point_id else None,
            tip_amount=tip_amount,
            total_amount=subtotal + tip_amount,
            order_status=OrderStatus.AWAITING_PAYMENT.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_attempts=0,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                store_id=str(store_id),
                order_type=kind.value,
                total_amount=order.total_amount,
                placed_at=now,
            )
        )
        return order

    @staticmethod
    def checkout_key_for(store_id, idempotency_key) -> str:
        return f"{store_id}:{idempotency_key}"

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_payment_complete(self) -> bool:
        return PaymentStatus(self.payment_status) in {PaymentStatus.PAID, PaymentStatus.PAY_AT_COUNTER}

    @property
    def is_awaiting_payment(self) -> bool:
        return OrderStatus(self.order_status) == OrderStatus.AWAITING_PAYMENT and PaymentStatus(
            self.payment_status
        ) in {PaymentStatus.PENDING, PaymentStatus.AWAITING_CONFIRMATION}

    @property
    def is_kitchen_visible(self) -> bool:
        return (
            OrderStatus(self.order_status) in KITCHEN_VISIBLE_STATUSES
            and PaymentStatus(self.payment_status) in KITCHEN_PAYMENT_STATUSES
        )

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.order_status) in TERMINAL_ORDER_STATUSES

    def next_statuses(self) -> list[str]:
        return sorted(s.value for s in _VALID_TRANSITIONS[OrderStatus(self.order_status)])

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def begin_payment_attempt(self, provider: str, reference: str):
        """Record a freshly opened provider session for this order."""
        if OrderStatus(self.order_status) != OrderStatus.AWAITING_PAYMENT:
            raise InvalidOperationError(f"Order is not awaiting payment (status: {self.order_status})")
        current = PaymentStatus(self.payment_status)
        if current not in RETRYABLE_PAYMENT_STATUSES:
            raise InvalidOperationError(f"Payment already initiated (payment status: {current.value})")

        self.payment_provider = provider
        self.payment_reference = reference
        self.payment_attempts = (self.payment_attempts or 0) + 1
        self._set_payment_status(PaymentStatus.AWAITING_CONFIRMATION, source="checkout")

    def merge_payment_status(self, status, reference=None, source="provider") -> bool:
        """Apply a provider-reported payment status, forward only.

        Returns True if the order changed. Backward moves, repeats, writes
        after a terminal status and reports for a superseded payment
        reference are ignored.
        """
        status = PaymentStatus(status)
        if not is_provider_reportable(status):
            raise ValidationError({"payment_status": [f"{status.value} can only be set by the merchant"]})

        if reference is not None and self.payment_reference and str(reference) != self.payment_reference:
            return False

        current = PaymentStatus(self.payment_status)
        if not is_provider_reportable(current) or _PAYMENT_RANK[current] == 2:
            return False
        if _PAYMENT_RANK[status] <= _PAYMENT_RANK[current]:
            return False

        self._set_payment_status(status, source=source)
        if status == PaymentStatus.PAID and OrderStatus(self.order_status) == OrderStatus.AWAITING_PAYMENT:
            self._transition(OrderStatus.CONFIRMED, reason="Payment received")
        return True

    def mark_pay_at_counter(self):
        """Merchant accepts payment at the counter instead of online."""
        if OrderStatus(self.order_status) != OrderStatus.AWAITING_PAYMENT:
            raise InvalidOperationError(f"Order is not awaiting payment (status: {self.order_status})")
        if PaymentStatus(self.payment_status) in SETTLED_PAYMENT_STATUSES:
            raise InvalidOperationError(f"Payment is already settled ({self.payment_status})")

        self._set_payment_status(PaymentStatus.PAY_AT_COUNTER, source="merchant")
        self._transition(OrderStatus.CONFIRMED, reason="Pay at counter")

    def refund(self, reason=None):
        """Merchant refunds a paid order. Open orders are cancelled."""
        if PaymentStatus(self.payment_status) != PaymentStatus.PAID:
            raise InvalidOperationError("Only paid orders can be refunded")

        self._set_payment_status(PaymentStatus.REFUNDED, source="merchant")
        if not self.is_terminal:
            self.cancel(reason or "Refunded")

    # -------------------------------------------------------------------
    # Order lifecycle
    # -------------------------------------------------------------------
    def advance_status(self, new_status):
        """Move the order through its preparation lifecycle."""
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise ValidationError({"order_status": [f"Unknown order status {new_status}"]}) from None
        if target == OrderStatus.CANCELLED:
            self.cancel()
            return
        if target == OrderStatus.CONFIRMED:
            raise ValidationError({"order_status": ["Orders are confirmed by payment, not manually"]})
        if not self.is_payment_complete:
            raise ValidationError({"order_status": ["Order cannot be prepared before payment is complete"]})
        self._transition(target)

    def cancel(self, reason=None):
        self._transition(OrderStatus.CANCELLED, reason=reason)
        now = datetime.now(UTC)
        self.cancelled_at = now
        self.cancellation_reason = reason

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        """Validate that the current state allows transition to target."""
        current = OrderStatus(self.order_status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError(
                {"order_status": [f"Cannot transition from {current.value} to {target_status.value}"]}
            )

    def _transition(self, target_status, reason=None):
        self._assert_can_transition(target_status)
        previous = self.order_status
        self.order_status = target_status.value
        now = datetime.now(UTC)
        self.updated_at = now
        if target_status == OrderStatus.CONFIRMED:
            self.confirmed_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=target_status.value,
                reason=reason,
            )
        )

    def _set_payment_status(self, status, source):
        previous = self.payment_status
        self.payment_status = status.value
        self.updated_at = datetime.now(UTC)

        self.raise_(
            PaymentStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=status.value,
                payment_provider=self.payment_provider,
                payment_reference=self.payment_reference,
                source=source,
            )
        )
