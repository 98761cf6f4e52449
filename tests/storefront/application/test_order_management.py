"""Application tests for merchant order actions and order queries."""

import json

import pytest
from protean import current_domain
from protean.exceptions import InvalidOperationError, ValidationError
from storefront.order.creation import CreateOrder
from storefront.order.management import AdvanceOrderStatus, CancelOrder, MarkPayAtCounter, RefundOrder
from storefront.order.order import Order
from storefront.order.queries import find_order_by_payment_reference, kitchen_orders, orders_for_store
from storefront.payment.reconciliation import apply_provider_status
from storefront.payment.sessions import OpenPaymentSession


def _create_order(store_id, key="K1"):
    return current_domain.process(
        CreateOrder(
            store_id=store_id,
            idempotency_key=key,
            order_type="dine_in",
            items=json.dumps([{"item_id": "soda", "quantity": 2}]),
            customer_name="Grace",
        ),
        asynchronous=False,
    )


def _paid_order(store_id, key="K1"):
    order_id = _create_order(store_id, key)
    apply_provider_status(order_id, "paid")
    return order_id


def _process(command):
    return current_domain.process(command, asynchronous=False)


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestAdvanceOrderStatus:
    def test_kitchen_progress(self, store_id):
        order_id = _paid_order(store_id)
        assert _process(AdvanceOrderStatus(order_id=order_id, status="preparing")) == "preparing"
        assert _process(AdvanceOrderStatus(order_id=order_id, status="ready")) == "ready"
        assert _process(AdvanceOrderStatus(order_id=order_id, status="completed")) == "completed"

    def test_unpaid_order_cannot_be_prepared(self, store_id):
        order_id = _create_order(store_id)
        with pytest.raises(ValidationError):
            _process(AdvanceOrderStatus(order_id=order_id, status="preparing"))
        assert _order(order_id).order_status == "awaiting_payment"

    def test_skipping_a_step_rejected(self, store_id):
        order_id = _paid_order(store_id)
        with pytest.raises(ValidationError):
            _process(AdvanceOrderStatus(order_id=order_id, status="completed"))

    def test_unknown_status_rejected(self, store_id):
        order_id = _paid_order(store_id)
        with pytest.raises(ValidationError) as exc:
            _process(AdvanceOrderStatus(order_id=order_id, status="burnt"))
        assert "order_status" in exc.value.messages


class TestCancelOrder:
    def test_cancel_open_order(self, store_id):
        order_id = _create_order(store_id)
        assert _process(CancelOrder(order_id=order_id, reason="Customer left")) == "cancelled"
        order = _order(order_id)
        assert order.cancellation_reason == "Customer left"
        assert order.cancelled_at is not None

    def test_completed_order_cannot_be_cancelled(self, store_id):
        order_id = _paid_order(store_id)
        for status in ("preparing", "ready", "completed"):
            _process(AdvanceOrderStatus(order_id=order_id, status=status))
        with pytest.raises(ValidationError):
            _process(CancelOrder(order_id=order_id))


class TestPayAtCounter:
    def test_confirms_order(self, store_id):
        order_id = _create_order(store_id)
        assert _process(MarkPayAtCounter(order_id=order_id)) == "pay_at_counter"
        assert _order(order_id).order_status == "confirmed"

    def test_replaces_open_online_session(self, store_id):
        order_id = _create_order(store_id)
        session = _process(OpenPaymentSession(order_id=order_id, provider="stripe"))
        _process(MarkPayAtCounter(order_id=order_id))

        # A late provider report cannot override the merchant
        apply_provider_status(order_id, "failed", reference=session.reference)
        assert _order(order_id).payment_status == "pay_at_counter"

    def test_paid_order_rejected(self, store_id):
        order_id = _paid_order(store_id)
        with pytest.raises(InvalidOperationError):
            _process(MarkPayAtCounter(order_id=order_id))


class TestRefundOrder:
    def test_refund_cancels_open_order(self, store_id):
        order_id = _paid_order(store_id)
        assert _process(RefundOrder(order_id=order_id, reason="Out of dough")) == "refunded"
        order = _order(order_id)
        assert order.order_status == "cancelled"
        assert order.cancellation_reason == "Out of dough"

    def test_refund_completed_order_keeps_status(self, store_id):
        order_id = _paid_order(store_id)
        for status in ("preparing", "ready", "completed"):
            _process(AdvanceOrderStatus(order_id=order_id, status=status))
        _process(RefundOrder(order_id=order_id))
        order = _order(order_id)
        assert order.payment_status == "refunded"
        assert order.order_status == "completed"

    def test_unpaid_order_cannot_be_refunded(self, store_id):
        with pytest.raises(InvalidOperationError):
            _process(RefundOrder(order_id=_create_order(store_id)))


class TestOrderQueries:
    def test_orders_for_store_in_creation_order(self, store_id, make_store):
        first = _create_order(store_id, "K1")
        second = _create_order(store_id, "K2")
        _create_order(make_store(), "K1")
        assert [str(o.id) for o in orders_for_store(store_id)] == [first, second]

    def test_orders_for_store_filters(self, store_id):
        paid = _paid_order(store_id, "K1")
        _create_order(store_id, "K2")
        assert [str(o.id) for o in orders_for_store(store_id, payment_status="paid")] == [paid]
        assert len(orders_for_store(store_id, order_status="awaiting_payment")) == 1

    def test_kitchen_sees_paid_unfinished_orders(self, store_id):
        paid = _paid_order(store_id, "K1")
        counter = _create_order(store_id, "K2")
        _process(MarkPayAtCounter(order_id=counter))
        _create_order(store_id, "K3")
        done = _paid_order(store_id, "K4")
        for status in ("preparing", "ready", "completed"):
            _process(AdvanceOrderStatus(order_id=done, status=status))

        assert {str(o.id) for o in kitchen_orders(store_id)} == {paid, counter}

    def test_find_by_payment_reference(self, store_id):
        order_id = _create_order(store_id)
        session = _process(OpenPaymentSession(order_id=order_id, provider="mollie"))
        assert str(find_order_by_payment_reference(session.reference).id) == order_id
        assert find_order_by_payment_reference("missing") is None
