"""Application tests for opening payment sessions."""

import json

import pytest
from protean import current_domain
from protean.exceptions import InvalidOperationError
from shared.errors import CapabilityUnavailable, ProviderSessionError
from storefront.merchant.onboarding import SetPreferredProvider
from storefront.order.creation import CreateOrder
from storefront.order.management import CancelOrder, MarkPayAtCounter
from storefront.order.order import Order
from storefront.payment.reconciliation import apply_provider_status
from storefront.payment.sessions import OpenPaymentSession
from storefront.provider import get_provider
from storefront.provider.port import EmbeddedSession, ProviderKind, RedirectSession


def _create_order(store_id, **overrides):
    defaults = {
        "store_id": store_id,
        "idempotency_key": "K1",
        "order_type": "dine_in",
        "items": json.dumps([{"item_id": "margherita", "quantity": 1, "selections": {"size": ["regular"]}}]),
        "customer_name": "Ada",
        "tip_amount": 200,
    }
    defaults.update(overrides)
    return current_domain.process(CreateOrder(**defaults), asynchronous=False)


def _open_session(order_id, provider=None, return_url=None):
    return current_domain.process(
        OpenPaymentSession(order_id=order_id, provider=provider, return_url=return_url),
        asynchronous=False,
    )


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestSessionShapes:
    def test_redirect_provider_returns_url(self, store_id):
        order_id = _create_order(store_id)
        session = _open_session(order_id, provider="mollie", return_url="https://shop.test/return")
        assert isinstance(session, RedirectSession)
        assert session.kind == ProviderKind.REDIRECT
        assert session.url.startswith("https://pay.example.test/mollie/")

    def test_embedded_provider_returns_client_secret(self, store_id):
        order_id = _create_order(store_id)
        session = _open_session(order_id, provider="stripe")
        assert isinstance(session, EmbeddedSession)
        assert session.kind == ProviderKind.SESSION_POLLED
        assert session.client_secret.startswith(session.reference)

    def test_order_records_attempt(self, store_id):
        order_id = _create_order(store_id)
        session = _open_session(order_id, provider="mollie")
        order = _order(order_id)
        assert order.payment_status == "awaiting_confirmation"
        assert order.payment_provider == "mollie"
        assert order.payment_reference == session.reference
        assert order.payment_attempts == 1

    def test_session_charges_order_total_on_merchant_account(self, make_store):
        store_id = make_store()
        order_id = _create_order(store_id)
        _open_session(order_id, provider="stripe")
        call = get_provider("stripe").calls[-1]
        assert call["amount"] == 1299 + 200
        assert call["currency"] == "EUR"
        assert call["merchant_account"].startswith("acct_")


class TestProviderChoice:
    def test_default_order_used(self, store_id):
        session = _open_session(_create_order(store_id))
        assert session.provider == "stripe"

    def test_store_preference_used(self, make_store):
        store_id = make_store(preferred_provider="mollie")
        session = _open_session(_create_order(store_id))
        assert session.provider == "mollie"

    def test_preference_can_change(self, store_id):
        current_domain.process(SetPreferredProvider(store_id=store_id, provider="mollie"), asynchronous=False)
        assert _open_session(_create_order(store_id)).provider == "mollie"

    def test_only_available_provider_used(self, make_store):
        store_id = make_store(connect=False)
        assert _open_session(_create_order(store_id)).provider == "mollie"

    def test_unavailable_provider_rejected(self, make_store):
        store_id = make_store(oauth=False)
        order_id = _create_order(store_id)
        with pytest.raises(CapabilityUnavailable):
            _open_session(order_id, provider="mollie")
        assert _order(order_id).payment_status == "pending"


class TestOneSessionPerOrder:
    def test_reopening_resumes_the_same_session(self, store_id):
        order_id = _create_order(store_id)
        first = _open_session(order_id, provider="mollie")
        second = _open_session(order_id)
        assert second == first
        assert _order(order_id).payment_attempts == 1

    def test_switching_provider_while_awaiting_rejected(self, store_id):
        order_id = _create_order(store_id)
        _open_session(order_id, provider="mollie")
        with pytest.raises(InvalidOperationError):
            _open_session(order_id, provider="stripe")

    @pytest.mark.parametrize("outcome", ["failed", "expired"])
    def test_new_session_after_failure(self, store_id, outcome):
        order_id = _create_order(store_id)
        first = _open_session(order_id, provider="mollie")
        apply_provider_status(order_id, outcome, reference=first.reference)

        second = _open_session(order_id, provider="stripe")
        order = _order(order_id)
        assert second.reference != first.reference
        assert order.payment_reference == second.reference
        assert order.payment_attempts == 2

    def test_paid_order_rejected(self, store_id):
        order_id = _create_order(store_id)
        session = _open_session(order_id, provider="mollie")
        apply_provider_status(order_id, "paid", reference=session.reference)
        with pytest.raises(InvalidOperationError):
            _open_session(order_id)

    def test_pay_at_counter_order_rejected(self, store_id):
        order_id = _create_order(store_id)
        current_domain.process(MarkPayAtCounter(order_id=order_id), asynchronous=False)
        with pytest.raises(InvalidOperationError):
            _open_session(order_id)

    def test_cancelled_order_rejected(self, store_id):
        order_id = _create_order(store_id)
        current_domain.process(CancelOrder(order_id=order_id), asynchronous=False)
        with pytest.raises(InvalidOperationError):
            _open_session(order_id)


class TestProviderFailure:
    def test_failure_leaves_order_untouched(self, store_id):
        get_provider("mollie").configure(fail_sessions=True, failure_reason="Gateway timeout")
        order_id = _create_order(store_id)
        with pytest.raises(ProviderSessionError) as exc:
            _open_session(order_id, provider="mollie")

        assert exc.value.to_dict() == {
            "kind": "provider_session_error",
            "message": "Gateway timeout",
            "provider": "mollie",
        }
        order = _order(order_id)
        assert order.payment_status == "pending"
        assert order.payment_reference is None
        assert order.payment_attempts == 0

    def test_retry_after_failure(self, store_id):
        provider = get_provider("mollie")
        provider.configure(fail_sessions=True)
        order_id = _create_order(store_id)
        with pytest.raises(ProviderSessionError):
            _open_session(order_id, provider="mollie")

        provider.configure(fail_sessions=False)
        assert _open_session(order_id, provider="mollie").reference
