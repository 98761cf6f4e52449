"""Integration tests for the Storefront API via TestClient."""

import inspect
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain
from shared.error_handlers import register_error_handlers
from storefront.api.routes import (
    cart_router,
    open_payment_session,
    order_router,
    payment_return,
    payment_status,
    provider_router,
    provider_webhook,
    store_router,
    webhook_router,
)
from storefront.order.order import Order
from storefront.provider import get_provider


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(store_router)
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(webhook_router)
    app.include_router(provider_router)
    register_error_handlers(app)
    return TestClient(app)


def _order_body(store_id, **overrides):
    body = {
        "store_id": store_id,
        "idempotency_key": "K1",
        "order_type": "dine_in",
        "items": [{"item_id": "margherita", "quantity": 1, "selections": {"size": ["regular"]}}],
        "customer_name": "Ada",
    }
    body.update(overrides)
    return body


def _create_order(client, store_id, **overrides):
    response = client.post("/orders", json=_order_body(store_id, **overrides))
    assert response.status_code == 201
    return response.json()["order_id"]


class TestStoreEndpoints:
    def test_register_store(self, client):
        response = client.post(
            "/stores",
            json={
                "merchant_id": "merchant-100",
                "name": "Trattoria Roma",
                "timezone": "Europe/Amsterdam",
                "opening_periods": [{"day_of_week": "friday", "open_time": "17:00", "close_time": "23:00"}],
            },
        )
        assert response.status_code == 201
        assert response.json()["store_id"]

    def test_bad_opening_hours(self, client):
        response = client.post(
            "/stores",
            json={
                "merchant_id": "merchant-100",
                "name": "Trattoria Roma",
                "opening_periods": [{"day_of_week": "funday", "open_time": "17:00", "close_time": "23:00"}],
            },
        )
        assert response.status_code == 400
        assert response.json()["kind"] == "validation_error"

    def test_capabilities(self, client, make_store):
        store_id = make_store(connect=False)
        data = client.get(f"/stores/{store_id}/capabilities").json()
        assert data == {
            "can_accept_online_payment": True,
            "can_place_orders": True,
            "is_open": True,
            "available_providers": ["mollie"],
        }

    def test_account_sync_enables_payments(self, client, make_store):
        store_id = make_store(connect=False, oauth=False)
        assert client.get(f"/stores/{store_id}/capabilities").json()["can_accept_online_payment"] is False

        response = client.put(
            f"/stores/{store_id}/accounts/connect",
            json={
                "account_id": "acct_new",
                "onboarding_complete": True,
                "capabilities_status": "active",
            },
        )
        assert response.status_code == 200
        assert client.get(f"/stores/{store_id}/capabilities").json()["available_providers"] == ["stripe"]

    def test_unknown_store(self, client):
        response = client.get("/stores/missing/capabilities")
        assert response.status_code == 400
        assert "store_id" in response.json()["errors"]


class TestMenuEndpoints:
    def test_default_selections(self, client, store_id):
        data = client.get(f"/stores/{store_id}/menu/margherita/defaults").json()
        assert data["selections"]["size"] == ["regular"]
        assert data["selections"]["toppings"] == []

    def test_price_item(self, client, store_id):
        response = client.post(
            f"/stores/{store_id}/menu/margherita/price",
            json={"quantity": 2, "selections": {"size": ["large"], "toppings": ["truffle", "olives", "basil"]}},
        )
        data = response.json()
        assert response.status_code == 200
        assert data["line_id"] == "margherita:basil:large:olives:truffle"
        assert data["total_price"] == (1299 + 300 + 600) * 2

    def test_validate_reports_failures(self, client, store_id):
        data = client.post(f"/stores/{store_id}/menu/wings/validate", json={"selections": {"dips": {"bbq": 2}}}).json()
        assert data["valid"] is False
        assert [f["group_id"] for f in data["failures"]] == ["dips"]

    def test_validate_accepts_bounds(self, client, store_id):
        data = client.post(f"/stores/{store_id}/menu/wings/validate", json={"selections": {"dips": {"bbq": 3}}}).json()
        assert data == {"valid": True, "failures": []}

    def test_unknown_item(self, client, store_id):
        assert client.get(f"/stores/{store_id}/menu/calzone/defaults").status_code == 404


class TestCartEndpoints:
    def test_cart_round_trip(self, client, store_id):
        cart_id = client.post("/carts", json={"store_id": store_id}).json()["cart_id"]
        line_id = client.post(
            f"/carts/{cart_id}/lines", json={"item_id": "margherita", "selections": {"size": ["large"]}}
        ).json()["line_id"]
        assert line_id == "margherita:large"

        client.put(f"/carts/{cart_id}/lines/{line_id}", json={"quantity": 2})
        cart = client.get(f"/carts/{cart_id}").json()
        assert cart["item_count"] == 2
        assert cart["subtotal"] == 1599 * 2

        order_id = client.post(
            f"/carts/{cart_id}/checkout", json={"order_type": "dine_in", "customer_name": "Ada"}
        ).json()["order_id"]
        assert client.get(f"/carts/{cart_id}").json()["checkout_order_id"] == order_id

    def test_invalid_selection(self, client, store_id):
        cart_id = client.post("/carts", json={"store_id": store_id}).json()["cart_id"]
        response = client.post(f"/carts/{cart_id}/lines", json={"item_id": "wings", "selections": {"dips": {"bbq": 7}}})
        assert response.status_code == 400
        assert "dips" in response.json()["errors"]


class TestOrderEndpoints:
    def test_create_and_read(self, client, store_id):
        order_id = _create_order(client, store_id, tip_amount=100)
        data = client.get(f"/orders/{order_id}").json()
        assert data["order_status"] == "awaiting_payment"
        assert data["payment_status"] == "pending"
        assert data["total_amount"] == 1399
        assert data["items"][0]["unit_price"] == 1299
        assert data["next_statuses"] == ["cancelled", "confirmed"]

    def test_same_key_same_order(self, client, store_id):
        assert _create_order(client, store_id) == _create_order(client, store_id)

    def test_stale_price_rejected(self, client, store_id):
        items = [{"item_id": "margherita", "quantity": 1, "selections": {"size": ["large"]}, "total_price": 1299}]
        response = client.post("/orders", json=_order_body(store_id, items=items))
        assert response.status_code == 400
        assert "items" in response.json()["errors"]

    def test_closed_store(self, client, make_store):
        response = client.post("/orders", json=_order_body(make_store(open_days=[])))
        assert response.status_code == 409
        body = response.json()
        assert body["kind"] == "capability_unavailable"
        assert body["reason"] == "closed"

    def test_takeaway_without_slot_rejected(self, client, store_id):
        response = client.post("/orders", json=_order_body(store_id, order_type="takeaway"))
        assert response.status_code == 400
        assert "scheduled_pickup_time" in response.json()["errors"]

    def test_takeaway_with_slot(self, client, store_id):
        slot = (datetime.now(UTC) + timedelta(hours=1)).isoformat()
        order_id = _create_order(client, store_id, order_type="takeaway", scheduled_pickup_time=slot)
        assert client.get(f"/orders/{order_id}").json()["scheduled_pickup_time"]

    def test_service_point(self, client, store_id):
        point = client.post(f"/stores/{store_id}/service-points", json={"name": "Table 7"}).json()["service_point_id"]
        order_id = _create_order(client, store_id, service_point_id=point)
        assert client.get(f"/orders/{order_id}").json()["service_point_id"] == point

        client.put(f"/stores/{store_id}/service-points/{point}", json={"is_active": False})
        response = client.post("/orders", json=_order_body(store_id, idempotency_key="K2", service_point_id=point))
        assert response.status_code == 400
        assert "service_point_id" in response.json()["errors"]

    def test_disabled_order_type(self, client, store_id):
        assert client.put(f"/stores/{store_id}/order-types", json={"order_types": ["takeaway"]}).status_code == 200
        response = client.post("/orders", json=_order_body(store_id))
        assert response.status_code == 400
        assert "order_type" in response.json()["errors"]

    def test_unknown_order_type_setting_rejected(self, client, store_id):
        response = client.put(f"/stores/{store_id}/order-types", json={"order_types": ["drive_through"]})
        assert response.status_code == 400

    def test_missing_key_rejected_by_schema(self, client, store_id):
        response = client.post("/orders", json=_order_body(store_id, idempotency_key=""))
        assert response.status_code == 422

    def test_unknown_order(self, client):
        assert client.get("/orders/missing").json()["kind"] == "not_found"

    def test_merchant_actions(self, client, store_id):
        order_id = _create_order(client, store_id)
        assert client.post(f"/orders/{order_id}/pay-at-counter").json() == {"status": "pay_at_counter"}
        assert client.put(f"/orders/{order_id}/status", json={"status": "preparing"}).json() == {"status": "preparing"}

        kitchen = client.get(f"/stores/{store_id}/kitchen").json()
        assert [o["order_id"] for o in kitchen] == [order_id]

    def test_invalid_operation(self, client, store_id):
        order_id = _create_order(client, store_id)
        response = client.post(f"/orders/{order_id}/refund", json={})
        assert response.status_code == 409
        assert response.json()["kind"] == "invalid_operation"


class TestPaymentEndpoints:
    def test_redirect_session(self, client, store_id):
        order_id = _create_order(client, store_id)
        data = client.post(f"/orders/{order_id}/payment-session", json={"provider": "mollie"}).json()
        assert data["kind"] == "redirect"
        assert data["url"].startswith("https://pay.example.test/mollie/")
        assert data["client_secret"] is None

    def test_embedded_session(self, client, store_id):
        order_id = _create_order(client, store_id)
        data = client.post(f"/orders/{order_id}/payment-session", json={"provider": "stripe"}).json()
        assert data["kind"] == "session_polled"
        assert data["client_secret"]
        assert data["url"] is None

    def test_session_failure(self, client, store_id):
        get_provider("stripe").configure(fail_sessions=True, failure_reason="Gateway timeout")
        order_id = _create_order(client, store_id)
        response = client.post(f"/orders/{order_id}/payment-session", json={"provider": "stripe"})
        assert response.status_code == 502
        assert response.json() == {"kind": "provider_session_error", "message": "Gateway timeout", "provider": "stripe"}

    def test_unavailable_provider(self, client, make_store):
        store_id = make_store(oauth=False)
        order_id = _create_order(client, store_id)
        response = client.post(f"/orders/{order_id}/payment-session", json={"provider": "mollie"})
        assert response.status_code == 409
        assert response.json()["kind"] == "capability_unavailable"

    def test_return_with_unknown_status(self, client, store_id):
        order_id = _create_order(client, store_id)
        client.post(f"/orders/{order_id}/payment-session", json={"provider": "mollie"})
        get_provider("mollie").configure(fail_status=True)

        response = client.get(f"/orders/{order_id}/payment-return")
        assert response.status_code == 503
        assert response.json()["kind"] == "provider_status_unknown"

    def test_return_after_failed_payment(self, client, store_id):
        order_id = _create_order(client, store_id)
        reference = client.post(f"/orders/{order_id}/payment-session", json={"provider": "mollie"}).json()["reference"]
        client.post("/providers/mollie/settle", json={"reference": reference, "status": "expired"})

        response = client.get(f"/orders/{order_id}/payment-return")
        assert response.status_code == 402
        body = response.json()
        assert body["kind"] == "terminal_payment_failure"
        assert body["reason"] == "expired"

    def test_poll_while_awaiting(self, client, store_id):
        order_id = _create_order(client, store_id)
        client.post(f"/orders/{order_id}/payment-session", json={"provider": "stripe"})
        data = client.get(f"/orders/{order_id}/payment-status").json()
        assert data["payment_status"] == "awaiting_confirmation"
        assert data["next_poll_ms"] == 2000


class TestWebhookEndpoint:
    def test_signed_webhook(self, client, store_id):
        order_id = _create_order(client, store_id)
        reference = client.post(f"/orders/{order_id}/payment-session", json={"provider": "stripe"}).json()["reference"]

        response = client.post(
            "/webhooks/stripe",
            json={"reference": reference, "status": "paid"},
            headers={"x-provider-signature": "test-signature"},
        )
        assert response.json() == {"status": "processed"}
        assert current_domain.repository_for(Order).get(order_id).payment_status == "paid"

    def test_unsigned_webhook(self, client):
        response = client.post("/webhooks/stripe", json={"reference": "stripe_x", "status": "paid"})
        assert response.status_code == 401

    def test_lookup_failure_asks_for_redelivery(self, client, store_id):
        order_id = _create_order(client, store_id)
        reference = client.post(f"/orders/{order_id}/payment-session", json={"provider": "mollie"}).json()["reference"]
        get_provider("mollie").configure(fail_status=True)

        response = client.post(
            "/webhooks/mollie", json={"reference": reference}, headers={"x-provider-signature": "test-signature"}
        )
        assert response.status_code == 503


class TestProviderControls:
    def test_configure_fake_provider(self, client):
        data = client.post("/providers/mollie/configure", json={"fail_status": True}).json()
        assert data == {"provider": "mollie", "kind": "redirect", "fail_sessions": False, "fail_status": True}

    def test_settle_unknown_outcome(self, client):
        response = client.post("/providers/mollie/settle", json={"reference": "mollie_x", "status": "stolen"})
        assert response.status_code == 400

    def test_unknown_provider(self, client):
        response = client.post("/providers/paypal/configure", json={})
        assert response.status_code == 409
        assert response.json()["kind"] == "capability_unavailable"


class TestProviderCallingEndpoints:
    @pytest.mark.parametrize("endpoint", [open_payment_session, payment_status, payment_return, provider_webhook])
    def test_run_off_the_event_loop(self, endpoint):
        # FastAPI runs plain functions in its threadpool
        assert not inspect.iscoroutinefunction(endpoint)
