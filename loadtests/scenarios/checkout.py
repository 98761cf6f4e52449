"""Checkout load test scenarios.

Each simulated shopper gets its own always-open store with an active
payment account and a small menu, then runs the full journey against the
fake providers:

Create Cart -> Add Lines -> Checkout -> Open Session -> Settle -> Poll / Return.
"""

import json
import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    checkout_data,
    connect_account_data,
    menu_items,
    oauth_account_data,
    selections,
    store_data,
)
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import CheckoutState, StoreState

WEBHOOK_HEADERS = {"x-provider-signature": "test-signature"}


class CheckoutJourney(SequentialTaskSet):
    """Cart -> order -> payment session -> paid, with a repeated checkout call.

    Exercises idempotent order creation, both provider shapes and the
    shared webhook/poll write path.
    """

    def on_start(self):
        self.store = StoreState()
        self.state = CheckoutState()
        self._set_up_store()

    def _set_up_store(self):
        payload = store_data()
        resp = self.client.post("/stores", json=payload, name="POST /stores")
        self.store.store_id = resp.json()["store_id"]
        self.store.merchant_id = payload["merchant_id"]

        self.client.put(
            f"/stores/{self.store.store_id}/accounts/connect",
            json=connect_account_data(),
            name="PUT /stores/{id}/accounts/connect",
        )
        self.client.put(
            f"/stores/{self.store.store_id}/accounts/oauth",
            json=oauth_account_data(),
            name="PUT /stores/{id}/accounts/oauth",
        )
        items = menu_items()
        self.client.put(f"/stores/{self.store.store_id}/menu", json={"items": items}, name="PUT /stores/{id}/menu")
        self.store.item_ids = [item["id"] for item in items]

    @task
    def create_cart(self):
        with self.client.post(
            "/carts",
            json={"store_id": self.store.store_id},
            catch_response=True,
            name="POST /carts",
        ) as resp:
            if resp.status_code == 201:
                self.state.cart_id = resp.json()["cart_id"]
            else:
                resp.failure(f"Create cart failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def add_lines(self):
        for item_id in random.sample(self.store.item_ids, k=2):
            with self.client.post(
                f"/carts/{self.state.cart_id}/lines",
                json={"item_id": item_id, "quantity": random.randint(1, 3), "selections": selections()},
                catch_response=True,
                name="POST /carts/{id}/lines",
            ) as resp:
                if resp.status_code == 201:
                    self.state.line_ids.append(resp.json()["line_id"])
                else:
                    resp.failure(f"Add line failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def checkout(self):
        payload = checkout_data()
        with self.client.post(
            f"/carts/{self.state.cart_id}/checkout",
            json=payload,
            catch_response=True,
            name="POST /carts/{id}/checkout",
        ) as resp:
            if resp.status_code == 201:
                self.state.order_id = resp.json()["order_id"]
            else:
                resp.failure(f"Checkout failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

        # A double-submitted checkout must land on the same order
        with self.client.post(
            f"/carts/{self.state.cart_id}/checkout",
            json=payload,
            catch_response=True,
            name="POST /carts/{id}/checkout (repeat)",
        ) as resp:
            if resp.status_code != 201 or resp.json()["order_id"] != self.state.order_id:
                resp.failure("Repeated checkout produced a different order")

    @task
    def open_session(self):
        self.state.provider = random.choice(["stripe", "mollie"])
        with self.client.post(
            f"/orders/{self.state.order_id}/payment-session",
            json={"provider": self.state.provider},
            catch_response=True,
            name="POST /orders/{id}/payment-session",
        ) as resp:
            if resp.status_code == 200:
                self.state.payment_reference = resp.json()["reference"]
            else:
                resp.failure(f"Open session failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def settle_and_confirm(self):
        self.client.post(
            f"/providers/{self.state.provider}/settle",
            json={"reference": self.state.payment_reference, "status": "paid"},
            name="POST /providers/{name}/settle",
        )
        if self.state.provider == "mollie":
            url, name = f"/orders/{self.state.order_id}/payment-return", "GET /orders/{id}/payment-return"
        else:
            # Embedded payments learn the outcome from the webhook, then the poll
            self.client.post(
                f"/webhooks/{self.state.provider}",
                data=json.dumps({"reference": self.state.payment_reference, "status": "paid"}),
                headers=WEBHOOK_HEADERS,
                name="POST /webhooks/{provider}",
            )
            url, name = f"/orders/{self.state.order_id}/payment-status", "GET /orders/{id}/payment-status"

        with self.client.get(url, catch_response=True, name=name) as resp:
            if resp.status_code == 200 and resp.json()["payment_status"] == "paid":
                self.state.payment_status = "paid"
            else:
                resp.failure(f"Payment not confirmed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class CheckoutUser(HttpUser):
    """Shopper placing and paying for orders."""

    tasks = [CheckoutJourney]
    wait_time = between(1, 3)
