"""Configurable fake billing gateway for development and testing.

Keeps subscriptions in memory and records every call. Webhooks are plain
JSON signed with a fixed test signature header.
"""

import json
from collections.abc import Mapping
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from billing.gateway.port import (
    TRIAL_DAYS,
    BillingGateway,
    BillingGatewayError,
    HostedLink,
    InvalidBillingSignature,
    SubscriptionSnapshot,
)

SIGNATURE_HEADER = "x-billing-signature"
TEST_SIGNATURE = "test-billing-signature"


class FakeBillingGateway(BillingGateway):
    """Configurable fake billing gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Billing provider unavailable"
        self.subscriptions: dict[str, SubscriptionSnapshot] = {}
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Billing provider unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def _check(self) -> None:
        if not self.should_succeed:
            raise BillingGatewayError(self.failure_reason)

    def _replace(self, subscription_id: str, **changes) -> SubscriptionSnapshot:
        current = self.subscriptions.get(subscription_id)
        if current is None:
            raise BillingGatewayError(f"No such subscription {subscription_id}")
        updated = replace(current, **changes)
        self.subscriptions[subscription_id] = updated
        return updated

    def start_trial(self, customer_id: str, price_id: str) -> SubscriptionSnapshot:
        self.calls.append({"method": "start_trial", "customer_id": customer_id, "price_id": price_id})
        self._check()

        trial_end = datetime.now(UTC) + timedelta(days=TRIAL_DAYS)
        snapshot = SubscriptionSnapshot(
            subscription_id=f"sub_fake_{uuid4().hex[:12]}",
            customer_id=customer_id,
            status="trialing",
            price_id=price_id,
            current_period_end=trial_end,
            trial_end=trial_end,
        )
        self.subscriptions[snapshot.subscription_id] = snapshot
        return snapshot

    def create_checkout(self, customer_id, price_id, success_url, cancel_url, metadata=None) -> HostedLink:
        self.calls.append(
            {
                "method": "create_checkout",
                "customer_id": customer_id,
                "price_id": price_id,
                "metadata": dict(metadata or {}),
            }
        )
        self._check()
        session_id = f"cs_fake_{uuid4().hex[:12]}"
        return HostedLink(url=f"https://billing.example.test/checkout/{session_id}", session_id=session_id)

    def cancel(self, subscription_id: str, at_period_end: bool) -> SubscriptionSnapshot:
        self.calls.append({"method": "cancel", "subscription_id": subscription_id, "at_period_end": at_period_end})
        self._check()
        if at_period_end:
            return self._replace(subscription_id, cancel_at_period_end=True)
        return self._replace(subscription_id, status="canceled", cancel_at_period_end=False)

    def resume(self, subscription_id: str) -> SubscriptionSnapshot:
        self.calls.append({"method": "resume", "subscription_id": subscription_id})
        self._check()
        period_end = datetime.now(UTC) + timedelta(days=30)
        return self._replace(subscription_id, status="active", current_period_end=period_end)

    def create_portal_session(self, customer_id: str, return_url: str) -> HostedLink:
        self.calls.append({"method": "create_portal_session", "customer_id": customer_id, "return_url": return_url})
        self._check()
        return HostedLink(url=f"https://billing.example.test/portal/{customer_id}?return={return_url}")

    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> SubscriptionSnapshot | None:
        if headers.get(SIGNATURE_HEADER) != TEST_SIGNATURE:
            raise InvalidBillingSignature("Invalid webhook signature")

        body = json.loads(payload or b"{}")
        if not body.get("subscription_id") or not body.get("status"):
            return None
        snapshot = SubscriptionSnapshot(
            subscription_id=body["subscription_id"],
            customer_id=body.get("customer_id", ""),
            status=body["status"],
            price_id=body.get("price_id"),
            cancel_at_period_end=body.get("cancel_at_period_end", False),
        )
        self.subscriptions[snapshot.subscription_id] = snapshot
        return snapshot
