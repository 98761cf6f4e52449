"""Application tests for provider-driven subscription sync."""

import json

import pytest
from billing.gateway.port import InvalidBillingSignature
from billing.subscription.lifecycle import CreateSubscription, StartTrial, subscription_for_merchant
from billing.subscription.subscription import Subscription
from billing.subscription.sync import handle_billing_webhook
from protean import current_domain

SIGNED = {"x-billing-signature": "test-billing-signature"}


def _webhook(**body):
    return handle_billing_webhook(json.dumps(body).encode(), SIGNED)


def _subscribed(merchant_id="merchant-001", customer_id="cus_001"):
    current_domain.process(CreateSubscription(merchant_id=merchant_id, customer_id=customer_id), asynchronous=False)
    current_domain.process(StartTrial(merchant_id=merchant_id, price_id="price_starter_monthly"), asynchronous=False)
    return subscription_for_merchant(merchant_id).subscription_id


class TestBillingWebhook:
    def test_status_change_applied(self):
        subscription_id = _subscribed()
        assert _webhook(subscription_id=subscription_id, status="active", price_id="price_max_yearly") == "processed"
        subscription = subscription_for_merchant("merchant-001")
        assert subscription.status == "active"
        assert subscription.plan_tier.value == "max"

    def test_first_event_matched_by_customer(self):
        command = CreateSubscription(merchant_id="merchant-001", customer_id="cus_001")
        current_domain.process(command, asynchronous=False)
        assert _webhook(subscription_id="sub_remote", customer_id="cus_001", status="active") == "processed"
        assert subscription_for_merchant("merchant-001").subscription_id == "sub_remote"

    def test_scheduled_cancellation_synced(self):
        subscription_id = _subscribed()
        _webhook(subscription_id=subscription_id, status="active", cancel_at_period_end=True)
        assert subscription_for_merchant("merchant-001").cancel_at_period_end is True

    def test_provider_statuses_mapped(self):
        subscription_id = _subscribed()
        _webhook(subscription_id=subscription_id, status="unpaid")
        assert subscription_for_merchant("merchant-001").status == "past_due"

    def test_unknown_subscription(self):
        assert _webhook(subscription_id="sub_ghost", customer_id="cus_ghost", status="active") == (
            "unknown_subscription"
        )
        assert current_domain.repository_for(Subscription)._dao.query.all().items == []

    def test_event_without_subscription_ignored(self):
        assert _webhook(type="invoice.created") == "ignored"

    def test_invalid_signature_rejected(self):
        subscription_id = _subscribed()
        payload = json.dumps({"subscription_id": subscription_id, "status": "canceled"}).encode()
        with pytest.raises(InvalidBillingSignature):
            handle_billing_webhook(payload, {"x-billing-signature": "forged"})
        assert subscription_for_merchant("merchant-001").status == "trialing"
