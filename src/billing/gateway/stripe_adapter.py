"""Stripe Billing adapter for merchant subscriptions."""

from collections.abc import Mapping
from datetime import UTC, datetime

import stripe
import structlog

from billing.gateway.port import (
    TRIAL_DAYS,
    BillingGateway,
    BillingGatewayError,
    HostedLink,
    InvalidBillingSignature,
    SubscriptionSnapshot,
)

logger = structlog.get_logger(__name__)

_SUBSCRIPTION_EVENTS = {
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "customer.subscription.paused",
    "customer.subscription.resumed",
}


def _timestamp(value) -> datetime | None:
    return datetime.fromtimestamp(value, UTC) if value else None


def snapshot_from_stripe(subscription) -> SubscriptionSnapshot:
    items = subscription.get("items", {}).get("data", [])
    first = items[0] if items else {}
    customer = subscription.get("customer")
    # Newer API versions report the billing period per item
    period_end = subscription.get("current_period_end") or first.get("current_period_end")
    return SubscriptionSnapshot(
        subscription_id=subscription["id"],
        customer_id=customer if isinstance(customer, str) else customer["id"],
        status=subscription["status"],
        price_id=first.get("price", {}).get("id"),
        current_period_end=_timestamp(period_end),
        trial_end=_timestamp(subscription.get("trial_end")),
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
    )


class StripeBillingGateway(BillingGateway):
    def __init__(self, api_key: str, webhook_secret: str) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _call(self, what: str, fn, *args, **kwargs):
        try:
            return fn(*args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as exc:
            logger.warning("Stripe billing call failed", call=what, error=str(exc))
            raise BillingGatewayError(f"Stripe could not {what}: {exc.user_message or exc}") from exc

    def start_trial(self, customer_id: str, price_id: str) -> SubscriptionSnapshot:
        subscription = self._call(
            "start the trial",
            stripe.Subscription.create,
            customer=customer_id,
            items=[{"price": price_id}],
            trial_period_days=TRIAL_DAYS,
            payment_settings={"save_default_payment_method": "on_subscription"},
            # Without a payment method the subscription pauses instead of billing
            trial_settings={"end_behavior": {"missing_payment_method": "pause"}},
        )
        return snapshot_from_stripe(subscription)

    def create_checkout(self, customer_id, price_id, success_url, cancel_url, metadata=None) -> HostedLink:
        session = self._call(
            "open a subscription checkout",
            stripe.checkout.Session.create,
            customer=customer_id,
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=dict(metadata or {}),
        )
        return HostedLink(url=session.url, session_id=session.id)

    def cancel(self, subscription_id: str, at_period_end: bool) -> SubscriptionSnapshot:
        if at_period_end:
            subscription = self._call(
                "schedule the cancellation",
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
            )
        else:
            subscription = self._call("cancel the subscription", stripe.Subscription.cancel, subscription_id)
        return snapshot_from_stripe(subscription)

    def resume(self, subscription_id: str) -> SubscriptionSnapshot:
        subscription = self._call(
            "resume the subscription",
            stripe.Subscription.resume,
            subscription_id,
            billing_cycle_anchor="now",
        )
        return snapshot_from_stripe(subscription)

    def create_portal_session(self, customer_id: str, return_url: str) -> HostedLink:
        session = self._call(
            "open the billing portal",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return HostedLink(url=session.url, session_id=session.id)

    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> SubscriptionSnapshot | None:
        try:
            event = stripe.Webhook.construct_event(payload, headers.get("stripe-signature", ""), self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise InvalidBillingSignature(str(exc)) from exc

        if event.type not in _SUBSCRIPTION_EVENTS:
            return None
        return snapshot_from_stripe(event.data.object)
