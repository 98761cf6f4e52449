"""Subscription aggregate (CQRS): the merchant's plan with the platform.

Status lifecycle:
    NONE → TRIALING → ACTIVE ⇄ PAST_DUE
    TRIALING → PAUSED (trial ended without a payment method) → ACTIVE
    ACTIVE | TRIALING | PAST_DUE → CANCELED

The provider is the source of truth for status; local transitions mirror
what was asked of it and are overwritten by the next sync. The plan tier is
looked up from the price id and never stored.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import Boolean, DateTime, Identifier, String

from billing.domain import billing
from billing.subscription.events import (
    SubscriptionCancellationScheduled,
    SubscriptionStatusChanged,
)
from shared.settings import get_settings


class SubscriptionStatus(Enum):
    NONE = "none"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAUSED = "paused"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class PlanTier(Enum):
    STARTER = "starter"
    PROFESSIONAL = "professional"
    MAX = "max"


# Stripe subscription status → ours
PROVIDER_STATUS_MAP = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "paused": SubscriptionStatus.PAUSED,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete": SubscriptionStatus.NONE,
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.PAST_DUE,
}

PLAN_CHANGE_STATUSES = {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING}
CANCELLABLE_STATUSES = {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING, SubscriptionStatus.PAST_DUE}
TRIAL_START_STATUSES = {SubscriptionStatus.NONE, SubscriptionStatus.CANCELED}


def tier_for_price(price_id: str | None) -> PlanTier | None:
    tier = get_settings().price_tiers.get(price_id) if price_id else None
    return PlanTier(tier) if tier else None


def map_provider_status(raw: str) -> SubscriptionStatus:
    return PROVIDER_STATUS_MAP.get(raw, SubscriptionStatus.NONE)


@billing.aggregate
class Subscription:
    merchant_id = Identifier(required=True, unique=True)
    status = String(choices=SubscriptionStatus, default=SubscriptionStatus.NONE.value)
    price_id = String(max_length=255)
    cancel_at_period_end = Boolean(default=False)
    trial_ends_at = DateTime()
    current_period_end = DateTime()
    customer_id = String(max_length=255)  # Provider-side customer
    subscription_id = String(max_length=255)  # Provider-side subscription
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, merchant_id, customer_id=None):
        now = datetime.now(UTC)
        return cls(
            merchant_id=str(merchant_id),
            customer_id=customer_id,
            created_at=now,
            updated_at=now,
        )

    @property
    def plan_tier(self) -> PlanTier | None:
        return tier_for_price(self.price_id)

    def _current(self) -> SubscriptionStatus:
        return SubscriptionStatus(self.status)

    def _require_customer(self):
        if not self.customer_id:
            raise InvalidOperationError("Subscription has no billing customer yet")

    # -------------------------------------------------------------------
    # Preconditions for provider-hosted actions
    # -------------------------------------------------------------------
    def ensure_can_start_trial(self, price_id: str):
        self._require_customer()
        if self._current() not in TRIAL_START_STATUSES:
            raise InvalidOperationError(f"Cannot start a trial while the subscription is {self.status}")
        if tier_for_price(price_id) is None:
            raise ValidationError({"price_id": [f"Unknown price {price_id}"]})

    def ensure_can_change_plan(self, price_id: str):
        """A plan change opens hosted checkout; nothing changes locally until the provider syncs."""
        self._require_customer()
        if self._current() not in PLAN_CHANGE_STATUSES:
            raise InvalidOperationError(f"Cannot change plan while the subscription is {self.status}")
        if tier_for_price(price_id) is None:
            raise ValidationError({"price_id": [f"Unknown price {price_id}"]})
        if price_id == self.price_id:
            raise ValidationError({"price_id": ["Already subscribed to this plan"]})

    def ensure_portal_available(self):
        self._require_customer()

    # -------------------------------------------------------------------
    # State changes
    # -------------------------------------------------------------------
    def cancel(self, immediately: bool = False):
        if self._current() not in CANCELLABLE_STATUSES:
            raise InvalidOperationError(f"Cannot cancel a subscription that is {self.status}")

        if immediately:
            self.cancel_at_period_end = False
            self._set_status(SubscriptionStatus.CANCELED)
        else:
            self.cancel_at_period_end = True
            self.updated_at = datetime.now(UTC)
            self.raise_(
                SubscriptionCancellationScheduled(
                    subscription_id=str(self.id),
                    merchant_id=str(self.merchant_id),
                    current_period_end=self.current_period_end,
                )
            )

    def resume(self):
        if self._current() != SubscriptionStatus.PAUSED:
            raise InvalidOperationError(f"Only a paused subscription can be resumed (status: {self.status})")
        self._set_status(SubscriptionStatus.ACTIVE)

    def sync_from_provider(self, snapshot):
        """Adopt the provider's view (``billing.gateway.port.SubscriptionSnapshot``)."""
        self.subscription_id = snapshot.subscription_id
        if snapshot.customer_id:
            self.customer_id = snapshot.customer_id
        if snapshot.price_id:
            self.price_id = snapshot.price_id
        self.cancel_at_period_end = snapshot.cancel_at_period_end
        self.current_period_end = snapshot.current_period_end or self.current_period_end
        self.trial_ends_at = snapshot.trial_end or self.trial_ends_at
        self._set_status(map_provider_status(snapshot.status))

    def _set_status(self, new_status: SubscriptionStatus):
        previous = self.status
        self.status = new_status.value
        self.updated_at = datetime.now(UTC)
        if previous != new_status.value:
            self.raise_(
                SubscriptionStatusChanged(
                    subscription_id=str(self.id),
                    merchant_id=str(self.merchant_id),
                    previous_status=previous,
                    new_status=new_status.value,
                    price_id=self.price_id,
                )
            )
