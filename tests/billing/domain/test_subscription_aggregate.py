"""Tests for the Subscription aggregate."""

from datetime import UTC, datetime, timedelta

import pytest
from billing.gateway.port import SubscriptionSnapshot
from billing.subscription.events import SubscriptionCancellationScheduled, SubscriptionStatusChanged
from billing.subscription.subscription import (
    PlanTier,
    Subscription,
    SubscriptionStatus,
    map_provider_status,
    tier_for_price,
)
from protean.exceptions import InvalidOperationError, ValidationError


def _make_subscription(status=SubscriptionStatus.NONE, price_id=None, customer_id="cus_001"):
    subscription = Subscription.create("merchant-001", customer_id=customer_id)
    subscription.status = status.value
    subscription.price_id = price_id
    subscription._events.clear()
    return subscription


class TestPlanTier:
    @pytest.mark.parametrize(
        "price_id, tier",
        [
            ("price_starter_monthly", PlanTier.STARTER),
            ("price_professional_yearly", PlanTier.PROFESSIONAL),
            ("price_max_monthly", PlanTier.MAX),
            ("price_unknown", None),
            (None, None),
        ],
    )
    def test_tier_for_price(self, price_id, tier):
        assert tier_for_price(price_id) == tier

    def test_tier_derived_from_price(self):
        subscription = _make_subscription(SubscriptionStatus.ACTIVE, price_id="price_max_yearly")
        assert subscription.plan_tier == PlanTier.MAX


class TestProviderStatusMapping:
    @pytest.mark.parametrize(
        "raw, status",
        [
            ("trialing", SubscriptionStatus.TRIALING),
            ("active", SubscriptionStatus.ACTIVE),
            ("paused", SubscriptionStatus.PAUSED),
            ("unpaid", SubscriptionStatus.PAST_DUE),
            ("incomplete_expired", SubscriptionStatus.CANCELED),
            ("incomplete", SubscriptionStatus.NONE),
            ("something_new", SubscriptionStatus.NONE),
        ],
    )
    def test_map_provider_status(self, raw, status):
        assert map_provider_status(raw) == status


class TestPreconditions:
    def test_trial_from_none(self):
        _make_subscription().ensure_can_start_trial("price_starter_monthly")

    def test_trial_rejected_while_active(self):
        with pytest.raises(InvalidOperationError):
            _make_subscription(SubscriptionStatus.ACTIVE).ensure_can_start_trial("price_starter_monthly")

    def test_trial_requires_known_price(self):
        with pytest.raises(ValidationError) as exc:
            _make_subscription().ensure_can_start_trial("price_gold")
        assert "price_id" in exc.value.messages

    def test_trial_requires_customer(self):
        with pytest.raises(InvalidOperationError):
            _make_subscription(customer_id=None).ensure_can_start_trial("price_starter_monthly")

    def test_change_plan_while_active(self):
        subscription = _make_subscription(SubscriptionStatus.ACTIVE, price_id="price_starter_monthly")
        subscription.ensure_can_change_plan("price_max_monthly")

    def test_change_to_same_plan_rejected(self):
        subscription = _make_subscription(SubscriptionStatus.ACTIVE, price_id="price_starter_monthly")
        with pytest.raises(ValidationError) as exc:
            subscription.ensure_can_change_plan("price_starter_monthly")
        assert exc.value.messages["price_id"] == ["Already subscribed to this plan"]

    @pytest.mark.parametrize("status", [SubscriptionStatus.PAUSED, SubscriptionStatus.CANCELED])
    def test_change_plan_rejected_when_not_running(self, status):
        with pytest.raises(InvalidOperationError):
            _make_subscription(status).ensure_can_change_plan("price_max_monthly")

    def test_portal_requires_customer(self):
        with pytest.raises(InvalidOperationError):
            _make_subscription(customer_id=None).ensure_portal_available()


class TestCancel:
    def test_cancel_at_period_end_keeps_status(self):
        subscription = _make_subscription(SubscriptionStatus.ACTIVE)
        subscription.cancel()
        assert subscription.status == "active"
        assert subscription.cancel_at_period_end is True

    def test_cancel_at_period_end_raises_event(self):
        subscription = _make_subscription(SubscriptionStatus.ACTIVE)
        subscription.cancel()
        assert isinstance(subscription._events[0], SubscriptionCancellationScheduled)

    def test_cancel_immediately(self):
        subscription = _make_subscription(SubscriptionStatus.TRIALING)
        subscription.cancel(immediately=True)
        assert subscription.status == "canceled"
        assert subscription.cancel_at_period_end is False

    def test_cancel_immediately_raises_status_changed(self):
        subscription = _make_subscription(SubscriptionStatus.PAST_DUE)
        subscription.cancel(immediately=True)
        event = subscription._events[0]
        assert isinstance(event, SubscriptionStatusChanged)
        assert event.previous_status == "past_due"
        assert event.new_status == "canceled"

    @pytest.mark.parametrize("status", [SubscriptionStatus.NONE, SubscriptionStatus.CANCELED])
    def test_cannot_cancel(self, status):
        with pytest.raises(InvalidOperationError):
            _make_subscription(status).cancel()


class TestResume:
    def test_resume_paused(self):
        subscription = _make_subscription(SubscriptionStatus.PAUSED)
        subscription.resume()
        assert subscription.status == "active"

    @pytest.mark.parametrize(
        "status",
        [SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELED, SubscriptionStatus.PAST_DUE],
    )
    def test_only_paused_can_resume(self, status):
        with pytest.raises(InvalidOperationError):
            _make_subscription(status).resume()


class TestSyncFromProvider:
    def test_adopts_provider_view(self):
        period_end = datetime.now(UTC) + timedelta(days=30)
        subscription = _make_subscription()
        subscription.sync_from_provider(
            SubscriptionSnapshot(
                subscription_id="sub_001",
                customer_id="cus_001",
                status="trialing",
                price_id="price_professional_monthly",
                current_period_end=period_end,
                trial_end=period_end,
            )
        )
        assert subscription.status == "trialing"
        assert subscription.subscription_id == "sub_001"
        assert subscription.plan_tier == PlanTier.PROFESSIONAL
        assert subscription.trial_ends_at == period_end

    def test_unchanged_status_raises_no_event(self):
        subscription = _make_subscription(SubscriptionStatus.ACTIVE, price_id="price_starter_monthly")
        subscription.sync_from_provider(
            SubscriptionSnapshot(subscription_id="sub_001", customer_id="cus_001", status="active")
        )
        assert subscription._events == []

    def test_keeps_price_when_snapshot_has_none(self):
        subscription = _make_subscription(SubscriptionStatus.ACTIVE, price_id="price_starter_monthly")
        subscription.sync_from_provider(
            SubscriptionSnapshot(subscription_id="sub_001", customer_id="cus_001", status="past_due")
        )
        assert subscription.price_id == "price_starter_monthly"
        assert subscription.status == "past_due"
