"""Provider-driven subscription sync, fed by the signed billing webhook."""

import structlog
from protean import handle
from protean.fields import Boolean, DateTime, String
from protean.utils.globals import current_domain

from billing.domain import billing
from billing.gateway import get_gateway
from billing.gateway.port import SubscriptionSnapshot
from billing.subscription.subscription import Subscription

logger = structlog.get_logger(__name__)


@billing.command(part_of="Subscription")
class SyncSubscription:
    subscription_id = String(required=True, max_length=255)
    customer_id = String(max_length=255)
    status = String(required=True, max_length=30)
    price_id = String(max_length=255)
    current_period_end = DateTime()
    trial_end = DateTime()
    cancel_at_period_end = Boolean(default=False)


def _find_subscription(subscription_id, customer_id) -> Subscription | None:
    dao = current_domain.repository_for(Subscription)._dao
    results = dao.query.filter(subscription_id=subscription_id).all()
    if not results.items and customer_id:
        # First event for a subscription created on the provider side
        results = dao.query.filter(customer_id=customer_id).all()
    return results.items[0] if results.items else None


@billing.command_handler(part_of=Subscription)
class SubscriptionSyncHandler:
    @handle(SyncSubscription)
    def sync_subscription(self, command):
        subscription = _find_subscription(command.subscription_id, command.customer_id)
        if subscription is None:
            logger.warning(
                "Subscription sync for unknown customer",
                subscription_id=command.subscription_id,
                customer_id=command.customer_id,
            )
            return None

        subscription.sync_from_provider(
            SubscriptionSnapshot(
                subscription_id=command.subscription_id,
                customer_id=command.customer_id or "",
                status=command.status,
                price_id=command.price_id,
                current_period_end=command.current_period_end,
                trial_end=command.trial_end,
                cancel_at_period_end=bool(command.cancel_at_period_end),
            )
        )
        current_domain.repository_for(Subscription).add(subscription)
        logger.info("Subscription synced", merchant_id=str(subscription.merchant_id), status=subscription.status)
        return subscription.status


def handle_billing_webhook(payload: bytes, headers) -> str:
    """Verify and apply one billing webhook.

    Raises ``InvalidBillingSignature`` for unauthenticated payloads.
    """
    snapshot = get_gateway().parse_webhook(payload, headers)
    if snapshot is None:
        return "ignored"

    result = current_domain.process(
        SyncSubscription(
            subscription_id=snapshot.subscription_id,
            customer_id=snapshot.customer_id or None,
            status=snapshot.status,
            price_id=snapshot.price_id,
            current_period_end=snapshot.current_period_end,
            trial_end=snapshot.trial_end,
            cancel_at_period_end=snapshot.cancel_at_period_end,
        ),
        asynchronous=False,
    )
    return "processed" if result else "unknown_subscription"
