"""Domain events for the Subscription aggregate."""

from protean.fields import DateTime, Identifier, String

from billing.domain import billing


@billing.event(part_of="Subscription")
class SubscriptionStatusChanged:
    __version__ = 1

    subscription_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    price_id = String()


@billing.event(part_of="Subscription")
class SubscriptionCancellationScheduled:
    """The subscription stays usable until the end of the current period."""

    __version__ = 1

    subscription_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    current_period_end = DateTime()
