"""Billing bounded context: the merchant's subscription plan.

Tracks the plan a merchant pays the platform for. Plan changes and payment
method management happen on provider-hosted pages; the provider's webhooks
keep the local subscription in sync.
"""

from protean.domain import Domain

from shared.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

billing = Domain(name="billing")
