"""Storefront bounded context: Menu pricing, Carts, Orders and Payments.

Handles option pricing and selection rules, the shopper cart, idempotent
order creation, merchant payment capability, payment sessions with external
providers, and reconciliation of provider-reported payment status.
"""

from protean.domain import Domain

from shared.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

storefront = Domain(name="storefront")
