"""Billing gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeBillingGateway for development and testing (default when no credentials)
- StripeBillingGateway when a Stripe secret key is configured
"""

from billing.gateway.fake_adapter import FakeBillingGateway
from billing.gateway.port import BillingGateway
from shared.settings import get_settings

_current_gateway: BillingGateway | None = None


def get_gateway() -> BillingGateway:
    """Return the current billing gateway."""
    global _current_gateway
    if _current_gateway is None:
        settings = get_settings()
        if settings.stripe_secret_key:
            from billing.gateway.stripe_adapter import StripeBillingGateway

            _current_gateway = StripeBillingGateway(
                api_key=settings.stripe_secret_key,
                webhook_secret=settings.stripe_billing_webhook_secret,
            )
        else:
            _current_gateway = FakeBillingGateway()
    return _current_gateway


def set_gateway(gateway: BillingGateway) -> None:
    """Override the active billing gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
