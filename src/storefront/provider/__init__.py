"""Payment provider registry.

Provides get_provider() / set_provider() to swap implementations:
- FakeProvider for development and testing (default when no credentials)
- StripeProvider (embedded, session-polled) and MollieProvider (redirect)
  when their API keys are configured
"""

from shared.errors import CapabilityUnavailable
from shared.settings import get_settings
from storefront.provider.fake_adapter import FakeProvider
from storefront.provider.port import PaymentProvider, ProviderKind

_providers: dict[str, PaymentProvider] | None = None


def _default_providers() -> dict[str, PaymentProvider]:
    settings = get_settings()
    providers: dict[str, PaymentProvider] = {}

    if settings.stripe_secret_key:
        from storefront.provider.stripe_adapter import StripeProvider

        providers["stripe"] = StripeProvider(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            platform_fee_percent=settings.platform_fee_percent,
            session_ttl_minutes=settings.checkout_session_ttl_minutes,
        )
    else:
        providers["stripe"] = FakeProvider("stripe", ProviderKind.SESSION_POLLED)

    if settings.mollie_api_key:
        from storefront.provider.mollie_adapter import MollieProvider

        providers["mollie"] = MollieProvider(
            api_key=settings.mollie_api_key,
            api_url=settings.mollie_api_url,
            webhook_url=settings.mollie_webhook_url,
            platform_fee_percent=settings.platform_fee_percent,
            test_mode=settings.mollie_test_mode,
        )
    else:
        providers["mollie"] = FakeProvider("mollie", ProviderKind.REDIRECT)

    return providers


def _registry() -> dict[str, PaymentProvider]:
    global _providers
    if _providers is None:
        _providers = _default_providers()
    return _providers


def get_provider(name: str) -> PaymentProvider:
    """Return the provider registered under ``name``."""
    provider = _registry().get(name)
    if provider is None:
        raise CapabilityUnavailable(f"Payment provider {name} is not configured", provider=name)
    return provider


def set_provider(provider: PaymentProvider) -> None:
    """Register or override a provider (useful for tests)."""
    _registry()[provider.name] = provider


def reset_providers() -> None:
    """Reset to the default providers."""
    global _providers
    _providers = None
