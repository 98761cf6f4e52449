"""Runtime settings shared by the Storefront and Billing contexts.

Values come from environment variables prefixed with ``STOREFRONT_`` (or a
``.env`` file next to the process). Protean's own configuration is still
selected by ``PROTEAN_ENV``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    currency: str = "EUR"

    # Provider preference when several providers qualify, most preferred first
    provider_order: list[str] = Field(default_factory=lambda: ["stripe", "mollie"])

    # Client polling cadence advertised by the status endpoint
    payment_poll_interval_ms: int = 2000
    order_poll_interval_ms: int = 30000

    # Share of an order total kept by the platform on connected accounts
    platform_fee_percent: float = 0.05
    checkout_session_ttl_minutes: int = 30

    public_base_url: str = "http://localhost:3000"

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_billing_webhook_secret: str = ""

    mollie_api_key: str = ""
    mollie_api_url: str = "https://api.mollie.com/v2"
    mollie_webhook_url: str = ""
    # Sends testmode on merchant (OAuth) requests
    mollie_test_mode: bool = False

    price_tiers: dict[str, str] = Field(
        default_factory=lambda: {
            "price_starter_monthly": "starter",
            "price_starter_yearly": "starter",
            "price_professional_monthly": "professional",
            "price_professional_yearly": "professional",
            "price_max_monthly": "max",
            "price_max_yearly": "max",
        }
    )

    model_config = SettingsConfigDict(env_prefix="STOREFRONT_", env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
