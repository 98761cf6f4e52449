"""Billing gateway port (abstract interface).

Defines the contract that subscription billing adapters implement, so the
FakeBillingGateway (dev/test) and StripeBillingGateway can be swapped
without changing domain or application code.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

TRIAL_DAYS = 30


@dataclass(frozen=True)
class HostedLink:
    """A provider-hosted page the merchant is sent to."""

    url: str
    session_id: str | None = None


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """The provider's view of a subscription. ``status`` is the raw provider status."""

    subscription_id: str
    customer_id: str
    status: str
    price_id: str | None = None
    current_period_end: datetime | None = None
    trial_end: datetime | None = None
    cancel_at_period_end: bool = False


class BillingGatewayError(Exception):
    """Raised by billing adapters when a remote call fails."""


class InvalidBillingSignature(BillingGatewayError):
    """A billing webhook payload could not be authenticated."""


class BillingGateway(ABC):
    """Abstract subscription billing interface."""

    @abstractmethod
    def start_trial(self, customer_id: str, price_id: str) -> SubscriptionSnapshot:
        """Create a trial subscription that needs no payment method up front."""
        ...

    @abstractmethod
    def create_checkout(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Mapping[str, str] | None = None,
    ) -> HostedLink:
        """Open a hosted checkout for a plan. The provider computes proration."""
        ...

    @abstractmethod
    def cancel(self, subscription_id: str, at_period_end: bool) -> SubscriptionSnapshot:
        ...

    @abstractmethod
    def resume(self, subscription_id: str) -> SubscriptionSnapshot:
        ...

    @abstractmethod
    def create_portal_session(self, customer_id: str, return_url: str) -> HostedLink:
        """Open the provider's billing portal for the customer."""
        ...

    @abstractmethod
    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> SubscriptionSnapshot | None:
        """Verify and decode a subscription webhook.

        Returns None for events that do not describe a subscription. Raises
        ``InvalidBillingSignature`` if the payload is not authentic.
        """
        ...
