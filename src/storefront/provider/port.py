"""Payment provider port (abstract interface).

Providers come in two shapes, told apart by ``ProviderKind``:

- REDIRECT: the payer is sent to a hosted page and comes back once the
  charge attempt is over. One status lookup on return is final.
- SESSION_POLLED: the payment form is embedded with a client secret. The
  outcome arrives by webhook and the client polls until it is terminal.

Everything downstream of session creation switches on the kind, never on
the provider name.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from storefront.order.order import PaymentStatus


class ProviderKind(Enum):
    REDIRECT = "redirect"
    SESSION_POLLED = "session_polled"


@dataclass(frozen=True)
class MerchantAccountRef:
    """The merchant's own account at a provider.

    Connect-style providers act on the platform key plus ``account_id``.
    OAuth-style providers act with the merchant's ``access_token`` and take
    ``account_id`` as the payment profile.
    """

    account_id: str | None
    access_token: str | None = None


@dataclass(frozen=True)
class SessionRequest:
    """Everything a provider needs to open a session for one order."""

    order_id: str
    store_id: str
    amount: int  # cents
    currency: str
    description: str
    return_url: str
    merchant_account: MerchantAccountRef | None = None
    customer_email: str | None = None
    line_items: tuple[dict, ...] = ()
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class EmbeddedSession:
    provider: str
    reference: str
    client_secret: str
    kind: ProviderKind = ProviderKind.SESSION_POLLED


@dataclass(frozen=True)
class RedirectSession:
    provider: str
    reference: str
    url: str
    kind: ProviderKind = ProviderKind.REDIRECT


PaymentSession = EmbeddedSession | RedirectSession


@dataclass(frozen=True)
class ProviderStatus:
    """A provider's answer to "what happened to this payment?"."""

    reference: str
    status: PaymentStatus
    raw_status: str


@dataclass(frozen=True)
class WebhookNotice:
    """A verified webhook. ``status`` is None when the provider only sends the id."""

    reference: str
    status: PaymentStatus | None = None
    raw_status: str | None = None


class PaymentProvider(ABC):
    """Abstract payment provider interface."""

    name: str
    kind: ProviderKind

    @abstractmethod
    def create_session(self, request: SessionRequest) -> PaymentSession:
        """Open a new payment session. Raises ``ProviderError`` on failure."""
        ...

    @abstractmethod
    def retrieve_session(self, reference: str, merchant_account: MerchantAccountRef | None = None) -> PaymentSession:
        """Return an already opened session so the payer can resume it."""
        ...

    @abstractmethod
    def fetch_status(self, reference: str, merchant_account: MerchantAccountRef | None = None) -> ProviderStatus:
        """Ask the provider for the authoritative status of a session."""
        ...

    @abstractmethod
    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookNotice | None:
        """Verify and decode a webhook. Returns None for events that carry no payment outcome.

        Raises ``InvalidWebhookSignature`` if the payload is not authentic.
        """
        ...
