"""Configurable fake payment provider for development and testing.

Simulates either provider shape without external calls. Sessions start out
"open"; tests (or the non-production configure endpoint) decide how each
one ends with ``settle``. Session creation and status lookups can be made
to fail to exercise the error paths.
"""

import json
from collections.abc import Mapping
from uuid import uuid4

from shared.errors import InvalidWebhookSignature, ProviderError
from storefront.order.order import PaymentStatus
from storefront.provider.port import (
    EmbeddedSession,
    MerchantAccountRef,
    PaymentProvider,
    PaymentSession,
    ProviderKind,
    ProviderStatus,
    RedirectSession,
    SessionRequest,
    WebhookNotice,
)

SIGNATURE_HEADER = "x-provider-signature"
TEST_SIGNATURE = "test-signature"

FAKE_STATUS_MAP = {
    "open": PaymentStatus.AWAITING_CONFIRMATION,
    "pending": PaymentStatus.AWAITING_CONFIRMATION,
    "paid": PaymentStatus.PAID,
    "failed": PaymentStatus.FAILED,
    "canceled": PaymentStatus.FAILED,
    "expired": PaymentStatus.EXPIRED,
}


class FakeProvider(PaymentProvider):
    """Configurable fake payment provider."""

    def __init__(self, name: str = "fake", kind: ProviderKind = ProviderKind.SESSION_POLLED) -> None:
        self.name = name
        self.kind = kind
        self.fail_sessions: bool = False
        self.fail_status: bool = False
        self.failure_reason: str = "Provider unavailable"
        self.statuses: dict[str, str] = {}
        self.sessions: dict[str, PaymentSession] = {}
        self.calls: list[dict] = []

    def configure(self, fail_sessions: bool = False, fail_status: bool = False, failure_reason: str | None = None):
        """Configure provider behavior at runtime."""
        self.fail_sessions = fail_sessions
        self.fail_status = fail_status
        if failure_reason:
            self.failure_reason = failure_reason

    def settle(self, reference: str, raw_status: str) -> None:
        """Decide the payer's outcome for a session ("paid", "failed", "expired", ...)."""
        if raw_status not in FAKE_STATUS_MAP:
            raise ValueError(f"Unknown fake status {raw_status}")
        self.statuses[reference] = raw_status

    def create_session(self, request: SessionRequest) -> PaymentSession:
        self.calls.append(
            {
                "method": "create_session",
                "order_id": request.order_id,
                "amount": request.amount,
                "currency": request.currency,
                "merchant_account": request.merchant_account.account_id if request.merchant_account else None,
            }
        )
        if self.fail_sessions:
            raise ProviderError(self.failure_reason)

        reference = f"{self.name}_{uuid4().hex[:16]}"
        if self.kind == ProviderKind.REDIRECT:
            session = RedirectSession(
                provider=self.name,
                reference=reference,
                url=f"https://pay.example.test/{self.name}/{reference}?return={request.return_url}",
            )
        else:
            session = EmbeddedSession(
                provider=self.name,
                reference=reference,
                client_secret=f"{reference}_secret_{uuid4().hex[:8]}",
            )
        self.sessions[reference] = session
        self.statuses[reference] = "open"
        return session

    def retrieve_session(self, reference: str, merchant_account: MerchantAccountRef | None = None) -> PaymentSession:
        self.calls.append({"method": "retrieve_session", "reference": reference})
        if reference not in self.sessions:
            raise ProviderError(f"No such session {reference}")
        return self.sessions[reference]

    def fetch_status(self, reference: str, merchant_account: MerchantAccountRef | None = None) -> ProviderStatus:
        self.calls.append({"method": "fetch_status", "reference": reference})
        if self.fail_status:
            raise ProviderError(self.failure_reason)
        if reference not in self.statuses:
            raise ProviderError(f"No such session {reference}")

        raw = self.statuses[reference]
        return ProviderStatus(reference=reference, status=FAKE_STATUS_MAP[raw], raw_status=raw)

    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookNotice | None:
        if headers.get(SIGNATURE_HEADER) != TEST_SIGNATURE:
            raise InvalidWebhookSignature("Invalid webhook signature")

        body = json.loads(payload or b"{}")
        reference = body.get("reference")
        if not reference:
            return None
        raw = body.get("status")
        if raw is None:
            return WebhookNotice(reference=reference)
        if raw not in FAKE_STATUS_MAP:
            return None
        return WebhookNotice(reference=reference, status=FAKE_STATUS_MAP[raw], raw_status=raw)
