"""Stripe embedded Checkout adapter (session-polled).

Opens Checkout Sessions in embedded UI mode and hands the client secret to
the storefront, which renders the payment form in-page. On a connected
account the session is created on that account and the platform keeps an
application fee.
"""

import time
from collections.abc import Mapping

import stripe
import structlog

from shared.errors import InvalidWebhookSignature, ProviderError
from storefront.order.order import PaymentStatus
from storefront.provider.port import (
    EmbeddedSession,
    MerchantAccountRef,
    PaymentProvider,
    ProviderKind,
    ProviderStatus,
    SessionRequest,
    WebhookNotice,
)

logger = structlog.get_logger(__name__)

# Webhook events that carry a payment outcome for a checkout session
_SESSION_EVENTS = {
    "checkout.session.completed": None,
    "checkout.session.async_payment_succeeded": PaymentStatus.PAID,
    "checkout.session.async_payment_failed": PaymentStatus.FAILED,
    "checkout.session.expired": PaymentStatus.EXPIRED,
}

# Stripe rejects expires_at less than 30 minutes out, measured when the request lands
EXPIRY_MARGIN_SECONDS = 60


def _account_id(merchant_account: MerchantAccountRef | None) -> str | None:
    return merchant_account.account_id if merchant_account else None


def map_session_status(status: str, payment_status: str) -> PaymentStatus:
    """Map a Checkout Session's (status, payment_status) onto ours."""
    if status == "complete" and payment_status in ("paid", "no_payment_required"):
        return PaymentStatus.PAID
    if status == "expired":
        return PaymentStatus.EXPIRED
    # "open", or "complete" with a delayed payment method still settling
    return PaymentStatus.AWAITING_CONFIRMATION


class StripeProvider(PaymentProvider):
    name = "stripe"
    kind = ProviderKind.SESSION_POLLED

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        platform_fee_percent: float = 0.05,
        session_ttl_minutes: int = 30,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.platform_fee_percent = platform_fee_percent
        self.session_ttl_minutes = session_ttl_minutes

    def _session_params(self, request: SessionRequest) -> dict:
        line_items = [
            {
                "price_data": {
                    "currency": request.currency.lower(),
                    "product_data": {"name": item["name"][:250]},
                    "unit_amount": item["unit_amount"],
                },
                "quantity": item["quantity"],
            }
            for item in request.line_items
        ] or [
            {
                "price_data": {
                    "currency": request.currency.lower(),
                    "product_data": {"name": request.description},
                    "unit_amount": request.amount,
                },
                "quantity": 1,
            }
        ]
        params = {
            "mode": "payment",
            "ui_mode": "embedded",
            "line_items": line_items,
            "return_url": f"{request.return_url}?session_id={{CHECKOUT_SESSION_ID}}",
            "metadata": {"order_id": request.order_id, "store_id": request.store_id, **request.metadata},
            "expires_at": int(time.time()) + self.session_ttl_minutes * 60 + EXPIRY_MARGIN_SECONDS,
        }
        if request.customer_email:
            params["customer_email"] = request.customer_email
        if request.merchant_account:
            params["payment_intent_data"] = {
                "application_fee_amount": round(request.amount * self.platform_fee_percent),
            }
        return params

    def create_session(self, request: SessionRequest) -> EmbeddedSession:
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                stripe_account=_account_id(request.merchant_account),
                **self._session_params(request),
            )
        except stripe.StripeError as exc:
            logger.warning("Stripe session creation failed", order_id=request.order_id, error=str(exc))
            raise ProviderError(f"Stripe could not create a checkout session: {exc.user_message or exc}") from exc

        return EmbeddedSession(provider=self.name, reference=session.id, client_secret=session.client_secret)

    def _retrieve(self, reference: str, merchant_account: MerchantAccountRef | None):
        try:
            return stripe.checkout.Session.retrieve(
                reference,
                api_key=self.api_key,
                stripe_account=_account_id(merchant_account),
            )
        except stripe.StripeError as exc:
            raise ProviderError(f"Stripe could not retrieve session {reference}: {exc}") from exc

    def retrieve_session(self, reference: str, merchant_account: MerchantAccountRef | None = None) -> EmbeddedSession:
        session = self._retrieve(reference, merchant_account)
        return EmbeddedSession(provider=self.name, reference=session.id, client_secret=session.client_secret)

    def fetch_status(self, reference: str, merchant_account: MerchantAccountRef | None = None) -> ProviderStatus:
        session = self._retrieve(reference, merchant_account)
        return ProviderStatus(
            reference=session.id,
            status=map_session_status(session.status, session.payment_status),
            raw_status=f"{session.status}/{session.payment_status}",
        )

    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookNotice | None:
        try:
            event = stripe.Webhook.construct_event(payload, headers.get("stripe-signature", ""), self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise InvalidWebhookSignature(str(exc)) from exc

        if event.type not in _SESSION_EVENTS:
            return None

        session = event.data.object
        status = _SESSION_EVENTS[event.type] or map_session_status(session.status, session.payment_status)
        return WebhookNotice(reference=session.id, status=status, raw_status=event.type)
