"""Mollie hosted checkout adapter (redirect).

Creates payments through Mollie's REST API and sends the payer to the
returned checkout URL. Mollie's webhook only carries the payment id, so the
outcome is always read back from the API.

Payments for a merchant are made with that merchant's OAuth access token,
on its payment profile, with the platform's application fee. Only the
platform's own payments use the platform API key.
"""

from collections.abc import Mapping
from urllib.parse import parse_qs

import httpx
import structlog

from shared.errors import ProviderError
from storefront.order.order import PaymentStatus
from storefront.provider.port import (
    MerchantAccountRef,
    PaymentProvider,
    ProviderKind,
    ProviderStatus,
    RedirectSession,
    SessionRequest,
    WebhookNotice,
)

logger = structlog.get_logger(__name__)

MOLLIE_STATUS_MAP = {
    "open": PaymentStatus.AWAITING_CONFIRMATION,
    "pending": PaymentStatus.AWAITING_CONFIRMATION,
    "authorized": PaymentStatus.AWAITING_CONFIRMATION,
    "paid": PaymentStatus.PAID,
    "failed": PaymentStatus.FAILED,
    "canceled": PaymentStatus.FAILED,
    "expired": PaymentStatus.EXPIRED,
}


def format_amount(cents: int, currency: str) -> dict:
    """Mollie amounts are strings with exactly two decimals."""
    return {"currency": currency.upper(), "value": f"{cents // 100}.{cents % 100:02d}"}


class MollieProvider(PaymentProvider):
    name = "mollie"
    kind = ProviderKind.REDIRECT

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.mollie.com/v2",
        webhook_url: str = "",
        platform_fee_percent: float = 0.05,
        test_mode: bool = False,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.webhook_url = webhook_url
        self.platform_fee_percent = platform_fee_percent
        self.test_mode = test_mode
        self.transport = transport

    def _client(self, token: str) -> httpx.Client:
        return httpx.Client(
            base_url=self.api_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=10.0,
            transport=self.transport,
        )

    @staticmethod
    def _merchant_token(merchant_account: MerchantAccountRef) -> str:
        if not merchant_account.access_token:
            raise ProviderError("The merchant's Mollie account is not connected")
        return merchant_account.access_token

    def _request(self, method: str, path: str, merchant_account: MerchantAccountRef | None, **kwargs) -> dict:
        token = self._merchant_token(merchant_account) if merchant_account else self.api_key
        # Requests made with an OAuth token have to say which mode they are in
        if merchant_account and self.test_mode:
            if method == "GET":
                kwargs["params"] = {**kwargs.get("params", {}), "testmode": "true"}
            else:
                kwargs["json"] = {**kwargs.get("json", {}), "testmode": True}

        try:
            with self._client(token) as client:
                response = client.request(method, path, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:200]
            raise ProviderError(f"Mollie returned {exc.response.status_code}: {detail}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Mollie request failed: {exc}") from exc
        return response.json()

    @staticmethod
    def _session(payment: dict) -> RedirectSession:
        checkout = payment.get("_links", {}).get("checkout")
        if not checkout:
            raise ProviderError(f"Mollie payment {payment.get('id')} has no checkout link")
        return RedirectSession(provider=MollieProvider.name, reference=payment["id"], url=checkout["href"])

    def create_session(self, request: SessionRequest) -> RedirectSession:
        body = {
            "amount": format_amount(request.amount, request.currency),
            "description": request.description,
            "redirectUrl": request.return_url,
            "metadata": {"orderId": request.order_id, "storeId": request.store_id, **request.metadata},
        }
        if self.webhook_url:
            body["webhookUrl"] = self.webhook_url
        merchant_account = request.merchant_account
        if merchant_account:
            if not merchant_account.account_id:
                raise ProviderError("The merchant has no Mollie payment profile")
            body["profileId"] = merchant_account.account_id
            body["applicationFee"] = {
                "amount": format_amount(round(request.amount * self.platform_fee_percent), request.currency),
                "description": "Platform fee",
            }

        try:
            payment = self._request("POST", "/payments", merchant_account, json=body)
        except ProviderError:
            logger.warning("Mollie payment creation failed", order_id=request.order_id)
            raise
        return self._session(payment)

    def retrieve_session(self, reference: str, merchant_account: MerchantAccountRef | None = None) -> RedirectSession:
        return self._session(self._request("GET", f"/payments/{reference}", merchant_account))

    def fetch_status(self, reference: str, merchant_account: MerchantAccountRef | None = None) -> ProviderStatus:
        payment = self._request("GET", f"/payments/{reference}", merchant_account)
        raw = payment.get("status", "")
        if raw not in MOLLIE_STATUS_MAP:
            raise ProviderError(f"Unknown Mollie payment status {raw!r}")
        return ProviderStatus(reference=payment["id"], status=MOLLIE_STATUS_MAP[raw], raw_status=raw)

    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> WebhookNotice | None:
        # Body is form encoded: id=tr_xxx. Only payment ids are relevant here.
        reference = parse_qs(payload.decode()).get("id", [""])[0]
        if not reference.startswith("tr_"):
            return None
        return WebhookNotice(reference=reference)
