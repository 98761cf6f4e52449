"""Payment status reconciliation.

Every change to an order's payment status reported by a provider, whether it
arrives by webhook, by the client's poll, or on return from a hosted page,
goes through ``ApplyProviderStatus``. Its handler applies the forward-only
merge on the Order, so the last writer can never move a payment backwards.

Reading sides:

- ``confirm_redirect_return``: redirect providers. One authoritative lookup
  when the payer comes back; the result is final.
- ``poll_payment_status``: session-polled providers. Looks the session up
  only while the payment awaits confirmation and tells the client when to
  ask again.
- ``handle_webhook``: verifies and decodes a provider webhook and feeds it
  into the same write path.
"""

from collections.abc import Mapping
from dataclasses import dataclass, replace

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from shared.errors import ProviderError, ProviderStatusUnknown, TerminalPaymentFailure
from shared.settings import get_settings
from storefront.domain import storefront
from storefront.merchant.capabilities import load_store, merchant_account_ref
from storefront.order.order import Order, PaymentStatus
from storefront.order.queries import find_order_by_payment_reference
from storefront.provider import get_provider
from storefront.provider.port import ProviderKind

logger = structlog.get_logger(__name__)

_FAILURE_STATUSES = {PaymentStatus.FAILED, PaymentStatus.EXPIRED}


@storefront.command(part_of="Order")
class ApplyProviderStatus:
    order_id = Identifier(required=True)
    payment_status = String(required=True, max_length=30)
    payment_reference = String(max_length=255)
    source = String(max_length=30, default="provider")  # provider, webhook, return, poll


@storefront.command_handler(part_of=Order)
class ApplyProviderStatusHandler:
    @handle(ApplyProviderStatus)
    def apply_provider_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous = order.payment_status

        changed = order.merge_payment_status(
            command.payment_status,
            reference=command.payment_reference,
            source=command.source,
        )
        if changed:
            repo.add(order)
            logger.info(
                "Payment status merged",
                order_id=str(order.id),
                previous=previous,
                status=order.payment_status,
                source=command.source,
            )
        else:
            logger.debug(
                "Payment status unchanged",
                order_id=str(order.id),
                status=order.payment_status,
                reported=command.payment_status,
                source=command.source,
            )
        return order.payment_status


def apply_provider_status(order_id, status: PaymentStatus, reference=None, source="provider") -> str:
    """Merge a provider-reported status into the order. Returns the resulting status."""
    return current_domain.process(
        ApplyProviderStatus(
            order_id=str(order_id),
            payment_status=PaymentStatus(status).value,
            payment_reference=reference,
            source=source,
        ),
        asynchronous=False,
    )


# ---------------------------------------------------------------------------
# Status view
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PaymentStatusView:
    order_id: str
    order_status: str
    payment_status: str
    provider: str | None
    provider_kind: str | None
    # False when the provider could not be reached and the stored status is shown
    verified: bool = True
    # When the client should ask again, or None to stop polling
    next_poll_ms: int | None = None
    failure: dict | None = None


def _provider_kind(order: Order) -> ProviderKind | None:
    if not order.payment_provider:
        return None
    return get_provider(order.payment_provider).kind


def status_view(order: Order, verified: bool = True) -> PaymentStatusView:
    settings = get_settings()
    kind = _provider_kind(order)
    payment = PaymentStatus(order.payment_status)

    if not verified:
        next_poll = settings.payment_poll_interval_ms
    elif payment == PaymentStatus.AWAITING_CONFIRMATION and kind == ProviderKind.SESSION_POLLED:
        next_poll = settings.payment_poll_interval_ms
    elif order.is_payment_complete and not order.is_terminal:
        # Kitchen progress
        next_poll = settings.order_poll_interval_ms
    else:
        next_poll = None

    failure = None
    if payment in _FAILURE_STATUSES:
        failure = TerminalPaymentFailure(str(order.id), payment.value).to_dict()

    return PaymentStatusView(
        order_id=str(order.id),
        order_status=order.order_status,
        payment_status=order.payment_status,
        provider=order.payment_provider,
        provider_kind=kind.value if kind else None,
        verified=verified,
        next_poll_ms=next_poll,
        failure=failure,
    )


def _fetch(order: Order):
    provider = get_provider(order.payment_provider)
    store = load_store(order.store_id)
    return provider.fetch_status(order.payment_reference, merchant_account_ref(store, order.payment_provider))


def _reload(order_id) -> Order:
    return current_domain.repository_for(Order).get(order_id)


# ---------------------------------------------------------------------------
# Reading sides
# ---------------------------------------------------------------------------
def confirm_redirect_return(order_id) -> PaymentStatusView:
    """Resolve a redirect payment when the payer returns from the hosted page.

    Raises ``ProviderStatusUnknown`` if the lookup fails and
    ``TerminalPaymentFailure`` if the payment failed or expired.
    """
    order = _reload(order_id)
    if not order.payment_reference:
        raise ProviderStatusUnknown("No payment session has been opened for this order", order_id=str(order.id))
    if _provider_kind(order) != ProviderKind.REDIRECT:
        return poll_payment_status(order_id)

    # A status the webhook already settled is trusted as is
    if PaymentStatus(order.payment_status) in {PaymentStatus.PENDING, PaymentStatus.AWAITING_CONFIRMATION}:
        try:
            result = _fetch(order)
        except ProviderError as exc:
            logger.warning("Payment status lookup failed", order_id=str(order.id), error=str(exc))
            raise ProviderStatusUnknown(
                "The payment is still being verified", order_id=str(order.id)
            ) from exc
        apply_provider_status(order.id, result.status, reference=result.reference, source="return")
        order = _reload(order_id)

    payment = PaymentStatus(order.payment_status)
    if payment in _FAILURE_STATUSES:
        raise TerminalPaymentFailure(str(order.id), payment.value)

    view = status_view(order)
    # Final: a redirect payment is not polled after the return
    if payment == PaymentStatus.AWAITING_CONFIRMATION:
        view = replace(view, next_poll_ms=None)
    return view


def poll_payment_status(order_id) -> PaymentStatusView:
    """One poll tick for the client.

    Only a session that still awaits confirmation is looked up at the
    provider. A failed lookup is reported as unverified, never as failed.
    """
    order = _reload(order_id)
    if PaymentStatus(order.payment_status) != PaymentStatus.AWAITING_CONFIRMATION or not order.payment_reference:
        return status_view(order)
    if _provider_kind(order) == ProviderKind.REDIRECT:
        # Resolved on return or by webhook
        return status_view(order)

    try:
        result = _fetch(order)
    except ProviderError as exc:
        logger.warning("Payment status lookup failed", order_id=str(order.id), error=str(exc))
        return status_view(order, verified=False)

    apply_provider_status(order.id, result.status, reference=result.reference, source="poll")
    return status_view(_reload(order_id))


def handle_webhook(provider_name: str, payload: bytes, headers: Mapping[str, str]) -> str:
    """Process one provider webhook. Returns what happened, for the response body.

    Raises ``InvalidWebhookSignature`` for unauthenticated payloads and
    ``ProviderError`` when the status lookup fails, so the provider retries.
    """
    provider = get_provider(provider_name)
    notice = provider.parse_webhook(payload, headers)
    if notice is None:
        return "ignored"

    order = find_order_by_payment_reference(notice.reference)
    if order is None:
        logger.warning("Webhook for unknown payment", provider=provider_name, reference=notice.reference)
        return "unknown_reference"

    status = notice.status
    if status is None:
        status = _fetch(order).status

    apply_provider_status(order.id, status, reference=notice.reference, source="webhook")
    return "processed"
