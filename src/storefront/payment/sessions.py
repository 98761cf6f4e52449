"""Payment session factory: command and handler.

Opens a provider session for an order. The merchant's capability is checked
before any provider call. An order holds one live session at a time: asking
again while it awaits confirmation hands back the same session, and a new
session is only opened after the previous one failed or expired.
"""

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from shared.errors import ProviderError, ProviderSessionError
from shared.settings import get_settings
from storefront.domain import storefront
from storefront.merchant.capabilities import (
    ProviderPreference,
    capabilities_for_store,
    load_store,
    merchant_account_ref,
)
from storefront.order.order import SETTLED_PAYMENT_STATUSES, Order, OrderStatus, PaymentStatus
from storefront.provider import get_provider
from storefront.provider.port import MerchantAccountRef, PaymentSession, SessionRequest

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class OpenPaymentSession:
    order_id = Identifier(required=True)
    provider = String(max_length=50)  # Overrides the store's provider preference
    return_url = String(max_length=2000)


def build_session_request(order: Order, store, merchant_account: MerchantAccountRef | None, return_url: str | None):
    settings = get_settings()
    line_items = [
        {
            "name": line.name,
            "unit_amount": line.unit_price + (line.options_price or 0),
            "quantity": line.quantity,
        }
        for line in sorted(order.items, key=lambda line: line.position or 0)
    ]
    if order.tip_amount:
        line_items.append({"name": "Tip", "unit_amount": order.tip_amount, "quantity": 1})

    return SessionRequest(
        order_id=str(order.id),
        store_id=str(order.store_id),
        amount=order.total_amount,
        currency=settings.currency,
        description=f"Order {str(order.id)[:8]} at {store.name}",
        return_url=return_url or f"{settings.public_base_url}/orders/{order.id}/payment-return",
        merchant_account=merchant_account,
        customer_email=order.customer_email,
        line_items=tuple(line_items),
    )


def open_session(
    order_id,
    provider_name: str | None = None,
    return_url: str | None = None,
    preference: ProviderPreference | None = None,
) -> PaymentSession:
    repo = current_domain.repository_for(Order)
    order = repo.get(order_id)

    if OrderStatus(order.order_status) != OrderStatus.AWAITING_PAYMENT:
        raise InvalidOperationError(f"Order is not awaiting payment (status: {order.order_status})")
    current = PaymentStatus(order.payment_status)
    if current in SETTLED_PAYMENT_STATUSES:
        raise InvalidOperationError(f"Order payment is already settled ({current.value})")

    store = load_store(order.store_id)

    if current == PaymentStatus.AWAITING_CONFIRMATION:
        if provider_name and provider_name != order.payment_provider:
            raise InvalidOperationError(f"Payment already initiated with {order.payment_provider}")
        provider = get_provider(order.payment_provider)
        try:
            session = provider.retrieve_session(
                order.payment_reference, merchant_account_ref(store, order.payment_provider)
            )
        except ProviderError as exc:
            raise ProviderSessionError(str(exc), provider=order.payment_provider) from exc
        logger.info("Payment session resumed", order_id=str(order.id), reference=order.payment_reference)
        return session

    capabilities = capabilities_for_store(store)
    chosen = (preference or ProviderPreference()).choose(
        capabilities,
        requested=provider_name,
        store_preference=store.preferred_provider,
    )
    provider = get_provider(chosen)
    request = build_session_request(order, store, merchant_account_ref(store, chosen), return_url)

    try:
        session = provider.create_session(request)
    except ProviderError as exc:
        logger.warning("Payment session failed", order_id=str(order.id), provider=chosen, error=str(exc))
        raise ProviderSessionError(str(exc), provider=chosen) from exc

    order.begin_payment_attempt(chosen, session.reference)
    repo.add(order)

    logger.info(
        "Payment session opened",
        order_id=str(order.id),
        provider=chosen,
        kind=provider.kind.value,
        reference=session.reference,
        attempt=order.payment_attempts,
    )
    return session


@storefront.command_handler(part_of=Order)
class PaymentSessionHandler:
    @handle(OpenPaymentSession)
    def open_payment_session(self, command):
        return open_session(
            command.order_id,
            provider_name=command.provider,
            return_url=command.return_url,
        )
