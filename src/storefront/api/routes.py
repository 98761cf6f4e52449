"""FastAPI routes for the Storefront domain: stores, menus, carts, orders and payments."""

import json
import os
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from protean.utils.globals import current_domain

from shared.errors import InvalidWebhookSignature, ProviderError
from storefront.api.schemas import (
    AccountIdResponse,
    AddServicePointRequest,
    AddToCartRequest,
    AdvanceStatusRequest,
    CapabilitiesResponse,
    CartIdResponse,
    CartLineSchema,
    CartResponse,
    CheckoutRequest,
    ConfigureProviderRequest,
    CreateCartRequest,
    CreateOrderRequest,
    DefaultSelectionsResponse,
    GroupFailureSchema,
    LineIdResponse,
    LoadMenuRequest,
    OpenSessionRequest,
    OrderIdResponse,
    OrderLineSchema,
    OrderResponse,
    PaymentSessionResponse,
    PaymentStatusResponse,
    PriceItemRequest,
    PriceItemResponse,
    ProviderConfigResponse,
    ReasonRequest,
    RegisterStoreRequest,
    ScheduleClosureRequest,
    ServicePointIdResponse,
    SetOpeningHoursRequest,
    SetOrderTypesRequest,
    SetPreferredProviderRequest,
    SetServicePointActiveRequest,
    SettleSessionRequest,
    StatusResponse,
    StoreIdResponse,
    SyncConnectAccountRequest,
    SyncOAuthAccountRequest,
    UpdateCartLineRequest,
    ValidateSelectionsResponse,
)
from storefront.cart.cart import Cart
from storefront.cart.checkout import CheckoutCart, CompleteCheckout
from storefront.cart.items import AddToCart, ClearCart, CreateCart, RemoveCartLine, UpdateCartLine
from storefront.menu.catalog import InMemoryMenuCatalog, get_catalog
from storefront.menu.quote import quote
from storefront.menu.selection import build_selection, default_selections
from storefront.menu.validation import validate_selections
from storefront.merchant.capabilities import capabilities_for_store, load_store
from storefront.merchant.onboarding import (
    AddServicePoint,
    RegisterStore,
    ScheduleClosure,
    SetOpeningHours,
    SetOrderTypes,
    SetPreferredProvider,
    SetServicePointActive,
    SyncConnectAccount,
    SyncOAuthAccount,
)
from storefront.order.creation import CreateOrder
from storefront.order.management import AdvanceOrderStatus, CancelOrder, MarkPayAtCounter, RefundOrder
from storefront.order.order import Order
from storefront.order.queries import kitchen_orders, orders_for_store
from storefront.payment.reconciliation import (
    PaymentStatusView,
    confirm_redirect_return,
    handle_webhook,
    poll_payment_status,
)
from storefront.payment.sessions import OpenPaymentSession
from storefront.provider import get_provider
from storefront.provider.fake_adapter import FakeProvider
from storefront.provider.port import RedirectSession


def _require_non_production(what: str) -> None:
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail=f"{what} not available in production")


def _menu_item(store_id: str, item_id: str):
    item = get_catalog().get_item(store_id, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item {item_id} is not on the menu")
    return item


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_id=str(order.id),
        store_id=str(order.store_id),
        order_type=order.order_type,
        order_status=order.order_status,
        payment_status=order.payment_status,
        payment_provider=order.payment_provider,
        customer_name=order.customer_name,
        scheduled_pickup_time=order.scheduled_pickup_time,
        service_point_id=str(order.service_point_id) if order.service_point_id else None,
        items=[
            OrderLineSchema(
                item_id=str(line.item_id),
                name=line.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                options_price=line.options_price or 0,
                total_price=line.total_price,
                selected_options=line.selected_options,
            )
            for line in sorted(order.items, key=lambda line: line.position or 0)
        ],
        subtotal=order.subtotal,
        tip_amount=order.tip_amount or 0,
        total_amount=order.total_amount,
        next_statuses=order.next_statuses(),
        created_at=order.created_at,
    )


def _cart_response(cart: Cart) -> CartResponse:
    return CartResponse(
        cart_id=str(cart.id),
        store_id=str(cart.store_id),
        lines=[
            CartLineSchema(
                line_id=line.line_key,
                item_id=str(line.item_id),
                name=line.name,
                quantity=line.quantity,
                base_price=line.base_price,
                options_price=line.options_price or 0,
                total_price=line.total_price,
                selected_options=json.loads(line.selected_options) if line.selected_options else [],
            )
            for line in cart.lines
        ],
        item_count=cart.item_count,
        subtotal=cart.subtotal,
        checkout_order_id=str(cart.checkout.order_id) if cart.checkout and cart.checkout.order_id else None,
    )


def _status_response(view: PaymentStatusView) -> PaymentStatusResponse:
    return PaymentStatusResponse(**asdict(view))


# ---------------------------------------------------------------------------
# Store Router
# ---------------------------------------------------------------------------
store_router = APIRouter(prefix="/stores", tags=["stores"])


@store_router.post("", status_code=201, response_model=StoreIdResponse)
async def register_store(body: RegisterStoreRequest) -> StoreIdResponse:
    command = RegisterStore(
        merchant_id=body.merchant_id,
        name=body.name,
        timezone=body.timezone,
        preferred_provider=body.preferred_provider,
        opening_periods=json.dumps([p.model_dump() for p in body.opening_periods]),
    )
    result = current_domain.process(command, asynchronous=False)
    return StoreIdResponse(store_id=result)


@store_router.put("/{store_id}/hours", response_model=StatusResponse)
async def set_opening_hours(store_id: str, body: SetOpeningHoursRequest) -> StatusResponse:
    command = SetOpeningHours(
        store_id=store_id,
        opening_periods=json.dumps([p.model_dump() for p in body.opening_periods]),
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@store_router.post("/{store_id}/closures", response_model=StatusResponse)
async def schedule_closure(store_id: str, body: ScheduleClosureRequest) -> StatusResponse:
    command = ScheduleClosure(
        store_id=store_id,
        start_date=body.start_date,
        end_date=body.end_date,
        reason=body.reason,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@store_router.put("/{store_id}/preferred-provider", response_model=StatusResponse)
async def set_preferred_provider(store_id: str, body: SetPreferredProviderRequest) -> StatusResponse:
    current_domain.process(SetPreferredProvider(store_id=store_id, provider=body.provider), asynchronous=False)
    return StatusResponse()


@store_router.put("/{store_id}/order-types", response_model=StatusResponse)
async def set_order_types(store_id: str, body: SetOrderTypesRequest) -> StatusResponse:
    command = SetOrderTypes(store_id=store_id, order_types=json.dumps(body.order_types))
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@store_router.post("/{store_id}/service-points", status_code=201, response_model=ServicePointIdResponse)
async def add_service_point(store_id: str, body: AddServicePointRequest) -> ServicePointIdResponse:
    result = current_domain.process(AddServicePoint(store_id=store_id, name=body.name), asynchronous=False)
    return ServicePointIdResponse(service_point_id=result)


@store_router.put("/{store_id}/service-points/{service_point_id}", response_model=StatusResponse)
async def set_service_point_active(
    store_id: str, service_point_id: str, body: SetServicePointActiveRequest
) -> StatusResponse:
    command = SetServicePointActive(store_id=store_id, service_point_id=service_point_id, is_active=body.is_active)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@store_router.get("/{store_id}/capabilities", response_model=CapabilitiesResponse)
async def get_capabilities(store_id: str) -> CapabilitiesResponse:
    capabilities = capabilities_for_store(load_store(store_id))
    return CapabilitiesResponse(
        can_accept_online_payment=capabilities.can_accept_online_payment,
        can_place_orders=capabilities.can_place_orders,
        is_open=capabilities.is_open,
        available_providers=list(capabilities.available_providers),
    )


@store_router.put("/{store_id}/accounts/connect", response_model=AccountIdResponse)
async def sync_connect_account(store_id: str, body: SyncConnectAccountRequest) -> AccountIdResponse:
    store = load_store(store_id)
    command = SyncConnectAccount(merchant_id=store.merchant_id, **body.model_dump())
    result = current_domain.process(command, asynchronous=False)
    return AccountIdResponse(account_id=result)


@store_router.put("/{store_id}/accounts/oauth", response_model=AccountIdResponse)
async def sync_oauth_account(store_id: str, body: SyncOAuthAccountRequest) -> AccountIdResponse:
    store = load_store(store_id)
    command = SyncOAuthAccount(merchant_id=store.merchant_id, **body.model_dump())
    result = current_domain.process(command, asynchronous=False)
    return AccountIdResponse(account_id=result)


@store_router.get("/{store_id}/orders", response_model=list[OrderResponse])
async def list_orders(
    store_id: str, order_status: str | None = None, payment_status: str | None = None
) -> list[OrderResponse]:
    return [_order_response(o) for o in orders_for_store(store_id, order_status, payment_status)]


@store_router.get("/{store_id}/kitchen", response_model=list[OrderResponse])
async def kitchen_view(store_id: str) -> list[OrderResponse]:
    """Orders the kitchen should act on: paid or pay-at-counter, not yet finished."""
    return [_order_response(o) for o in kitchen_orders(store_id)]


# ---------------------------------------------------------------------------
# Menu endpoints (mounted on the store router)
# ---------------------------------------------------------------------------
@store_router.put("/{store_id}/menu", response_model=StatusResponse)
async def load_menu(store_id: str, body: LoadMenuRequest) -> StatusResponse:
    """Load menu items into the in-memory catalog (non-production only)."""
    _require_non_production("Menu loading")
    catalog = get_catalog()
    if not isinstance(catalog, InMemoryMenuCatalog):
        raise HTTPException(status_code=400, detail="Menu loading only available for the in-memory catalog")
    catalog.load(store_id, body.items)
    return StatusResponse(status="loaded")


@store_router.get("/{store_id}/menu/{item_id}/defaults", response_model=DefaultSelectionsResponse)
async def get_default_selections(store_id: str, item_id: str) -> DefaultSelectionsResponse:
    item = _menu_item(store_id, item_id)
    raw = {}
    for group in item.option_groups:
        selection = default_selections([group])[group.id]
        if group.is_quantity_select:
            raw[group.id] = dict(selection.quantities)
        else:
            raw[group.id] = [c.id for c in group.choices if c.id in selection.choice_ids]
    return DefaultSelectionsResponse(selections=raw)


@store_router.post("/{store_id}/menu/{item_id}/validate", response_model=ValidateSelectionsResponse)
async def validate_item_selections(store_id: str, item_id: str, body: PriceItemRequest) -> ValidateSelectionsResponse:
    item = _menu_item(store_id, item_id)
    selections = {group.id: build_selection(group, body.selections.get(group.id)) for group in item.option_groups}
    check = validate_selections(item.option_groups, selections)
    return ValidateSelectionsResponse(
        valid=check.valid,
        failures=[
            GroupFailureSchema(group_id=f.group_id, group_name=f.group_name, reason=f.reason) for f in check.failures
        ],
    )


@store_router.post("/{store_id}/menu/{item_id}/price", response_model=PriceItemResponse)
async def price_item(store_id: str, item_id: str, body: PriceItemRequest) -> PriceItemResponse:
    priced = quote(store_id, item_id, body.quantity, body.selections)
    return PriceItemResponse(
        line_id=priced.line_key,
        base_price=priced.base_price,
        options_price=priced.options_price,
        total_price=priced.total_price,
        selected_options=list(priced.selected_options),
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
async def create_cart(body: CreateCartRequest) -> CartIdResponse:
    load_store(body.store_id)
    result = current_domain.process(CreateCart(store_id=body.store_id), asynchronous=False)
    return CartIdResponse(cart_id=result)


@cart_router.get("/{cart_id}", response_model=CartResponse)
async def get_cart(cart_id: str) -> CartResponse:
    return _cart_response(current_domain.repository_for(Cart).get(cart_id))


@cart_router.post("/{cart_id}/lines", status_code=201, response_model=LineIdResponse)
async def add_cart_line(cart_id: str, body: AddToCartRequest) -> LineIdResponse:
    command = AddToCart(
        cart_id=cart_id,
        item_id=body.item_id,
        quantity=body.quantity,
        selections=json.dumps(body.selections),
    )
    result = current_domain.process(command, asynchronous=False)
    return LineIdResponse(line_id=result)


@cart_router.put("/{cart_id}/lines/{line_id}", response_model=StatusResponse)
async def update_cart_line(cart_id: str, line_id: str, body: UpdateCartLineRequest) -> StatusResponse:
    command = UpdateCartLine(cart_id=cart_id, line_id=line_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/lines/{line_id}", response_model=StatusResponse)
async def remove_cart_line(cart_id: str, line_id: str) -> StatusResponse:
    current_domain.process(RemoveCartLine(cart_id=cart_id, line_id=line_id), asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/lines", response_model=StatusResponse)
async def clear_cart(cart_id: str) -> StatusResponse:
    current_domain.process(ClearCart(cart_id=cart_id), asynchronous=False)
    return StatusResponse(status="cleared")


@cart_router.post("/{cart_id}/checkout", status_code=201, response_model=OrderIdResponse)
async def checkout_cart(cart_id: str, body: CheckoutRequest) -> OrderIdResponse:
    """Create the order for the cart.

    Repeating the call for an unchanged cart returns the same order.
    """
    command = CheckoutCart(cart_id=cart_id, **body.model_dump())
    result = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=result)


@cart_router.post("/{cart_id}/checkout/complete", response_model=OrderIdResponse)
async def complete_checkout(cart_id: str) -> OrderIdResponse:
    result = current_domain.process(CompleteCheckout(cart_id=cart_id), asynchronous=False)
    return OrderIdResponse(order_id=result)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def create_order(body: CreateOrderRequest) -> OrderIdResponse:
    command = CreateOrder(
        store_id=body.store_id,
        idempotency_key=body.idempotency_key,
        order_type=body.order_type,
        items=json.dumps([item.model_dump() for item in body.items]),
        customer_name=body.customer_name,
        customer_email=body.customer_email,
        customer_phone=body.customer_phone,
        customer_notes=body.customer_notes,
        scheduled_pickup_time=body.scheduled_pickup_time,
        tip_amount=body.tip_amount,
        service_point_id=body.service_point_id,
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=result)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return _order_response(current_domain.repository_for(Order).get(order_id))


@order_router.put("/{order_id}/status", response_model=StatusResponse)
async def advance_order_status(order_id: str, body: AdvanceStatusRequest) -> StatusResponse:
    result = current_domain.process(AdvanceOrderStatus(order_id=order_id, status=body.status), asynchronous=False)
    return StatusResponse(status=result)


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(order_id: str, body: ReasonRequest) -> StatusResponse:
    result = current_domain.process(CancelOrder(order_id=order_id, reason=body.reason), asynchronous=False)
    return StatusResponse(status=result)


@order_router.post("/{order_id}/pay-at-counter", response_model=StatusResponse)
async def mark_pay_at_counter(order_id: str) -> StatusResponse:
    result = current_domain.process(MarkPayAtCounter(order_id=order_id), asynchronous=False)
    return StatusResponse(status=result)


@order_router.post("/{order_id}/refund", response_model=StatusResponse)
async def refund_order(order_id: str, body: ReasonRequest) -> StatusResponse:
    result = current_domain.process(RefundOrder(order_id=order_id, reason=body.reason), asynchronous=False)
    return StatusResponse(status=result)


# ---------------------------------------------------------------------------
# Payment endpoints (mounted on the order router)
# ---------------------------------------------------------------------------
@order_router.post("/{order_id}/payment-session", response_model=PaymentSessionResponse)
def open_payment_session(order_id: str, body: OpenSessionRequest) -> PaymentSessionResponse:
    """Open (or resume) the order's payment session.

    Redirect providers answer with a ``url``; embedded providers with a
    ``client_secret``.
    """
    command = OpenPaymentSession(order_id=order_id, provider=body.provider, return_url=body.return_url)
    session = current_domain.process(command, asynchronous=False)
    if isinstance(session, RedirectSession):
        return PaymentSessionResponse(
            provider=session.provider, kind=session.kind.value, reference=session.reference, url=session.url
        )
    return PaymentSessionResponse(
        provider=session.provider,
        kind=session.kind.value,
        reference=session.reference,
        client_secret=session.client_secret,
    )


@order_router.get("/{order_id}/payment-status", response_model=PaymentStatusResponse)
def payment_status(order_id: str) -> PaymentStatusResponse:
    return _status_response(poll_payment_status(order_id))


@order_router.get("/{order_id}/payment-return", response_model=PaymentStatusResponse)
def payment_return(order_id: str) -> PaymentStatusResponse:
    """Landing point after a hosted payment page."""
    return _status_response(confirm_redirect_return(order_id))


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _raw_body(request: Request) -> bytes:
    return await request.body()


@webhook_router.post("/{provider}", response_model=StatusResponse)
def provider_webhook(provider: str, request: Request, payload: bytes = Depends(_raw_body)) -> StatusResponse:
    """Receive a payment provider webhook."""
    try:
        result = handle_webhook(provider, payload, request.headers)
    except InvalidWebhookSignature as exc:
        raise HTTPException(status_code=401, detail="Invalid webhook signature") from exc
    except ProviderError as exc:
        # Non-2xx makes the provider deliver the webhook again
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return StatusResponse(status=result)


# ---------------------------------------------------------------------------
# Fake provider controls (non-production only)
# ---------------------------------------------------------------------------
provider_router = APIRouter(prefix="/providers", tags=["providers"])


def _fake_provider(name: str) -> FakeProvider:
    _require_non_production("Provider configuration")
    provider = get_provider(name)
    if not isinstance(provider, FakeProvider):
        raise HTTPException(status_code=400, detail="Provider configuration only available for FakeProvider")
    return provider


@provider_router.post("/{name}/configure", response_model=ProviderConfigResponse)
async def configure_provider(name: str, body: ConfigureProviderRequest) -> ProviderConfigResponse:
    """Toggle fake provider failures for manual API testing."""
    provider = _fake_provider(name)
    provider.configure(
        fail_sessions=body.fail_sessions,
        fail_status=body.fail_status,
        failure_reason=body.failure_reason,
    )
    return ProviderConfigResponse(
        provider=provider.name,
        kind=provider.kind.value,
        fail_sessions=provider.fail_sessions,
        fail_status=provider.fail_status,
    )


@provider_router.post("/{name}/settle", response_model=StatusResponse)
async def settle_session(name: str, body: SettleSessionRequest) -> StatusResponse:
    """Decide how a fake session ends, as the payer would on the hosted page."""
    provider = _fake_provider(name)
    try:
        provider.settle(body.reference, body.status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return StatusResponse(status=body.status)
