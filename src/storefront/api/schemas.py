"""Pydantic request/response schemas for the Storefront API.

These are external contracts (anti-corruption layer): separate from
internal Protean commands. All amounts are integer minor units (cents).
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class OpeningPeriodSchema(BaseModel):
    day_of_week: str
    open_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    close_time: str = Field(pattern=r"^\d{2}:\d{2}$")


class SelectedChoiceSchema(BaseModel):
    id: str
    name: str
    price: int
    quantity: int | None = None


class SelectedGroupSchema(BaseModel):
    group_id: str
    group_name: str
    choices: list[SelectedChoiceSchema]


# Per option group: a list of choice ids, or {choice_id: quantity}
Selections = dict[str, list[str] | dict[str, int]]


# ---------------------------------------------------------------------------
# Store & account schemas
# ---------------------------------------------------------------------------
class RegisterStoreRequest(BaseModel):
    merchant_id: str
    name: str
    timezone: str = "UTC"
    preferred_provider: str | None = None
    opening_periods: list[OpeningPeriodSchema] = []

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "merchant_id": "merchant-001",
                    "name": "Trattoria Roma",
                    "timezone": "Europe/Amsterdam",
                    "opening_periods": [
                        {"day_of_week": "friday", "open_time": "17:00", "close_time": "23:00"},
                    ],
                }
            ]
        }
    }


class SetOpeningHoursRequest(BaseModel):
    opening_periods: list[OpeningPeriodSchema]


class ScheduleClosureRequest(BaseModel):
    start_date: date
    end_date: date
    reason: str | None = None


class SetPreferredProviderRequest(BaseModel):
    provider: str | None = None


class SetOrderTypesRequest(BaseModel):
    order_types: list[str]


class AddServicePointRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class SetServicePointActiveRequest(BaseModel):
    is_active: bool


class ServicePointIdResponse(BaseModel):
    service_point_id: str


class SyncConnectAccountRequest(BaseModel):
    provider: str = "stripe"
    account_id: str
    onboarding_complete: bool = False
    requirements_status: str = "none"
    capabilities_status: str = "inactive"


class SyncOAuthAccountRequest(BaseModel):
    provider: str = "mollie"
    organization_id: str
    onboarding_status: str = "needs-data"
    can_receive_payments: bool = False
    can_receive_settlements: bool = False
    access_token: str | None = None
    profile_id: str | None = None


class CapabilitiesResponse(BaseModel):
    can_accept_online_payment: bool
    can_place_orders: bool
    is_open: bool
    available_providers: list[str]


class StoreIdResponse(BaseModel):
    store_id: str


class AccountIdResponse(BaseModel):
    account_id: str


# ---------------------------------------------------------------------------
# Menu schemas
# ---------------------------------------------------------------------------
class LoadMenuRequest(BaseModel):
    # Catalog JSON: [{id, name, price, option_groups: [...]}]
    items: list[dict[str, Any]]


class PriceItemRequest(BaseModel):
    quantity: int = Field(ge=1, default=1)
    selections: Selections = {}

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "quantity": 2,
                    "selections": {"size": ["large"], "toppings": ["olives", "basil"]},
                }
            ]
        }
    }


class PriceItemResponse(BaseModel):
    line_id: str
    base_price: int
    options_price: int
    total_price: int
    selected_options: list[SelectedGroupSchema]


class GroupFailureSchema(BaseModel):
    group_id: str
    group_name: str
    reason: str


class ValidateSelectionsResponse(BaseModel):
    valid: bool
    failures: list[GroupFailureSchema]


class DefaultSelectionsResponse(BaseModel):
    selections: Selections


# ---------------------------------------------------------------------------
# Cart schemas
# ---------------------------------------------------------------------------
class CreateCartRequest(BaseModel):
    store_id: str


class AddToCartRequest(BaseModel):
    item_id: str
    quantity: int = Field(ge=1, default=1)
    selections: Selections = {}


class UpdateCartLineRequest(BaseModel):
    # 0 removes the line
    quantity: int = Field(ge=0)


class CheckoutRequest(BaseModel):
    order_type: str
    customer_name: str
    customer_email: str | None = None
    customer_phone: str | None = None
    customer_notes: str | None = None
    scheduled_pickup_time: datetime | None = None
    tip_amount: int = Field(ge=0, default=0)
    service_point_id: str | None = None


class CartLineSchema(BaseModel):
    line_id: str
    item_id: str
    name: str
    quantity: int
    base_price: int
    options_price: int
    total_price: int
    selected_options: list[SelectedGroupSchema]


class CartResponse(BaseModel):
    cart_id: str
    store_id: str
    lines: list[CartLineSchema]
    item_count: int
    subtotal: int
    checkout_order_id: str | None = None


class CartIdResponse(BaseModel):
    cart_id: str


class LineIdResponse(BaseModel):
    line_id: str


# ---------------------------------------------------------------------------
# Order schemas
# ---------------------------------------------------------------------------
class OrderItemRequest(BaseModel):
    item_id: str
    quantity: int = Field(ge=1)
    selections: Selections = {}
    # Client-computed line total. Checked, never trusted.
    total_price: int | None = None


class CreateOrderRequest(BaseModel):
    store_id: str
    idempotency_key: str = Field(min_length=1, max_length=64)
    order_type: str
    items: list[OrderItemRequest]
    customer_name: str
    customer_email: str | None = None
    customer_phone: str | None = None
    customer_notes: str | None = None
    scheduled_pickup_time: datetime | None = None
    tip_amount: int = Field(ge=0, default=0)
    service_point_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "store_id": "store-001",
                    "idempotency_key": "5b0c3c4e9d8a4f0e",
                    "order_type": "dine_in",
                    "items": [{"item_id": "margherita", "quantity": 1, "selections": {"size": ["large"]}}],
                    "customer_name": "Ada",
                    "tip_amount": 100,
                }
            ]
        }
    }


class AdvanceStatusRequest(BaseModel):
    status: str


class ReasonRequest(BaseModel):
    reason: str | None = None


class OrderLineSchema(BaseModel):
    item_id: str
    name: str
    quantity: int
    unit_price: int
    options_price: int
    total_price: int
    selected_options: list[SelectedGroupSchema]


class OrderResponse(BaseModel):
    order_id: str
    store_id: str
    order_type: str
    order_status: str
    payment_status: str
    payment_provider: str | None = None
    customer_name: str | None = None
    scheduled_pickup_time: datetime | None = None
    service_point_id: str | None = None
    items: list[OrderLineSchema]
    subtotal: int
    tip_amount: int
    total_amount: int
    next_statuses: list[str]
    created_at: datetime | None = None


class OrderIdResponse(BaseModel):
    order_id: str


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Payment schemas
# ---------------------------------------------------------------------------
class OpenSessionRequest(BaseModel):
    provider: str | None = None
    return_url: str | None = None


class PaymentSessionResponse(BaseModel):
    provider: str
    kind: str
    reference: str
    # Exactly one of these is set, depending on the provider kind
    url: str | None = None
    client_secret: str | None = None


class PaymentStatusResponse(BaseModel):
    order_id: str
    order_status: str
    payment_status: str
    provider: str | None = None
    provider_kind: str | None = None
    verified: bool = True
    next_poll_ms: int | None = None
    failure: dict | None = None


class ConfigureProviderRequest(BaseModel):
    fail_sessions: bool = False
    fail_status: bool = False
    failure_reason: str | None = None


class SettleSessionRequest(BaseModel):
    reference: str
    status: str


class ProviderConfigResponse(BaseModel):
    provider: str
    kind: str
    fail_sessions: bool
    fail_status: bool
