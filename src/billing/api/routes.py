"""FastAPI routes for the Billing domain: merchant subscriptions."""

from fastapi import APIRouter, Depends, HTTPException, Request
from protean.utils.globals import current_domain

from billing.api.schemas import (
    CancelRequest,
    ChangePlanRequest,
    CreateSubscriptionRequest,
    PortalRequest,
    RedirectResponse,
    StartTrialRequest,
    StatusResponse,
    SubscriptionIdResponse,
    SubscriptionResponse,
)
from billing.gateway.port import InvalidBillingSignature
from billing.subscription.lifecycle import (
    CancelSubscription,
    ChangePlan,
    CreateSubscription,
    OpenBillingPortal,
    ResumeSubscription,
    StartTrial,
    subscription_for_merchant,
)
from billing.subscription.sync import handle_billing_webhook

subscription_router = APIRouter(prefix="/merchants", tags=["billing"])


@subscription_router.post("/{merchant_id}/subscription", status_code=201, response_model=SubscriptionIdResponse)
def create_subscription(merchant_id: str, body: CreateSubscriptionRequest) -> SubscriptionIdResponse:
    command = CreateSubscription(merchant_id=merchant_id, customer_id=body.customer_id)
    result = current_domain.process(command, asynchronous=False)
    return SubscriptionIdResponse(subscription_id=result)


@subscription_router.get("/{merchant_id}/subscription", response_model=SubscriptionResponse)
async def get_subscription(merchant_id: str) -> SubscriptionResponse:
    subscription = subscription_for_merchant(merchant_id)
    tier = subscription.plan_tier
    return SubscriptionResponse(
        subscription_id=str(subscription.id),
        merchant_id=str(subscription.merchant_id),
        status=subscription.status,
        price_id=subscription.price_id,
        plan_tier=tier.value if tier else None,
        cancel_at_period_end=bool(subscription.cancel_at_period_end),
        trial_ends_at=subscription.trial_ends_at,
        current_period_end=subscription.current_period_end,
    )


@subscription_router.post("/{merchant_id}/subscription/trial", response_model=StatusResponse)
async def start_trial(merchant_id: str, body: StartTrialRequest) -> StatusResponse:
    result = current_domain.process(StartTrial(merchant_id=merchant_id, price_id=body.price_id), asynchronous=False)
    return StatusResponse(status=result)


@subscription_router.post("/{merchant_id}/subscription/change-plan", response_model=RedirectResponse)
def change_plan(merchant_id: str, body: ChangePlanRequest) -> RedirectResponse:
    """Open hosted checkout for the new plan. The provider computes proration."""
    command = ChangePlan(
        merchant_id=merchant_id,
        price_id=body.price_id,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
    )
    return RedirectResponse(url=current_domain.process(command, asynchronous=False))


@subscription_router.post("/{merchant_id}/subscription/cancel", response_model=StatusResponse)
def cancel_subscription(merchant_id: str, body: CancelRequest) -> StatusResponse:
    command = CancelSubscription(merchant_id=merchant_id, immediately=body.immediately)
    return StatusResponse(status=current_domain.process(command, asynchronous=False))


@subscription_router.post("/{merchant_id}/subscription/resume", response_model=StatusResponse)
def resume_subscription(merchant_id: str) -> StatusResponse:
    result = current_domain.process(ResumeSubscription(merchant_id=merchant_id), asynchronous=False)
    return StatusResponse(status=result)


@subscription_router.post("/{merchant_id}/subscription/portal", response_model=RedirectResponse)
def billing_portal(merchant_id: str, body: PortalRequest) -> RedirectResponse:
    command = OpenBillingPortal(merchant_id=merchant_id, return_url=body.return_url)
    return RedirectResponse(url=current_domain.process(command, asynchronous=False))


billing_webhook_router = APIRouter(prefix="/billing", tags=["billing"])


async def _raw_body(request: Request) -> bytes:
    return await request.body()


@billing_webhook_router.post("/webhook", response_model=StatusResponse)
def billing_webhook(request: Request, payload: bytes = Depends(_raw_body)) -> StatusResponse:
    """Receive subscription events from the billing provider."""
    try:
        result = handle_billing_webhook(payload, request.headers)
    except InvalidBillingSignature as exc:
        raise HTTPException(status_code=401, detail="Invalid webhook signature") from exc
    return StatusResponse(status=result)
