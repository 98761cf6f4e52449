"""Pydantic request/response schemas for the Billing API."""

from datetime import datetime

from pydantic import BaseModel


class CreateSubscriptionRequest(BaseModel):
    customer_id: str | None = None


class StartTrialRequest(BaseModel):
    price_id: str


class ChangePlanRequest(BaseModel):
    price_id: str
    success_url: str
    cancel_url: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "price_id": "price_professional_monthly",
                    "success_url": "https://console.example.com/settings/billing?changed=1",
                    "cancel_url": "https://console.example.com/settings/billing",
                }
            ]
        }
    }


class CancelRequest(BaseModel):
    immediately: bool = False


class PortalRequest(BaseModel):
    return_url: str


class SubscriptionResponse(BaseModel):
    subscription_id: str
    merchant_id: str
    status: str
    price_id: str | None = None
    plan_tier: str | None = None
    cancel_at_period_end: bool = False
    trial_ends_at: datetime | None = None
    current_period_end: datetime | None = None


class SubscriptionIdResponse(BaseModel):
    subscription_id: str


class RedirectResponse(BaseModel):
    url: str


class StatusResponse(BaseModel):
    status: str = "ok"
