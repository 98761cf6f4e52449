from billing.api.routes import billing_webhook_router, subscription_router

__all__ = ["subscription_router", "billing_webhook_router"]
