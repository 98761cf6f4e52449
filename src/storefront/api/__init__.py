"""Storefront domain API package."""

from storefront.api.routes import (
    cart_router,
    order_router,
    provider_router,
    store_router,
    webhook_router,
)

__all__ = ["store_router", "cart_router", "order_router", "webhook_router", "provider_router"]
