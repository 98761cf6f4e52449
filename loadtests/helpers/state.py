"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state: no cross-user sharing.
State tracks entity IDs returned by creation endpoints so follow-up
operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class StoreState:
    """A store with an active payment account and a loaded menu."""

    store_id: str | None = None
    merchant_id: str | None = None
    item_ids: list[str] = field(default_factory=list)


@dataclass
class CheckoutState:
    """Tracks one shopper's cart-to-paid-order journey."""

    cart_id: str | None = None
    line_ids: list[str] = field(default_factory=list)
    order_id: str | None = None
    payment_reference: str | None = None
    provider: str | None = None
    payment_status: str = "pending"
