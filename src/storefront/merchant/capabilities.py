"""Merchant capability resolution and provider preference.

``resolve_capabilities`` is a pure function over the merchant's two possible
payment accounts. It decides whether checkout may be offered at all and
which providers qualify. Choosing between qualifying providers is a policy
(``ProviderPreference``), not a fixed precedence.
"""

from dataclasses import dataclass
from datetime import datetime

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from shared.errors import CapabilityUnavailable
from shared.settings import get_settings
from storefront.merchant.account import AccountStyle, MerchantPaymentAccount
from storefront.merchant.store import Store
from storefront.order.scheduling import PRE_ORDER_TYPES
from storefront.provider.port import MerchantAccountRef


@dataclass(frozen=True)
class Capabilities:
    can_accept_online_payment: bool
    can_place_orders: bool
    is_open: bool
    available_providers: tuple[str, ...] = ()


def resolve_capabilities(
    connect_account: MerchantPaymentAccount | None = None,
    oauth_account: MerchantPaymentAccount | None = None,
    *,
    is_open: bool = True,
) -> Capabilities:
    """Derive what the merchant can do from its provider accounts."""
    available = tuple(
        account.provider for account in (connect_account, oauth_account) if account is not None and account.is_active
    )
    can_accept = bool(available)
    return Capabilities(
        can_accept_online_payment=can_accept,
        can_place_orders=can_accept and is_open,
        is_open=is_open,
        available_providers=available,
    )


class ProviderPreference:
    """Picks one provider among those the merchant can accept payments with.

    Order of precedence: the provider explicitly requested for this call,
    then the store's own preference, then the configured default order.
    """

    def __init__(self, default_order: list[str] | None = None) -> None:
        self.default_order = list(default_order) if default_order is not None else get_settings().provider_order

    def choose(self, capabilities: Capabilities, requested: str | None = None, store_preference: str | None = None):
        available = capabilities.available_providers
        if not capabilities.can_accept_online_payment:
            raise CapabilityUnavailable("This store cannot accept online payments right now")

        if requested:
            if requested not in available:
                raise CapabilityUnavailable(
                    f"Payments through {requested} are not available for this store",
                    provider=requested,
                )
            return requested

        if store_preference in available:
            return store_preference
        for name in self.default_order:
            if name in available:
                return name
        return available[0]


# ---------------------------------------------------------------------------
# Repository-backed lookups
# ---------------------------------------------------------------------------
def accounts_for_merchant(merchant_id) -> tuple[MerchantPaymentAccount | None, MerchantPaymentAccount | None]:
    """Return the merchant's (connect, oauth) accounts."""
    dao = current_domain.repository_for(MerchantPaymentAccount)._dao
    results = dao.query.filter(merchant_id=str(merchant_id)).all()
    connect = next((a for a in results.items if a.style == AccountStyle.CONNECT.value), None)
    oauth = next((a for a in results.items if a.style == AccountStyle.OAUTH.value), None)
    return connect, oauth


def capabilities_for_store(store: Store, now: datetime | None = None) -> Capabilities:
    connect, oauth = accounts_for_merchant(store.merchant_id)
    return resolve_capabilities(connect, oauth, is_open=store.is_open_at(now))


def merchant_account_ref(store: Store, provider: str) -> MerchantAccountRef | None:
    """The provider-side account a session is opened on, if the merchant has one."""
    for account in accounts_for_merchant(store.merchant_id):
        if account is not None and account.provider == provider:
            if account.is_connect:
                return MerchantAccountRef(account_id=account.account_id)
            return MerchantAccountRef(account_id=account.profile_id, access_token=account.access_token)
    return None


def load_store(store_id) -> Store:
    try:
        return current_domain.repository_for(Store).get(store_id)
    except ObjectNotFoundError:
        raise ValidationError({"store_id": [f"Unknown store {store_id}"]}) from None


def ensure_can_place_orders(store: Store, order_type: str, now: datetime | None = None) -> Capabilities:
    """Reject checkout up front when the store cannot take this order.

    A closed store still takes takeaway and delivery pre-orders; their time
    slot is checked separately (``storefront.order.scheduling``).
    """
    capabilities = capabilities_for_store(store, now)
    if not capabilities.can_accept_online_payment:
        raise CapabilityUnavailable("This store cannot accept online payments right now", reason="payments")
    if not capabilities.is_open and order_type not in PRE_ORDER_TYPES:
        raise CapabilityUnavailable(
            "This store is closed. Only takeaway and delivery pre-orders are available", reason="closed"
        )
    return capabilities
