"""Store registration and payment account onboarding: commands and handlers.

Provider onboarding happens on the provider's side; these commands record
the status the provider reports back (via its dashboard callback or
account webhook).
"""

import json

import structlog
from protean import handle
from protean.fields import Boolean, Date, Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.merchant.account import MerchantPaymentAccount
from storefront.merchant.store import Store

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
@storefront.command(part_of="Store")
class RegisterStore:
    merchant_id = Identifier(required=True)
    name = String(required=True, max_length=200)
    timezone = String(max_length=64, default="UTC")
    preferred_provider = String(max_length=50)
    opening_periods = Text()  # JSON: [{day_of_week, open_time, close_time}]


@storefront.command(part_of="Store")
class SetOpeningHours:
    store_id = Identifier(required=True)
    opening_periods = Text(required=True)  # JSON: [{day_of_week, open_time, close_time}]


@storefront.command(part_of="Store")
class ScheduleClosure:
    store_id = Identifier(required=True)
    start_date = Date(required=True)
    end_date = Date(required=True)
    reason = String(max_length=255)


@storefront.command(part_of="Store")
class SetPreferredProvider:
    store_id = Identifier(required=True)
    provider = String(max_length=50)


@storefront.command(part_of="Store")
class SetOrderTypes:
    store_id = Identifier(required=True)
    order_types = Text(required=True)  # JSON: ["dine_in", "takeaway", "delivery"]


@storefront.command(part_of="Store")
class AddServicePoint:
    store_id = Identifier(required=True)
    name = String(required=True, max_length=100)


@storefront.command(part_of="Store")
class SetServicePointActive:
    store_id = Identifier(required=True)
    service_point_id = Identifier(required=True)
    is_active = Boolean(default=True)


@storefront.command_handler(part_of=Store)
class StoreHandler:
    @handle(RegisterStore)
    def register_store(self, command):
        store = Store.register(
            merchant_id=command.merchant_id,
            name=command.name,
            timezone=command.timezone or "UTC",
            preferred_provider=command.preferred_provider,
        )
        if command.opening_periods:
            store.set_opening_hours(json.loads(command.opening_periods))
        current_domain.repository_for(Store).add(store)
        logger.info("Store registered", store_id=str(store.id), merchant_id=str(command.merchant_id))
        return str(store.id)

    @handle(SetOpeningHours)
    def set_opening_hours(self, command):
        repo = current_domain.repository_for(Store)
        store = repo.get(command.store_id)
        store.set_opening_hours(json.loads(command.opening_periods))
        repo.add(store)

    @handle(ScheduleClosure)
    def schedule_closure(self, command):
        repo = current_domain.repository_for(Store)
        store = repo.get(command.store_id)
        store.add_closure(command.start_date, command.end_date, command.reason)
        repo.add(store)

    @handle(SetPreferredProvider)
    def set_preferred_provider(self, command):
        repo = current_domain.repository_for(Store)
        store = repo.get(command.store_id)
        store.set_preferred_provider(command.provider)
        repo.add(store)

    @handle(SetOrderTypes)
    def set_order_types(self, command):
        repo = current_domain.repository_for(Store)
        store = repo.get(command.store_id)
        store.set_order_types(json.loads(command.order_types))
        repo.add(store)
        logger.info("Store order types set", store_id=str(store.id), order_types=store.enabled_order_types)

    @handle(AddServicePoint)
    def add_service_point(self, command):
        repo = current_domain.repository_for(Store)
        store = repo.get(command.store_id)
        service_point_id = store.add_service_point(command.name)
        repo.add(store)
        return service_point_id

    @handle(SetServicePointActive)
    def set_service_point_active(self, command):
        repo = current_domain.repository_for(Store)
        store = repo.get(command.store_id)
        store.set_service_point_active(command.service_point_id, command.is_active)
        repo.add(store)


# ---------------------------------------------------------------------------
# Payment accounts
# ---------------------------------------------------------------------------
@storefront.command(part_of="MerchantPaymentAccount")
class SyncConnectAccount:
    merchant_id = Identifier(required=True)
    provider = String(default="stripe", max_length=50)
    account_id = String(required=True, max_length=255)
    onboarding_complete = Boolean(default=False)
    requirements_status = String(default="none", max_length=30)
    capabilities_status = String(default="inactive", max_length=30)


@storefront.command(part_of="MerchantPaymentAccount")
class SyncOAuthAccount:
    merchant_id = Identifier(required=True)
    provider = String(default="mollie", max_length=50)
    organization_id = String(required=True, max_length=255)
    onboarding_status = String(default="needs-data", max_length=30)
    can_receive_payments = Boolean(default=False)
    can_receive_settlements = Boolean(default=False)
    access_token = String(max_length=2000)
    profile_id = String(max_length=255)


def _find_account(merchant_id, provider) -> MerchantPaymentAccount | None:
    repo = current_domain.repository_for(MerchantPaymentAccount)
    results = repo._dao.query.filter(account_key=MerchantPaymentAccount.key_for(merchant_id, provider)).all()
    return results.items[0] if results.items else None


@storefront.command_handler(part_of=MerchantPaymentAccount)
class PaymentAccountHandler:
    @handle(SyncConnectAccount)
    def sync_connect_account(self, command):
        account = _find_account(command.merchant_id, command.provider) or MerchantPaymentAccount.connect(
            command.merchant_id, command.provider, command.account_id
        )
        account.account_id = command.account_id
        account.update_connect_status(
            onboarding_complete=command.onboarding_complete,
            requirements_status=command.requirements_status,
            capabilities_status=command.capabilities_status,
        )
        current_domain.repository_for(MerchantPaymentAccount).add(account)
        logger.info(
            "Connect account synced",
            merchant_id=str(command.merchant_id),
            provider=command.provider,
            capabilities_status=command.capabilities_status,
        )
        return str(account.id)

    @handle(SyncOAuthAccount)
    def sync_oauth_account(self, command):
        account = _find_account(command.merchant_id, command.provider) or MerchantPaymentAccount.oauth(
            command.merchant_id, command.provider, command.organization_id
        )
        account.organization_id = command.organization_id
        account.update_oauth_status(
            onboarding_status=command.onboarding_status,
            can_receive_payments=command.can_receive_payments,
            can_receive_settlements=command.can_receive_settlements,
        )
        account.set_oauth_credentials(access_token=command.access_token, profile_id=command.profile_id)
        current_domain.repository_for(MerchantPaymentAccount).add(account)
        logger.info(
            "OAuth account synced",
            merchant_id=str(command.merchant_id),
            provider=command.provider,
            onboarding_status=command.onboarding_status,
        )
        return str(account.id)
