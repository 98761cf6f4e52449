"""Subscription lifecycle: commands and handler.

Plan changes and the billing portal are passthroughs to provider-hosted
pages and change nothing locally. Cancel and resume are checked against the
local status first, then applied at the provider, whose answer is adopted.
"""

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ObjectNotFoundError
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from billing.domain import billing
from billing.gateway import get_gateway
from billing.gateway.port import BillingGatewayError
from billing.subscription.subscription import Subscription
from shared.errors import ProviderSessionError

logger = structlog.get_logger(__name__)


@billing.command(part_of="Subscription")
class CreateSubscription:
    merchant_id = Identifier(required=True)
    customer_id = String(max_length=255)


@billing.command(part_of="Subscription")
class StartTrial:
    merchant_id = Identifier(required=True)
    price_id = String(required=True, max_length=255)


@billing.command(part_of="Subscription")
class ChangePlan:
    merchant_id = Identifier(required=True)
    price_id = String(required=True, max_length=255)
    success_url = String(required=True, max_length=2000)
    cancel_url = String(required=True, max_length=2000)


@billing.command(part_of="Subscription")
class CancelSubscription:
    merchant_id = Identifier(required=True)
    immediately = Boolean(default=False)


@billing.command(part_of="Subscription")
class ResumeSubscription:
    merchant_id = Identifier(required=True)


@billing.command(part_of="Subscription")
class OpenBillingPortal:
    merchant_id = Identifier(required=True)
    return_url = String(required=True, max_length=2000)


def subscription_for_merchant(merchant_id) -> Subscription:
    results = current_domain.repository_for(Subscription)._dao.query.filter(merchant_id=str(merchant_id)).all()
    if not results.items:
        raise ObjectNotFoundError(f"No subscription for merchant {merchant_id}")
    return results.items[0]


def _gateway_call(what: str, fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except BillingGatewayError as exc:
        raise ProviderSessionError(str(exc), action=what) from exc


@billing.command_handler(part_of=Subscription)
class SubscriptionHandler:
    @handle(CreateSubscription)
    def create_subscription(self, command):
        dao = current_domain.repository_for(Subscription)._dao
        results = dao.query.filter(merchant_id=str(command.merchant_id)).all()
        if results.items:
            subscription = results.items[0]
            if command.customer_id:
                subscription.customer_id = command.customer_id
        else:
            subscription = Subscription.create(command.merchant_id, command.customer_id)
        current_domain.repository_for(Subscription).add(subscription)
        return str(subscription.id)

    @handle(StartTrial)
    def start_trial(self, command):
        subscription = subscription_for_merchant(command.merchant_id)
        subscription.ensure_can_start_trial(command.price_id)

        snapshot = _gateway_call("start_trial", get_gateway().start_trial, subscription.customer_id, command.price_id)
        subscription.sync_from_provider(snapshot)
        current_domain.repository_for(Subscription).add(subscription)
        logger.info("Trial started", merchant_id=str(command.merchant_id), price_id=command.price_id)
        return subscription.status

    @handle(ChangePlan)
    def change_plan(self, command):
        subscription = subscription_for_merchant(command.merchant_id)
        subscription.ensure_can_change_plan(command.price_id)

        link = _gateway_call(
            "change_plan",
            get_gateway().create_checkout,
            subscription.customer_id,
            command.price_id,
            command.success_url,
            command.cancel_url,
            metadata={"merchant_id": str(command.merchant_id), "price_id": command.price_id},
        )
        logger.info("Plan change checkout opened", merchant_id=str(command.merchant_id), price_id=command.price_id)
        return link.url

    @handle(CancelSubscription)
    def cancel_subscription(self, command):
        subscription = subscription_for_merchant(command.merchant_id)
        subscription.cancel(immediately=command.immediately)
        if not subscription.subscription_id:
            raise InvalidOperationError("Subscription is not known to the billing provider")

        snapshot = _gateway_call(
            "cancel", get_gateway().cancel, subscription.subscription_id, at_period_end=not command.immediately
        )
        subscription.sync_from_provider(snapshot)
        current_domain.repository_for(Subscription).add(subscription)
        logger.info(
            "Subscription cancelled",
            merchant_id=str(command.merchant_id),
            immediately=command.immediately,
            status=subscription.status,
        )
        return subscription.status

    @handle(ResumeSubscription)
    def resume_subscription(self, command):
        subscription = subscription_for_merchant(command.merchant_id)
        subscription.resume()
        if not subscription.subscription_id:
            raise InvalidOperationError("Subscription is not known to the billing provider")

        snapshot = _gateway_call("resume", get_gateway().resume, subscription.subscription_id)
        subscription.sync_from_provider(snapshot)
        current_domain.repository_for(Subscription).add(subscription)
        logger.info("Subscription resumed", merchant_id=str(command.merchant_id), status=subscription.status)
        return subscription.status

    @handle(OpenBillingPortal)
    def open_billing_portal(self, command):
        subscription = subscription_for_merchant(command.merchant_id)
        subscription.ensure_portal_available()
        link = _gateway_call(
            "billing_portal", get_gateway().create_portal_session, subscription.customer_id, command.return_url
        )
        return link.url
