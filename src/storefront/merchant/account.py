"""MerchantPaymentAccount aggregate (CQRS): a merchant's onboarding state at one provider.

A merchant has at most one account per provider. Two onboarding styles
exist and are tracked on the same aggregate:

- Connect-style (Stripe): capability status decides whether charges work.
- OAuth-style (Mollie): onboarding must be completed and the organisation
  must be allowed to receive payments.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, String

from storefront.domain import storefront


class AccountStyle(Enum):
    CONNECT = "connect"
    OAUTH = "oauth"


class RequirementsStatus(Enum):
    NONE = "none"
    CURRENTLY_DUE = "currently_due"
    PAST_DUE = "past_due"
    PENDING_VERIFICATION = "pending_verification"


class CapabilitiesStatus(Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"


class OnboardingStatus(Enum):
    NEEDS_DATA = "needs-data"
    IN_REVIEW = "in-review"
    COMPLETED = "completed"


def _parse(enum_cls, value, field):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError({field: [f"Unknown {field} {value}"]}) from None


# Provider adapters and the onboarding style each one uses
PROVIDER_STYLES = {
    "stripe": AccountStyle.CONNECT,
    "mollie": AccountStyle.OAUTH,
}


@storefront.aggregate
class MerchantPaymentAccount:
    merchant_id = Identifier(required=True)
    provider = String(required=True, max_length=50)
    style = String(choices=AccountStyle, required=True)
    # "<merchant_id>:<provider>"
    account_key = String(required=True, max_length=200, unique=True)

    # Connect-style
    account_id = String(max_length=255)
    onboarding_complete = Boolean(default=False)
    requirements_status = String(choices=RequirementsStatus, default=RequirementsStatus.NONE.value)
    capabilities_status = String(choices=CapabilitiesStatus, default=CapabilitiesStatus.INACTIVE.value)

    # OAuth-style
    organization_id = String(max_length=255)
    onboarding_status = String(choices=OnboardingStatus, default=OnboardingStatus.NEEDS_DATA.value)
    can_receive_payments = Boolean(default=False)
    can_receive_settlements = Boolean(default=False)
    # Merchant-scoped credentials the platform acts with
    access_token = String(max_length=2000)
    profile_id = String(max_length=255)

    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------
    @classmethod
    def connect(cls, merchant_id, provider, account_id):
        cls._check_style(provider, AccountStyle.CONNECT)
        now = datetime.now(UTC)
        return cls(
            merchant_id=str(merchant_id),
            provider=provider,
            style=AccountStyle.CONNECT.value,
            account_key=cls.key_for(merchant_id, provider),
            account_id=account_id,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def oauth(cls, merchant_id, provider, organization_id):
        cls._check_style(provider, AccountStyle.OAUTH)
        now = datetime.now(UTC)
        return cls(
            merchant_id=str(merchant_id),
            provider=provider,
            style=AccountStyle.OAUTH.value,
            account_key=cls.key_for(merchant_id, provider),
            organization_id=organization_id,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def key_for(merchant_id, provider) -> str:
        return f"{merchant_id}:{provider}"

    @staticmethod
    def _check_style(provider, style):
        expected = PROVIDER_STYLES.get(provider)
        if expected is None:
            raise ValidationError({"provider": [f"Unknown payment provider {provider}"]})
        if expected != style:
            raise ValidationError({"provider": [f"{provider} does not use {style.value} onboarding"]})

    # -------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------
    @property
    def is_connect(self) -> bool:
        return AccountStyle(self.style) == AccountStyle.CONNECT

    @property
    def is_active(self) -> bool:
        """Whether the account has reached its terminal-positive state."""
        if self.is_connect:
            return CapabilitiesStatus(self.capabilities_status) == CapabilitiesStatus.ACTIVE
        return OnboardingStatus(self.onboarding_status) == OnboardingStatus.COMPLETED and bool(
            self.can_receive_payments
        )

    def update_connect_status(self, onboarding_complete, requirements_status, capabilities_status):
        if not self.is_connect:
            raise ValidationError({"style": ["Account does not use connect onboarding"]})
        self.onboarding_complete = onboarding_complete
        self.requirements_status = _parse(RequirementsStatus, requirements_status, "requirements_status").value
        self.capabilities_status = _parse(CapabilitiesStatus, capabilities_status, "capabilities_status").value
        self.updated_at = datetime.now(UTC)

    def update_oauth_status(self, onboarding_status, can_receive_payments, can_receive_settlements):
        if self.is_connect:
            raise ValidationError({"style": ["Account does not use OAuth onboarding"]})
        self.onboarding_status = _parse(OnboardingStatus, onboarding_status, "onboarding_status").value
        self.can_receive_payments = can_receive_payments
        self.can_receive_settlements = can_receive_settlements
        self.updated_at = datetime.now(UTC)

    def set_oauth_credentials(self, access_token=None, profile_id=None):
        """Record the merchant's OAuth access token and payment profile."""
        if self.is_connect:
            raise ValidationError({"style": ["Account does not use OAuth onboarding"]})
        if access_token:
            self.access_token = access_token
        if profile_id:
            self.profile_id = profile_id
        self.updated_at = datetime.now(UTC)
