"""Checkout error kinds shared by the Storefront and Billing contexts.

Field-level validation problems are raised as Protean's ``ValidationError``
and illegal state changes as ``InvalidOperationError``. The exceptions here
cover the checkout-specific outcomes that callers need to tell apart. Each
carries a machine-readable ``kind`` and the HTTP status the API maps it to.
"""


class CheckoutError(Exception):
    kind = "checkout_error"
    status_code = 500

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, **self.details}


class CapabilityUnavailable(CheckoutError):
    """The merchant cannot accept payments through the requested provider."""

    kind = "capability_unavailable"
    status_code = 409


class IdempotencyConflict(CheckoutError):
    """An order already exists for the checkout key.

    Never surfaced: order creation resolves it to the existing order.
    """

    kind = "idempotency_conflict"
    status_code = 200

    def __init__(self, order_id: str) -> None:
        super().__init__("Order already exists for this checkout", order_id=order_id)
        self.order_id = order_id


class ProviderSessionError(CheckoutError):
    """The provider failed to open a payment session. Safe to retry."""

    kind = "provider_session_error"
    status_code = 502


class ProviderStatusUnknown(CheckoutError):
    """The provider status lookup failed. Still verifying, never a failure."""

    kind = "provider_status_unknown"
    status_code = 503


class TerminalPaymentFailure(CheckoutError):
    kind = "terminal_payment_failure"
    status_code = 402

    MESSAGES = {
        "expired": "The payment session expired before it was completed. Please restart checkout.",
        "failed": "The payment could not be completed. Please restart checkout.",
    }

    def __init__(self, order_id: str, reason: str) -> None:
        super().__init__(
            self.MESSAGES.get(reason, self.MESSAGES["failed"]),
            order_id=order_id,
            reason=reason,
        )
        self.order_id = order_id
        self.reason = reason


class ProviderError(Exception):
    """Raised by provider adapters when a remote call fails."""


class InvalidWebhookSignature(ProviderError):
    """A webhook payload could not be authenticated."""
