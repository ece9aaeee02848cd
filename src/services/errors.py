"""Billing engine exception classes.

Each error carries a machine-readable reason code that API handlers return as-is.
"""


class BillingError(Exception):
    """Base exception for billing engine errors."""

    default_reason = "billing_error"

    def __init__(self, message: str, reason: str | None = None):
        self.message = message
        self.reason = reason or self.default_reason
        super().__init__(message)


class ValidationError(BillingError):
    """Malformed or inconsistent input (settlement event, period, method)."""

    default_reason = "invalid"


class NotFoundError(BillingError):
    """Unknown invoice or gateway order reference."""

    default_reason = "not_found"


class ConflictError(BillingError):
    """Duplicate creation attempt.

    Only raised inside the invoice store, which turns it into a no-op result.
    """

    default_reason = "conflict"


class TransientDeliveryError(BillingError):
    """Notification could not be delivered. Logged, never propagated by engines."""

    default_reason = "delivery_failed"


class UpstreamError(BillingError):
    """Payment gateway call failed or returned an error."""

    default_reason = "upstream_error"


__all__ = [
    "BillingError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "TransientDeliveryError",
    "UpstreamError",
]
