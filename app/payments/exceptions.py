"""
Payment gateway exceptions.

Every Stripe SDK error is translated by ``StripeAdapter`` into one of these,
so callers never handle raw SDK objects. The provider's error code and decline
code are preserved in ``details`` for diagnostics.

Exception Hierarchy:
    ExternalServiceError (core)
    └── PaymentGatewayError
        ├── StripeCardDeclinedError
        │   └── StripeInsufficientFundsError
        ├── StripeInvalidAccountError
        ├── StripeInvalidRequestError
        ├── StripeRateLimitError       (retryable)
        ├── StripeAPIUnavailableError  (retryable)
        └── StripeTimeoutError         (retryable)
    ValidationError (core)
    └── InvalidSignatureError
    ConflictError (core)
    ├── StaleRecordError
    └── LockAcquisitionError
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ConflictError, ExternalServiceError, ValidationError

if TYPE_CHECKING:
    from typing import Any


class PaymentGatewayError(ExternalServiceError):
    """
    Base exception for payment provider failures.

    Attributes:
        stripe_code: Stripe's error code (e.g. ``resource_missing``)
        decline_code: Card decline code, if any
        is_retryable: Whether the same call may succeed if repeated

    Example:
        try:
            StripeAdapter.capture_payment_intent(pi_id, key)
        except PaymentGatewayError as e:
            if e.is_retryable:
                raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))
            raise
    """

    default_error_code: str = "PAYMENT_GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent errors
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(PaymentGatewayError):
    """The card issuer declined the charge."""

    default_error_code: str = "CARD_DECLINED"
    http_status: int = 402


class StripeInsufficientFundsError(StripeCardDeclinedError):
    default_error_code: str = "INSUFFICIENT_FUNDS"


class StripeInvalidAccountError(PaymentGatewayError):
    """Destination connected account is missing, restricted or not payable."""

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"


class StripeInvalidRequestError(PaymentGatewayError):
    """Bad parameters, unknown resource or an object in the wrong state."""

    default_error_code: str = "INVALID_STRIPE_REQUEST"


# -----------------------------------------------------------------------------
# Transient errors
# -----------------------------------------------------------------------------


class StripeRateLimitError(PaymentGatewayError):
    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(PaymentGatewayError):
    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True
    http_status: int = 503


class StripeTimeoutError(PaymentGatewayError):
    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True
    http_status: int = 504


# =============================================================================
# Webhooks
# =============================================================================


class InvalidSignatureError(ValidationError):
    """
    Webhook payload could not be authenticated.

    The webhook endpoint answers 400 for this and only this error, so Stripe
    keeps retrying deliveries signed with a rotated secret.
    """

    default_error_code: str = "INVALID_SIGNATURE"


# =============================================================================
# Concurrency Control
# =============================================================================


class StaleRecordError(ConflictError):
    """
    Optimistic locking detected a concurrent modification.

    ``details`` carries pk, expected_version and current_version.
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConflictError):
    """A distributed lock could not be acquired within its timeout."""

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


__all__ = [
    "PaymentGatewayError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    "InvalidSignatureError",
    "StaleRecordError",
    "LockAcquisitionError",
]
