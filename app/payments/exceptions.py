"""
Refund-specific exceptions.

Exception Hierarchy:
    RefundNotFoundError (NotFoundError) - Unknown refund or order
    RefundValidationError (ValidationError) - Malformed input, amount/quantity caps
    AdministratorRequiredError (PermissionDeniedError) - Caller is not an admin
    InvalidStateTransitionError (ConflictError) - Refund not in the required state
    LockAcquisitionError (ConflictError) - Distributed lock timeout
        └── ReconciliationLockError - Another reconciliation run is active
    ReconciliationRequiredError - Stripe succeeded, local commit failed
    StripeError (ExternalServiceError) - Base for all Stripe errors
        ├── StripeCardDeclinedError - Refund declined by the card network (permanent)
        ├── StripeInvalidRequestError - Invalid request params (permanent)
        ├── StripeAuthenticationError - Bad API key (permanent)
        ├── StripeRateLimitError - Rate limited (transient)
        ├── StripeAPIUnavailableError - API unavailable (transient)
        └── StripeTimeoutError - Request timeout (transient, outcome unknown)

Usage:
    from payments.exceptions import InvalidStateTransitionError

    raise InvalidStateTransitionError(
        RefundMessages.ALREADY_APPROVED,
        error_code="ALREADY_APPROVED",
        details={"current_state": refund.status, "transition": "approve"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Refund Domain Exceptions
# =============================================================================


class RefundNotFoundError(NotFoundError):
    """Raised when a refund (or the order it targets) cannot be found."""

    default_error_code: str = "REFUND_NOT_FOUND"


class RefundValidationError(ValidationError):
    """
    Raised when refund input is rejected.

    Use for:
    - Malformed refund or order identifiers
    - Amount not positive or above the remaining refundable amount
    - Item quantities above what is still refundable
    - Items that do not belong to the order
    """

    default_error_code: str = "REFUND_VALIDATION_ERROR"


class AdministratorRequiredError(PermissionDeniedError):
    """Raised before any read when the caller is not an administrator."""

    default_error_code: str = "UNAUTHORIZED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a refund state machine transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed with a user-safe message,
    e.g. approving an already approved refund or cancelling a completed one.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Another worker is already processing the same refund (or running the
    reconciliation job).
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class ReconciliationLockError(LockAcquisitionError):
    """Raised when another refund reconciliation run holds the global lock."""

    default_error_code: str = "RECONCILIATION_LOCKED"


class ReconciliationRequiredError(BaseApplicationError):
    """
    Stripe refunded the money but the local commit failed.

    The refund stays APPROVED with the Stripe refund id recorded in
    metadata; the reconciliation job (or a retried process call, which
    reuses the same idempotency key) completes it. Never presented to a
    customer as a retry-safe failure.
    """

    default_error_code: str = "RECONCILIATION_REQUIRED"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(ExternalServiceError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        decline_code: Card decline code (if applicable)
        is_retryable: Whether the operation can be retried

    Use is_retryable to decide the refund outcome:
    - True: transient, the refund outcome is unknown; keep it APPROVED
    - False: permanent, mark the refund FAILED
    """

    default_error_code: str = "STRIPE_ERROR"
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
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """The card network refused the refund (e.g. closed account)."""

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Possible causes:
    - Unknown payment intent or charge
    - Amount above what remains refundable on the charge
    - Charge already fully refunded
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


class StripeAuthenticationError(StripeError):
    """The configured Stripe API key was rejected."""

    default_error_code: str = "STRIPE_AUTHENTICATION_FAILED"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (outcome unknown, safe to retry with the same key)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    Covers network connectivity issues and Stripe server errors (5xx).
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    IMPORTANT: The refund may have succeeded on Stripe's side. The refund
    stays APPROVED and a retry with the same idempotency key returns the
    original Stripe response.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Refund domain
    "RefundNotFoundError",
    "RefundValidationError",
    "AdministratorRequiredError",
    "InvalidStateTransitionError",
    # Concurrency control
    "LockAcquisitionError",
    "ReconciliationLockError",
    "ReconciliationRequiredError",
    # Stripe-specific
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInvalidRequestError",
    "StripeAuthenticationError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
]
