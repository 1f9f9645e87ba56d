"""
Base exception classes for application-wide error handling.

Every domain error raised by the service layer derives from
BaseApplicationError so that callers can translate it into an outcome
(ActionResult / ServiceResult) or an HTTP response without inspecting
message strings.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed input, business rule violations
    ├── NotFoundError - Unknown identifier
    ├── PermissionDeniedError - Caller lacks the required capability
    ├── ConflictError - Resource is not in the state the operation needs
    └── ExternalServiceError - Third-party service failures (Stripe)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError("Amount must be positive", error_code="INVALID_AMOUNT")

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description, safe to show to an admin
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, identifiers, etc.)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Refund not found.",
                "error_code": "REFUND_NOT_FOUND",
                "details": {"refund_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for malformed identifiers, negative amounts, quantities above what
    is still refundable and similar business rule violations. Raised before
    any state is read whenever the input itself is the problem.

    Example:
        raise ValidationError(
            "Refund amount exceeds the remaining refundable amount.",
            error_code="AMOUNT_EXCEEDS_REMAINING",
            details={"requested": 6000, "remaining": 4000},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        refund = Refund.objects.filter(id=refund_id).first()
        if refund is None:
            raise NotFoundError("Refund not found.", error_code="REFUND_NOT_FOUND")
    """

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the caller lacks the capability for an operation.

    Refund mutations require an administrator; the check happens before
    any row is read.
    """

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with the current resource state.

    Use for:
    - Invalid state transitions (approving an approved refund)
    - Concurrent modification conflicts
    - Optimistic locking failures

    Note:
        HTTP 409 Conflict is the natural status, but the admin API reports
        these as validation errors because they are caused by the request.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Note:
        Log the original error for debugging but don't expose
        internal details to clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
