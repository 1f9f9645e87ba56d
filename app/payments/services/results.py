"""
Result and caller types for administrator-facing refund operations.

ActionResult is the tagged outcome returned by every RefundLedgerService
and RefundProcessingService operation. Views translate it into an HTTP
response; tests assert on its status.

CallerContext carries the administrator capability explicitly instead of
reading it from a global session.

Usage:
    from payments.services import ActionResult, ActionStatus, CallerContext

    caller = CallerContext.from_request(request)
    result = RefundLedgerService.approve(caller, refund_id)
    if result.status == ActionStatus.SUCCESS:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework.exceptions import APIException

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from payments.exceptions import ReconciliationRequiredError, StripeError
from payments.messages import RefundMessages

if TYPE_CHECKING:
    from typing import Any


class ActionStatus(str, Enum):
    """Outcome category of an administrator action."""

    SUCCESS = "SUCCESS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    ERROR = "ERROR"


@dataclass
class ActionResult:
    """
    Tagged result of an administrator action.

    Attributes:
        status: Outcome category
        message: User-safe message
        data: Payload for successful actions (serialized refund, listing page)
        error_code: Machine-readable code for failures
    """

    status: ActionStatus
    message: str
    data: Any = None
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == ActionStatus.SUCCESS

    @classmethod
    def success(cls, message: str, data: Any = None) -> ActionResult:
        return cls(status=ActionStatus.SUCCESS, message=message, data=data)

    @classmethod
    def validation_error(cls, message: str, error_code: str | None = None) -> ActionResult:
        return cls(
            status=ActionStatus.VALIDATION_ERROR,
            message=message,
            error_code=error_code or "VALIDATION_ERROR",
        )

    @classmethod
    def not_found(cls, message: str = RefundMessages.NOT_FOUND) -> ActionResult:
        return cls(status=ActionStatus.NOT_FOUND, message=message, error_code="NOT_FOUND")

    @classmethod
    def unauthorized(cls) -> ActionResult:
        return cls(
            status=ActionStatus.UNAUTHORIZED,
            message=RefundMessages.UNAUTHORIZED,
            error_code="UNAUTHORIZED",
        )

    @classmethod
    def error(
        cls,
        message: str,
        error_code: str | None = None,
        data: Any = None,
    ) -> ActionResult:
        return cls(
            status=ActionStatus.ERROR,
            message=message,
            data=data,
            error_code=error_code or "ERROR",
        )

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        logger: logging.Logger | None = None,
    ) -> ActionResult:
        """
        Translate an exception into an ActionResult.

        Business-rule errors keep their user-safe message. Anything
        unexpected is logged with its traceback and masked behind
        PROCESS_FAILED. Framework control-flow exceptions are re-raised.
        """
        if isinstance(exc, (Http404, PermissionDenied, APIException)):
            raise exc

        if isinstance(exc, PermissionDeniedError):
            return cls.unauthorized()
        if isinstance(exc, NotFoundError):
            return cls.not_found(exc.message)
        if isinstance(exc, (ValidationError, ConflictError)):
            return cls.validation_error(exc.message, exc.error_code)
        if isinstance(exc, StripeError):
            return cls.error(exc.message, exc.error_code)
        if isinstance(exc, ReconciliationRequiredError):
            return cls.error(exc.message, exc.error_code, data=exc.details or None)
        if isinstance(exc, BaseApplicationError):
            return cls.error(exc.message, exc.error_code)

        (logger or logging.getLogger(__name__)).exception(
            "Unexpected error in refund action",
            extra={"error_type": type(exc).__name__},
        )
        return cls.error(RefundMessages.PROCESS_FAILED, "PROCESS_FAILED")

    def to_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "status": self.status.value,
            "message": self.message,
        }
        if self.data is not None:
            response["data"] = self.data
        if self.error_code and not self.ok:
            response["error_code"] = self.error_code
        return response


@dataclass(frozen=True)
class CallerContext:
    """
    Identity and capability of whoever invokes a refund operation.

    Automation (Celery tasks, webhooks) uses CallerContext.system().
    """

    user_id: int | None
    is_administrator: bool

    @classmethod
    def from_request(cls, request) -> CallerContext:
        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            return cls(user_id=None, is_administrator=False)
        return cls.from_user(user)

    @classmethod
    def from_user(cls, user) -> CallerContext:
        return cls(
            user_id=user.pk,
            is_administrator=bool(user.is_staff or user.is_superuser),
        )

    @classmethod
    def system(cls) -> CallerContext:
        return cls(user_id=None, is_administrator=True)


def is_administrator(caller: CallerContext | None) -> bool:
    """Whether the caller may perform refund operations."""
    return bool(caller is not None and caller.is_administrator)
