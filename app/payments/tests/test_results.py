"""
Tests for ActionResult and CallerContext.
"""

import pytest
from django.contrib.auth.models import AnonymousUser
from django.http import Http404

from core.exceptions import ConflictError
from payments.exceptions import (
    AdministratorRequiredError,
    InvalidStateTransitionError,
    ReconciliationRequiredError,
    RefundNotFoundError,
    RefundValidationError,
    StripeCardDeclinedError,
)
from payments.messages import RefundMessages
from payments.services import ActionResult, ActionStatus, CallerContext, is_administrator


class TestFromException:
    @pytest.mark.parametrize(
        "exc,expected_status,expected_code",
        [
            (AdministratorRequiredError("nope"), ActionStatus.UNAUTHORIZED, "UNAUTHORIZED"),
            (RefundNotFoundError("Refund not found."), ActionStatus.NOT_FOUND, "NOT_FOUND"),
            (
                RefundValidationError("bad amount", error_code="INVALID_AMOUNT"),
                ActionStatus.VALIDATION_ERROR,
                "INVALID_AMOUNT",
            ),
            (
                InvalidStateTransitionError("already approved"),
                ActionStatus.VALIDATION_ERROR,
                "INVALID_STATE_TRANSITION",
            ),
            (ConflictError("busy"), ActionStatus.VALIDATION_ERROR, "CONFLICT"),
            (StripeCardDeclinedError("declined"), ActionStatus.ERROR, "CARD_DECLINED"),
        ],
    )
    def test_maps_application_errors(self, exc, expected_status, expected_code):
        result = ActionResult.from_exception(exc)

        assert result.status == expected_status
        assert result.error_code == expected_code

    def test_keeps_business_message(self):
        result = ActionResult.from_exception(RefundValidationError("Too much", error_code="X"))
        assert result.message == "Too much"

    def test_reconciliation_required_carries_details(self):
        exc = ReconciliationRequiredError(
            RefundMessages.RECONCILIATION_REQUIRED,
            details={"refund_id": "r1", "stripe_refund_id": "re_1"},
        )

        result = ActionResult.from_exception(exc)

        assert result.status == ActionStatus.ERROR
        assert result.error_code == "RECONCILIATION_REQUIRED"
        assert result.data == {"refund_id": "r1", "stripe_refund_id": "re_1"}

    def test_unexpected_error_is_masked(self, mocker):
        logger = mocker.Mock()

        result = ActionResult.from_exception(KeyError("internal detail"), logger)

        assert result.status == ActionStatus.ERROR
        assert result.message == RefundMessages.PROCESS_FAILED
        assert result.error_code == "PROCESS_FAILED"
        logger.exception.assert_called_once()

    def test_framework_exceptions_reraised(self):
        with pytest.raises(Http404):
            ActionResult.from_exception(Http404("gone"))


class TestToResponse:
    def test_success(self):
        assert ActionResult.success("Done", {"id": "1"}).to_response() == {
            "status": "SUCCESS",
            "message": "Done",
            "data": {"id": "1"},
        }

    def test_failure_includes_error_code(self):
        response = ActionResult.validation_error("Bad", "INVALID_ID").to_response()

        assert response == {
            "status": "VALIDATION_ERROR",
            "message": "Bad",
            "error_code": "INVALID_ID",
        }

    def test_defaults(self):
        assert ActionResult.not_found().message == RefundMessages.NOT_FOUND
        assert ActionResult.error("x").error_code == "ERROR"
        assert ActionResult.validation_error("x").error_code == "VALIDATION_ERROR"


class TestCallerContext:
    def test_system_is_administrator(self):
        assert is_administrator(CallerContext.system())

    def test_none_is_not_administrator(self):
        assert not is_administrator(None)

    def test_anonymous_request(self, rf):
        request = rf.get("/")
        request.user = AnonymousUser()

        caller = CallerContext.from_request(request)

        assert caller == CallerContext(user_id=None, is_administrator=False)

    @pytest.mark.django_db
    def test_staff_user(self, admin_user, regular_user):
        assert CallerContext.from_user(admin_user).is_administrator is True
        assert CallerContext.from_user(regular_user).is_administrator is False
        assert CallerContext.from_user(admin_user).user_id == admin_user.pk
