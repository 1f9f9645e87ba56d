"""
Tests for the application exception hierarchy.
"""

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


def test_default_error_codes():
    assert ValidationError("x").error_code == "VALIDATION_ERROR"
    assert NotFoundError("x").error_code == "NOT_FOUND"
    assert PermissionDeniedError("x").error_code == "PERMISSION_DENIED"
    assert ConflictError("x").error_code == "CONFLICT"
    assert ExternalServiceError("x").error_code == "EXTERNAL_SERVICE_ERROR"


def test_to_dict_includes_details_when_present():
    error = ValidationError(
        "Refund amount exceeds the remaining refundable amount.",
        error_code="AMOUNT_EXCEEDS_REMAINING",
        details={"requested": 6000, "remaining": 4000},
    )

    assert error.to_dict() == {
        "error": "Refund amount exceeds the remaining refundable amount.",
        "error_code": "AMOUNT_EXCEEDS_REMAINING",
        "details": {"requested": 6000, "remaining": 4000},
    }
    assert NotFoundError("gone").to_dict() == {"error": "gone", "error_code": "NOT_FOUND"}


def test_str_includes_code():
    assert str(ConflictError("busy")) == "[CONFLICT] busy"


def test_all_errors_share_base():
    for cls in (ValidationError, NotFoundError, PermissionDeniedError, ConflictError, ExternalServiceError):
        assert issubclass(cls, BaseApplicationError)
