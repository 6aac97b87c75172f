"""Tests for API error classes.

Each failure kind carries a stable code and HTTP status.
"""

import pytest

from authgate.core.errors import (
    APIError,
    DuplicateEmailError,
    EmailNotVerifiedError,
    InternalError,
    InvalidCredentialsError,
    InvalidTokenError,
    InvariantViolationError,
    LinkExpiredError,
    LinkTamperedError,
    NotFoundError,
    TokenNotFoundError,
    UnauthenticatedError,
    ValidationFailedError,
)


class TestAPIError:
    """Tests for base APIError class."""

    def test_api_error_has_required_attributes(self):
        """APIError should have code, message, status_code, details."""
        error = APIError(
            code="TEST_ERROR",
            message="Test message",
            status_code=418,
            details=[{"field": "test"}],
        )
        assert error.code == "TEST_ERROR"
        assert error.message == "Test message"
        assert error.status_code == 418
        assert error.details == [{"field": "test"}]

    def test_api_error_defaults_to_500(self):
        """APIError should default to 500 status code."""
        error = APIError(code="TEST", message="Test")
        assert error.status_code == 500
        assert error.details is None

    def test_api_error_is_exception(self):
        """APIError should be an Exception subclass."""
        error = APIError(code="TEST", message="Test")
        assert isinstance(error, Exception)
        assert str(error) == "Test"


@pytest.mark.parametrize(
    ("error", "code", "status"),
    [
        (ValidationFailedError(), "VALIDATION_FAILED", 400),
        (DuplicateEmailError(), "DUPLICATE_EMAIL", 409),
        (InvalidCredentialsError(), "INVALID_CREDENTIALS", 401),
        (EmailNotVerifiedError(), "EMAIL_NOT_VERIFIED", 403),
        (UnauthenticatedError(), "UNAUTHENTICATED", 401),
        (InvalidTokenError(), "INVALID_TOKEN", 401),
        (TokenNotFoundError(), "TOKEN_NOT_FOUND", 400),
        (LinkExpiredError(), "LINK_EXPIRED", 403),
        (LinkTamperedError(), "LINK_TAMPERED", 403),
        (NotFoundError("User"), "NOT_FOUND", 404),
        (InvariantViolationError("bad state"), "INVARIANT_VIOLATION", 409),
        (InternalError(), "INTERNAL_ERROR", 500),
    ],
)
def test_error_code_and_status(error, code, status):
    """Every error kind maps to its stable code and status."""
    assert isinstance(error, APIError)
    assert error.code == code
    assert error.status_code == status


class TestValidationFailedError:
    """Tests for ValidationFailedError (400)."""

    def test_passes_through_details(self):
        """Per-field violations are carried in details."""
        details = [{"field": "email", "message": "Email is required"}]
        error = ValidationFailedError(details=details)
        assert error.details == details
        assert error.message == "Validation failed"


class TestNotFoundError:
    """Tests for NotFoundError (404)."""

    def test_message_without_id(self):
        """NotFoundError names the resource."""
        assert NotFoundError("User").message == "User not found"

    def test_message_with_id(self):
        """NotFoundError includes the id when given."""
        error = NotFoundError("User", "123")
        assert error.message == "User with id '123' not found"


class TestInvalidCredentialsError:
    """Tests for InvalidCredentialsError (401)."""

    def test_message_does_not_name_the_failing_field(self):
        """One message covers unknown email and wrong password."""
        assert InvalidCredentialsError().message == "Invalid email or password"


class TestInvariantViolationError:
    """Tests for InvariantViolationError (409)."""

    def test_keeps_message(self):
        """The caller's message is preserved."""
        assert InvariantViolationError("no token").message == "no token"
