"""API error classes.

Every failure the auth core can produce is one of these. Services raise
them; the handlers registered in ``authgate.main`` render them into the
standard error envelope with a stable code.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationFailedError(APIError):
    """Request input failed shape validation (400).

    Details carry one entry per violation so clients can show
    per-field messages.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_FAILED",
            message=message,
            status_code=400,
            details=details,
        )


class DuplicateEmailError(APIError):
    """Email is already registered (409)."""

    def __init__(self) -> None:
        super().__init__(
            code="DUPLICATE_EMAIL",
            message="Email already registered",
            status_code=409,
        )


class InvalidCredentialsError(APIError):
    """Email or password is wrong (401).

    The message is the same for an unknown email and a wrong password
    so responses cannot be used to enumerate accounts.
    """

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_CREDENTIALS",
            message="Invalid email or password",
            status_code=401,
        )


class EmailNotVerifiedError(APIError):
    """Credentials are valid but the email is not verified yet (403)."""

    def __init__(self) -> None:
        super().__init__(
            code="EMAIL_NOT_VERIFIED",
            message="Email not verified. Request a verification link to continue.",
            status_code=403,
        )


class UnauthenticatedError(APIError):
    """No valid session token (401).

    Use when no token was presented, or it failed verification, or its
    account no longer exists. Never says which.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHENTICATED",
            message=message,
            status_code=401,
        )


class InvalidTokenError(APIError):
    """Session token could not be refreshed (401)."""

    def __init__(self, message: str = "Invalid or expired token") -> None:
        super().__init__(
            code="INVALID_TOKEN",
            message=message,
            status_code=401,
        )


class TokenNotFoundError(APIError):
    """No account has a pending verification with this token (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="TOKEN_NOT_FOUND",
            message="Invalid verification token",
            status_code=400,
        )


class LinkExpiredError(APIError):
    """Signed verification link is past its embedded expiry (403)."""

    def __init__(self) -> None:
        super().__init__(
            code="LINK_EXPIRED",
            message="Verification link has expired",
            status_code=403,
        )


class LinkTamperedError(APIError):
    """Signed verification link failed signature verification (403)."""

    def __init__(self) -> None:
        super().__init__(
            code="LINK_TAMPERED",
            message="Invalid verification link signature",
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class InvariantViolationError(APIError):
    """An operation was called on an account in the wrong state (409)."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code="INVARIANT_VIOLATION",
            message=message,
            status_code=409,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
