"""Auth orchestrator for registration, login and email verification.

Composes the credential store, password verifier, session tokens and
verification tokens into the account state machine:

    Unregistered -> Registered-Unverified -> Registered-Verified

The state is derived from ``email_verified_at``; there is no status column.
Login is blocked entirely while the account is unverified.

Every operation that needs identity takes the session token as an explicit
argument. State-changing operations commit their own unit of work.
"""

from dataclasses import dataclass

import structlog
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.core.errors import (
    EmailNotVerifiedError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationFailedError,
)
from authgate.core.passwords import MAX_PASSWORD_BYTES, hash_password, verify_password
from authgate.models.user import DISPLAY_NAME_MAX_LENGTH, EMAIL_MAX_LENGTH, User
from authgate.repositories.user_repository import UserRepository, normalize_email
from authgate.services.session_tokens import IssuedSession, SessionTokenManager
from authgate.services.verification_tokens import (
    SignedLinkParams,
    VerificationTokenManager,
)

logger = structlog.get_logger()

_EMAIL_ADAPTER: TypeAdapter[str] = TypeAdapter(EmailStr)

DISPLAY_NAME_MIN_LENGTH = 2
PASSWORD_MIN_LENGTH = 6


@dataclass(frozen=True)
class AuthenticatedSession:
    """Result of a successful login or refresh."""

    session: IssuedSession
    user: User


@dataclass(frozen=True)
class VerificationRequestResult:
    """Result of a verification-link request.

    Attributes:
        user: Account the request was for.
        url: Signed verification link, or None if already verified.
        already_verified: True when nothing was issued because the
            account is already verified.
    """

    user: User
    url: str | None = None
    already_verified: bool = False


# ===================================================================
# Input validation
# ===================================================================


def _violation(field: str, message: str) -> dict:
    return {"field": field, "message": message}


def _check_email(email: str | None) -> list[dict]:
    if not email or not email.strip():
        return [_violation("email", "Email is required")]
    # Measured on the stored form; lowercasing can add code points
    if len(normalize_email(email)) > EMAIL_MAX_LENGTH:
        return [
            _violation("email", f"Email must be at most {EMAIL_MAX_LENGTH} characters")
        ]
    try:
        _EMAIL_ADAPTER.validate_python(email.strip())
    except PydanticValidationError:
        return [_violation("email", "Email must be a valid email address")]
    return []


def _check_password(password: str | None) -> list[dict]:
    if not password:
        return [_violation("password", "Password is required")]
    if len(password) < PASSWORD_MIN_LENGTH:
        return [
            _violation(
                "password",
                f"Password must be at least {PASSWORD_MIN_LENGTH} characters",
            )
        ]
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        return [
            _violation(
                "password", f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
            )
        ]
    return []


def validate_registration(
    *,
    email: str | None,
    display_name: str | None,
    password: str | None,
    password_confirmation: str | None,
) -> list[dict]:
    """Collect every registration violation.

    Returns:
        One ``{"field", "message"}`` entry per violation; empty if valid.
    """
    violations = _check_email(email)

    name = (display_name or "").strip()
    if not DISPLAY_NAME_MIN_LENGTH <= len(name) <= DISPLAY_NAME_MAX_LENGTH:
        violations.append(
            _violation(
                "display_name",
                f"Display name must be between {DISPLAY_NAME_MIN_LENGTH} and "
                f"{DISPLAY_NAME_MAX_LENGTH} characters",
            )
        )

    violations.extend(_check_password(password))

    if password != password_confirmation:
        violations.append(
            _violation("password_confirmation", "Password confirmation does not match")
        )
    return violations


def validate_login(*, email: str | None, password: str | None) -> list[dict]:
    """Collect every login shape violation."""
    return _check_email(email) + _check_password(password)


# ===================================================================
# Orchestrator
# ===================================================================


class AuthService:
    """Account state machine over one database session.

    Args:
        db: Async database session. One instance per request.
        session_tokens: Session token manager. Built from settings if omitted.
        verification_tokens: Verification token manager. Built from
            settings if omitted.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        session_tokens: SessionTokenManager | None = None,
        verification_tokens: VerificationTokenManager | None = None,
    ) -> None:
        self._db = db
        self._sessions = session_tokens or SessionTokenManager(db)
        self._verifications = verification_tokens or VerificationTokenManager(db)

    async def register(
        self,
        *,
        email: str,
        display_name: str,
        password: str,
        password_confirmation: str,
    ) -> User:
        """Create an unverified account with a pending verification token.

        No link is built here; requesting one is a separate call so that
        delivery stays decoupled from account creation.

        Returns:
            The new account (Registered-Unverified).

        Raises:
            ValidationFailedError: Lists every input violation.
            DuplicateEmailError: If the email is already registered.
        """
        violations = validate_registration(
            email=email,
            display_name=display_name,
            password=password,
            password_confirmation=password_confirmation,
        )
        if violations:
            raise ValidationFailedError(details=violations)

        user = await UserRepository.create(
            self._db,
            email=email,
            display_name=display_name.strip(),
            password_hash=hash_password(password),
        )
        # The plain token is not returned; links come from request_verification
        user, _ = await self._verifications.issue_token(user)
        await self._db.commit()

        logger.info("user_registered", user_id=str(user.id))
        return user

    async def login(self, *, email: str, password: str) -> AuthenticatedSession:
        """Check credentials and open a session.

        Raises:
            ValidationFailedError: If the input is malformed.
            InvalidCredentialsError: Unknown email or wrong password. The
                two cases are indistinguishable to the caller.
            EmailNotVerifiedError: If the credentials are right but the
                email is not verified.
        """
        violations = validate_login(email=email, password=password)
        if violations:
            raise ValidationFailedError(details=violations)

        user = await UserRepository.get_by_email(self._db, email)
        digest = user.password_hash if user is not None else None
        if not verify_password(password, digest) or user is None:
            logger.info("login_failed", reason="invalid_credentials")
            raise InvalidCredentialsError()

        if not user.is_email_verified:
            logger.info("login_failed", reason="email_not_verified", user_id=str(user.id))
            raise EmailNotVerifiedError()

        session = self._sessions.issue(user)
        logger.info("login_succeeded", user_id=str(user.id))
        return AuthenticatedSession(session=session, user=user)

    async def logout(self, token: str | None) -> None:
        """Revoke every session of the token's account.

        Raises:
            UnauthenticatedError: If the token does not resolve.
        """
        user = await self._sessions.invalidate(token)
        await self._db.commit()
        logger.info("logout", user_id=str(user.id))

    async def refresh(self, token: str | None) -> AuthenticatedSession:
        """Exchange a valid token for one with a later expiry.

        Raises:
            InvalidTokenError: If the token is forged, expired or revoked.
        """
        session, user = await self._sessions.refresh(token)
        return AuthenticatedSession(session=session, user=user)

    async def current_user(self, token: str | None) -> User:
        """Identity guard for authenticated-only operations.

        Raises:
            UnauthenticatedError: If the token does not resolve.
        """
        return await self._sessions.current_user(token)

    async def request_verification(self, email: str) -> VerificationRequestResult:
        """Issue a fresh verification token and return a signed link.

        Idempotent for verified accounts: they get an informational result
        and no token is issued. Each call for an unverified account
        invalidates the previous token.

        Raises:
            NotFoundError: If no account has this email.
        """
        user = await UserRepository.get_by_email(self._db, email or "")
        if user is None:
            raise NotFoundError("User")

        if user.is_email_verified:
            return VerificationRequestResult(user=user, already_verified=True)

        user, token = await self._verifications.issue_token(user)
        url = self._verifications.build_signed_link(user, token)
        await self._db.commit()
        return VerificationRequestResult(user=user, url=url)

    async def verify_email(self, raw_token: str) -> User:
        """Redeem a raw verification token.

        Raises:
            TokenNotFoundError: If the token is not pending.
        """
        user = await self._verifications.redeem(raw_token)
        await self._db.commit()
        return user

    async def verify_email_link(self, params: SignedLinkParams) -> User:
        """Redeem a signed verification link.

        Raises:
            LinkTamperedError: If the signature does not match.
            LinkExpiredError: If the link has expired.
            TokenNotFoundError: If the token is not pending.
        """
        user = await self._verifications.redeem_signed_link(params)
        await self._db.commit()
        return user
