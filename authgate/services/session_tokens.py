"""Bearer session tokens.

Sessions are stateless HS256 JWTs. The only server-side state is the
account's ``token_epoch``: every token embeds the epoch it was minted under
(``epc`` claim), and logout bumps the epoch, which rejects every token
minted before it. Verification needs no locking; only logout writes.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.core.config import settings
from authgate.core.errors import InvalidTokenError, UnauthenticatedError
from authgate.models.user import User
from authgate.repositories.user_repository import UserRepository

logger = structlog.get_logger()

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["sub", "iat", "exp", "aud", "iss", "epc"]


@dataclass(frozen=True)
class IssuedSession:
    """A freshly minted session token and its expiry metadata.

    Attributes:
        access_token: Encoded JWT.
        expires_at: Absolute expiry.
        expires_in: Seconds from issue to expiry.
        token_type: Always "bearer".
    """

    access_token: str
    expires_at: datetime
    expires_in: int
    token_type: str = "bearer"


@dataclass(frozen=True)
class SessionClaims:
    """Verified claims of a session token."""

    user_id: uuid.UUID
    issued_at: int
    expires_at: int
    epoch: int


class SessionTokenManager:
    """Issues, verifies, refreshes and revokes session tokens.

    Args:
        db: Async database session.
        secret: HMAC signing secret. Defaults to ``settings.auth_secret``.
        ttl_minutes: Default session lifetime.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        secret: str | None = None,
        ttl_minutes: int | None = None,
    ) -> None:
        self._db = db
        self._secret = secret or settings.auth_secret.get_secret_value()
        self._ttl_minutes = ttl_minutes or settings.session_ttl_minutes

    def issue(
        self,
        user: User,
        ttl_minutes: int | None = None,
        *,
        now: datetime | None = None,
        expires_after: int | None = None,
    ) -> IssuedSession:
        """Mint a signed token for the account.

        Args:
            user: Account the token identifies.
            ttl_minutes: Lifetime. Defaults to the configured TTL.
            now: Issue time (injectable for tests).
            expires_after: If given, the new expiry is pushed past this
                Unix timestamp.

        Returns:
            IssuedSession.
        """
        issued_at = now or datetime.now(UTC)
        iat = int(issued_at.timestamp())
        exp = int((issued_at + timedelta(minutes=ttl_minutes or self._ttl_minutes)).timestamp())
        if expires_after is not None and exp <= expires_after:
            exp = expires_after + 1

        payload = {
            "sub": str(user.id),
            "aud": settings.auth_audience,
            "iss": settings.auth_issuer,
            "iat": iat,
            "exp": exp,
            "epc": user.token_epoch or 0,
        }
        token = jwt.encode(payload, self._secret, algorithm=_ALGORITHM)
        return IssuedSession(
            access_token=token,
            expires_at=datetime.fromtimestamp(exp, UTC),
            expires_in=exp - iat,
        )

    def decode(self, token: str) -> SessionClaims:
        """Verify signature and registered claims.

        Args:
            token: Encoded JWT.

        Returns:
            Verified claims.

        Raises:
            InvalidTokenError: On any verification failure.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=settings.auth_audience,
                issuer=settings.auth_issuer,
                options={"require": _REQUIRED_CLAIMS},
            )
            return SessionClaims(
                user_id=uuid.UUID(payload["sub"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
                epoch=int(payload["epc"]),
            )
        except (jwt.InvalidTokenError, KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError() from exc

    async def _resolve(self, token: str | None) -> tuple[SessionClaims, User]:
        if not token:
            raise InvalidTokenError()

        claims = self.decode(token)
        user = await UserRepository.get_by_id(self._db, claims.user_id)
        if user is None or user.token_epoch != claims.epoch:
            raise InvalidTokenError()
        return claims, user

    async def current_user(self, token: str | None) -> User:
        """Resolve a token to its account.

        Raises:
            UnauthenticatedError: If the token is missing, invalid, revoked,
                or its account no longer exists.
        """
        try:
            _, user = await self._resolve(token)
        except InvalidTokenError as exc:
            raise UnauthenticatedError() from exc
        return user

    async def refresh(
        self, token: str | None, *, now: datetime | None = None
    ) -> tuple[IssuedSession, User]:
        """Mint a new token for the same subject with a fresh window.

        The new expiry is strictly later than the presented token's.

        Args:
            token: Current session token.
            now: Issue time (injectable for tests).

        Returns:
            (new session, account).

        Raises:
            InvalidTokenError: If the token fails verification or is revoked.
        """
        claims, user = await self._resolve(token)
        session = self.issue(user, now=now, expires_after=claims.expires_at)
        logger.info("session_refreshed", user_id=str(user.id))
        return session, user

    async def invalidate(self, token: str | None) -> User:
        """Revoke every session of the token's account.

        Returns:
            The account that was logged out.

        Raises:
            UnauthenticatedError: If the token does not resolve.
        """
        user = await self.current_user(token)
        epoch = await UserRepository.bump_token_epoch(self._db, user.id)
        if epoch is None:
            raise UnauthenticatedError()
        logger.info("sessions_invalidated", user_id=str(user.id), epoch=epoch)
        return user
