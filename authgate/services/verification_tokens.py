"""Email-verification tokens and signed verification links.

A pending verification is a random token whose SHA-256 hash is stored on
the user row; the plain token only travels in the link or the email. A
verification link wraps the plain token with an expiry timestamp and an
HMAC-SHA256 signature over the route, the expiry and the token, so any
edit to the link is detectable and the link dies after its window even if
the token is still pending.

Redeeming clears the token, which makes every link built from it
single-use in effect.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlencode, urlsplit

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.core.config import settings
from authgate.core.errors import (
    InvariantViolationError,
    LinkExpiredError,
    LinkTamperedError,
    TokenNotFoundError,
)
from authgate.models.user import User
from authgate.repositories.user_repository import UserRepository

logger = structlog.get_logger()

# Route identifier covered by the link signature
VERIFY_EMAIL_ROUTE = "/api/v1/auth/verify-email"

# 32 random bytes -> 43 URL-safe characters
_TOKEN_BYTES = 32


@dataclass(frozen=True)
class SignedLinkParams:
    """Query parameters carried by a verification link.

    Attributes:
        token: Raw verification token.
        expires: Expiry as a Unix timestamp (seconds).
        signature: Hex HMAC-SHA256 over route, expiry and token.
    """

    token: str
    expires: int
    signature: str


def generate_token() -> str:
    """Generate a verification token from a CSPRNG."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Hash a plain token for storage and lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


def sign_link(key: bytes, *, route: str, expires: int, token: str) -> str:
    """Compute the link signature.

    Args:
        key: HMAC key.
        route: Route identifier the link targets.
        expires: Expiry as a Unix timestamp.
        token: Raw verification token.

    Returns:
        Hex digest.
    """
    message = f"{route}?expires={expires}&token={token}".encode()
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def signed_link_params(
    *, token: str | None, expires: str | None, signature: str | None
) -> SignedLinkParams:
    """Build link parameters from raw query values.

    Values are not checked against the signature here.

    Raises:
        LinkTamperedError: If a value is missing or ``expires`` is not an
            integer.
    """
    if not (token and expires and signature):
        raise LinkTamperedError()
    try:
        expires_at = int(expires)
    except ValueError as exc:
        raise LinkTamperedError() from exc
    return SignedLinkParams(token=token, expires=expires_at, signature=signature)


def parse_signed_link(url: str) -> SignedLinkParams:
    """Extract link parameters from a full verification URL.

    Args:
        url: Verification URL as produced by ``build_signed_link``.

    Returns:
        Parsed parameters.

    Raises:
        LinkTamperedError: If the URL targets another route or a
            parameter is missing, repeated or malformed.
    """
    parts = urlsplit(url)
    if not parts.path.endswith(VERIFY_EMAIL_ROUTE):
        raise LinkTamperedError()

    query = parse_qs(parts.query)
    values: dict[str, str | None] = {}
    for name in ("token", "expires", "signature"):
        found = query.get(name, [])
        if len(found) > 1:
            raise LinkTamperedError()
        values[name] = found[0] if found else None
    return signed_link_params(**values)


class VerificationTokenManager:
    """Issues, links and redeems email-verification tokens.

    Args:
        db: Async database session.
        signing_key: HMAC key for links. Defaults to the configured key.
        link_ttl_minutes: Default link lifetime.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        signing_key: bytes | None = None,
        link_ttl_minutes: int | None = None,
    ) -> None:
        self._db = db
        self._signing_key = signing_key or settings.link_signing_key
        self._link_ttl_minutes = link_ttl_minutes or settings.verification_link_ttl_minutes

    async def issue_token(self, user: User) -> tuple[User, str]:
        """Give the account a fresh pending token.

        Overwrites any earlier token, so older tokens and links built from
        them can no longer be redeemed. Only the hash is stored.

        Args:
            user: Account to issue for.

        Returns:
            (updated_user, plain_token). The plain token cannot be
            recovered from the database afterwards.
        """
        plain = generate_token()
        updated = await UserRepository.replace_verification_token(
            self._db, user.id, hash_token(plain)
        )
        logger.info("verification_token_issued", user_id=str(user.id))
        return updated, plain

    def build_signed_link(
        self,
        user: User,
        token: str,
        ttl_minutes: int | None = None,
        *,
        now: datetime | None = None,
    ) -> str:
        """Build a time-limited signed verification URL.

        Args:
            user: Account with a pending verification token.
            token: Plain token returned by ``issue_token``.
            ttl_minutes: Link lifetime. Defaults to the configured window.
            now: Current time (injectable for tests).

        Returns:
            Absolute verification URL.

        Raises:
            InvariantViolationError: If the account has no pending token
                or ``token`` is not the pending one.
        """
        if not user.verification_token:
            raise InvariantViolationError(
                "Cannot build a verification link without a pending token"
            )
        if not hmac.compare_digest(user.verification_token, hash_token(token)):
            raise InvariantViolationError(
                "Token does not match the pending verification"
            )

        issued_at = now or datetime.now(UTC)
        window = timedelta(minutes=ttl_minutes or self._link_ttl_minutes)
        expires = int((issued_at + window).timestamp())
        signature = sign_link(
            self._signing_key,
            route=VERIFY_EMAIL_ROUTE,
            expires=expires,
            token=token,
        )
        query = urlencode(
            {
                "expires": expires,
                "token": token,
                "signature": signature,
            }
        )
        return f"{settings.backend_url.rstrip('/')}{VERIFY_EMAIL_ROUTE}?{query}"

    def check_signed_link(
        self, params: SignedLinkParams, *, now: datetime | None = None
    ) -> None:
        """Validate signature, then expiry.

        Args:
            params: Link parameters.
            now: Current time (injectable for tests).

        Raises:
            LinkTamperedError: If the signature does not match.
            LinkExpiredError: If the embedded expiry has passed.
        """
        expected = sign_link(
            self._signing_key,
            route=VERIFY_EMAIL_ROUTE,
            expires=params.expires,
            token=params.token,
        )
        if not hmac.compare_digest(expected.encode(), params.signature.encode()):
            raise LinkTamperedError()

        current = now or datetime.now(UTC)
        if current.timestamp() > params.expires:
            raise LinkExpiredError()

    async def redeem(self, raw_token: str, *, now: datetime | None = None) -> User:
        """Redeem a raw token and mark the email verified.

        Args:
            raw_token: Token from the link or request body.
            now: Verification timestamp (injectable for tests).

        Returns:
            Verified User.

        Raises:
            TokenNotFoundError: If no pending verification matches,
                including when a concurrent redemption won.
        """
        if not raw_token:
            raise TokenNotFoundError()

        user = await UserRepository.redeem_verification_token(
            self._db, hash_token(raw_token), now or datetime.now(UTC)
        )
        if user is None:
            logger.info("verification_token_not_found")
            raise TokenNotFoundError()

        logger.info("email_verified", user_id=str(user.id))
        return user

    async def redeem_signed_link(
        self, params: SignedLinkParams, *, now: datetime | None = None
    ) -> User:
        """Check a signed link, then redeem its token.

        Link checks run before any lookup.

        Raises:
            LinkTamperedError: If the signature does not match.
            LinkExpiredError: If the link has expired.
            TokenNotFoundError: If the token is no longer pending.
        """
        self.check_signed_link(params, now=now)
        return await self.redeem(params.token, now=now)
