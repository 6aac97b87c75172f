"""Shared dependencies for API endpoints.

Identity is never ambient: the bearer token is read from the
Authorization header and handed to the auth service explicitly.
"""

from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.core.database import get_db
from authgate.models.user import User
from authgate.services.auth_service import AuthService


def extract_bearer_token(authorization: str | None) -> str | None:
    """Pull the token out of an ``Authorization: Bearer <token>`` header.

    Args:
        authorization: Raw header value.

    Returns:
        The token, or None if the header is absent or not a bearer header.
    """
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def get_bearer_token(
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """Dependency form of extract_bearer_token."""
    return extract_bearer_token(authorization)


DbSession = Annotated[AsyncSession, Depends(get_db)]
BearerToken = Annotated[str | None, Depends(get_bearer_token)]


def get_auth_service(db: DbSession) -> AuthService:
    """Build the auth service for this request's session."""
    return AuthService(db)


Auth = Annotated[AuthService, Depends(get_auth_service)]


async def get_current_user(token: BearerToken, auth: Auth) -> User:
    """Resolve the bearer token to its account.

    Raises:
        UnauthenticatedError: 401 for any auth failure.
    """
    return await auth.current_user(token)


CurrentUser = Annotated[User, Depends(get_current_user)]
