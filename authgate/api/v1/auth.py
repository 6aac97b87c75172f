"""Authentication endpoints.

Endpoints:
- POST /auth/register - create an unverified account
- POST /auth/login - exchange credentials for a bearer token
- POST /auth/logout - revoke all sessions of the caller
- POST /auth/refresh - exchange a bearer token for a fresh one
- GET /auth/me - current user
- POST /auth/verification-link - issue a new signed verification link
- POST /auth/verify-email - redeem a raw verification token
- GET /auth/verify-email - redeem a signed verification link
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks
from pydantic import BaseModel, ConfigDict, Field

from authgate.api.deps import Auth, BearerToken, CurrentUser
from authgate.core.email import email_delivery_enabled, send_verification_email
from authgate.core.responses import DataResponse
from authgate.models.user import User
from authgate.services.auth_service import AuthenticatedSession
from authgate.services.verification_tokens import signed_link_params

router = APIRouter()

# Upper bound on raw input sizes; real limits are enforced by the service.
_MAX_INPUT = 1024


# ===================================================================
# Request models
# ===================================================================


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(max_length=_MAX_INPUT)
    display_name: str = Field(max_length=_MAX_INPUT)
    password: str = Field(max_length=_MAX_INPUT)
    password_confirmation: str = Field(max_length=_MAX_INPUT)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(max_length=_MAX_INPUT)
    password: str = Field(max_length=_MAX_INPUT)


class VerificationLinkRequest(BaseModel):
    """Request body for POST /auth/verification-link."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(max_length=_MAX_INPUT)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /auth/verify-email."""

    model_config = ConfigDict(extra="forbid")

    # Unbounded: an over-long token simply matches nothing
    verification_token: str


# ===================================================================
# Response models
# ===================================================================


class UserResponse(BaseModel):
    """Public view of an account. Never carries the digest or token."""

    id: uuid.UUID
    email: str
    display_name: str
    email_verified: bool
    email_verified_at: datetime | None
    created_at: datetime | None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            email_verified=user.is_email_verified,
            email_verified_at=user.email_verified_at,
            created_at=user.created_at,
        )


class TokenResponse(BaseModel):
    """Bearer token plus expiry metadata."""

    access_token: str
    token_type: str
    expires_in: int
    user: UserResponse

    @classmethod
    def from_session(cls, result: AuthenticatedSession) -> "TokenResponse":
        return cls(
            access_token=result.session.access_token,
            token_type=result.session.token_type,
            expires_in=result.session.expires_in,
            user=UserResponse.from_user(result.user),
        )


# ===================================================================
# Credentials and sessions
# ===================================================================


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, auth: Auth) -> DataResponse[UserResponse]:
    """Register a new user with email + password.

    The account starts unverified and cannot log in until the email is
    verified. Request a link with POST /auth/verification-link.
    """
    user = await auth.register(
        email=body.email,
        display_name=body.display_name,
        password=body.password,
        password_confirmation=body.password_confirmation,
    )
    return DataResponse(data=UserResponse.from_user(user))


@router.post("/login")
async def login(body: LoginRequest, auth: Auth) -> DataResponse[TokenResponse]:
    """Verify email + password and issue a bearer token."""
    result = await auth.login(email=body.email, password=body.password)
    return DataResponse(data=TokenResponse.from_session(result))


@router.post("/logout")
async def logout(token: BearerToken, auth: Auth) -> DataResponse[dict]:
    """Revoke every session of the caller, on all devices."""
    await auth.logout(token)
    return DataResponse(data={"message": "User logged out successfully"})


@router.post("/refresh")
async def refresh(token: BearerToken, auth: Auth) -> DataResponse[TokenResponse]:
    """Exchange a valid bearer token for a fresh one."""
    result = await auth.refresh(token)
    return DataResponse(data=TokenResponse.from_session(result))


@router.get("/me")
async def get_me(user: CurrentUser) -> DataResponse[UserResponse]:
    """Return the account behind the bearer token."""
    return DataResponse(data=UserResponse.from_user(user))


# ===================================================================
# Email verification
# ===================================================================


@router.post("/verification-link")
async def request_verification_link(
    body: VerificationLinkRequest,
    background_tasks: BackgroundTasks,
    auth: Auth,
) -> DataResponse[dict]:
    """Issue a new signed verification link.

    Invalidates any earlier link. Verified accounts get an informational
    message instead. When an email provider is configured the link is
    also mailed to the account.
    """
    result = await auth.request_verification(body.email)
    if result.already_verified:
        return DataResponse(data={"message": "Email is already verified"})

    if email_delivery_enabled():
        background_tasks.add_task(
            send_verification_email, to_email=result.user.email, url=result.url
        )
    return DataResponse(data={"url": result.url})


@router.post("/verify-email")
async def verify_email(body: VerifyEmailRequest, auth: Auth) -> DataResponse[dict]:
    """Redeem a raw verification token."""
    await auth.verify_email(body.verification_token)
    return DataResponse(data={"message": "Email verified successfully"})


@router.get("/verify-email")
async def verify_email_link(
    auth: Auth,
    expires: str | None = None,
    token: str | None = None,
    signature: str | None = None,
) -> DataResponse[dict]:
    """Redeem a signed verification link.

    Any malformed or edited parameter, including an over-long one, is
    treated as tampered.
    """
    params = signed_link_params(token=token, expires=expires, signature=signature)
    await auth.verify_email_link(params)
    return DataResponse(data={"message": "Email verified successfully"})
