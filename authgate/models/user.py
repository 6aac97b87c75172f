"""User model - the only persisted record of the auth core."""

import uuid
from datetime import datetime

from sqlalchemy import Integer, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from authgate.models.base import Base, TimestampMixin

_DEFAULT_UUID = text("gen_random_uuid()")

# Column sizes
EMAIL_MAX_LENGTH = 100
DISPLAY_NAME_MAX_LENGTH = 100


class User(Base, TimestampMixin):
    """User account for authentication.

    Attributes:
        id: UUID primary key.
        email: Unique email address, stored lowercased.
        display_name: Name shown to other users (2-100 characters).
        password_hash: bcrypt hash. Never serialized.
        email_verified_at: Timestamp when email was verified. NULL = unverified.
        verification_token: SHA-256 hash of the pending email-verification
            token. NULL when no verification is pending.
        token_epoch: Incremented on logout. Session tokens minted under an
            older epoch are rejected.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LENGTH),
        unique=True,
        nullable=False,
    )
    display_name: Mapped[str] = mapped_column(
        String(DISPLAY_NAME_MAX_LENGTH),
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email_verified_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    verification_token: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    token_epoch: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        default=0,
    )

    @property
    def is_email_verified(self) -> bool:
        """Whether the account has completed email verification."""
        return self.email_verified_at is not None

    def __repr__(self) -> str:
        # Never include password_hash or verification_token
        return f"<User id={self.id} email={self.email!r}>"
