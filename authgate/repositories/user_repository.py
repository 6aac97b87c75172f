"""Repository for User CRUD operations.

Credential store for the auth core. State transitions that must be atomic
(token swap, token redemption, epoch bump) are single UPDATE ... RETURNING
statements so concurrent requests serialize on the row lock instead of
racing between a read and a write.
"""

import uuid
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.core.errors import DuplicateEmailError, NotFoundError
from authgate.models.user import User


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookups."""
    return email.strip().lower()


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static - no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == normalize_email(email))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_verification_token(
        db: AsyncSession, token_hash: str
    ) -> User | None:
        """Fetch the user with this pending verification token.

        Args:
            db: Async database session.
            token_hash: SHA-256 hash of the plain token.

        Returns:
            User if a pending verification matches, None otherwise.
        """
        stmt = select(User).where(User.verification_token == token_hash)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        display_name: str,
        password_hash: str,
    ) -> User:
        """Create a new user.

        The insert runs inside a SAVEPOINT so a unique violation leaves the
        caller's transaction usable. Under concurrent registration of the
        same email exactly one insert wins.

        Args:
            db: Async database session.
            email: User email address (normalized before storage).
            display_name: Display name.
            password_hash: bcrypt hash.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            DuplicateEmailError: If the email is already registered.
        """
        user = User(
            email=normalize_email(email),
            display_name=display_name,
            password_hash=password_hash,
        )
        try:
            async with db.begin_nested():
                db.add(user)
                await db.flush()
        except IntegrityError as exc:
            raise DuplicateEmailError() from exc
        await db.refresh(user)
        return user

    @staticmethod
    async def save(db: AsyncSession, user: User) -> User:
        """Persist mutated fields of a user.

        Args:
            db: Async database session.
            user: User instance carrying the changes.

        Returns:
            The persisted User, refreshed from the database.

        Raises:
            NotFoundError: If the user no longer exists.
        """
        exists = await db.scalar(select(User.id).where(User.id == user.id))
        if exists is None:
            raise NotFoundError("User", str(user.id))

        merged = await db.merge(user)
        await db.flush()
        await db.refresh(merged)
        return merged

    @staticmethod
    async def replace_verification_token(
        db: AsyncSession, user_id: uuid.UUID, token_hash: str
    ) -> User:
        """Overwrite the pending verification token in one statement.

        Any previously issued token stops matching the moment this
        statement commits.

        Args:
            db: Async database session.
            user_id: UUID of the user.
            token_hash: SHA-256 hash of the new plain token.

        Returns:
            Updated User.

        Raises:
            NotFoundError: If the user no longer exists.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(verification_token=token_hash)
            .returning(User)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", str(user_id))
        return user

    @staticmethod
    async def redeem_verification_token(
        db: AsyncSession, token_hash: str, verified_at: datetime
    ) -> User | None:
        """Mark the matching account verified and clear its token.

        Compare-and-clear: the WHERE clause and the clear happen in one
        statement, so of two concurrent redemptions of the same token only
        one gets a row back. ``email_verified_at`` keeps its first value.

        Args:
            db: Async database session.
            token_hash: SHA-256 hash of the plain token.
            verified_at: Timestamp to record on first verification.

        Returns:
            Updated User, or None if no pending verification matched.
        """
        stmt = (
            update(User)
            .where(User.verification_token == token_hash)
            .values(
                verification_token=None,
                email_verified_at=func.coalesce(User.email_verified_at, verified_at),
            )
            .returning(User)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def bump_token_epoch(db: AsyncSession, user_id: uuid.UUID) -> int | None:
        """Increment the session token epoch.

        Args:
            db: Async database session.
            user_id: UUID of the user.

        Returns:
            The new epoch, or None if the user does not exist.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(token_epoch=User.token_epoch + 1)
            .returning(User.token_epoch)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
