"""Tests for the alembic migrations.

Verifies the migrated users table enforces the same constraints the ORM
model declares, and that the migrations downgrade cleanly.
"""

import asyncio
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine

from authgate.core.config import settings
from tests.conftest import TEST_DATABASE_URL, skip_if_no_postgres

_INSERT_USER = text(
    "INSERT INTO users (email, display_name, password_hash, verification_token) "
    "VALUES (:email, 'Ann', 'digest', :token)"
)


async def _reset_schema(conn) -> None:
    """Drop and recreate the public schema."""
    await conn.execute(text("DROP SCHEMA public CASCADE"))
    await conn.execute(text("CREATE SCHEMA public"))


def _create_alembic_config():
    """Create alembic Config without ini file.

    Avoids fileConfig() which disables existing loggers and breaks
    pytest's caplog fixture for later tests.
    """
    from alembic.config import Config

    cfg = Config()
    cfg.set_main_option("script_location", "migrations")
    return cfg


async def _run(command_name: str, revision: str) -> None:
    """Run an alembic command against the test database."""
    from alembic import command

    original = settings.database_name
    settings.database_name = f"{original}_test"
    try:
        await asyncio.to_thread(
            getattr(command, command_name), _create_alembic_config(), revision
        )
    finally:
        settings.database_name = original


@pytest_asyncio.fixture
async def migration_engine():
    """Engine on a test database migrated to head."""
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await _reset_schema(conn)

    await _run("upgrade", "head")

    yield engine

    async with engine.begin() as conn:
        await _reset_schema(conn)
    await engine.dispose()


class TestUsersTable:
    """Verify the migrated users table."""

    async def test_defaults_are_applied(self, migration_engine):
        """id, token_epoch and timestamps come from the database."""
        async with migration_engine.begin() as conn:
            await conn.execute(_INSERT_USER, {"email": "a@x.com", "token": None})
            row = (
                await conn.execute(
                    text("SELECT id, token_epoch, created_at FROM users")
                )
            ).one()

        assert isinstance(row.id, uuid.UUID)
        assert row.token_epoch == 0
        assert row.created_at is not None

    async def test_email_is_unique(self, migration_engine):
        """Two rows cannot share an email."""
        async with migration_engine.connect() as conn:
            await conn.execute(_INSERT_USER, {"email": "a@x.com", "token": None})
            with pytest.raises(IntegrityError):
                await conn.execute(_INSERT_USER, {"email": "a@x.com", "token": None})

    async def test_verification_token_is_unique(self, migration_engine):
        """Two rows cannot share a pending token."""
        async with migration_engine.connect() as conn:
            await conn.execute(_INSERT_USER, {"email": "a@x.com", "token": "t"})
            with pytest.raises(IntegrityError):
                await conn.execute(_INSERT_USER, {"email": "b@x.com", "token": "t"})

    async def test_many_rows_without_token(self, migration_engine):
        """NULL tokens do not collide."""
        async with migration_engine.begin() as conn:
            await conn.execute(_INSERT_USER, {"email": "a@x.com", "token": None})
            await conn.execute(_INSERT_USER, {"email": "b@x.com", "token": None})
            count = await conn.scalar(text("SELECT count(*) FROM users"))

        assert count == 2


class TestDowngrade:
    """Verify the migrations can be reversed."""

    async def test_downgrade_drops_users(self, migration_engine):
        """Downgrading past 001 removes the table."""
        await _run("downgrade", "000_enable_extensions")

        async with migration_engine.connect() as conn:
            exists = await conn.scalar(
                text(
                    "SELECT count(*) FROM information_schema.tables "
                    "WHERE table_schema = 'public' AND table_name = 'users'"
                )
            )

        assert exists == 0
