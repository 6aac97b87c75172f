import socket
import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authgate.core.config import settings
from authgate.core.errors import DuplicateEmailError, NotFoundError
from authgate.models.base import Base
from authgate.models.user import User
from authgate.repositories.user_repository import UserRepository, normalize_email

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Test user ID (consistent across tests for predictable auth)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

# Low cost factor for fast tests
TEST_BCRYPT_ROUNDS = 4


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
    iat: datetime | None = None,
    epoch: int = 0,
) -> str:
    """Create a signed session JWT for test authentication.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.
        iat: Issued-at time. Defaults to now.
        epoch: Token epoch claim.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": iat or now,
        "epc": epoch,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def make_user(
    *,
    user_id: uuid.UUID | None = None,
    email: str = "test@example.com",
    display_name: str = "Test User",
    password_hash: str = "not-a-real-hash",  # nosec B107
    email_verified_at: datetime | None = None,
    verification_token: str | None = None,
    token_epoch: int = 0,
) -> User:
    """Build a transient User for tests that do not touch the database."""
    return User(
        id=user_id or uuid.uuid4(),
        email=email,
        display_name=display_name,
        password_hash=password_hash,
        email_verified_at=email_verified_at,
        verification_token=verification_token,
        token_epoch=token_epoch,
        created_at=datetime.now(UTC),
    )


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on the configured port, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex((settings.database_host, settings.database_port))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available."""
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            f"PostgreSQL not available on {settings.database_host}:"
            f"{settings.database_port}. Start a database to run this test."
        )


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def auth_test_settings() -> Iterator[None]:
    """Install the test signing secret and a cheap bcrypt cost.

    Yields:
        None (autouse fixture).
    """
    original_secret = settings.auth_secret
    original_rounds = settings.bcrypt_rounds
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.bcrypt_rounds = TEST_BCRYPT_ROUNDS

    yield

    settings.auth_secret = original_secret
    settings.bcrypt_rounds = original_rounds


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available.
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app with the test database.

    Sets up:
    - Test database connection via dependency override
    - httpx.AsyncClient with ASGI transport

    Yields:
        AsyncClient without credentials; tests add Authorization headers.
    """
    from authgate.core.database import get_db
    from authgate.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# In-Memory Credential Store
# =============================================================================


class FakeUserStore:
    """Dict-backed stand-in for UserRepository.

    Mirrors the repository contract (normalized unique emails, unique
    pending tokens, compare-and-clear redemption) without a database.
    """

    def __init__(self) -> None:
        self.users: dict[uuid.UUID, User] = {}

    def _find(self, **criteria) -> User | None:
        for user in self.users.values():
            if all(getattr(user, key) == value for key, value in criteria.items()):
                return user
        return None

    async def get_by_id(self, _db, user_id: uuid.UUID) -> User | None:
        return self.users.get(user_id)

    async def get_by_email(self, _db, email: str) -> User | None:
        return self._find(email=normalize_email(email))

    async def get_by_verification_token(self, _db, token_hash: str) -> User | None:
        return self._find(verification_token=token_hash)

    async def create(
        self, _db, *, email: str, display_name: str, password_hash: str
    ) -> User:
        if self._find(email=normalize_email(email)) is not None:
            raise DuplicateEmailError()
        user = make_user(
            email=normalize_email(email),
            display_name=display_name,
            password_hash=password_hash,
        )
        self.users[user.id] = user
        return user

    async def replace_verification_token(
        self, _db, user_id: uuid.UUID, token_hash: str
    ) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        user.verification_token = token_hash
        return user

    async def redeem_verification_token(
        self, _db, token_hash: str, verified_at: datetime
    ) -> User | None:
        user = self._find(verification_token=token_hash)
        if user is None:
            return None
        user.verification_token = None
        if user.email_verified_at is None:
            user.email_verified_at = verified_at
        return user

    async def bump_token_epoch(self, _db, user_id: uuid.UUID) -> int | None:
        user = self.users.get(user_id)
        if user is None:
            return None
        user.token_epoch += 1
        return user.token_epoch


_STORE_METHODS = (
    "get_by_id",
    "get_by_email",
    "get_by_verification_token",
    "create",
    "replace_verification_token",
    "redeem_verification_token",
    "bump_token_epoch",
)


@pytest.fixture
def fake_users(monkeypatch) -> FakeUserStore:
    """Route every UserRepository call to a fresh in-memory store."""
    store = FakeUserStore()
    for name in _STORE_METHODS:
        monkeypatch.setattr(
            UserRepository, name, AsyncMock(side_effect=getattr(store, name))
        )
    return store


@pytest.fixture
def mock_db() -> AsyncMock:
    """AsyncSession stand-in for tests that never reach the database."""
    return AsyncMock()
