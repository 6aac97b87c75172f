"""Async database engine and per-request sessions.

One request is one unit of work: the session from ``get_db`` commits when
the endpoint returns and rolls back if it raises. Services that need a
durable write before the response (register, logout, verification) commit
explicitly; the trailing commit is then a no-op.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authgate.core.config import settings


def build_engine(url: str | None = None) -> AsyncEngine:
    """Create the asyncpg engine with pool sizing from settings.

    Args:
        url: Database URL. Defaults to ``settings.database_url``.

    Returns:
        Configured AsyncEngine.
    """
    return create_async_engine(
        url or settings.database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
    )


engine = build_engine()

# expire_on_commit=False: handlers read the User after the service commits
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session scoped to one request."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
