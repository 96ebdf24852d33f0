"""Async engine and session handling for the stream state store."""

import os
import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    create_async_engine as sa_create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import StaticPool

from . import models

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./payments_sync.db"

# Sync driver prefixes rewritten to their async equivalent
_ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_database_url() -> str:
    """Return DATABASE_URL with an async driver, or the local SQLite store."""
    url = os.getenv("DATABASE_URL")
    if not url:
        return DEFAULT_DATABASE_URL
    for prefix, async_prefix in _ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return async_prefix + url[len(prefix):]
    return url


def create_async_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> AsyncEngine:
    """
    Create the engine backing the state store.

    SQLite engines share a single connection so an in-memory store keeps
    its tables for the engine's lifetime; other backends get a sized pool.
    """
    url = database_url or get_database_url()
    if url.startswith("sqlite"):
        return sa_create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return sa_create_async_engine(
        url, echo=echo, pool_size=pool_size, max_overflow=max_overflow
    )


def get_async_session_factory(
    engine: Optional[AsyncEngine] = None,
) -> async_sessionmaker[AsyncSession]:
    """
    Return a session factory bound to ``engine``, or the one set up by init_db().

    Raises:
        RuntimeError: If no engine is given and init_db() was not called.
    """
    if engine is not None:
        return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    if _session_factory is None:
        raise RuntimeError("State store not initialized. Call init_db() first.")
    return _session_factory


async def init_db(
    database_url: Optional[str] = None,
    echo: bool = False,
    create_tables: bool = True,
) -> None:
    """Open the state store; ``create_tables`` is meant for SQLite and tests,
    production databases are migrated with Alembic instead."""
    global _engine, _session_factory

    _engine = create_async_engine(database_url, echo=echo)
    _session_factory = get_async_session_factory(_engine)

    if create_tables:
        async with _engine.begin() as conn:
            await conn.run_sync(models.Base.metadata.create_all)
    logger.info(f"State store ready ({_engine.url.get_backend_name()})")


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("State store closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    The session commits when the request succeeds and rolls back when it
    raises, so a failed sync step never leaves a partial state behind.
    """
    async with get_async_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
