"""
Database connection and session management

Async PostgreSQL access through SQLModel, configured via DATABASE_URL. The
engine is created on first use so the rendering pipeline and its tests can
be imported without a database.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from core.errors import ConfigurationError

DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def database_url(raw: Optional[str] = None) -> str:
    """
    Normalise DATABASE_URL for the asyncpg driver.

    Raises:
        ConfigurationError: when no URL is configured
    """
    url = os.getenv("DATABASE_URL", "") if raw is None else raw
    if not url:
        raise ConfigurationError("DATABASE_URL is not set")
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def get_engine() -> AsyncEngine:
    global _engine, _session_maker
    if _engine is None:
        url = database_url()
        options = {"echo": DB_ECHO, "pool_pre_ping": True}
        if os.getenv("USE_PGBOUNCER", "false").lower() == "true":
            options["poolclass"] = NullPool
        elif url.startswith("postgresql"):
            options.update(pool_size=DB_POOL_SIZE, max_overflow=DB_MAX_OVERFLOW)
        _engine = create_async_engine(url, **options)
        _session_maker = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)
    return _engine


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Session context manager; commits on success, rolls back on error.

    Usage:
        async with get_db_session() as session:
            certificate = await session.get(Certificate, certificate_id)
    """
    get_engine()
    async with _session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables. Called once at startup when a database is configured."""
    import core.models_sql  # noqa: F401  registers the tables

    async with get_engine().begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
