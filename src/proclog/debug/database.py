"""
Database connection management.

Provides the async engine and session management shared by the debug logger,
the durable store queries and the CLI. PostgreSQL, MySQL/MariaDB and SQLite
are supported through their asyncio drivers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import insert, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.schema import CreateTable

from proclog.config import get_settings
from proclog.debug.models import ProcLogSession

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


_ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
    "mysql://": "mysql+aiomysql://",
    "mariadb://": "mariadb+aiomysql://",
    "sqlite://": "sqlite+aiosqlite://",
}

# MySQL ER_NO_SUCH_TABLE / PostgreSQL undefined_table
_MYSQL_NO_SUCH_TABLE = 1146
_PG_UNDEFINED_TABLE = "42P01"


def normalize_database_url(url: str) -> str:
    """
    Rewrite sync driver URLs to their asyncio equivalents.

    Args:
        url: Database URL, possibly without an async driver

    Returns:
        URL usable with create_async_engine
    """
    for prefix, replacement in _ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return url.replace(prefix, replacement, 1)
    return url


def get_database_url() -> str:
    """
    Get database URL from settings.

    Returns:
        Async connection URL
    """
    return normalize_database_url(get_settings().database.url)


def build_engine(url: str | None = None) -> AsyncEngine:
    """
    Create an async engine configured from settings.

    Args:
        url: Override for the configured database URL

    Returns:
        New AsyncEngine (caller owns disposal)
    """
    settings = get_settings()
    url = normalize_database_url(url) if url else get_database_url()

    kwargs: dict[str, int | bool] = {"echo": settings.database.echo}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_timeout=settings.database.pool_timeout,
            pool_pre_ping=True,
        )

    return create_async_engine(url, **kwargs)


async def init_database(url: str | None = None) -> AsyncEngine:
    """
    Initialize the global database engine.

    Tables are not created here: the durable table is created lazily by
    DebugLogger.setup() or explicitly by ``proclog init``.

    Args:
        url: Override for the configured database URL

    Returns:
        The global engine
    """
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    _engine = build_engine(url)
    logger.info(f"Connecting to database: {_engine.url.render_as_string().split('@')[-1]}")

    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    logger.info("Database initialized")
    return _engine


async def close_database() -> None:
    """
    Close database connection.

    Should be called during application shutdown.
    """
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connection closed")


def get_engine() -> AsyncEngine:
    """Get the database engine."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """
    Get a database session.

    Usage:
        async with get_session() as session:
            # Use session
            ...

    Yields:
        AsyncSession: Database session
    """
    factory = get_session_factory()
    session = factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def resolve_session_id(conn: AsyncConnection) -> int:
    """
    Identify the database session behind a connection.

    Must be called inside a transaction owned by the caller.

    Args:
        conn: Connection dedicated to one logger

    Returns:
        Server connection id (MySQL), backend pid (PostgreSQL),
        or the next row id of the proclog_sessions table (SQLite)
    """
    dialect = conn.dialect.name
    if dialect in ("mysql", "mariadb"):
        return int(await conn.scalar(text("SELECT CONNECTION_ID()")))
    if dialect == "postgresql":
        return int(await conn.scalar(text("SELECT pg_backend_pid()")))

    sessions = ProcLogSession.__table__
    await conn.execute(CreateTable(sessions, if_not_exists=True))
    result = await conn.execute(insert(sessions))
    return int(result.inserted_primary_key[0])


def is_missing_table_error(exc: DBAPIError) -> bool:
    """
    Check whether a driver error means "table does not exist".

    Args:
        exc: Wrapped DBAPI error raised by SQLAlchemy

    Returns:
        True for MySQL 1146, PostgreSQL 42P01 and SQLite "no such table"
    """
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == _PG_UNDEFINED_TABLE:
        return True

    args = getattr(orig, "args", ())
    if args and args[0] == _MYSQL_NO_SUCH_TABLE:
        return True

    message = str(orig).lower()
    return "no such table" in message or (
        "relation" in message and "does not exist" in message
    )


async def check_database_health() -> dict[str, bool | float | str | None]:
    """
    Check database connectivity and health.

    Returns:
        Dict with connection status, latency, and any error
    """
    import time

    if _engine is None:
        return {
            "connected": False,
            "latency_ms": None,
            "error": "Database not initialized",
        }

    try:
        start = time.perf_counter()
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        latency = (time.perf_counter() - start) * 1000

        return {
            "connected": True,
            "latency_ms": round(latency, 2),
            "error": None,
        }
    except Exception as e:
        return {
            "connected": False,
            "latency_ms": None,
            "error": str(e),
        }
