"""Shared fixtures: a file-backed SQLite database per test."""

from pathlib import Path

import pytest

from proclog.config import LoggerSettings, get_settings
from proclog.debug.database import build_engine, close_database, init_database


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached process-wide; start every test clean."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """SQLite file URL (temporary tables need one connection per session)."""
    return f"sqlite+aiosqlite:///{tmp_path / 'proclog.db'}"


@pytest.fixture
async def engine(db_url: str):
    """Standalone engine for loggers."""
    engine = build_engine(db_url)
    yield engine
    await engine.dispose()


@pytest.fixture
async def database(db_url: str):
    """Initialize the global engine used by the store."""
    engine = await init_database(db_url)
    yield engine
    await close_database()


@pytest.fixture
def logger_settings() -> LoggerSettings:
    """Default logger settings."""
    return LoggerSettings()
