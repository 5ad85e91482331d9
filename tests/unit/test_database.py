"""Tests for database helpers."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError

from proclog.debug.database import (
    build_engine,
    check_database_health,
    get_engine,
    get_session_factory,
    is_missing_table_error,
    normalize_database_url,
    resolve_session_id,
)
from proclog.debug.models import ProcLogSession


class FakePgError(Exception):
    def __init__(self, message: str, sqlstate: str) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def wrap(orig: Exception) -> DBAPIError:
    return DBAPIError("INSERT INTO tmp_proclog", None, orig)


class TestNormalizeDatabaseUrl:
    """Tests for async driver selection."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgresql://u@h/db", "postgresql+asyncpg://u@h/db"),
            ("postgres://u@h/db", "postgresql+asyncpg://u@h/db"),
            ("mysql://u@h/db", "mysql+aiomysql://u@h/db"),
            ("sqlite:///proclog.db", "sqlite+aiosqlite:///proclog.db"),
            ("sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
        ],
    )
    def test_normalize(self, url: str, expected: str):
        assert normalize_database_url(url) == expected


class TestMissingTableDetection:
    """Tests for recognising "table does not exist" errors."""

    def test_sqlite_message(self):
        assert is_missing_table_error(wrap(Exception("no such table: tmp_proclog"))) is True

    def test_mysql_error_code(self):
        orig = Exception(1146, "Table 'app.tmp_proclog' doesn't exist")
        assert is_missing_table_error(wrap(orig)) is True

    def test_postgres_sqlstate(self):
        orig = FakePgError('relation "tmp_proclog" does not exist', "42P01")
        assert is_missing_table_error(wrap(orig)) is True

    def test_other_errors(self):
        assert is_missing_table_error(wrap(Exception("database or disk is full"))) is False
        assert is_missing_table_error(wrap(Exception(1114, "The table is full"))) is False


class TestSessionId:
    """Tests for session identification."""

    async def test_sqlite_ids_are_unique(self, engine):
        """SQLite connections should get distinct increasing ids."""
        ids = []
        for _ in range(3):
            async with engine.begin() as conn:
                ids.append(await resolve_session_id(conn))

        assert len(set(ids)) == 3
        assert ids == sorted(ids)

    async def test_sqlite_sequence_lives_in_database(self, db_url):
        """A fresh engine on the same file should continue the sequence."""
        first = build_engine(db_url)
        try:
            async with first.begin() as conn:
                first_id = await resolve_session_id(conn)
        finally:
            await first.dispose()

        second = build_engine(db_url)
        try:
            async with second.begin() as conn:
                second_id = await resolve_session_id(conn)
                stored = await conn.scalar(select(func.count()).select_from(ProcLogSession))
        finally:
            await second.dispose()

        assert second_id > first_id
        assert stored == 2


class TestGlobalEngine:
    """Tests for the global engine lifecycle."""

    def test_get_engine_before_init(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()

    def test_get_session_factory_before_init(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            get_session_factory()

    async def test_health_before_init(self):
        result = await check_database_health()

        assert result["connected"] is False
        assert result["error"] == "Database not initialized"

    async def test_health_after_init(self, database):
        result = await check_database_health()

        assert result["connected"] is True
        assert result["latency_ms"] is not None

    async def test_build_engine_uses_async_driver(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'x.db'}")
        try:
            assert engine.url.drivername == "sqlite+aiosqlite"
        finally:
            await engine.dispose()
