"""Tests for durable log queries and administration."""

from datetime import UTC, datetime, timedelta

import pytest

from proclog.debug.database import get_session
from proclog.debug.logger import DebugLogger
from proclog.debug.models import ProcLogRecord
from proclog.debug.store import LogStore, _server_now, get_log_store


async def flush_session(engine, messages: list[str], final: str | None = None) -> int:
    """Log messages in a fresh session and flush them; returns the session id."""
    async with DebugLogger(engine) as debug_log:
        await debug_log.setup()
        for message in messages:
            await debug_log.log(message)
        await debug_log.cleanup(final)
        return debug_log.session_id


@pytest.fixture
def store() -> LogStore:
    return LogStore()


class TestListEntries:
    """Tests for LogStore.list_entries()."""

    async def test_lists_newest_first(self, database, store):
        """Entries should be returned newest first with pagination info."""
        await flush_session(database, ["one", "two", "three"])

        data = await store.list_entries()

        assert [item["message"] for item in data["items"]] == ["three", "two", "one"]
        assert data["total"] == 3
        assert data["has_more"] is False

    async def test_paginates(self, database, store):
        """Limit and offset should page through entries."""
        await flush_session(database, [f"m{i}" for i in range(5)])

        data = await store.list_entries(limit=2, offset=1)

        assert [item["message"] for item in data["items"]] == ["m3", "m2"]
        assert data["total"] == 5
        assert data["has_more"] is True

    async def test_filters_by_session(self, database, store):
        """Filtering by session id should isolate one session's entries."""
        first = await flush_session(database, ["a1", "a2"])
        await flush_session(database, ["b1"])

        data = await store.list_entries(session_id=first)

        assert data["total"] == 2
        assert {item["session_id"] for item in data["items"]} == {first}

    async def test_filters_by_substring(self, database, store):
        """contains should match message substrings literally."""
        await flush_session(database, ["BAIL = 1", "loop 100%", "loop 1"])

        data = await store.list_entries(contains="100%")

        assert [item["message"] for item in data["items"]] == ["loop 100%"]


class TestSessions:
    """Tests for per-session queries."""

    async def test_get_session_entries_in_call_order(self, database, store):
        """A session's entries should come back in the order they were logged."""
        session_id = await flush_session(database, ["x", "y"], final="end of proc")

        entries = await store.get_session_entries(session_id)

        assert [e.message for e in entries] == ["x", "y", "cleanup() end of proc"]
        assert all(e.session_id == session_id for e in entries)

    async def test_list_sessions_summarises(self, database, store):
        """Each session should be summarised, most recent first."""
        first = await flush_session(database, ["a", "b"])
        second = await flush_session(database, ["c"])

        sessions = await store.list_sessions()

        assert [s["session_id"] for s in sessions] == [second, first]
        assert [s["entries"] for s in sessions] == [1, 2]
        assert sessions[0]["first_entry"] is not None

    async def test_count_entries(self, database, store):
        """count_entries should count every durable row."""
        await flush_session(database, ["a", "b", "c"])

        assert await store.count_entries() == 3


class TestAdministration:
    """Tests for stats and purge."""

    async def test_get_stats(self, database, store):
        """Stats should count recent entries per session."""
        first = await flush_session(database, ["a", "b"])
        second = await flush_session(database, ["c"])

        stats = await store.get_stats(hours=1)

        assert stats["total_entries"] == 3
        assert stats["total_sessions"] == 2
        assert stats["by_session"] == {first: 2, second: 1}

    async def test_purge_deletes_only_old_entries(self, database, store):
        """Purge should remove entries older than the cutoff and keep the rest."""
        await flush_session(database, ["recent"])
        async with get_session() as session:
            session.add(
                ProcLogRecord(
                    entrytime=datetime.now(UTC).replace(tzinfo=None) - timedelta(days=40),
                    session_id=99,
                    message="ancient",
                )
            )

        deleted = await store.purge_entries(days=30)

        assert deleted == 1
        data = await store.list_entries()
        assert [item["message"] for item in data["items"]] == ["recent"]

    async def test_purge_cutoff_follows_server_clock(self, database, store, monkeypatch):
        """The purge cutoff should come from the database clock, not the local one."""
        await flush_session(database, ["fresh"])

        async def server_two_months_ahead(session):
            return datetime.now(UTC).replace(tzinfo=None) + timedelta(days=60)

        monkeypatch.setattr("proclog.debug.store._server_now", server_two_months_ahead)

        assert await store.purge_entries(days=30) == 1
        assert await store.count_entries() == 0

    async def test_stats_window_follows_server_clock(self, database, store, monkeypatch):
        """Entries outside the window on the database clock should not be counted."""
        await flush_session(database, ["fresh"])

        async def server_two_days_ahead(session):
            return datetime.now(UTC).replace(tzinfo=None) + timedelta(days=2)

        monkeypatch.setattr("proclog.debug.store._server_now", server_two_days_ahead)

        stats = await store.get_stats(hours=24)
        assert stats["total_entries"] == 0

    async def test_server_now_matches_entrytime_clock(self, database):
        """On SQLite the server clock is UTC, the same clock entrytime defaults use."""
        async with get_session() as session:
            server_now = await _server_now(session)

        assert server_now.tzinfo is None
        assert abs(server_now - datetime.now(UTC).replace(tzinfo=None)) < timedelta(minutes=1)

    def test_get_log_store_is_singleton(self):
        """The global accessor should always return the same store."""
        assert get_log_store() is get_log_store()
