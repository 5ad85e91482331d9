"""
Read and administration queries over the durable debug log.

Writes only ever come from DebugLogger.cleanup(); this module reads the
durable table and offers the explicit purge used by administrators.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import DateTime, cast, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from proclog.debug.database import get_session
from proclog.debug.models import LogEntry, ProcLogRecord

logger = logging.getLogger(__name__)


async def _server_now(session: AsyncSession) -> datetime:
    """
    Current time on the database server, as entrytime defaults record it.

    entrytime is filled in by the server's now(), so cutoffs use the same
    clock.
    """
    now = func.now()
    if session.bind.dialect.name == "postgresql":
        # timestamptz -> timestamp in the session time zone, like the column default
        now = cast(now, DateTime)
    value = await session.scalar(select(now))
    return value.replace(tzinfo=None)


class LogStore:
    """
    Query interface for the durable log table.

    Session ids are only unique while a connection lives; servers reuse
    them, so filter by time as well when looking far back.
    """

    async def list_entries(
        self,
        limit: int = 50,
        offset: int = 0,
        session_id: int | None = None,
        contains: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> dict[str, Any]:
        """
        List entries with filtering and pagination, newest first.

        Args:
            limit: Maximum number of results
            offset: Offset for pagination
            session_id: Only entries written by this session
            contains: Substring the message must contain
            since: Filter by entrytime >= since
            until: Filter by entrytime <= until

        Returns:
            Dict with items, total count, and pagination info
        """
        async with get_session() as session:
            stmt = select(ProcLogRecord).order_by(ProcLogRecord.id.desc())

            if session_id is not None:
                stmt = stmt.where(ProcLogRecord.session_id == session_id)
            if contains:
                stmt = stmt.where(ProcLogRecord.message.contains(contains, autoescape=True))
            if since:
                stmt = stmt.where(ProcLogRecord.entrytime >= since)
            if until:
                stmt = stmt.where(ProcLogRecord.entrytime <= until)

            count_stmt = select(func.count()).select_from(stmt.subquery())
            total = await session.scalar(count_stmt) or 0

            stmt = stmt.limit(limit).offset(offset)
            result = await session.execute(stmt)
            records = result.scalars().all()

            return {
                "items": [r.to_dict() for r in records],
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": offset + len(records) < total,
            }

    async def get_session_entries(self, session_id: int) -> list[LogEntry]:
        """
        Get one session's entries in the order they were logged.

        Args:
            session_id: Session identifier

        Returns:
            Entries in insertion order
        """
        async with get_session() as session:
            stmt = (
                select(ProcLogRecord)
                .where(ProcLogRecord.session_id == session_id)
                .order_by(ProcLogRecord.id)
            )
            result = await session.execute(stmt)
            return [r.to_entry() for r in result.scalars().all()]

    async def count_entries(self) -> int:
        """Total number of durable entries."""
        async with get_session() as session:
            return await session.scalar(select(func.count()).select_from(ProcLogRecord)) or 0

    async def list_sessions(self, limit: int = 20) -> list[dict[str, Any]]:
        """
        Summarise the sessions present in the durable log.

        Args:
            limit: Maximum number of sessions, most recently flushed first

        Returns:
            One dict per session with entry count and time span
        """
        async with get_session() as session:
            stmt = (
                select(
                    ProcLogRecord.session_id,
                    func.count(),
                    func.min(ProcLogRecord.entrytime),
                    func.max(ProcLogRecord.entrytime),
                )
                .group_by(ProcLogRecord.session_id)
                .order_by(func.max(ProcLogRecord.id).desc())
                .limit(limit)
            )
            result = await session.execute(stmt)

            return [
                {
                    "session_id": row[0],
                    "entries": row[1],
                    "first_entry": row[2].isoformat() if row[2] else None,
                    "last_entry": row[3].isoformat() if row[3] else None,
                }
                for row in result.all()
            ]

    async def purge_entries(self, days: int) -> int:
        """
        Delete entries older than the given number of days.

        Explicit administration only; the logger never calls this.

        Args:
            days: Number of days to retain

        Returns:
            Number of deleted entries
        """
        async with get_session() as session:
            cutoff = await _server_now(session) - timedelta(days=days)
            stmt = delete(ProcLogRecord).where(ProcLogRecord.entrytime < cutoff)
            result = await session.execute(stmt)
            rowcount = getattr(result, "rowcount", 0) or 0

        logger.info(f"Purged {rowcount} debug entries older than {days} days")
        return rowcount

    async def get_stats(self, hours: int = 24) -> dict[str, Any]:
        """
        Get aggregated statistics.

        Args:
            hours: Number of hours to look back

        Returns:
            Aggregated stats
        """
        async with get_session() as session:
            since = await _server_now(session) - timedelta(hours=hours)

            total_stmt = (
                select(func.count())
                .select_from(ProcLogRecord)
                .where(ProcLogRecord.entrytime >= since)
            )
            total = await session.scalar(total_stmt) or 0

            session_stmt = (
                select(ProcLogRecord.session_id, func.count())
                .where(ProcLogRecord.entrytime >= since)
                .group_by(ProcLogRecord.session_id)
            )
            result = await session.execute(session_stmt)
            by_session = {row[0]: row[1] for row in result.all()}

            return {
                "period_hours": hours,
                "total_entries": total,
                "total_sessions": len(by_session),
                "by_session": by_session,
            }


# Global store instance
_store: LogStore | None = None


def get_log_store() -> LogStore:
    """Get the global log store instance."""
    global _store
    if _store is None:
        _store = LogStore()
    return _store
