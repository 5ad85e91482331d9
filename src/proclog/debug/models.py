"""
SQLAlchemy models for the two log tiers.

The durable tier is a regular mapped table shared by every session. The
ephemeral tier is a temporary table, private to the connection that creates
it, kept on its own MetaData so it never takes part in ``create_all``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

DURABLE_TABLE = "proclog"
EPHEMERAL_TABLE = "tmp_proclog"
SESSIONS_TABLE = "proclog_sessions"
MESSAGE_LENGTH = 512


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


@dataclass(frozen=True)
class LogEntry:
    """A single stored debug message."""

    entrytime: datetime | None
    session_id: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entrytime": self.entrytime.isoformat() if self.entrytime else None,
            "session_id": self.session_id,
            "message": self.message,
        }


class ProcLogRecord(Base):
    """
    Durable, append-only debug log.

    Rows only arrive here when a session flushes its ephemeral table.
    """

    __tablename__ = DURABLE_TABLE

    # Insertion order
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    entrytime: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    session_id: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    message: Mapped[str] = mapped_column(String(MESSAGE_LENGTH))

    __table_args__ = (
        Index("idx_proclog_session", "session_id"),
        Index("idx_proclog_entrytime", "entrytime"),
    )

    def to_entry(self) -> LogEntry:
        """Convert to an immutable LogEntry."""
        return LogEntry(
            entrytime=self.entrytime,
            session_id=self.session_id,
            message=self.message,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = self.to_entry().to_dict()
        data["id"] = self.id
        return data


class ProcLogSession(Base):
    """
    Session numbers for backends without a connection id.

    SQLite connections have no server-side identity, so each logger takes
    the next row id here. The sequence lives in the database file and is
    shared by every process writing to it.
    """

    __tablename__ = SESSIONS_TABLE

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    opened_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # AUTOINCREMENT stops SQLite from reusing ids of deleted rows
    __table_args__ = {"sqlite_autoincrement": True}


ephemeral_metadata = MetaData()

# MEMORY keeps the per-session buffer off disk on MySQL; other dialects
# ignore the keyword.
ephemeral_table = Table(
    EPHEMERAL_TABLE,
    ephemeral_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("entrytime", DateTime, server_default=func.now()),
    Column("session_id", Integer, server_default="0"),
    Column("message", String(MESSAGE_LENGTH)),
    prefixes=["TEMPORARY"],
    mysql_engine="MEMORY",
)
