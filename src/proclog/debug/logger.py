"""
Session-scoped debug logger.

Each DebugLogger owns one dedicated database connection. Messages are
buffered in a temporary table private to that connection and copied into the
shared durable table on cleanup. The logger never touches the caller's
connection, so rolling back the caller's transaction cannot erase log writes.

Usage:
    async with DebugLogger(engine) as debug_log:
        await debug_log.setup()
        await debug_log.log("loop iteration #0")
        await debug_log.cleanup("end of proc")
"""

import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator

from sqlalchemy import delete, func, insert, inspect, select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from proclog.config import LoggerSettings, get_settings
from proclog.debug.database import get_engine, is_missing_table_error, resolve_session_id
from proclog.debug.errors import (
    CatalogCheckError,
    DurableWriteError,
    EphemeralStoreError,
)
from proclog.debug.models import (
    DURABLE_TABLE,
    EPHEMERAL_TABLE,
    LogEntry,
    ProcLogRecord,
    ephemeral_table,
)

logger = logging.getLogger(__name__)

_COPIED_COLUMNS = ["entrytime", "session_id", "message"]


class LoggerState(str, Enum):
    """Lifecycle state of a logger's ephemeral table."""

    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FLUSHED = "flushed"


def truncate_message(message: str, max_length: int, marker: str) -> str:
    """
    Fit a message into the stored column width.

    Args:
        message: Message text
        max_length: Maximum stored length, marker included
        marker: Suffix appended to truncated text

    Returns:
        The message unchanged, or cut to exactly max_length characters
        ending with the marker
    """
    if len(message) <= max_length:
        return message
    return message[: max_length - len(marker)] + marker


async def table_exists(conn: AsyncConnection, name: str) -> bool:
    """
    Look a table up in the database catalog.

    Temporary tables owned by the connection are visible too.

    Raises:
        CatalogCheckError: If the catalog cannot be queried
    """
    try:
        return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(name))
    except SQLAlchemyError as e:
        raise CatalogCheckError(f"Could not check catalog for table '{name}': {e}") from e


async def ensure_durable_table(conn: AsyncConnection) -> bool:
    """
    Create the durable table unless the catalog already lists it.

    The connection must not be inside a transaction.

    Args:
        conn: Connection to use

    Returns:
        True if this call created the table

    Raises:
        CatalogCheckError: If the existence check fails
        DurableWriteError: If the table is absent and cannot be created
    """
    async with conn.begin():
        if await table_exists(conn, DURABLE_TABLE):
            return False

    try:
        async with conn.begin():
            await conn.run_sync(ProcLogRecord.__table__.create)
    except SQLAlchemyError as e:
        # Another session may have won the race between check and create
        async with conn.begin():
            if await table_exists(conn, DURABLE_TABLE):
                return False
        raise DurableWriteError(f"Could not create table '{DURABLE_TABLE}': {e}") from e

    logger.info(f"Created durable log table '{DURABLE_TABLE}'")
    return True


class DebugLogger:
    """
    Setup / log / cleanup over a per-connection buffer and a durable table.

    A logger is bound to one connection for its whole life and is not safe
    for concurrent use; give each task its own logger.
    """

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        settings: LoggerSettings | None = None,
    ) -> None:
        self._engine = engine
        self._settings = settings or get_settings().logger
        self._conn: AsyncConnection | None = None
        self.session_id: int | None = None
        self.state = LoggerState.UNINITIALIZED

    async def __aenter__(self) -> "DebugLogger":
        return await self.open()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def connection(self) -> AsyncConnection:
        """The connection this logger's session lives on."""
        if self._conn is None:
            raise RuntimeError("DebugLogger not open. Call open() first.")
        return self._conn

    async def open(self) -> "DebugLogger":
        """Check out a dedicated connection and read its session id."""
        if self._conn is not None:
            return self

        engine = self._engine or get_engine()
        conn = await engine.connect()
        try:
            async with conn.begin():
                self.session_id = await resolve_session_id(conn)
        except Exception:
            await conn.close()
            raise
        self._conn = conn

        logger.debug(f"Debug logger opened for session {self.session_id}")
        return self

    async def close(self) -> None:
        """
        Release the connection.

        Unflushed ephemeral entries are discarded; pooled connections keep
        temporary tables alive, so the table is dropped before release. If
        that fails the connection is invalidated instead.
        """
        if self._conn is None:
            return

        try:
            async with self._conn.begin():
                if await table_exists(self._conn, EPHEMERAL_TABLE):
                    await self._conn.run_sync(ephemeral_table.drop)
                    logger.debug(f"Discarded unflushed entries for session {self.session_id}")
        except (CatalogCheckError, SQLAlchemyError) as e:
            logger.warning(
                f"Could not drop ephemeral table for session {self.session_id}, "
                f"invalidating connection: {e}"
            )
            await self._conn.invalidate()
        finally:
            await self._conn.close()
            self._conn = None
            self.state = LoggerState.UNINITIALIZED

    async def setup(self) -> None:
        """
        Make sure both tiers exist and the ephemeral table is empty.

        Existence is checked against the catalog before anything is created,
        so repeated calls never hit an "already exists" condition.

        Raises:
            CatalogCheckError: If the catalog cannot be queried
            DurableWriteError: If the durable table cannot be created
            EphemeralStoreError: If the ephemeral table cannot be prepared
        """
        conn = self.connection
        await ensure_durable_table(conn)

        try:
            async with conn.begin():
                if await table_exists(conn, EPHEMERAL_TABLE):
                    await conn.execute(delete(ephemeral_table))
                else:
                    await conn.run_sync(ephemeral_table.create)
        except SQLAlchemyError as e:
            raise EphemeralStoreError(
                f"Could not prepare '{EPHEMERAL_TABLE}' for session {self.session_id}: {e}"
            ) from e

        self.state = LoggerState.READY

    async def log(self, message: str) -> None:
        """
        Append a message to the session's ephemeral table.

        If the table is missing it is recreated and a recovery entry is
        written just before the message.

        Args:
            message: Debug text, truncated to the configured length

        Raises:
            EphemeralStoreError: For storage failures other than a missing table
        """
        stored = self._prepare(message)
        try:
            await self._insert([stored])
        except DBAPIError as e:
            if not is_missing_table_error(e):
                raise EphemeralStoreError(f"Could not write debug message: {e}") from e
            await self._recover(stored)
        except SQLAlchemyError as e:
            raise EphemeralStoreError(f"Could not write debug message: {e}") from e

        self.state = LoggerState.READY
        if self._settings.mirror_to_logging:
            logger.debug(f"[session {self.session_id}] {stored}")

    async def cleanup(self, final_message: str | None = None) -> int:
        """
        Flush the ephemeral table into the durable table and drop it.

        Args:
            final_message: Logged with the cleanup prefix before flushing

        Returns:
            Number of entries copied to the durable table

        Raises:
            DurableWriteError: If the copy fails; the ephemeral table is kept
            EphemeralStoreError: If the emptied ephemeral table cannot be dropped
        """
        conn = self.connection
        if final_message is not None:
            await self.log(f"{self._settings.cleanup_prefix}{final_message}")

        async with conn.begin():
            exists = await table_exists(conn, EPHEMERAL_TABLE)
        if not exists:
            self.state = LoggerState.FLUSHED
            return 0

        source = select(
            ephemeral_table.c.entrytime,
            ephemeral_table.c.session_id,
            ephemeral_table.c.message,
        ).order_by(ephemeral_table.c.id)
        copy = insert(ProcLogRecord.__table__).from_select(_COPIED_COLUMNS, source)

        try:
            async with conn.begin():
                flushed = await conn.scalar(select(func.count()).select_from(ephemeral_table))
                await conn.execute(copy)
                await conn.execute(delete(ephemeral_table))
        except SQLAlchemyError as e:
            raise DurableWriteError(
                f"Could not flush session {self.session_id} into '{DURABLE_TABLE}': {e}"
            ) from e

        try:
            async with conn.begin():
                await conn.run_sync(ephemeral_table.drop)
        except SQLAlchemyError as e:
            raise EphemeralStoreError(f"Could not drop '{EPHEMERAL_TABLE}': {e}") from e

        self.state = LoggerState.FLUSHED
        logger.info(f"Flushed {flushed} debug entries for session {self.session_id}")
        return flushed or 0

    async def pending(self) -> list[LogEntry]:
        """Entries buffered in this session's ephemeral table, in call order."""
        conn = self.connection
        async with conn.begin():
            if not await table_exists(conn, EPHEMERAL_TABLE):
                return []
            result = await conn.execute(
                select(
                    ephemeral_table.c.entrytime,
                    ephemeral_table.c.session_id,
                    ephemeral_table.c.message,
                ).order_by(ephemeral_table.c.id)
            )
            return [LogEntry(*row) for row in result.all()]

    def _prepare(self, message: str) -> str:
        limit = self._settings.message_max_length
        if len(message) > limit:
            logger.debug(f"Truncated debug message from {len(message)} to {limit} characters")
        return truncate_message(message, limit, self._settings.truncation_marker)

    async def _insert(self, messages: list[str]) -> None:
        conn = self.connection
        async with conn.begin():
            await conn.execute(
                insert(ephemeral_table),
                [{"session_id": self.session_id, "message": m} for m in messages],
            )

    async def _recover(self, stored: str) -> None:
        logger.warning(
            f"Ephemeral log table missing for session {self.session_id}, recreating"
        )
        await self.setup()
        try:
            await self._insert([self._prepare(self._settings.recovery_message), stored])
        except SQLAlchemyError as e:
            raise EphemeralStoreError(f"Could not write debug message: {e}") from e


@asynccontextmanager
async def debug_session(
    engine: AsyncEngine | None = None,
    final_message: str | None = None,
    settings: LoggerSettings | None = None,
) -> AsyncIterator[DebugLogger]:
    """
    Run a block of work with a set-up logger, flushing it on the way out.

    If the block raises, the trail is flushed with an "aborted" entry and
    the exception propagates.

    Usage:
        async with debug_session(engine, final_message="end of proc") as debug_log:
            await debug_log.log("BAIL = 1")
    """
    async with DebugLogger(engine, settings) as debug_logger:
        await debug_logger.setup()
        try:
            yield debug_logger
        except Exception as e:
            await debug_logger.cleanup(f"aborted: {type(e).__name__}: {e}")
            raise
        await debug_logger.cleanup(final_message)
