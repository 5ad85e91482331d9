"""
Session-scoped debug logging for database procedural code.

Provides the setup / log / cleanup lifecycle over a per-connection
temporary table and a shared durable table, plus queries over the latter.
"""

from proclog.debug.database import (
    check_database_health,
    close_database,
    get_engine,
    get_session,
    get_session_factory,
    init_database,
)
from proclog.debug.errors import (
    CatalogCheckError,
    DebugLogError,
    DurableWriteError,
    EphemeralStoreError,
)
from proclog.debug.logger import DebugLogger, LoggerState, debug_session
from proclog.debug.models import Base, LogEntry, ProcLogRecord
from proclog.debug.store import LogStore, get_log_store

__all__ = [
    # Database
    "init_database",
    "close_database",
    "get_engine",
    "get_session",
    "get_session_factory",
    "check_database_health",
    # Errors
    "DebugLogError",
    "CatalogCheckError",
    "EphemeralStoreError",
    "DurableWriteError",
    # Logger
    "DebugLogger",
    "LoggerState",
    "debug_session",
    # Models
    "Base",
    "LogEntry",
    "ProcLogRecord",
    # Store
    "LogStore",
    "get_log_store",
]
