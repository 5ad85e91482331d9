"""
proclog - Session-scoped debug logging for database procedural code

Buffers timestamped debug messages in a per-connection temporary table and
flushes them to a durable table that survives the caller's rollbacks.

Example usage:
    from proclog import debug_session

    async with debug_session(engine, final_message="end of proc") as debug_log:
        await debug_log.log("loop iteration #0")

    # Inspect the durable log
    $ proclog show --session 42
"""

__version__ = "0.1.0"

from proclog.debug import (
    CatalogCheckError,
    DebugLogError,
    DebugLogger,
    DurableWriteError,
    EphemeralStoreError,
    LogEntry,
    LoggerState,
    LogStore,
    debug_session,
    get_log_store,
)

__all__ = [
    # Version info
    "__version__",
    # Logger
    "DebugLogger",
    "LoggerState",
    "debug_session",
    "LogEntry",
    # Store
    "LogStore",
    "get_log_store",
    # Errors
    "DebugLogError",
    "CatalogCheckError",
    "EphemeralStoreError",
    "DurableWriteError",
]
