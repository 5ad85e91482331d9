"""
Exceptions raised by the debug logger.

Recoverable conditions (a missing ephemeral table, an over-long message) are
handled inside the logger and never appear here.
"""


class DebugLogError(Exception):
    """Base class for debug logger failures."""

    pass


class CatalogCheckError(DebugLogError):
    """Raised when the table existence check against the catalog fails."""

    pass


class EphemeralStoreError(DebugLogError):
    """Raised when the session's temporary table cannot be created, written or dropped."""

    pass


class DurableWriteError(DebugLogError):
    """
    Raised when copying entries into the durable table fails.

    The ephemeral table is left untouched so nothing is lost.
    """

    pass
