"""Exception hierarchy for the archive engine."""

from typing import Any, Optional, Sequence


class ArchiveError(Exception):
    """Base class for every error raised by imessage_archive"""


class DatabaseConnectionError(ArchiveError):
    """The database could not be opened (missing, unreadable, corrupt or not a Messages store)"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class QueryError(ArchiveError):
    """A statement failed to prepare or execute"""

    def __init__(self, message: str, sql: Optional[str] = None, params: Optional[Sequence[Any]] = None):
        super().__init__(message)
        self.sql = sql
        self.params = list(params) if params is not None else []


class QueryTimeout(QueryError):
    """A soft timeout expired while the underlying work kept running"""


class DecodeFailure(ArchiveError):
    """No readable text could be recovered from a message.

    Only raised inside the decoding layer. Callers that build display text
    absorb it into a placeholder string.
    """
