"""
Error kinds shared by the store, transport, codecs and geodesy layers.

Lower layers raise these; SyncEngine catches them at the category boundary
and turns them into a failed SyncReport, so nothing here is ever fatal to
the process.
"""
from typing import Optional


class LogbookError(Exception):
    """Base class for every expected failure in the logbook core."""


# ── Remote ────────────────────────────────────────────────────────────────────

class TransportError(LogbookError):
    """Network failure, timeout or a non-200 HTTP response."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthError(TransportError):
    """The server rejected the login credentials."""


class DecodeError(LogbookError):
    """A payload did not have the expected JSON shape or field types."""


# ── Local store ───────────────────────────────────────────────────────────────

class StoreError(LogbookError):
    """Underlying database failure."""


class DuplicateKeyError(StoreError):
    """Insert of an id that already exists."""


class RecordNotFoundError(StoreError):
    """Update or delete of an id that does not exist."""


# ── Geodesy ───────────────────────────────────────────────────────────────────

class ValidationError(LogbookError):
    """Malformed date/time input or an undefined route calculation."""
