"""
Error types for the workout session engine.

Illegal intents (InvalidTransition, SessionBusy, InvalidPauseReason) are
local programming/UI errors: always recoverable, never mutate state.
SyncFailure is a remote outcome and carries a kind so callers can tell a
retryable network blip from a rejected payload.
"""

import enum


class SessionError(Exception):
    """Base class for all session engine errors."""


class InvalidTransition(SessionError):
    """Intent is not legal in the session's current status."""

    def __init__(self, status, operation):
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} a session that is {status}")


class SessionBusy(SessionError):
    """Another intent on the same session is still in flight."""

    def __init__(self, operation, in_flight):
        self.operation = operation
        self.in_flight = in_flight
        super().__init__(f"Cannot {operation} while {in_flight} is in flight")


class InvalidPauseReason(SessionError, ValueError):
    """Pause reason missing, blank, or the bare 'other' option."""


class SyncErrorKind(str, enum.Enum):
    NETWORK = "network"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"


class SyncFailure(SessionError):
    """A call to the sync backend failed."""

    def __init__(self, operation, kind=SyncErrorKind.NETWORK, detail="", status_code=None):
        self.operation = operation
        self.kind = SyncErrorKind(kind)
        self.detail = detail
        self.status_code = status_code
        msg = f"{operation} failed ({self.kind.value})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)

    @property
    def retryable(self):
        return self.kind is SyncErrorKind.NETWORK


class MalformedHistoryRecord(SessionError, ValueError):
    """History entry is missing or has unusable fields.

    Raised only while parsing a single record; the analytics engine catches
    it and substitutes defaults.
    """
