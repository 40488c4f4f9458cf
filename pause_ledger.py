"""Pause reason catalog and the per-session ledger of pause intervals."""

from session_errors import InvalidPauseReason
from session_models import PauseRecord

PAUSE_REASON_OTHER = "other"

PAUSE_REASON_OPTIONS = {
    "rest": "Rest between sets",
    "equipment_busy": "Equipment busy",
    "hydration": "Water / bathroom break",
    "injury_or_pain": "Injury or pain",
    "interruption": "Phone call or interruption",
    PAUSE_REASON_OTHER: "Other",
}

MAX_REASON_LENGTH = 255


def normalize_reason(reason):
    """Validate a pause reason: a catalog key or non-empty free text.

    'other' on its own means the user picked "Other" without typing
    anything, which is the same as no reason.
    """
    if reason is None:
        raise InvalidPauseReason("A pause reason is required")
    reason = str(reason).strip()
    if not reason:
        raise InvalidPauseReason("A pause reason is required")
    if reason.lower() == PAUSE_REASON_OTHER:
        raise InvalidPauseReason("Describe the reason when choosing 'other'")
    if len(reason) > MAX_REASON_LENGTH:
        raise InvalidPauseReason(f"Pause reason longer than {MAX_REASON_LENGTH} characters")
    return reason


class PauseLedger:
    """Ordered pause intervals. At most one is open; closed ones never change."""

    def __init__(self, records=None):
        self._records = list(records or [])
        if sum(1 for r in self._records if r.open) > 1:
            raise ValueError("More than one open pause interval")

    @property
    def records(self):
        return tuple(self._records)

    @property
    def current(self):
        if self._records and self._records[-1].open:
            return self._records[-1]
        return None

    def open(self, started_at, reason):
        if self.current is not None:
            raise ValueError("A pause interval is already open")
        record = PauseRecord(started_at=started_at, reason=normalize_reason(reason))
        self._records.append(record)
        return record

    def close(self, ended_at):
        """Close the open interval, if any. Returns the closed record or None."""
        current = self.current
        if current is None:
            return None
        closed = current.model_copy(update={"ended_at": max(ended_at, current.started_at)})
        self._records[-1] = closed
        return closed

    def paused_seconds(self, now=None):
        return sum(r.duration_seconds(now) for r in self._records)

    def __len__(self):
        return len(self._records)
