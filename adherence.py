"""
Adherence analytics over a user's session history.

Pure functions over an immutable snapshot: no I/O, no mutation, safe to run
in a background task. A malformed record never fails the computation; its
unusable fields fall back to defaults and it still counts toward
total_sessions.

Only completed sessions count toward completions, effective time and
streaks. Days are local calendar days; several sessions on one day collapse
into a single active day before any streak is computed.
"""

import logging
import math
from datetime import date, datetime

from session_errors import MalformedHistoryRecord
from session_models import AdherenceStats, SessionRecord, SessionStatus

log = logging.getLogger("adherence")

# Checked in order; the first parseable one wins.
DAY_FIELDS = ("ended_at", "end_time", "started_at", "start_time", "created_at", "date")
EFFECTIVE_FIELDS = ("effective_seconds", "effective_duration")


def _as_mapping(record):
    if record is None:
        raise MalformedHistoryRecord("Empty history record")
    if isinstance(record, dict):
        return record
    if hasattr(record, "snapshot"):
        record = record.snapshot()
    if isinstance(record, SessionRecord):
        return record.model_dump()
    raise MalformedHistoryRecord(f"Unsupported history record type {type(record).__name__}")


def _parse_status(value):
    if isinstance(value, SessionStatus):
        return value
    try:
        return SessionStatus(str(value).strip().lower())
    except ValueError:
        raise MalformedHistoryRecord(f"Unknown status {value!r}")


def parse_day(value, tz=None):
    """Local calendar day of a timestamp, date, or ISO-8601 string.

    Aware timestamps are converted to tz (system local time when None);
    naive ones are taken as already local.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            try:
                value = value.astimezone(tz)
            except OverflowError:
                raise MalformedHistoryRecord(f"Timestamp {value.isoformat()} out of range")
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return parse_day(datetime.fromisoformat(text), tz)
        except ValueError:
            raise MalformedHistoryRecord(f"Unparseable timestamp {value!r}")
    raise MalformedHistoryRecord(f"Unsupported timestamp {value!r}")


def _record_day(data, tz):
    for name in DAY_FIELDS:
        value = data.get(name)
        if value in (None, ""):
            continue
        try:
            return parse_day(value, tz)
        except MalformedHistoryRecord as e:
            log.debug(f"Skipping {name}: {e}")
    return None


def _effective_seconds(data):
    for name in EFFECTIVE_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        try:
            seconds = float(value)
        except (TypeError, ValueError, OverflowError):
            log.debug(f"Ignoring non-numeric {name}={value!r}")
            continue
        if not math.isfinite(seconds):
            log.debug(f"Ignoring non-finite {name}={value!r}")
            continue
        return max(0, int(seconds))
    return 0


def summarize_record(record, tz=None):
    """Return (status, day, effective_seconds) for one history entry.

    Never raises: a broken entry comes back as (None, None, 0) or with the
    fields that could not be read set to their defaults.
    """
    try:
        data = _as_mapping(record)
    except MalformedHistoryRecord as e:
        log.debug(f"Malformed history record: {e}")
        return None, None, 0
    try:
        status = _parse_status(data.get("status"))
    except MalformedHistoryRecord as e:
        log.debug(f"Malformed history record {data.get('id')}: {e}")
        status = None
    return status, _record_day(data, tz), _effective_seconds(data)


def active_days(days):
    """Distinct days, most recent first."""
    return sorted({d for d in days if d is not None}, reverse=True)


def current_streak(days, today):
    """Consecutive active days ending today or yesterday.

    days must be distinct and sorted descending. A full missed day (most
    recent active day before yesterday) breaks the streak.
    """
    if not days:
        return 0
    if (today - days[0]).days > 1:
        return 0
    streak = 1
    for newer, older in zip(days, days[1:]):
        if (newer - older).days != 1:
            break
        streak += 1
    return streak


def best_streak(days):
    """Longest run of consecutive active days (distinct, sorted descending)."""
    if not days:
        return 0
    best = run = 1
    for newer, older in zip(days, days[1:]):
        run = run + 1 if (newer - older).days == 1 else 1
        best = max(best, run)
    return best


def avg_sessions_per_week(completed, days):
    """Completed sessions per week across the span of active days, 1 decimal."""
    if completed <= 1:
        return float(completed)
    span_days = (days[0] - days[-1]).days if days else 0
    weeks = max(1.0, span_days / 7)
    return round(completed / weeks, 1)


def compute_adherence(history, today=None, tz=None):
    """AdherenceStats for a session history. None is treated as empty."""
    history = list(history or [])
    if today is None:
        today = datetime.now(tz).date() if tz is not None else date.today()

    completed = 0
    effective_total = 0
    days = []
    for record in history:
        status, day, effective = summarize_record(record, tz)
        if status is not SessionStatus.COMPLETED:
            continue
        completed += 1
        effective_total += effective
        days.append(day)

    distinct = active_days(days)
    stats = AdherenceStats(
        total_sessions=len(history),
        completed_sessions=completed,
        total_effective_seconds=effective_total,
        avg_sessions_per_week=avg_sessions_per_week(completed, distinct),
        current_streak_days=current_streak(distinct, today),
        best_streak_days=best_streak(distinct),
    )
    log.debug(f"Adherence over {len(history)} sessions: {stats}")
    return stats
