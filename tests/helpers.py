"""Shared test helpers for workout session tests."""

from datetime import datetime, timedelta, timezone

from session_errors import SyncErrorKind, SyncFailure
from sync_adapter import SyncAdapter

T0 = datetime(2026, 3, 10, 8, 0, 0, tzinfo=timezone.utc)


def make_routine(exercises=None, name="Push Day", routine_id=7):
    """Factory for catalog routines."""
    if exercises is None:
        exercises = [
            {"id": 11, "exercise_id": 1, "name": "Bench Press", "sets": 3, "reps": 8, "order": 1},
            {"id": 12, "exercise_id": 2, "name": "Overhead Press", "sets": 2, "reps": 10, "order": 2},
        ]
    return {"id": routine_id, "name": name, "exercises": exercises}


def make_record(day, status="completed", effective=1800, hour=18, **extra):
    """History entry as the backend returns it, ended on the given date."""
    record = {
        "id": extra.pop("id", None),
        "routine_id": 7,
        "status": status,
        "ended_at": f"{day.isoformat()}T{hour:02d}:30:00",
        "effective_seconds": effective,
    }
    record.update(extra)
    return record


class FakeClock:
    """Fake wall clock returning aware datetimes.

    Advance with ``clock.advance(seconds)``; ManualTicker does this for you.
    """

    def __init__(self, start=T0):
        self._now = start

    def __call__(self):
        return self._now

    def advance(self, seconds):
        self._now += timedelta(seconds=seconds)


class ManualTicker:
    """Ticker stand-in: ticks fire synchronously via ``tick(n)``.

    Each tick advances the attached FakeClock by one interval whether or not
    the ticker is running, the way wall time keeps moving.
    """

    def __init__(self, clock=None, interval=1.0):
        self.clock = clock
        self.interval = interval
        self.running = False
        self.start_calls = 0
        self.stop_calls = 0
        self._on_tick = None

    def start(self, on_tick):
        self.start_calls += 1
        if self.running:
            return
        self._on_tick = on_tick
        self.running = True

    def stop(self):
        self.stop_calls += 1
        self.running = False

    def tick(self, n=1):
        for _ in range(n):
            if self.clock:
                self.clock.advance(self.interval)
            if self.running:
                self._on_tick()


class FakeSyncAdapter(SyncAdapter):
    """In-memory backend. Queue failures with ``fail_next(action, ...)``."""

    def __init__(self, remote_id=101):
        self.remote_id = remote_id
        self.calls = []
        self.keys = []
        self.history = []
        self.active = []
        self._failures = {}

    def fail_next(self, action, kind=SyncErrorKind.NETWORK, times=1):
        self._failures.setdefault(action, []).extend(SyncFailure(action, kind) for _ in range(times))

    def calls_for(self, action):
        return [c for c in self.calls if c[0] == action]

    async def _record(self, action, *args, key=None):
        self.calls.append((action, *args))
        self.keys.append(key)
        pending = self._failures.get(action)
        if pending:
            raise pending.pop(0)

    async def create(self, routine_id):
        await self._record("create", routine_id)
        return self.remote_id

    async def pause(self, remote_id, reason, idempotency_key=None):
        await self._record("pause", remote_id, reason, key=idempotency_key)

    async def resume(self, remote_id, idempotency_key=None):
        await self._record("resume", remote_id, key=idempotency_key)

    async def complete(self, remote_id, survey, idempotency_key=None):
        await self._record("complete", remote_id, survey, key=idempotency_key)

    async def abandon(self, remote_id, idempotency_key=None):
        await self._record("abandon", remote_id, key=idempotency_key)

    async def fetch_history(self):
        await self._record("fetch_history")
        return list(self.history)

    async def active_sessions(self):
        await self._record("active_sessions")
        return list(self.active)
