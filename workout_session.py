"""
WorkoutSession: owns one workout attempt from start to finish.

Invariant: the ticker only runs for a session that has a remote id.
All status changes go through _transition(); legality is checked in one
place (_check) against the ALLOWED table before anything is mutated.

This module has NO dependencies on server.py, FastAPI, or HTTP.
The sync adapter and on_update callback are passed in by the caller.
"""

import logging
from datetime import timezone

from completion_survey import DEFAULT_SURVEY, CompletionSurvey
from duration import DurationAccumulator
from pause_ledger import PAUSE_REASON_OPTIONS, PauseLedger, normalize_reason
from session_errors import InvalidTransition, SessionBusy, SyncErrorKind, SyncFailure
from session_models import ACTIVE_STATUSES, ExerciseAttempt, Routine, SessionRecord, SessionStatus, SetRecord
from sync_adapter import RETRY_MAX_DELAY, SyncOutbox
from ticker import Ticker, utc_now

log = logging.getLogger("session")

S = SessionStatus

ALLOWED = {
    "start": {S.NOT_STARTED},
    "pause": {S.IN_PROGRESS},
    "resume": {S.PAUSED},
    "complete": {S.IN_PROGRESS, S.PAUSED},
    "abandon": {S.IN_PROGRESS, S.PAUSED},
    "update_set": ACTIVE_STATUSES,
    "add_set": ACTIVE_STATUSES,
}

TARGETS = {
    "start": S.IN_PROGRESS,
    "pause": S.PAUSED,
    "resume": S.IN_PROGRESS,
    "complete": S.COMPLETED,
    "abandon": S.ABANDONED,
}

RESTORED_PAUSE_REASON = "interruption"


def _aware(dt):
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class WorkoutSession:
    """Lifecycle of one workout: not_started -> in_progress <-> paused -> completed | abandoned."""

    def __init__(self, routine, adapter, *, ticker=None, clock=utc_now, on_update=None, retry_max_delay=RETRY_MAX_DELAY):
        if not isinstance(routine, Routine):
            routine = Routine.model_validate(routine)
        self.routine_id = routine.id
        self.routine_name = routine.name
        self.adapter = adapter
        self.on_update = on_update  # callback(session_dict)
        self._clock = clock
        self.id = None
        self.status = S.NOT_STARTED
        self.started_at = None
        self.ended_at = None
        self.survey = None
        self.unsynced = False
        self.exercises = [
            ExerciseAttempt.from_routine_exercise(rex) for rex in sorted(routine.exercises, key=lambda r: r.order)
        ]
        self.pauses = PauseLedger()
        self.duration = DurationAccumulator(ticker or Ticker(), on_tick=self._broadcast)
        self.sync = SyncOutbox(
            adapter, on_ack=self._on_sync_ack, on_failure=self._on_sync_failure, max_delay=retry_max_delay
        )
        self._in_flight = None
        self._closed = False

    # --- Read-only views ---

    @property
    def elapsed_seconds(self):
        return self.duration.elapsed_seconds

    @property
    def effective_seconds(self):
        return self.duration.effective_seconds

    @property
    def sync_pending(self):
        return self.unsynced or bool(self.sync.pending)

    @property
    def completed_sets(self):
        return sum(ex.completed_sets for ex in self.exercises)

    @property
    def total_sets(self):
        return sum(len(ex.sets) for ex in self.exercises)

    @staticmethod
    def pause_reason_options():
        return dict(PAUSE_REASON_OPTIONS)

    def snapshot(self):
        return SessionRecord(
            id=self.id,
            routine_id=self.routine_id,
            routine_name=self.routine_name,
            status=self.status,
            started_at=self.started_at,
            ended_at=self.ended_at,
            elapsed_seconds=self.elapsed_seconds,
            effective_seconds=self.effective_seconds,
            pauses=list(self.pauses.records),
            exercises=[ex.model_copy(deep=True) for ex in self.exercises],
            survey=self.survey,
            unsynced=self.unsynced,
        )

    def to_dict(self):
        """Build session state dict for WebSocket broadcast."""
        d = self.snapshot().model_dump(mode="json")
        d["type"] = "session"
        d["sync_pending"] = self.sync_pending
        d["completed_sets"] = self.completed_sets
        d["total_sets"] = self.total_sets
        return d

    # --- Intents ---

    async def start(self):
        """Create the remote session, then start the clock.

        On SyncFailure the session stays not_started and the ticker never runs.
        """
        self._check("start")
        self._in_flight = "start"
        started_at = self._clock()
        try:
            remote_id = await self.adapter.create(self.routine_id)
        except SyncFailure as e:
            log.warning(f"Could not start workout for routine {self.routine_id}: {e}")
            raise
        finally:
            self._in_flight = None
        if remote_id is None:
            raise SyncFailure("create", SyncErrorKind.VALIDATION, "backend returned no session id")
        self.id = remote_id
        self.started_at = started_at
        self._transition("start")
        if not self._closed:
            self.duration.start()
        self._broadcast()
        return self

    def pause(self, reason):
        self._check("pause")
        reason = normalize_reason(reason)
        self.pauses.open(self._clock(), reason)
        self.duration.pause()
        self._transition("pause")
        self.sync.submit("pause", self.id, reason=reason)
        self._broadcast()

    def resume(self):
        self._check("resume")
        self.pauses.close(self._clock())
        self.duration.resume()
        self._transition("resume")
        self.sync.submit("resume", self.id)
        self._broadcast()

    def complete(self, survey=None):
        """Finish the workout. An open pause is closed first."""
        self._check("complete")
        survey = DEFAULT_SURVEY if survey is None else CompletionSurvey.from_wire(survey)
        self._finish("complete")
        self.survey = survey
        self.sync.submit("complete", self.id, survey=survey)
        self._broadcast()

    def abandon(self):
        self._check("abandon")
        self._finish("abandon")
        self.sync.submit("abandon", self.id)
        self._broadcast()

    # --- Set logging ---

    def update_set(self, exercise_index, set_index, *, weight=None, reps=None, completed=None):
        self._check("update_set")
        exercise, current = self._set(exercise_index, set_index)
        updates = {k: v for k, v in (("weight", weight), ("reps", reps), ("completed", completed)) if v is not None}
        exercise.sets[set_index] = SetRecord.model_validate({**current.model_dump(), **updates})
        self._broadcast()
        return exercise.sets[set_index]

    def toggle_set(self, exercise_index, set_index):
        self._check("update_set")
        _, current = self._set(exercise_index, set_index)
        return self.update_set(exercise_index, set_index, completed=not current.completed)

    def add_set(self, exercise_index):
        self._check("add_set")
        exercise = self._exercise(exercise_index)
        new_set = SetRecord(set_number=len(exercise.sets) + 1, reps=exercise.planned_reps)
        exercise.sets.append(new_set)
        self._broadcast()
        return new_set

    # --- Teardown ---

    def close(self):
        """Owning view torn down: cancel the ticker and stop sync delivery.

        A finished session keeps draining its outbox so an undelivered
        complete/abandon still reaches the backend.
        """
        if self._closed:
            return
        self._closed = True
        self.duration.detach()
        if self.status.terminal and self.sync.pending:
            log.info(f"Session {self.id} closed with {len(self.sync.pending)} sync op(s) still pending")
            return
        self.sync.close()
        log.info(f"Session {self.id} closed ({self.status.value})")

    # --- Reconciliation ---

    @classmethod
    def restore(
        cls, record, adapter, *, routine=None, ticker=None, clock=utc_now, on_update=None, retry_max_delay=RETRY_MAX_DELAY
    ):
        """Rehydrate an in-progress or paused session fetched from the backend.

        Elapsed time is recomputed from the wall clock since started_at so
        time spent in background is counted; effective time is elapsed minus
        paused time.
        """
        if not isinstance(record, SessionRecord):
            record = SessionRecord.from_wire(record)
        if record.status not in ACTIVE_STATUSES:
            raise InvalidTransition(record.status.value, "restore")
        if record.id is None:
            raise ValueError("Cannot restore a session without a remote id")

        if routine is None:
            routine = Routine(id=record.routine_id, name=record.routine_name)
        sess = cls(
            routine, adapter, ticker=ticker, clock=clock, on_update=on_update, retry_max_delay=retry_max_delay
        )
        now = clock()
        sess.id = record.id
        sess.started_at = _aware(record.started_at)
        if record.exercises:
            sess.exercises = [ex.model_copy(deep=True) for ex in record.exercises]

        records = [
            p.model_copy(update={"started_at": _aware(p.started_at), "ended_at": _aware(p.ended_at)})
            for p in record.pauses
        ]
        # Keep only the most recent open interval open.
        for i, p in enumerate(records[:-1]):
            if p.open:
                records[i] = p.model_copy(update={"ended_at": records[i + 1].started_at})
        sess.pauses = PauseLedger(records)
        if record.status is S.PAUSED and sess.pauses.current is None:
            sess.pauses.open(now, RESTORED_PAUSE_REASON)
        elif record.status is S.IN_PROGRESS:
            sess.pauses.close(now)

        if sess.started_at is not None:
            elapsed = max(record.elapsed_seconds, int((now - sess.started_at).total_seconds()))
            effective = elapsed - sess.pauses.paused_seconds(now)
        else:
            elapsed, effective = record.elapsed_seconds, record.effective_seconds
        sess.duration.seed(elapsed, effective)

        sess.status = record.status
        sess.duration.start()
        if record.status is S.PAUSED:
            sess.duration.pause()
        log.info(
            f"Session {sess.id} restored ({sess.status.value}, "
            f"elapsed={sess.elapsed_seconds}s effective={sess.effective_seconds}s)"
        )
        sess._broadcast()
        return sess

    # --- Internals ---

    def _check(self, operation):
        if self._closed:
            raise InvalidTransition("closed", operation)
        if self._in_flight:
            raise SessionBusy(operation, self._in_flight)
        if self.status not in ALLOWED[operation]:
            raise InvalidTransition(self.status.value, operation)

    def _transition(self, operation):
        target = TARGETS[operation]
        log.info(f"Session {self.id}: {self.status.value} -> {target.value}")
        self.status = target

    def _finish(self, operation):
        now = self._clock()
        self.pauses.close(now)
        self.duration.stop()
        self.ended_at = now
        self._transition(operation)

    def _exercise(self, index):
        if not 0 <= index < len(self.exercises):
            raise IndexError(f"Exercise {index} out of range")
        return self.exercises[index]

    def _set(self, exercise_index, set_index):
        exercise = self._exercise(exercise_index)
        if not 0 <= set_index < len(exercise.sets):
            raise IndexError(f"Set {set_index} out of range for '{exercise.name}'")
        return exercise, exercise.sets[set_index]

    def _on_sync_failure(self, op, exc):
        if op.terminal and not self.unsynced:
            self.unsynced = True
            log.warning(f"Session {self.id} is {self.status.value} locally but not yet synced")
            self._broadcast()

    def _on_sync_ack(self, op):
        if op.terminal and self.unsynced:
            self.unsynced = False
            self._broadcast()

    def _broadcast(self):
        if self.on_update:
            try:
                self.on_update(self.to_dict())
            except Exception:
                log.debug("on_update callback error", exc_info=True)
