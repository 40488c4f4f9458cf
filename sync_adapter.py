"""
Sync layer between a local WorkoutSession and the remote backend.

SyncAdapter is the contract the backend client implements. SyncOutbox is
the per-session queue that delivers pause/resume/complete/abandon events in
order, fire-and-forget from the session's point of view, retrying network
failures with exponential backoff. Each op keeps its idempotency key across
retries, so the backend can drop duplicates.

create() is never queued: the session awaits it directly because no workout
may run without a remote id.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from session_errors import SyncFailure

log = logging.getLogger("sync")

RETRY_INITIAL_DELAY = 1.0
RETRY_MAX_DELAY = 10.0


class SyncAdapter:
    """Remote store for session lifecycle events.

    Every method may raise SyncFailure. Implementations should treat a
    repeated idempotency_key as already applied.
    """

    async def create(self, routine_id):
        """Create the remote session; returns its id."""
        raise NotImplementedError

    async def pause(self, remote_id, reason, idempotency_key=None):
        raise NotImplementedError

    async def resume(self, remote_id, idempotency_key=None):
        raise NotImplementedError

    async def complete(self, remote_id, survey, idempotency_key=None):
        raise NotImplementedError

    async def abandon(self, remote_id, idempotency_key=None):
        raise NotImplementedError


@dataclass
class SyncOp:
    action: str  # pause | resume | complete | abandon
    remote_id: object
    seq: int
    args: dict = field(default_factory=dict)
    attempts: int = 0
    last_error: SyncFailure | None = None

    @property
    def key(self):
        return f"{self.remote_id}:{self.action}:{self.seq}"

    @property
    def terminal(self):
        return self.action in ("complete", "abandon")


class SyncOutbox:
    """Ordered, retrying delivery of session events to a SyncAdapter."""

    def __init__(self, adapter, on_ack=None, on_failure=None, max_delay=RETRY_MAX_DELAY):
        self.adapter = adapter
        self.on_ack = on_ack  # callback(op)
        self.on_failure = on_failure  # callback(op, exc)
        self.max_delay = max_delay
        self.pending = []
        self.rejected = []
        self._seq = 0
        self._task = None

    @property
    def draining(self):
        return self._task is not None and not self._task.done()

    def submit(self, action, remote_id, **args):
        """Queue an op and make sure the drain task is running."""
        self._seq += 1
        op = SyncOp(action=action, remote_id=remote_id, seq=self._seq, args=args)
        self.pending.append(op)
        log.debug(f"Queued {op.key}")
        if not self.draining:
            self._task = asyncio.create_task(self._drain())
        return op

    async def flush(self):
        """Wait until the queue is empty or the outbox is closed."""
        while self.draining:
            await asyncio.shield(self._task)

    def close(self):
        """Stop delivering. Undelivered ops stay in pending."""
        if self._task:
            self._task.cancel()
            self._task = None

    async def _send(self, op):
        if op.action == "pause":
            await self.adapter.pause(op.remote_id, op.args["reason"], idempotency_key=op.key)
        elif op.action == "resume":
            await self.adapter.resume(op.remote_id, idempotency_key=op.key)
        elif op.action == "complete":
            await self.adapter.complete(op.remote_id, op.args["survey"], idempotency_key=op.key)
        elif op.action == "abandon":
            await self.adapter.abandon(op.remote_id, idempotency_key=op.key)
        else:
            raise ValueError(f"Unknown sync action '{op.action}'")

    async def _drain(self):
        delay = RETRY_INITIAL_DELAY
        try:
            while self.pending:
                op = self.pending[0]
                op.attempts += 1
                try:
                    await self._send(op)
                except SyncFailure as e:
                    op.last_error = e
                    self._notify(self.on_failure, op, e)
                    if not e.retryable:
                        log.error(f"Sync {op.key} rejected, giving up: {e}")
                        self.pending.pop(0)
                        self.rejected.append(op)
                        continue
                    log.warning(f"Sync {op.key} failed (attempt {op.attempts}), retrying in {delay:.0f}s: {e}")
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, self.max_delay)
                    continue
                self.pending.pop(0)
                delay = RETRY_INITIAL_DELAY
                log.info(f"Synced {op.key}")
                self._notify(self.on_ack, op)
        except asyncio.CancelledError:
            pass

    @staticmethod
    def _notify(callback, *args):
        if callback:
            try:
                callback(*args)
            except Exception:
                log.debug("Sync callback error", exc_info=True)
