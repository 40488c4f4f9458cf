"""
Clock source for workout sessions.

Ticker owns a single asyncio task that calls on_tick() once per interval.
Each session owns its own Ticker; there is no module-level timer. Tests
inject a manual ticker that fires ticks synchronously instead.
"""

import asyncio
import logging
from datetime import datetime, timezone

log = logging.getLogger("ticker")

TICK_INTERVAL = 1.0


def utc_now():
    """Wall clock used for session timestamps."""
    return datetime.now(timezone.utc)


class Ticker:
    """Recurring tick on the running event loop.

    start() while already running is a no-op, so a resume after the app
    comes back from background never spawns a second loop.
    """

    def __init__(self, interval=TICK_INTERVAL):
        self.interval = interval
        self._task = None
        self._on_tick = None

    @property
    def running(self):
        return self._task is not None and not self._task.done()

    def start(self, on_tick):
        if self.running:
            return
        self._on_tick = on_tick
        self._task = asyncio.create_task(self._tick_loop())

    def stop(self):
        if self._task:
            self._task.cancel()
            self._task = None

    async def _tick_loop(self):
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    self._on_tick()
                except Exception:
                    log.exception("Tick handler failed")
        except asyncio.CancelledError:
            pass
