"""
Elapsed / effective time accounting for one workout session.

One ticker drives both counters:
  elapsed_seconds   +1 on every tick from start until stop
  effective_seconds +1 only while counting is enabled (session in_progress)

Paused time is simply excluded from effective time. There is no backlog
correction on resume.
"""


class DurationAccumulator:
    def __init__(self, ticker, on_tick=None):
        self._ticker = ticker
        self._on_tick = on_tick
        self.elapsed_seconds = 0
        self.effective_seconds = 0
        self.counting_effective = False
        self.stopped = False

    @property
    def running(self):
        return self._ticker.running

    def start(self):
        """Start (or keep) ticking with effective counting on. Idempotent."""
        if self.stopped:
            return
        self.counting_effective = True
        self._ticker.start(self._tick)

    def pause(self):
        """Stop effective counting; elapsed keeps running."""
        self.counting_effective = False

    def resume(self):
        self.start()

    def stop(self):
        """Final stop: cancel the ticker. Counters freeze."""
        self._ticker.stop()
        self.counting_effective = False
        self.stopped = True

    def detach(self):
        """Cancel the ticker without freezing counters (view torn down)."""
        self._ticker.stop()

    def seed(self, elapsed, effective):
        """Load counters from a restored session."""
        effective = max(0, int(effective))
        self.elapsed_seconds = max(effective, int(elapsed))
        self.effective_seconds = effective

    def _tick(self):
        if self.stopped:
            return
        self.elapsed_seconds += 1
        if self.counting_effective:
            self.effective_seconds += 1
        if self._on_tick:
            self._on_tick()
