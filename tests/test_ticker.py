"""Unit tests for the asyncio Ticker and DurationAccumulator."""

import asyncio
from unittest.mock import patch

import pytest

from duration import DurationAccumulator
from tests.helpers import ManualTicker
from ticker import Ticker

real_sleep = asyncio.sleep


def gated_sleep(ticks_allowed):
    """asyncio.sleep stand-in: returns immediately N times, then blocks until cancelled."""
    calls = []
    gate = asyncio.Event()

    async def mock_sleep(duration):
        calls.append(duration)
        if len(calls) > ticks_allowed:
            await gate.wait()

    return mock_sleep, calls


class TestTicker:
    @pytest.mark.asyncio
    async def test_ticks_once_per_sleep(self):
        ticks = []
        mock_sleep, calls = gated_sleep(3)
        ticker = Ticker(interval=1.0)
        with patch("asyncio.sleep", side_effect=mock_sleep):
            ticker.start(lambda: ticks.append(1))
            await real_sleep(0)
            assert len(ticks) == 3
            assert calls[0] == 1.0
            ticker.stop()
        assert not ticker.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        mock_sleep, _ = gated_sleep(0)
        ticker = Ticker()
        with patch("asyncio.sleep", side_effect=mock_sleep):
            ticker.start(lambda: None)
            task = ticker._task
            ticker.start(lambda: None)
            assert ticker._task is task
            ticker.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_task(self):
        mock_sleep, _ = gated_sleep(0)
        ticker = Ticker()
        with patch("asyncio.sleep", side_effect=mock_sleep):
            ticker.start(lambda: None)
            task = ticker._task
            await real_sleep(0)
            ticker.stop()
            await real_sleep(0)
        assert task.done()
        assert not ticker.running

    @pytest.mark.asyncio
    async def test_restart_after_stop_spawns_new_task(self):
        mock_sleep, _ = gated_sleep(0)
        ticker = Ticker()
        with patch("asyncio.sleep", side_effect=mock_sleep):
            ticker.start(lambda: None)
            first = ticker._task
            ticker.stop()
            ticker.start(lambda: None)
            assert ticker._task is not first
            assert ticker.running
            ticker.stop()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_kill_loop(self):
        ticks = []

        def on_tick():
            ticks.append(1)
            if len(ticks) == 1:
                raise RuntimeError("render failed")

        mock_sleep, _ = gated_sleep(3)
        ticker = Ticker()
        with patch("asyncio.sleep", side_effect=mock_sleep):
            ticker.start(on_tick)
            await real_sleep(0)
            assert len(ticks) == 3
            assert ticker.running
            ticker.stop()

    def test_stop_without_start_is_noop(self):
        ticker = Ticker()
        ticker.stop()
        assert not ticker.running


class TestDurationAccumulator:
    def test_counts_both_while_running(self):
        ticker = ManualTicker()
        acc = DurationAccumulator(ticker)
        acc.start()
        ticker.tick(5)
        assert (acc.elapsed_seconds, acc.effective_seconds) == (5, 5)

    def test_no_ticks_before_start(self):
        ticker = ManualTicker()
        acc = DurationAccumulator(ticker)
        ticker.tick(5)
        assert (acc.elapsed_seconds, acc.effective_seconds) == (0, 0)

    def test_pause_excludes_effective(self):
        ticker = ManualTicker()
        acc = DurationAccumulator(ticker)
        acc.start()
        ticker.tick(2)
        acc.pause()
        ticker.tick(3)
        acc.resume()
        ticker.tick(1)
        assert (acc.elapsed_seconds, acc.effective_seconds) == (6, 3)

    def test_duplicate_start_is_noop(self):
        ticker = ManualTicker()
        acc = DurationAccumulator(ticker)
        acc.start()
        acc.start()
        ticker.tick(1)
        assert acc.elapsed_seconds == 1

    def test_stop_freezes_and_blocks_restart(self):
        ticker = ManualTicker()
        acc = DurationAccumulator(ticker)
        acc.start()
        ticker.tick(2)
        acc.stop()
        acc.start()
        ticker.tick(4)
        assert not ticker.running
        assert (acc.elapsed_seconds, acc.effective_seconds) == (2, 2)

    def test_seed_keeps_effective_within_elapsed(self):
        acc = DurationAccumulator(ManualTicker())
        acc.seed(elapsed=10, effective=25)
        assert acc.effective_seconds <= acc.elapsed_seconds
        acc.seed(elapsed=100, effective=-3)
        assert (acc.elapsed_seconds, acc.effective_seconds) == (100, 0)

    def test_on_tick_callback(self):
        seen = []
        ticker = ManualTicker()
        acc = DurationAccumulator(ticker, on_tick=lambda: seen.append(acc.elapsed_seconds))
        acc.start()
        ticker.tick(3)
        assert seen == [1, 2, 3]
