"""Shared test fixtures for workout session tests."""

import os
import sys

# Add project root to path so tests can import workout_session, server, etc.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from tests.helpers import FakeClock, FakeSyncAdapter, ManualTicker, make_routine
from workout_session import WorkoutSession


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ticker(clock):
    return ManualTicker(clock)


@pytest.fixture
def adapter():
    return FakeSyncAdapter()


@pytest.fixture
def sess(adapter, ticker, clock):
    """Fresh not_started session on a 2-exercise routine with manual ticks."""
    return WorkoutSession(make_routine(), adapter, ticker=ticker, clock=clock)
