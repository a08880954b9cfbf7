"""Shared fixtures: a fresh Engine per test, and a controllable clock."""

import heapq
import itertools

import pytest

from signalflow import Engine, use_engine


class FakeTime:
    """Manual clock + timer queue for throttled effects."""

    def __init__(self):
        self.now = 0.0
        self._timers = []
        self._seq = itertools.count()

    def clock(self):
        return self.now

    def call_later(self, delay, callback):
        heapq.heappush(self._timers, (self.now + delay, next(self._seq), callback))

    def advance(self, seconds):
        """Move time forward, firing due timers in order."""
        target = self.now + seconds
        while self._timers and self._timers[0][0] <= target:
            when, _, callback = heapq.heappop(self._timers)
            self.now = when
            callback()
        self.now = target

    @property
    def pending_timers(self):
        return len(self._timers)


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture(autouse=True)
def engine(fake_time):
    with use_engine(Engine(clock=fake_time.clock, call_later=fake_time.call_later)) as engine:
        yield engine
