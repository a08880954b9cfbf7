"""Gated effects — throttled and clock-gated re-run policies.

throttled_effect(fn, window) runs fn at most once per window seconds. A
trigger inside the window only marks a pending change; the timer set at
the end of each run re-runs fn once the window elapses if anything changed
meanwhile, so the final state is always reflected.

clock_effect(fn, clock) runs fn only when clock.time has advanced since
the last run *and* a dependency changed. Its result is not guarded by the
signal stack, so effects may feed each other in a cycle; the tick is the
only thing that stops them from re-running.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from signalflow import _tracking
from signalflow._anchor import Engine, current_engine
from signalflow.observable import SignalObject, raw, signal
from signalflow.reaction import Computation, register, start

logger = logging.getLogger("signalflow.gated")


class Clock:
    """A tick source. Observe it with signal() and advance it with tick().

    Usage:
        clock = signal(Clock())
        clock_effect(render, clock)
        clock.tick()
    """

    def __init__(self, time: int = 0) -> None:
        self.time = time

    def tick(self) -> int:
        # Called through the Signal, so the write notifies.
        self.time += 1
        return self.time

    def __repr__(self) -> str:
        return f"Clock(time={self.time!r})"


class ThrottledComputation(Computation):
    """Computation that runs at most once per window."""

    __slots__ = ("window", "_until", "_has_change")

    def __init__(self, engine: Engine, fn: Callable, result: SignalObject, window: float) -> None:
        super().__init__(engine, fn, result)
        self.window = window
        self._until: float | None = None
        self._has_change = True

    def trigger(self) -> None:
        if self.destroyed:
            return
        self._check_cycle()
        if self._until is not None and self._until > self._engine.clock():
            self._has_change = True
            return
        self._run_throttled()

    def _run_throttled(self) -> None:
        try:
            self._run()
        finally:
            self._has_change = False
        self._until = self._engine.clock() + self.window
        self._engine.call_later(self.window, self._expire)

    def _expire(self) -> None:
        if self.destroyed or not self._has_change:
            return
        logger.debug("Window elapsed with pending change, re-running %r", self)
        self._check_cycle()
        self._run_throttled()


class ClockComputation(Computation):
    """Computation gated by an external tick counter."""

    __slots__ = ("clock", "_last_tick", "_has_changed")

    def __init__(self, engine: Engine, fn: Callable, result: SignalObject, clock: Any) -> None:
        super().__init__(engine, fn, result)
        self.clock = clock
        self._last_tick = -1
        self._has_changed = True

    def trigger(self) -> None:
        if self.destroyed:
            return
        if any(not self._is_tick(change) for change in self.context.values()):
            self._has_changed = True
        tick = raw(self.clock).time
        if self._last_tick >= tick:
            return
        if self._has_changed:
            self._run()
        else:
            self._last_tick = tick

    def _is_tick(self, change: Any) -> bool:
        return change.signal is self.clock and change.key == "time"

    def _run(self) -> None:
        engine = self._engine
        _tracking.clear_edges(engine, self)

        # Changes arriving while fn runs count towards the next tick.
        self._has_changed = False
        engine.compute_stack.append(self)
        try:
            # Tracked read: a tick re-triggers this computation.
            self._last_tick = self.clock.time
            value = self._invoke()
        finally:
            engine.compute_stack.pop()
        _tracking.when_settled(value, self._assign)


def throttled_effect(fn: Callable, window: float) -> Any:
    """Like effect(), but fn runs at most once every window seconds.

    Returns the result Signal.

    Usage:
        results = throttled_effect(lambda: search(query["text"]), 0.1)
    """
    engine = current_engine()
    result = register(engine, fn)
    return start(ThrottledComputation(engine, fn, result, window))


def clock_effect(fn: Callable, clock: Any) -> Any:
    """Like effect(), but fn only re-runs on the next tick of clock.

    clock is any object with a monotonically increasing `time` attribute,
    typically `signal(Clock())`. Returns the result Signal, shared with
    any other clock effect of the same fn.
    """
    engine = current_engine()
    result = register(engine, fn, guard=False)
    return start(ClockComputation(engine, fn, result, signal(clock)))
