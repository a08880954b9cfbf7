"""Data anchor — the Engine that holds all reactive state.

Every Signal and Computation belongs to exactly one Engine. The Engine owns
the signal registry, the dependency graph, the compute/signal stacks and the
batch bookkeeping. Behavior lives in _tracking, observable and reaction; this
module only stores data and hands out ids.

A default Engine exists per process. use_engine() swaps in another one for
the current context, which is how tests get isolated state.
"""

from __future__ import annotations

import asyncio
import contextvars
import itertools
import threading
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterator

if TYPE_CHECKING:
    from signalflow.observable import Signal
    from signalflow.reaction import Computation


class Engine:
    """Container for one independent reactive graph.

    All of an engine's computations run on one thread. Timers that fire
    elsewhere hand their callback to scheduler, which must run it on that
    thread (e.g. a Textual app's call_from_thread).
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        call_later: Callable[[float, Callable[[], None]], object] | None = None,
        scheduler: Callable[[Callable[[], None]], object] | None = None,
    ) -> None:
        self.clock = clock
        self.call_later = call_later or self._default_call_later
        self.scheduler = scheduler

        # id(raw container) -> Signal. The Signal keeps the raw container
        # alive, so the id stays unique for the engine's lifetime.
        self.signals: dict[int, Signal] = {}

        # (signal id, key) -> subscribed computations, insertion ordered
        self.listeners: dict[tuple, dict[Computation, None]] = {}
        # computation -> {(signal id, key)} it read during its last run
        self.edges: dict[Computation, set[tuple]] = {}

        self.compute_stack: list[Computation] = []
        self.signal_stack: list[Signal] = []

        self.batch_depth: int = 0
        self.pending: dict[Computation, None] = {}

        # Effect functions with a live computation (recursive-call guard)
        self.active_fns: set[Callable] = set()
        # effect function -> result Signal
        self.results: dict[Callable, Signal] = {}
        # result Signal id -> Computation
        self.computations: dict[int, Computation] = {}

        self._id_counter = itertools.count(1)

    def new_id(self) -> int:
        return next(self._id_counter)

    def _default_call_later(self, delay: float, callback: Callable[[], None]):
        """Schedule callback after delay seconds.

        Uses the running asyncio loop when there is one. Otherwise a daemon
        threading.Timer waits out the delay and passes callback to the
        scheduler.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if self.scheduler is None:
                raise RuntimeError(
                    "Timers need a running asyncio loop or a scheduler; "
                    "call set_scheduler() first"
                ) from None
            timer = threading.Timer(delay, self.scheduler, args=(callback,))
            timer.daemon = True
            timer.start()
            return timer
        return loop.call_later(delay, callback)

    def __repr__(self) -> str:
        return (
            f"Engine(signals={len(self.signals)}, "
            f"computations={len(self.computations)}, batch_depth={self.batch_depth})"
        )


_default_engine = Engine()

_current_engine: contextvars.ContextVar[Engine] = contextvars.ContextVar(
    "current_engine", default=_default_engine
)


def current_engine() -> Engine:
    """The Engine new signals and effects are created in."""
    return _current_engine.get()


@contextmanager
def use_engine(engine: Engine | None = None) -> Iterator[Engine]:
    """Install engine (or a fresh one) as the current Engine.

    Usage:
        with use_engine() as engine:
            s = signal({"v": 1})
            effect(lambda: s["v"])
    """
    engine = engine if engine is not None else Engine()
    token = _current_engine.set(engine)
    try:
        yield engine
    finally:
        _current_engine.reset(token)


def set_scheduler(scheduler: Callable[[Callable[[], None]], object], engine: Engine | None = None) -> None:
    """Set how timer callbacks get back onto the engine's thread.

    Call once from the main/UI thread:
        signalflow.set_scheduler(app.call_from_thread)
    """
    (engine or current_engine()).scheduler = scheduler
