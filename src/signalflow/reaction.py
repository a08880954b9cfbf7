"""Effects — computations that re-run when the data they read changes.

effect(fn) runs fn immediately and returns its result Signal; the value fn
returned is available as `result.current`. Every Signal key fn read during
its last run is a dependency, and a change to any of them re-runs fn.

Run algorithm for a Computation:
1. Reject the run if its result Signal is already on the signal stack
   (it is being triggered by its own output).
2. Clear all of its dependency edges.
3. Push itself on the compute stack and its result on the signal stack.
4. Call fn with (computation, compute_stack, signal_stack), as many of
   them as fn accepts.
5. Pop the compute stack, assign the result, pop the signal stack.

A coroutine returned by fn is started eagerly, so reads up to its first
suspension are tracked; the result is assigned when it finishes.

reaction(data_fn, effect_fn) splits tracking from side effects: data_fn is
tracked, effect_fn only fires when data_fn's value changes.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, TypeVar

from signalflow import _tracking
from signalflow._anchor import Engine, current_engine
from signalflow.action import untracked
from signalflow.errors import CyclicDependencyError, RecursiveCallError
from signalflow.observable import SignalObject, _differs, _wrap, is_signal

T = TypeVar("T")

logger = logging.getLogger("signalflow.reaction")


class Result:
    """Holder behind every result Signal."""

    def __init__(self) -> None:
        self.current = None

    def __repr__(self) -> str:
        return f"Result(current={self.current!r})"


def _arity(fn: Callable) -> int:
    """How many of (computation, compute_stack, signal_stack) fn accepts."""
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return 0
    count = 0
    for param in params:
        if param.kind == param.VAR_POSITIONAL:
            return 3
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            count += 1
    return min(count, 3)


class Computation:
    """A re-runnable unit built from an effect function.

    context holds the changes delivered since the last run, keyed by the
    changed key. needs_update is the dirty flag set by notifications.
    """

    __slots__ = ("_engine", "fn", "result", "context", "needs_update", "destroyed", "_arity")

    def __init__(self, engine: Engine, fn: Callable, result: SignalObject) -> None:
        self._engine = engine
        self.fn = fn
        self.result = result
        self.context: dict = {}
        self.needs_update = False
        self.destroyed = False
        self._arity = _arity(fn)

    def trigger(self) -> None:
        """Called when a dependency changed. Subclasses gate re-runs here."""
        if self.destroyed:
            return
        self._run()

    def clear_context(self) -> None:
        self.context = {}
        self.needs_update = False

    def _check_cycle(self) -> None:
        if any(s is self.result for s in self._engine.signal_stack):
            logger.debug("Rejected cyclic run of %r", self)
            raise CyclicDependencyError(
                f"Cyclic dependency in effect {_name(self.fn)}", self.fn
            )

    def _invoke(self) -> Any:
        engine = self._engine
        args = (self, engine.compute_stack, engine.signal_stack)[: self._arity]
        return _tracking.start_awaitable(self.fn(*args))

    def _run(self) -> None:
        engine = self._engine
        self._check_cycle()
        _tracking.clear_edges(engine, self)

        engine.compute_stack.append(self)
        engine.signal_stack.append(self.result)
        try:
            try:
                value = self._invoke()
            finally:
                engine.compute_stack.pop()
            _tracking.when_settled(value, self._assign)
        finally:
            engine.signal_stack.pop()

    def _assign(self, value: Any) -> None:
        if not self.destroyed:
            self.result.current = value

    def __repr__(self) -> str:
        state = "destroyed" if self.destroyed else "active"
        return f"{type(self).__name__}({_name(self.fn)}, {state})"


def _name(fn: Callable) -> str:
    return getattr(fn, "__name__", type(fn).__name__)


def _new_result(engine: Engine) -> SignalObject:
    return _wrap(Result(), engine)


def register(engine: Engine, fn: Callable, *, guard: bool = True) -> SignalObject:
    """Claim fn for a new computation and return its result Signal.

    With guard, a fn that already has a live effect is rejected.
    """
    if guard:
        if fn in engine.active_fns:
            raise RecursiveCallError(f"Recursive effect() call for {_name(fn)}", fn)
        engine.active_fns.add(fn)
    result = engine.results.get(fn)
    if result is None:
        result = engine.results[fn] = _new_result(engine)
    return result


def release(engine: Engine, computation: Computation) -> None:
    """Detach computation from the graph and forget its function."""
    computation.destroyed = True
    _tracking.clear_edges(engine, computation)
    engine.pending.pop(computation, None)
    engine.active_fns.discard(computation.fn)
    if engine.results.get(computation.fn) is computation.result:
        del engine.results[computation.fn]
    if engine.computations.get(computation.result._signal_id) is computation:
        del engine.computations[computation.result._signal_id]


def start(computation: Computation) -> SignalObject:
    """Index computation by its result and run it for the first time."""
    engine = computation._engine
    engine.computations[computation.result._signal_id] = computation
    logger.debug("Starting %r", computation)
    try:
        computation.trigger()
    except BaseException:
        release(engine, computation)
        raise
    return computation.result


def effect(fn: Callable[..., T]) -> Any:
    """Run fn now and again whenever anything it read changes.

    Returns the result Signal; `result.current` holds fn's latest return
    value.

    Usage:
        state = signal({"v": 1})
        doubled = effect(lambda: state["v"] * 2)
        state["v"] = 5
        assert doubled.current == 10
    """
    engine = current_engine()
    result = register(engine, fn)
    return start(Computation(engine, fn, result))


def destroy(result: Any) -> None:
    """Detach the computation behind a result Signal. Unknown results are ignored."""
    if not is_signal(result):
        return
    engine = result._signal_engine
    computation = engine.computations.get(result._signal_id)
    if computation is None:
        return
    logger.debug("Destroying %r", computation)
    release(engine, computation)


class _DataReaction:
    """Internal: reaction(data_fn, effect_fn) implementation.

    Tracks data_fn's dependencies. When they change, re-runs data_fn.
    If the result differs from last time, calls effect_fn with the new value
    outside of tracking.
    """

    __slots__ = ("data_fn", "effect_fn", "fire_immediately", "last_value", "initialized")

    def __init__(self, data_fn: Callable, effect_fn: Callable, fire_immediately: bool) -> None:
        self.data_fn = data_fn
        self.effect_fn = effect_fn
        self.fire_immediately = fire_immediately
        self.last_value = None
        self.initialized = False

    def __call__(self, computation: Computation) -> Any:
        value = self.data_fn()
        if not self.initialized:
            self.initialized = True
            self.last_value = value
            if self.fire_immediately:
                self._fire(computation, value)
        elif _differs(value, self.last_value):
            self.last_value = value
            self._fire(computation, value)
        return value

    def _fire(self, computation: Computation, value: Any) -> None:
        untracked(lambda: self.effect_fn(value), engine=computation._engine)


def reaction(
    data_fn: Callable[[], T],
    effect_fn: Callable[[T], None],
    *,
    fire_immediately: bool = False,
) -> Any:
    """Track data_fn's signals; call effect_fn when the result changes.

    Unlike effect(), effect_fn only fires when data_fn's *return value*
    changes, not on every dependency notification. Returns the result
    Signal (pass it to destroy() to stop).

    Usage:
        person = signal({"first": "Alice", "last": "Smith"})

        names = []
        r = reaction(
            lambda: f"{person['first']} {person['last']}",
            names.append,
        )
        # names == [] — data_fn ran to establish deps, effect didn't fire

        person["first"] = "Bob"
        # names == ["Bob Smith"]

        destroy(r)
    """
    return effect(_DataReaction(data_fn, effect_fn, fire_immediately))
