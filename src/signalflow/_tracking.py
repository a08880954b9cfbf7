"""Dependency tracking engine — the heart of SignalFlow.

Every read of a Signal goes through record_read(), every mutation through
notify(). Keeping a single funnel in each direction is what keeps the
dependency graph consistent.

The graph is indexed both ways: (signal, key) -> computations for
notification, computation -> (signal, key) edges for clearing at the start
of each run.

Batching: notifications raised inside batch()/transaction() accumulate in
engine.pending and drain once when the outermost scope exits, so each
computation runs at most once per batch.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable

from signalflow._anchor import Engine, current_engine

if TYPE_CHECKING:
    from signalflow.observable import Change, Signal
    from signalflow.reaction import Computation

logger = logging.getLogger("signalflow.tracking")


def active_computation(engine: Engine) -> Computation | None:
    """The computation currently running in engine, if any."""
    return engine.compute_stack[-1] if engine.compute_stack else None


def record_read(signal: Signal, key: Any) -> None:
    """Subscribe the running computation to (signal, key)."""
    engine = signal._signal_engine
    if not engine.compute_stack:
        return
    computation = engine.compute_stack[-1]
    edge = (signal._signal_id, key)
    engine.listeners.setdefault(edge, {})[computation] = None
    engine.edges.setdefault(computation, set()).add(edge)


def clear_edges(engine: Engine, computation: Computation) -> None:
    """Drop every subscription computation holds, via the reverse index."""
    for edge in engine.edges.pop(computation, ()):
        subscribers = engine.listeners.get(edge)
        if subscribers is None:
            continue
        subscribers.pop(computation, None)
        if not subscribers:
            del engine.listeners[edge]


def listeners_for(signal: Signal, key: Any) -> list[Computation]:
    """Snapshot of the computations subscribed to (signal, key)."""
    return list(signal._signal_engine.listeners.get((signal._signal_id, key), ()))


def notify(signal: Signal, changes: dict[Any, Change]) -> None:
    """Deliver changes to every subscriber of the changed keys.

    Outside a batch the affected computations run now, in listener order.
    Inside a batch they are merged into the pending set.
    """
    engine = signal._signal_engine
    wave: dict[Computation, None] = {}
    for key, change in changes.items():
        for listener in listeners_for(signal, key):
            listener.context[key] = change
            listener.needs_update = True
            wave[listener] = None
    if not wave:
        return

    if engine.batch_depth > 0:
        engine.pending.update(wave)
    else:
        _run_listeners(engine, wave)


def _run_listeners(engine: Engine, listeners: Iterable[Computation]) -> None:
    current = active_computation(engine)
    for listener in list(listeners):
        # A listener re-run earlier in this wave has already cleared its flag.
        if listener is not current and listener.needs_update:
            listener.trigger()
        listener.clear_context()


def begin_batch(engine: Engine) -> None:
    """Enter a batching scope. Nested batches are supported."""
    engine.batch_depth += 1


def end_batch(engine: Engine) -> None:
    """Exit a batching scope. When the outermost scope exits, flush pending computations."""
    engine.batch_depth -= 1
    if engine.batch_depth == 0:
        _flush_pending(engine)


def _flush_pending(engine: Engine) -> None:
    """Run all pending computations. Handles computations scheduled during flush."""
    while engine.pending:
        # Snapshot and clear — computations may schedule new ones during run.
        batch = list(engine.pending)
        engine.pending.clear()
        logger.debug("Draining batch of %d computation(s)", len(batch))
        _run_listeners(engine, batch)


def get_pending_count(engine: Engine | None = None) -> int:
    """Number of computations waiting for the current batch to close."""
    return len((engine or current_engine()).pending)


def start_awaitable(value: Any) -> Any:
    """Turn an awaitable result into a running future.

    Coroutines are started eagerly, so everything up to their first
    suspension runs right now, inside whatever tracking scope is active.
    Non-awaitable values are returned unchanged.
    """
    if inspect.iscoroutine(value):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            value.close()
            raise
        return asyncio.eager_task_factory(loop, value)
    if inspect.isawaitable(value):
        return asyncio.ensure_future(value)
    return value


def when_settled(value: Any, callback: Callable[[Any], None]) -> bool:
    """Call callback with value, or with its result once it completes.

    value must already have passed through start_awaitable(). Returns True
    when the callback was deferred.
    """
    if not isinstance(value, asyncio.Future):
        callback(value)
        return False
    if value.done():
        callback(value.result())
        return False

    def _done(future: asyncio.Future) -> None:
        if future.cancelled():
            logger.debug("Awaitable result was cancelled; nothing assigned")
            return
        callback(future.result())

    value.add_done_callback(_done)
    return True
