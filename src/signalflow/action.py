"""Batches, actions, transactions and untracked reads.

Mutations made inside batch(), an @action or `with transaction()` defer
all effect re-runs until the outermost scope exits. Each affected effect
then runs once, however many of its dependencies changed.

untracked(fn) runs fn with dependency recording switched off.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

from signalflow._anchor import Engine, current_engine
from signalflow._tracking import begin_batch, end_batch, start_awaitable

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger("signalflow.action")


def batch(fn: Callable[[], R]) -> R:
    """Run fn with notifications coalesced until it returns.

    If fn returns a coroutine or other awaitable, the batch stays open
    until it settles and the running task is returned instead.

    Usage:
        point = signal({"x": 0, "y": 0})
        effect(lambda: print(point["x"], point["y"]))

        def move():
            point["x"] = 1
            point["y"] = 2

        batch(move)  # prints "1 2" once
    """
    engine = current_engine()
    begin_batch(engine)
    deferred = False
    try:
        result = start_awaitable(fn())
        if isinstance(result, asyncio.Future) and not result.done():
            logger.debug("Batch held open until %r settles", result)
            result.add_done_callback(lambda _: end_batch(engine))
            deferred = True
        return result
    finally:
        if not deferred:
            end_batch(engine)


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: batch all signal mutations inside fn.

    Effects only re-run after fn returns, not during.

    Usage:
        counters = signal({"a": 0, "b": 0})

        @action
        def swap():
            counters["a"], counters["b"] = counters["b"], counters["a"]
            # effects see both changes at once, not one at a time
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return batch(lambda: fn(*args, **kwargs))

    return wrapper


@contextmanager
def transaction() -> Iterator[None]:
    """Context manager for batching mutations.

    Usage:
        with transaction():
            point["x"] = 1
            point["y"] = 2
            # effects re-run here, after both are set
    """
    engine = current_engine()
    begin_batch(engine)
    try:
        yield
    finally:
        end_batch(engine)


def untracked(fn: Callable[[], R], *, engine: Engine | None = None) -> R:
    """Call fn without recording any dependencies.

    The compute stack of engine (default: the current one) is emptied for
    the duration of fn and restored on every exit path.
    """
    stack = (engine or current_engine()).compute_stack
    saved = stack[:]
    del stack[:]
    try:
        return fn()
    finally:
        stack[:] = saved
