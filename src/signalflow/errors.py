"""Errors raised by the reactive runtime. Both are programmer errors."""

from __future__ import annotations

from typing import Callable


class SignalFlowError(RuntimeError):
    """Base class for runtime errors. fn is the offending effect function."""

    def __init__(self, message: str, fn: Callable | None = None) -> None:
        super().__init__(message)
        self.fn = fn


class RecursiveCallError(SignalFlowError):
    """An effect function was registered again while its effect is still live."""


class CyclicDependencyError(SignalFlowError):
    """A computation was triggered, directly or transitively, by its own output."""
