"""SignalFlow: fine-grained reactive state for Python."""

from importlib.metadata import version as _version

__version__ = _version("signalflow")

from signalflow._anchor import Engine, current_engine, set_scheduler, use_engine
from signalflow._tracking import get_pending_count
from signalflow.errors import SignalFlowError, RecursiveCallError, CyclicDependencyError
from signalflow.observable import (
    ITERATE,
    LENGTH,
    SIZE,
    Change,
    Signal,
    SignalDict,
    SignalList,
    SignalObject,
    SignalSet,
    is_signal,
    raw,
    signal,
    wrap,
)
from signalflow.action import action, batch, transaction, untracked
from signalflow.reaction import Computation, destroy, effect, reaction
from signalflow.gated import Clock, clock_effect, throttled_effect
# textual NOT auto-imported — opt-in only

__all__ = [
    "Engine",
    "current_engine",
    "use_engine",
    "set_scheduler",
    "get_pending_count",
    "SignalFlowError",
    "RecursiveCallError",
    "CyclicDependencyError",
    "ITERATE",
    "LENGTH",
    "SIZE",
    "Change",
    "Signal",
    "SignalDict",
    "SignalList",
    "SignalObject",
    "SignalSet",
    "is_signal",
    "raw",
    "signal",
    "wrap",
    "action",
    "batch",
    "transaction",
    "untracked",
    "Computation",
    "destroy",
    "effect",
    "reaction",
    "Clock",
    "clock_effect",
    "throttled_effect",
]
