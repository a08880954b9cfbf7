"""Signals — observable wrappers over plain Python containers.

signal(container) returns the one Signal for that container. Reads through
the Signal subscribe the running computation; writes through it notify the
subscribers of exactly the keys that changed.

Adapters per container kind:
- SignalObject: attribute access on user-defined aggregates
- SignalDict:   item access on dicts
- SignalList:   index access on lists, with diffing bulk mutators
- SignalSet:    membership on sets

Nested containers are wrapped lazily on read. Writes always store the raw
container, never a Signal.

Synthetic keys: ITERATE (key set / iteration order), LENGTH (list length)
and SIZE (set size).
"""

from __future__ import annotations

import inspect
import operator
import types
from typing import Any, Callable, Iterator, TypeVar

from signalflow._anchor import Engine, current_engine
from signalflow._tracking import begin_batch, end_batch, notify, record_read

T = TypeVar("T")


class _Key:
    """Synthetic dependency key that can never collide with a real one."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<{self.name}>"


ITERATE = _Key("iterate")
LENGTH = _Key("length")
SIZE = _Key("size")

MISSING: Any = _Key("missing")

_IMMUTABLE = (str, bytes, int, float, complex, bool, tuple, frozenset, range, type(None))


def _differs(old: Any, new: Any) -> bool:
    return old is not new and old != new


class Change:
    """One entry of a notification: key went from was to now."""

    __slots__ = ("signal", "key", "was", "now", "deleted")

    def __init__(
        self,
        signal: Signal,
        key: Any,
        was: Any = None,
        now: Any = None,
        deleted: bool = False,
    ) -> None:
        self.signal = signal
        self.key = key
        self.was = was
        self.now = now
        self.deleted = deleted

    def __repr__(self) -> str:
        if self.deleted:
            return f"Change({self.key!r}, was={self.was!r}, deleted)"
        return f"Change({self.key!r}, was={self.was!r}, now={self.now!r})"


_INTERNAL_PREFIX = "_signal_"


def _is_dunder(name: str) -> bool:
    return name.startswith("__") and name.endswith("__")


class Signal:
    """Base class for all container adapters.

    Everything the adapter keeps for itself is named with the `_signal_`
    prefix, so it never shadows an attribute of the wrapped object.
    """

    __slots__ = ("_signal_id", "_signal_raw", "_signal_engine")

    def __init__(self, raw: Any, engine: Engine) -> None:
        object.__setattr__(self, "_signal_id", engine.new_id())
        object.__setattr__(self, "_signal_raw", raw)
        object.__setattr__(self, "_signal_engine", engine)

    def _signal_track(self, key: Any) -> None:
        record_read(self, key)

    def _signal_notify(self, changes: dict) -> None:
        notify(self, changes)

    def _signal_output(self, value: Any) -> Any:
        """Wrap object-valued reads as child Signals."""
        if is_container(value):
            return _wrap(value, self._signal_engine)
        return value

    # Subclasses map these onto their storage.
    def _signal_load(self, key: Any) -> Any:
        raise NotImplementedError

    def _signal_store(self, key: Any, value: Any) -> None:
        raise NotImplementedError

    def _signal_remove(self, key: Any) -> None:
        raise NotImplementedError

    def _signal_set(self, key: Any, value: Any) -> None:
        """Write primitive: store value under key and notify if it changed."""
        value = raw(value)
        current = self._signal_load(key)
        changes = {}
        if _differs(current, value):
            self._signal_store(key, value)
            was = None if current is MISSING else current
            changes[key] = Change(self, key, was=was, now=value)
        if current is MISSING:
            changes[ITERATE] = Change(self, ITERATE)
        if changes:
            self._signal_notify(changes)

    def _signal_delete(self, key: Any) -> None:
        """Delete primitive: remove key if present and notify with its prior value."""
        current = self._signal_load(key)
        if current is MISSING:
            return
        self._signal_remove(key)
        self._signal_notify({
            key: Change(self, key, was=current, deleted=True),
            ITERATE: Change(self, ITERATE),
        })


class SignalObject(Signal):
    """Signal over a user-defined aggregate, intercepting attribute access.

    Plain functions defined on the aggregate's class come back bound to the
    Signal, so `self.attr` inside a method is tracked too.
    """

    __slots__ = ()

    def _signal_load(self, key: str) -> Any:
        return getattr(self._signal_raw, key, MISSING)

    def _signal_store(self, key: str, value: Any) -> None:
        setattr(self._signal_raw, key, value)

    def _signal_remove(self, key: str) -> None:
        delattr(self._signal_raw, key)

    def __getattribute__(self, name: str) -> Any:
        if name.startswith(_INTERNAL_PREFIX) or _is_dunder(name):
            return object.__getattribute__(self, name)
        return object.__getattribute__(self, "_signal_read")(name)

    def _signal_read(self, name: str) -> Any:
        self._signal_track(name)
        value = getattr(self._signal_raw, name)
        if callable(value):
            return self._signal_bind(name, value)
        return self._signal_output(value)

    def _signal_bind(self, name: str, value: Callable) -> Callable:
        instance_dict = getattr(self._signal_raw, "__dict__", {})
        if name in instance_dict:
            return value
        func = inspect.getattr_static(type(self._signal_raw), name, None)
        if isinstance(func, types.FunctionType):
            return types.MethodType(func, self)
        return value

    def __setattr__(self, name: str, value: Any) -> None:
        self._signal_set(name, value)

    def __delattr__(self, name: str) -> None:
        if self._signal_load(name) is MISSING:
            raise AttributeError(name)
        self._signal_delete(name)

    def __dir__(self) -> list[str]:
        self._signal_track(ITERATE)
        return dir(self._signal_raw)

    def __repr__(self) -> str:
        return f"SignalObject({self._signal_raw!r})"


class SignalDict(Signal):
    """Signal over a dict. Every key is a dependency of its own."""

    __slots__ = ()

    def _signal_load(self, key: Any) -> Any:
        return self._signal_raw.get(key, MISSING)

    def _signal_store(self, key: Any, value: Any) -> None:
        self._signal_raw[key] = value

    def _signal_remove(self, key: Any) -> None:
        del self._signal_raw[key]

    # --- Read operations (track) ---

    def __getitem__(self, key: Any) -> Any:
        self._signal_track(key)
        return self._signal_output(self._signal_raw[key])

    def get(self, key: Any, default: Any = None) -> Any:
        self._signal_track(key)
        if key in self._signal_raw:
            return self._signal_output(self._signal_raw[key])
        return default

    def __contains__(self, key: Any) -> bool:
        self._signal_track(key)
        return key in self._signal_raw

    def __len__(self) -> int:
        self._signal_track(ITERATE)
        return len(self._signal_raw)

    def __iter__(self) -> Iterator:
        self._signal_track(ITERATE)
        return iter(list(self._signal_raw))

    def __bool__(self) -> bool:
        self._signal_track(ITERATE)
        return bool(self._signal_raw)

    def __eq__(self, other: Any) -> bool:
        self._signal_track(ITERATE)
        for key in self._signal_raw:
            self._signal_track(key)
        return self._signal_raw == raw(other)

    def keys(self) -> list:
        self._signal_track(ITERATE)
        return list(self._signal_raw)

    def values(self) -> list:
        self._signal_track(ITERATE)
        result = []
        for key, value in self._signal_raw.items():
            self._signal_track(key)
            result.append(self._signal_output(value))
        return result

    def items(self) -> list[tuple]:
        self._signal_track(ITERATE)
        result = []
        for key, value in self._signal_raw.items():
            self._signal_track(key)
            result.append((key, self._signal_output(value)))
        return result

    # --- Write operations (notify) ---

    def __setitem__(self, key: Any, value: Any) -> None:
        self._signal_set(key, value)

    def __delitem__(self, key: Any) -> None:
        if key not in self._signal_raw:
            raise KeyError(key)
        self._signal_delete(key)

    def pop(self, key: Any, *default: Any) -> Any:
        if key in self._signal_raw:
            value = self._signal_raw[key]
            self._signal_delete(key)
            return value
        if default:
            return default[0]
        raise KeyError(key)

    def popitem(self) -> tuple:
        if not self._signal_raw:
            raise KeyError("popitem(): dictionary is empty")
        key = next(reversed(self._signal_raw))
        value = self._signal_raw[key]
        self._signal_delete(key)
        return key, value

    def setdefault(self, key: Any, default: Any = None) -> Any:
        self._signal_track(key)
        if key not in self._signal_raw:
            self._signal_set(key, default)
        return self._signal_output(self._signal_raw[key])

    def update(self, other: Any = (), **kwargs: Any) -> None:
        other = raw(other)
        pairs = other.items() if hasattr(other, "items") else other
        begin_batch(self._signal_engine)
        try:
            for key, value in pairs:
                self._signal_set(key, value)
            for key, value in kwargs.items():
                self._signal_set(key, value)
        finally:
            end_batch(self._signal_engine)

    def clear(self) -> None:
        begin_batch(self._signal_engine)
        try:
            for key in list(self._signal_raw):
                self._signal_delete(key)
        finally:
            end_batch(self._signal_engine)

    def __repr__(self) -> str:
        return f"SignalDict({self._signal_raw!r})"


class SignalList(Signal):
    """Signal over a list.

    Mutators compare the list before and after and notify each index whose
    value changed, LENGTH when the length changed, and ITERATE whenever
    anything changed.
    """

    __slots__ = ()

    def _index(self, index: Any) -> int:
        index = operator.index(index)
        if index < 0:
            self._signal_track(LENGTH)
            index += len(self._signal_raw)
        return index

    def _signal_load(self, key: int) -> Any:
        return self._signal_raw[key]

    def _signal_store(self, key: int, value: Any) -> None:
        self._signal_raw[key] = value

    def _mutate(self, op: Callable, *args: Any) -> Any:
        before = list(self._signal_raw)
        result = op(self._signal_raw, *args)
        self._emit_diff(before)
        return result

    def _emit_diff(self, before: list) -> None:
        after = self._signal_raw
        changes = {}
        for index in range(max(len(before), len(after))):
            was = before[index] if index < len(before) else MISSING
            now = after[index] if index < len(after) else MISSING
            if _differs(was, now):
                changes[index] = Change(
                    self,
                    index,
                    was=None if was is MISSING else was,
                    now=None if now is MISSING else now,
                    deleted=now is MISSING,
                )
        if len(before) != len(after):
            changes[LENGTH] = Change(self, LENGTH, was=len(before), now=len(after))
        if changes:
            changes[ITERATE] = Change(self, ITERATE)
            self._signal_notify(changes)

    # --- Read operations (track) ---

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            self._signal_track(ITERATE)
            return [self._signal_output(value) for value in self._signal_raw[index]]
        index = self._index(index)
        if index < 0:
            raise IndexError("list index out of range")
        self._signal_track(index)
        return self._signal_output(self._signal_raw[index])

    def __len__(self) -> int:
        self._signal_track(LENGTH)
        return len(self._signal_raw)

    def __iter__(self) -> Iterator:
        self._signal_track(ITERATE)
        return iter([self._signal_output(value) for value in self._signal_raw])

    def __contains__(self, item: Any) -> bool:
        self._signal_track(ITERATE)
        return raw(item) in self._signal_raw

    def __bool__(self) -> bool:
        self._signal_track(LENGTH)
        return bool(self._signal_raw)

    def __eq__(self, other: Any) -> bool:
        self._signal_track(ITERATE)
        return self._signal_raw == raw(other)

    def index(self, item: Any, *args: Any) -> int:
        self._signal_track(ITERATE)
        return self._signal_raw.index(raw(item), *args)

    def count(self, item: Any) -> int:
        self._signal_track(ITERATE)
        return self._signal_raw.count(raw(item))

    # --- Write operations (notify) ---

    def __setitem__(self, index: Any, value: Any) -> None:
        if isinstance(index, slice):
            self._mutate(list.__setitem__, index, [raw(v) for v in value])
            return
        index = operator.index(index)
        if index < 0:
            index += len(self._signal_raw)
        if not 0 <= index < len(self._signal_raw):
            raise IndexError("list assignment index out of range")
        # Through the diff so iteration and membership readers see it too.
        self._mutate(list.__setitem__, index, raw(value))

    def __delitem__(self, index: Any) -> None:
        self._mutate(list.__delitem__, index)

    def append(self, item: Any) -> None:
        self._mutate(list.append, raw(item))

    def extend(self, items: Any) -> None:
        self._mutate(list.extend, [raw(item) for item in items])

    def insert(self, index: int, item: Any) -> None:
        self._mutate(list.insert, index, raw(item))

    def pop(self, index: int = -1) -> Any:
        return self._mutate(list.pop, index)

    def remove(self, item: Any) -> None:
        self._mutate(list.remove, raw(item))

    def clear(self) -> None:
        self._mutate(list.clear)

    def sort(self, *, key: Callable | None = None, reverse: bool = False) -> None:
        self._mutate(lambda items: items.sort(key=key, reverse=reverse))

    def reverse(self) -> None:
        self._mutate(list.reverse)

    def __iadd__(self, items: Any) -> SignalList:
        self.extend(items)
        return self

    def __imul__(self, n: int) -> SignalList:
        self._mutate(list.__imul__, n)
        return self

    def __repr__(self) -> str:
        return f"SignalList({self._signal_raw!r})"


class SignalSet(Signal):
    """Signal over a set. Membership is tracked as ITERATE, len() as SIZE."""

    __slots__ = ()

    def _mutate(self, op: Callable, *args: Any) -> Any:
        before = set(self._signal_raw)
        result = op(self._signal_raw, *args)
        after = self._signal_raw
        changes = {}
        if len(before) != len(after):
            changes[SIZE] = Change(self, SIZE, was=len(before), now=len(after))
        if before != after:
            changes[ITERATE] = Change(self, ITERATE)
        if changes:
            self._signal_notify(changes)
        return result

    # --- Read operations (track) ---

    def __contains__(self, item: Any) -> bool:
        self._signal_track(ITERATE)
        return raw(item) in self._signal_raw

    def __iter__(self) -> Iterator:
        self._signal_track(ITERATE)
        return iter([self._signal_output(item) for item in self._signal_raw])

    def __len__(self) -> int:
        self._signal_track(SIZE)
        return len(self._signal_raw)

    def __bool__(self) -> bool:
        self._signal_track(SIZE)
        return bool(self._signal_raw)

    def __eq__(self, other: Any) -> bool:
        self._signal_track(ITERATE)
        return self._signal_raw == raw(other)

    def issubset(self, other: Any) -> bool:
        self._signal_track(ITERATE)
        return self._signal_raw.issubset(raw(other))

    def issuperset(self, other: Any) -> bool:
        self._signal_track(ITERATE)
        return self._signal_raw.issuperset(raw(other))

    def isdisjoint(self, other: Any) -> bool:
        self._signal_track(ITERATE)
        return self._signal_raw.isdisjoint(raw(other))

    def union(self, *others: Any) -> set:
        self._signal_track(ITERATE)
        return self._signal_raw.union(*(raw(o) for o in others))

    def intersection(self, *others: Any) -> set:
        self._signal_track(ITERATE)
        return self._signal_raw.intersection(*(raw(o) for o in others))

    def difference(self, *others: Any) -> set:
        self._signal_track(ITERATE)
        return self._signal_raw.difference(*(raw(o) for o in others))

    # --- Write operations (notify) ---

    def add(self, item: Any) -> None:
        self._mutate(set.add, raw(item))

    def discard(self, item: Any) -> None:
        self._mutate(set.discard, raw(item))

    def remove(self, item: Any) -> None:
        self._mutate(set.remove, raw(item))

    def pop(self) -> Any:
        return self._mutate(set.pop)

    def clear(self) -> None:
        self._mutate(set.clear)

    def update(self, *others: Any) -> None:
        self._mutate(set.update, *(raw(o) for o in others))

    def difference_update(self, *others: Any) -> None:
        self._mutate(set.difference_update, *(raw(o) for o in others))

    def intersection_update(self, *others: Any) -> None:
        self._mutate(set.intersection_update, *(raw(o) for o in others))

    def symmetric_difference_update(self, other: Any) -> None:
        self._mutate(set.symmetric_difference_update, raw(other))

    def __ior__(self, other: Any) -> SignalSet:
        self.update(other)
        return self

    def __iand__(self, other: Any) -> SignalSet:
        self.intersection_update(other)
        return self

    def __isub__(self, other: Any) -> SignalSet:
        self.difference_update(other)
        return self

    def __ixor__(self, other: Any) -> SignalSet:
        self.symmetric_difference_update(other)
        return self

    def __repr__(self) -> str:
        return f"SignalSet({self._signal_raw!r})"


def is_signal(value: Any) -> bool:
    return isinstance(value, Signal)


def raw(value: T) -> T:
    """The raw container behind a Signal; anything else is returned as-is."""
    if isinstance(value, Signal):
        return value._signal_raw
    return value


def is_container(value: Any) -> bool:
    """Whether a read value should come back wrapped as a child Signal."""
    if isinstance(value, (dict, list, set)):
        return True
    if isinstance(value, (_IMMUTABLE, types.ModuleType)) or callable(value):
        return False
    return hasattr(value, "__dict__")


def _adapter_for(value: Any) -> type[Signal]:
    if isinstance(value, dict):
        return SignalDict
    if isinstance(value, list):
        return SignalList
    if isinstance(value, set):
        return SignalSet
    if isinstance(value, _IMMUTABLE):
        raise TypeError(f"cannot observe immutable {type(value).__name__} value")
    return SignalObject


def _wrap(value: Any, engine: Engine) -> Signal:
    existing = engine.signals.get(id(value))
    if existing is not None:
        return existing
    wrapper = _adapter_for(value)(value, engine)
    engine.signals[id(value)] = wrapper
    return wrapper


def signal(value: Any) -> Any:
    """Return the Signal for value, creating it on first use.

    The same container always yields the same Signal, and a Signal passed
    in is returned unchanged.

    Usage:
        state = signal({"count": 0})
        assert signal(raw(state)) is state
    """
    if isinstance(value, Signal):
        return value
    return _wrap(value, current_engine())


wrap = signal
