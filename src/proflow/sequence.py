"""Reactive sequences — lists that track their readers and describe their changes.

Any read operation (indexing, iteration, len, searching) registers the active
observer on both the "index" and "length" topics. Every mutation is applied to
the backing list first and then announced as exactly one ChangeRecord.

Derived sequences (map/filter/slice/concat) subscribe to their source and
translate each incoming ChangeRecord into a patch of their own contents, so
they stay consistent without being rebuilt.
"""

from __future__ import annotations

import functools
import json
import sys
from typing import Any, Callable, Generic, Iterable, Iterator, TypeVar

from proflow._tracking import schedule, track
from proflow.container import State, same
from proflow.diff import diff
from proflow.errors import DestroyedError
from proflow.events import ChangeRecord, Operation, ValueEvent

T = TypeVar("T")
U = TypeVar("U")

INDEX = "index"
LENGTH = "length"
TOPICS = (INDEX, LENGTH)

Disposer = Callable[[], None]

_MISSING = object()


def topic_of(record: ChangeRecord) -> str:
    """Which listener topic a record is broadcast on."""
    if record.op in (Operation.SET, Operation.REVERSE, Operation.SORT):
        return INDEX
    if record.op is Operation.SPLICE and len(record.removed) == len(record.added):
        return INDEX
    return LENGTH


class IndexContainer:
    """The reactive handle of one position in a ReactiveSequence."""

    __slots__ = ("_sequence", "index", "_listeners", "_state")

    def __init__(self, sequence: ReactiveSequence, index: int) -> None:
        self._sequence = sequence
        self.index = index
        self._listeners: list = []
        self._state = State.READY

    @property
    def state(self) -> State:
        return self._state

    def get(self):
        self._check_alive()
        return self._sequence[self.index]

    def set(self, value) -> None:
        self._check_alive()
        self._sequence[self.index] = value

    def add_listener(self, listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def destroy(self) -> None:
        self._listeners.clear()
        self._state = State.DESTROYED

    def _notify(self, event: ValueEvent) -> None:
        for listener in list(self._listeners):
            schedule(listener, event)

    def _check_alive(self) -> None:
        if self._state is State.DESTROYED:
            raise DestroyedError(f"index container {self.index} has been destroyed")

    def __repr__(self) -> str:
        return f"IndexContainer({self.index}, {self._state.value})"


class SequenceCore:
    """Listener registry and per-index containers of one ReactiveSequence."""

    def __init__(self, sequence: ReactiveSequence) -> None:
        self.sequence = sequence
        self.containers: list[IndexContainer] = []
        self.listeners: dict[str, list] = {INDEX: [], LENGTH: []}
        # Translators of derived sequences. Called synchronously, before listeners.
        self._derived: list[Callable[[ChangeRecord], None]] = []
        self._state = State.READY

    @property
    def state(self) -> State:
        return self._state

    def on(self, listener, topic: str | None = None) -> None:
        """Register a listener on one topic, or on both when topic is None."""
        for name in _topics(topic):
            if listener not in self.listeners[name]:
                self.listeners[name].append(listener)

    def off(self, listener, topic: str | None = None) -> None:
        for name in _topics(topic):
            try:
                self.listeners[name].remove(listener)
            except ValueError:
                pass

    def _resize(self, length: int) -> None:
        """Create or destroy index containers until there is one per element."""
        while len(self.containers) < length:
            self.containers.append(IndexContainer(self.sequence, len(self.containers)))
        while len(self.containers) > length:
            self.containers.pop().destroy()

    def _update(self, record: ChangeRecord) -> None:
        for translate in list(self._derived):
            translate(record)
        for listener in list(self.listeners[topic_of(record)]):
            schedule(listener, record)

    def destroy(self) -> None:
        for container in self.containers:
            container.destroy()
        self.containers.clear()
        for name in TOPICS:
            self.listeners[name].clear()
        self._derived.clear()
        self._state = State.DESTROYED

    def __repr__(self) -> str:
        return f"SequenceCore({len(self.containers)} indices, {self._state.value})"


def _topics(topic: str | None) -> tuple[str, ...]:
    if topic is None:
        return TOPICS
    if topic not in TOPICS:
        raise ValueError(f"unknown topic {topic!r}, expected one of {TOPICS}")
    return (topic,)


class ReactiveSequence(Generic[T]):
    """An observable list that tracks reads and records every mutation."""

    __slots__ = ("_items", "_core", "_subscriptions")

    def __init__(self, items: Iterable[T] | None = None) -> None:
        self._items: list[T] = list(items) if items is not None else []
        self._core = SequenceCore(self)
        self._core._resize(len(self._items))
        # (source, translator) pairs this sequence is derived through.
        self._subscriptions: list[tuple[ReactiveSequence, Callable]] = []

    # --- Host boundary ---

    @property
    def __core__(self) -> SequenceCore:
        return self._core

    @property
    def core(self) -> SequenceCore:
        return self._core

    def p(self, index: int | str | None = None):
        """Return the SequenceCore, or the IndexContainer at `index`."""
        if index is None or index == "*":
            return self._core
        return self._core.containers[self._normalize(index)]

    def subscribe(self, listener, topic: str | None = None) -> Disposer:
        """Register a listener for ChangeRecords. Returns a function that removes it."""
        self._check_alive()
        self._core.on(listener, topic)

        def _unsubscribe() -> None:
            self._core.off(listener, topic)

        return _unsubscribe

    # --- Observer protocol ---

    def _track(self) -> None:
        """Register current observer as a dependent of every index and the length."""
        self._check_alive()
        track(self)

    def _add_observer(self, observer) -> None:
        self._core.on(observer)

    def _remove_observer(self, observer) -> None:
        self._core.off(observer)

    # --- Read operations (track) ---

    def __getitem__(self, index):
        self._track()
        return self._items[index]

    def __len__(self) -> int:
        self._track()
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        self._track()
        return iter(self._items)

    def __contains__(self, item) -> bool:
        self._track()
        return item in self._items

    def __bool__(self) -> bool:
        self._track()
        return bool(self._items)

    def __eq__(self, other) -> bool:
        self._track()
        if isinstance(other, ReactiveSequence):
            return self._items == other._items
        if isinstance(other, (list, tuple)):
            return self._items == list(other)
        return NotImplemented

    # Observers keep their dependencies in sets.
    __hash__ = object.__hash__

    def index(self, value, start: int = 0, stop: int = sys.maxsize) -> int:
        self._track()
        return self._items.index(value, start, stop)

    def count(self, value) -> int:
        self._track()
        return self._items.count(value)

    def reduce(self, fn: Callable[[Any, T], Any], initial=_MISSING):
        """Fold left to right, like functools.reduce."""
        self._track()
        if initial is _MISSING:
            return functools.reduce(fn, self._items)
        return functools.reduce(fn, self._items, initial)

    def reduce_right(self, fn: Callable[[Any, T], Any], initial=_MISSING):
        """Fold right to left."""
        self._track()
        items = self._items[::-1]
        if initial is _MISSING:
            return functools.reduce(fn, items)
        return functools.reduce(fn, items, initial)

    def every(self, predicate: Callable[[T], bool]) -> bool:
        self._track()
        return all(predicate(item) for item in self._items)

    def some(self, predicate: Callable[[T], bool]) -> bool:
        self._track()
        return any(predicate(item) for item in self._items)

    def join(self, separator: str = ",") -> str:
        self._track()
        return separator.join(str(item) for item in self._items)

    def to_list(self) -> list:
        """Plain snapshot, nested reactive sequences included."""
        self._track()
        return [
            item.to_list() if isinstance(item, ReactiveSequence) else item
            for item in self._items
        ]

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_list(), **kwargs)

    # --- Write operations (record) ---

    def append(self, item: T) -> None:
        self._insert_items(len(self._items), [item])

    def extend(self, items: Iterable[T]) -> None:
        self._insert_items(len(self._items), list(items))

    def __iadd__(self, items: Iterable[T]) -> ReactiveSequence[T]:
        self.extend(items)
        return self

    def prepend(self, *items: T) -> None:
        """Insert items at the front, keeping their order."""
        self._insert_items(0, list(items))

    def insert(self, index: int, item: T) -> None:
        self._insert_items(_clamp(index, len(self._items)), [item])

    def pop(self, index: int = -1) -> T:
        """Remove and return the item at index (the last one by default)."""
        if not self._items:
            raise IndexError("pop from empty sequence")
        i = self._normalize(index)
        return self._remove_items(i, 1)[0]

    def shift(self) -> T:
        """Remove and return the first item."""
        return self.pop(0)

    def remove(self, value: T) -> None:
        self._remove_items(self._items.index(value), 1)

    def clear(self) -> None:
        self.splice(0)

    def __setitem__(self, index, value) -> None:
        if isinstance(index, slice):
            start, count = self._slice_range(index)
            self.splice(start, count, *value)
            return
        self._set_at(self._normalize(index), value)

    def __delitem__(self, index) -> None:
        if isinstance(index, slice):
            start, count = self._slice_range(index)
            self.splice(start, count)
            return
        self._remove_items(self._normalize(index), 1)

    def set_length(self, length: int) -> None:
        """Truncate, or grow by padding with None."""
        self._check_alive()
        if not isinstance(length, int) or isinstance(length, bool) or length < 0:
            raise ValueError(f"invalid sequence length {length!r}")
        current = len(self._items)
        if length == current:
            return
        if length < current:
            removed = tuple(self._items[length:])
            del self._items[length:]
            self._commit(ChangeRecord(Operation.SET_LENGTH, length, removed, ()))
        else:
            added = (None,) * (length - current)
            self._items.extend(added)
            self._commit(ChangeRecord(Operation.SET_LENGTH, length, (), added))

    def reverse(self) -> None:
        self._check_alive()
        if not self._items:
            return
        self._items.reverse()
        self._commit(ChangeRecord(Operation.REVERSE, None))

    def sort(self, *, key: Callable[[T], Any] | None = None, reverse: bool = False) -> None:
        self._check_alive()
        if key is not None and not callable(key):
            raise TypeError(f"sort key must be callable, got {type(key).__name__}")
        if not self._items:
            return
        # Sort a copy so a failing key leaves the storage untouched.
        ordered = sorted(self._items, key=key, reverse=reverse)
        self._items[:] = ordered
        self._commit(ChangeRecord(Operation.SORT, None, (), (key, reverse)))

    def splice(self, index: int, delete_count: int | None = None, *items: T) -> list[T]:
        """Remove delete_count items at index, insert items there, return the removed ones."""
        self._check_alive()
        if not isinstance(index, int):
            raise TypeError(f"splice index must be an int, got {type(index).__name__}")
        length = len(self._items)
        start = _clamp(index, length)
        if delete_count is None:
            count = length - start
        else:
            count = min(max(delete_count, 0), length - start)
        removed = tuple(self._items[start:start + count])
        if not removed and not items:
            return []
        self._items[start:start + count] = items
        self._commit(ChangeRecord(Operation.SPLICE, start, removed, tuple(items)))
        return list(removed)

    # --- Mutation primitives ---

    def _insert_items(self, index: int, items: list) -> None:
        self._check_alive()
        if not items:
            return
        self._items[index:index] = items
        self._commit(ChangeRecord(Operation.ADD, index, (), tuple(items)))

    def _remove_items(self, index: int, count: int) -> tuple:
        self._check_alive()
        removed = tuple(self._items[index:index + count])
        if not removed:
            return removed
        del self._items[index:index + count]
        self._commit(ChangeRecord(Operation.REMOVE, index, removed, ()))
        return removed

    def _set_at(self, index: int, value) -> None:
        self._check_alive()
        old = self._items[index]
        if same(old, value):
            return
        self._items[index] = value
        self._commit(ChangeRecord(Operation.SET, index, (old,), (value,)))
        self._core.containers[index]._notify(
            ValueEvent(self._core.containers[index], old, value)
        )

    def _commit(self, record: ChangeRecord) -> None:
        self._core._resize(len(self._items))
        self._core._update(record)

    def _update_by_diff(self, new_items: list) -> None:
        """Patch this sequence into new_items, one mutation per changed run."""
        patches = diff(self._items, new_items)
        # Only the last run can change the length, so ascending order keeps indices valid.
        for index in sorted(patches):
            old, new = patches[index]
            if not old:
                self._insert_items(index, new)
            elif not new:
                self._remove_items(index, len(old))
            elif len(old) == len(new) == 1:
                self._set_at(index, new[0])
            else:
                self.splice(index, len(old), *new)

    # --- Derived sequences ---

    def map(self, fn: Callable[[T], U]) -> ReactiveSequence[U]:
        """A sequence of fn(item) that follows this one."""
        if not callable(fn):
            raise TypeError(f"map function must be callable, got {type(fn).__name__}")
        mapped: ReactiveSequence[U] = ReactiveSequence(fn(item) for item in self._items)
        self._derive(mapped, _map_translator(self, mapped, fn))
        return mapped

    def filter(self, predicate: Callable[[T], bool]) -> ReactiveSequence[T]:
        """A sequence of the items passing predicate that follows this one."""
        if not callable(predicate):
            raise TypeError(f"filter predicate must be callable, got {type(predicate).__name__}")
        filtered: ReactiveSequence[T] = ReactiveSequence(
            item for item in self._items if predicate(item)
        )
        self._derive(filtered, _filter_translator(self, filtered, predicate))
        return filtered

    def slice(self, start: int | None = None, stop: int | None = None) -> ReactiveSequence[T]:
        """A sequence of self[start:stop] that follows this one."""
        window = slice(start, stop)
        sliced: ReactiveSequence[T] = ReactiveSequence(self._items[window])
        self._derive(sliced, _slice_translator(self, sliced, window))
        return sliced

    def concat(self, *others) -> ReactiveSequence:
        """This sequence followed by others, following every reactive operand.

        Lists, tuples and reactive sequences are spread; any other value is
        appended as a single item.
        """
        operands: list = [self]
        for other in others:
            if isinstance(other, ReactiveSequence):
                operands.append(other)
            elif isinstance(other, (list, tuple)):
                operands.append(tuple(other))
            else:
                operands.append((other,))
        result = ReactiveSequence(_concat_items(operands))
        for position, operand in enumerate(operands):
            if isinstance(operand, ReactiveSequence):
                operand._derive(result, _concat_translator(operands, position, result))
        return result

    def _derive(self, derived: ReactiveSequence, translator: Callable) -> None:
        self._core._derived.append(translator)
        derived._subscriptions.append((self, translator))

    def destroy(self) -> None:
        """Detach from source sequences and destroy every index container."""
        for source, translator in self._subscriptions:
            try:
                source._core._derived.remove(translator)
            except ValueError:
                pass  # source already destroyed
        self._subscriptions.clear()
        self._core.destroy()

    # --- Helpers ---

    def _normalize(self, index) -> int:
        if not isinstance(index, int) or isinstance(index, bool):
            raise TypeError(f"sequence indices must be integers, not {type(index).__name__}")
        length = len(self._items)
        i = index + length if index < 0 else index
        if not 0 <= i < length:
            raise IndexError("sequence index out of range")
        return i

    def _slice_range(self, index: slice) -> tuple[int, int]:
        start, stop, step = index.indices(len(self._items))
        if step != 1:
            raise ValueError("extended slices are not supported")
        return start, max(stop - start, 0)

    def _check_alive(self) -> None:
        if self._core.state is State.DESTROYED:
            raise DestroyedError("sequence has been destroyed")

    def __repr__(self) -> str:
        return f"ReactiveSequence({self._items!r})"


def _clamp(index: int, length: int) -> int:
    """Resolve an insertion index the way list.insert does."""
    if index < 0:
        return max(length + index, 0)
    return min(index, length)


# ─── Translators ─────────────────────────────────────────────────────────────


def _map_translator(source: ReactiveSequence, mapped: ReactiveSequence, fn: Callable):
    def translate(record: ChangeRecord) -> None:
        op = record.op
        if op is Operation.SET:
            mapped._set_at(record.index, fn(record.added[0]))
        elif op is Operation.ADD:
            mapped._insert_items(record.index, [fn(item) for item in record.added])
        elif op is Operation.REMOVE:
            mapped._remove_items(record.index, len(record.removed))
        elif op is Operation.SPLICE:
            mapped.splice(record.index, len(record.removed), *[fn(item) for item in record.added])
        elif op is Operation.SET_LENGTH:
            # Padding slots stay None, they are not mapped.
            mapped.set_length(record.index)
        elif op is Operation.REVERSE:
            mapped.reverse()
        else:
            mapped._update_by_diff([fn(item) for item in source._items])

    return translate


def _filter_translator(source: ReactiveSequence, filtered: ReactiveSequence, predicate: Callable):
    def translate(record: ChangeRecord) -> None:
        filtered._update_by_diff([item for item in source._items if predicate(item)])

    return translate


def _slice_translator(source: ReactiveSequence, sliced: ReactiveSequence, window: slice):
    def translate(record: ChangeRecord) -> None:
        if record.op is Operation.SET:
            start, stop, _ = window.indices(len(source._items))
            if start <= record.index < stop:
                sliced._set_at(record.index - start, record.added[0])
            return
        sliced._update_by_diff(source._items[window])

    return translate


def _operand_length(operand) -> int:
    return len(operand._items) if isinstance(operand, ReactiveSequence) else len(operand)


def _concat_items(operands: list) -> list:
    items: list = []
    for operand in operands:
        items.extend(operand._items if isinstance(operand, ReactiveSequence) else operand)
    return items


def _concat_translator(operands: list, position: int, result: ReactiveSequence):
    def translate(record: ChangeRecord) -> None:
        offset = sum(_operand_length(operand) for operand in operands[:position])
        op = record.op
        if op is Operation.SET:
            result._set_at(offset + record.index, record.added[0])
        elif op is Operation.ADD:
            result._insert_items(offset + record.index, list(record.added))
        elif op is Operation.REMOVE:
            result._remove_items(offset + record.index, len(record.removed))
        elif op is Operation.SPLICE:
            result.splice(offset + record.index, len(record.removed), *record.added)
        elif op is Operation.SET_LENGTH and record.removed:
            result._remove_items(offset + record.index, len(record.removed))
        elif op is Operation.SET_LENGTH:
            old_length = record.index - len(record.added)
            result._insert_items(offset + old_length, list(record.added))
        else:
            result._update_by_diff(_concat_items(operands))

    return translate


__all__ = [
    "INDEX",
    "LENGTH",
    "IndexContainer",
    "ReactiveSequence",
    "SequenceCore",
]
