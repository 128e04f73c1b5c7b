"""Push-based event streams with transform chains and buffering.

trigger() runs a value through the stream's transform chain and pushes each
result to every subscriber. map/filter/debounce/bufferit return new streams
(immutable chain); dispose() tears down the entire chain.

Buffered streams withhold triggered values until a release condition holds,
then replay them through the base trigger in arrival order.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Iterable, TypeVar

from proflow.errors import BufferSizeError

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]


class _Skip:
    def __repr__(self) -> str:
        return "SKIP"


# Returned by a transform to drop the value.
SKIP = _Skip()


class Many(tuple):
    """Returned by a transform to emit several values in place of one."""

    def __new__(cls, values: Iterable = ()):
        return super().__new__(cls, values)


def apply_transforms(transforms: Iterable[Callable], value) -> list:
    """Run value through the chain. Returns the (possibly empty) list of outputs."""
    values = [value]
    for transform in transforms:
        produced = []
        for current in values:
            result = transform(current)
            if result is SKIP:
                continue
            if isinstance(result, Many):
                produced.extend(result)
            else:
                produced.append(result)
        values = produced
        if not values:
            break
    return values


class EventStream(Generic[T]):
    """Push-based event stream with operator chaining."""

    def __init__(
        self,
        source: EventStream | None = None,
        transforms: Iterable[Callable] | None = None,
    ) -> None:
        self._subscribers: list[Callable[[T], None]] = []
        self._transforms: list[Callable] = list(transforms or [])
        self._children: list[EventStream] = []  # downstream streams for dispose
        self._disposed = False
        self._parent_disposer: Disposer | None = None
        self._source_disposer: Disposer | None = None
        if source is not None:
            self._parent_disposer = source._track_child(self)
            self._source_disposer = source.subscribe(self.trigger)

    def trigger(self, value, use_transforms: bool = True) -> None:
        """Push a value to all subscribers, through the transforms unless told otherwise."""
        if self._disposed:
            return
        values = apply_transforms(self._transforms, value) if use_transforms else [value]
        # Subscribers added or removed while delivering do not affect this call.
        subscribers = list(self._subscribers)
        for result in values:
            for cb in subscribers:
                cb(result)

    emit = trigger

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        """Register a callback. Returns a function that removes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def add_transform(self, transform: Callable[[Any], Any]) -> EventStream[T]:
        """Append a transform to this stream's chain. Returns self."""
        self._transforms.append(transform)
        return self

    def debounce(self, seconds: float) -> EventStream[T]:
        """Coalesce rapid events — emit after quiet period.

        Uses threading.Timer (daemon=True). Each new event cancels the
        previous timer, so only the last event in a burst fires.
        """
        child: EventStream[T] = EventStream()
        child._parent_disposer = self._track_child(child)
        timer_lock = threading.Lock()
        timer_ref: list[threading.Timer | None] = [None]

        def _on_event(value: T) -> None:
            with timer_lock:
                if timer_ref[0] is not None:
                    timer_ref[0].cancel()
                t = threading.Timer(seconds, child.trigger, args=[value])
                t.daemon = True
                timer_ref[0] = t
                t.start()

        child._source_disposer = self.subscribe(_on_event)
        return child

    def map(self, fn: Callable[[T], U]) -> EventStream[U]:
        """Transform events through fn."""
        return EventStream(self, [fn])

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        return EventStream(self, [lambda v: v if fn(v) else SKIP])

    def bufferit(self, size: int) -> SizeBufferedStream[T]:
        """A stream fed by this one that releases values in groups of `size`."""
        return SizeBufferedStream(size, source=self)

    def dispose(self) -> None:
        """Tear down this stream and all downstream children."""
        self._disposed = True
        self._subscribers.clear()
        for child in list(self._children):
            child.dispose()
        self._children.clear()
        if self._source_disposer is not None:
            self._source_disposer()
            self._source_disposer = None
        if self._parent_disposer is not None:
            self._parent_disposer()
            self._parent_disposer = None

    def _track_child(self, child: EventStream) -> Disposer:
        """Register child for dispose propagation. Returns a disposer that removes it."""
        self._children.append(child)

        def _remove() -> None:
            try:
                self._children.remove(child)
            except ValueError:
                pass

        return _remove


class BufferedStream(EventStream[T]):
    """A stream that holds triggered values until flush() releases them."""

    def __init__(
        self,
        source: EventStream | None = None,
        transforms: Iterable[Callable] | None = None,
    ) -> None:
        self.buffer: list[tuple[Any, bool]] = []
        super().__init__(source, transforms)

    def trigger(self, value, use_transforms: bool = True) -> None:
        if self._disposed:
            return
        self.buffer.append((value, use_transforms))

    emit = trigger

    def flush(self) -> None:
        """Replay every buffered value in arrival order, then empty the buffer."""
        pending, self.buffer = self.buffer, []
        for value, use_transforms in pending:
            EventStream.trigger(self, value, use_transforms)

    def dispose(self) -> None:
        self.buffer.clear()
        super().dispose()


class SizeBufferedStream(BufferedStream[T]):
    """A buffered stream that flushes whenever it holds `capacity` values.

    Usage:
        stream = SizeBufferedStream(3)
        stream.subscribe(print)
        stream.trigger("a")
        stream.trigger("b")   # nothing printed yet
        stream.trigger("c")   # prints a, b, c
    """

    def __init__(
        self,
        capacity: int,
        source: EventStream | None = None,
        transforms: Iterable[Callable] | None = None,
    ) -> None:
        if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity <= 0:
            raise BufferSizeError(
                f"SizeBufferedStream must contain a positive size, got {capacity!r}"
            )
        self.capacity = capacity
        super().__init__(source, transforms)

    def trigger(self, value, use_transforms: bool = True) -> None:
        if self._disposed:
            return
        self.buffer.append((value, use_transforms))
        if len(self.buffer) == self.capacity:
            self.flush()

    emit = trigger
