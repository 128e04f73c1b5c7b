"""Reactive containers — one observable field each.

A plain container stores a value and notifies its listeners when a different
value is written. A computed container wraps a function: on first read it runs
the function with itself in the active-observer slot, so every container read
during that run registers it as a listener. When any of those dependencies
changes, it reruns eagerly and notifies its own listeners only if its result
changed.
"""

from __future__ import annotations

import enum
from typing import Any, Callable, Generic, TypeVar

from proflow._tracking import current_observer, marshal, release_stale, schedule, track
from proflow.errors import DestroyedError
from proflow.events import ValueEvent

T = TypeVar("T")


class State(enum.Enum):
    """Lifecycle of a Core or Container. ERROR and DESTROYED are terminal."""

    INIT = "init"
    READY = "ready"
    DESTROYED = "destroyed"
    ERROR = "error"


class Kind(enum.Enum):
    PLAIN = "plain"
    COMPUTED = "computed"


def same(a, b) -> bool:
    """Equality used to suppress no-op writes."""
    return a is b or a == b


class Container(Generic[T]):
    """An observable field with automatic dependency tracking."""

    __slots__ = (
        "name",
        "kind",
        "_value",
        "_previous",
        "_state",
        "_listeners",
        "_transforms",
        "_dependencies",
        "_fn",
        "_host",
    )

    def __init__(
        self,
        name: str = "v",
        value: T | None = None,
        *,
        fn: Callable[..., T] | None = None,
        host: Any = None,
    ) -> None:
        self.name = name
        self._value = value
        self._previous = None
        self._listeners: list = []
        self._transforms: list[Callable[[Any], Any]] = []
        self._dependencies: set = set()
        self._fn = fn
        self._host = host
        if fn is None:
            self.kind = Kind.PLAIN
            self._state = State.READY
        else:
            self.kind = Kind.COMPUTED
            self._state = State.INIT

    @property
    def state(self) -> State:
        return self._state

    @property
    def previous(self) -> T | None:
        return self._previous

    @property
    def listeners(self) -> tuple:
        return tuple(self._listeners)

    def get(self) -> T:
        """Read the value. If inside an observer's run, registers the dependency."""
        self._check_alive()
        track(self)
        if self.kind is Kind.COMPUTED and self._state is State.INIT:
            self._recompute()
        return self._value

    def set(self, value) -> None:
        """Write a new value. Auto-marshals from background threads."""
        marshal(lambda v=value: self._set_direct(v))

    def _set_direct(self, value) -> None:
        self._check_alive()
        if self.kind is Kind.COMPUTED:
            if not callable(value):
                raise TypeError(
                    f"computed field {self.name!r} can only be replaced by a callable, "
                    f"got {type(value).__name__}"
                )
            self._fn = value
            if self._state is State.READY:
                self._run(None)
            return

        for transform in self._transforms:
            value = transform(value)
        old = self._value
        if same(old, value):
            return
        self._previous = old
        self._value = value
        self._notify(ValueEvent(self, old, value))

    def add_listener(self, listener) -> None:
        """Register a callable(event), or an observer exposing _run(event)."""
        self._check_alive()
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass  # already removed

    def add_transform(self, transform: Callable[[Any], Any]) -> None:
        """Append a transform applied to every value written to this container."""
        self._transforms.append(transform)

    def destroy(self) -> None:
        """Disconnect from dependencies and listeners. Reads and writes raise afterwards."""
        for dep in list(self._dependencies):
            dep._remove_observer(self)
        self._dependencies.clear()
        self._listeners.clear()
        self._transforms.clear()
        self._state = State.DESTROYED

    # --- Observer protocol ---

    def _run(self, event) -> None:
        """Called by the flow when something this container listens to changed.

        Computed containers rerun and cascade if their result changed. A plain
        container listening to another container follows its value.
        """
        if self._state is not State.READY:
            return
        if self.kind is Kind.PLAIN:
            if isinstance(event, ValueEvent):
                self._set_direct(event.value)
            return

        old = self._value
        self._recompute()
        if not same(old, self._value):
            self._previous = old
            self._notify(ValueEvent(self, old, self._value))

    def _recompute(self) -> None:
        """Re-evaluate the function, re-capturing dependencies."""
        previous = self._dependencies
        self._dependencies = set()

        token = current_observer.set(self)
        try:
            value = self._fn(self._host) if self._host is not None else self._fn()
        except Exception:
            # Nothing cached: the next read retries.
            self._state = State.INIT
            raise
        finally:
            current_observer.reset(token)
            release_stale(self, previous)

        self._value = value
        self._state = State.READY

    def _notify(self, event) -> None:
        for listener in list(self._listeners):
            schedule(listener, event)

    def _add_observer(self, observer) -> None:
        if observer not in self._listeners:
            self._listeners.append(observer)

    def _remove_observer(self, observer) -> None:
        self.remove_listener(observer)

    def _check_alive(self) -> None:
        if self._state is State.DESTROYED:
            raise DestroyedError(f"container {self.name!r} has been destroyed")

    def __repr__(self) -> str:
        if self.kind is Kind.COMPUTED and self._state is State.INIT:
            return f"Container({self.name!r}, computed, unevaluated)"
        return f"Container({self.name!r}, {self.kind.value}, {self._value!r})"


def computed(fn: Callable[[], T]) -> Container[T]:
    """Decorator/factory to create a standalone computed Container.

    Usage:
        counter = Container("counter", 0)

        @computed
        def doubled():
            return counter.get() * 2

        doubled.get()  # 0
        counter.set(5)
        doubled.get()  # 10
    """
    return Container(getattr(fn, "__name__", "computed"), fn=fn)
