"""Reactions — side effects at the edge of the dependency graph.

Unlike a computed Container (which caches a value for other readers), a
Reaction only exists for its side effect. It re-runs whenever anything it read
during its last run notifies it, whether a Container, a host field or a
ReactiveSequence.

Two flavors:
- autorun(fn): runs fn immediately, re-runs when anything it read changes.
- reaction(data_fn, effect_fn): tracks data_fn, calls effect_fn with the new value
  only when data_fn's result changes.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from proflow._tracking import current_observer, release_stale
from proflow.container import same

T = TypeVar("T")


class Reaction:
    """A reactive side effect that re-runs when its dependencies change."""

    __slots__ = ("_fn", "_dependencies", "_disposed")

    def __init__(self, fn: Callable[[], None]) -> None:
        self._fn = fn
        self._dependencies: set = set()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _detach(self) -> None:
        for dep in list(self._dependencies):
            dep._remove_observer(self)
        self._dependencies.clear()

    def _track_call(self, fn: Callable):
        """Call fn with this reaction in the observer slot, re-capturing dependencies."""
        previous = self._dependencies
        self._dependencies = set()
        token = current_observer.set(self)
        try:
            return fn()
        finally:
            current_observer.reset(token)
            release_stale(self, previous)

    def _run(self, event=None) -> None:
        """Re-evaluate the reaction function."""
        if self._disposed:
            return
        self._track_call(self._fn)

    def dispose(self) -> None:
        """Stop this reaction. Disconnects from all dependencies."""
        self._disposed = True
        self._detach()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"{type(self).__name__}({getattr(self._fn, '__name__', '?')}, {state})"


class DataReaction(Reaction):
    """reaction(data_fn, effect_fn): re-runs data_fn on change, effect_fn on a new result."""

    __slots__ = ("_effect_fn", "_last_value")

    def __init__(self, data_fn: Callable[[], T], effect_fn: Callable[[T], None]) -> None:
        super().__init__(data_fn)
        self._effect_fn = effect_fn
        self._last_value = None

    def _run(self, event=None) -> None:
        if self._disposed:
            return
        new_value = self._track_call(self._fn)
        if not same(new_value, self._last_value):
            self._last_value = new_value
            self._effect_fn(new_value)


def autorun(fn: Callable[[], None]) -> Reaction:
    """Run fn immediately, then re-run whenever anything it reads changes.

    Returns the Reaction (call .dispose() to stop).

    Usage:
        point = reactivate({"x": 0})
        log = []

        r = autorun(lambda: log.append(point.x))
        # log == [0], ran immediately

        point.x = 1
        # log == [0, 1], x changed

        r.dispose()
        point.x = 2
        # log == [0, 1], stopped
    """
    r = Reaction(fn)
    r._run()  # Initial run to establish dependencies
    return r


def reaction(
    data_fn: Callable[[], T],
    effect_fn: Callable[[T], None],
    *,
    fire_immediately: bool = False,
) -> DataReaction:
    """Track data_fn's reads; call effect_fn when its result changes.

    Returns the reaction (call .dispose() to stop).

    Usage:
        person = reactivate({"first": "Alice", "last": "Smith"})
        effects = []
        r = reaction(
            lambda: f"{person.first} {person.last}",
            effects.append,
        )
        # effects == [], effect held back

        person.first = "Bob"
        # effects == ["Bob Smith"]
    """
    r = DataReaction(data_fn, effect_fn)
    if fire_immediately:
        r._last_value = r._track_call(data_fn)
        effect_fn(r._last_value)
    else:
        # Run data_fn to establish deps, but suppress the initial effect
        r._last_value = r._track_call(data_fn)
    return r
