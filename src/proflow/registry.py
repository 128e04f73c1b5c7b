"""Registry — named reactive values, created on first request.

make() hands a plain value to reactivate() the first time a name is seen and
returns the same reactive value on every later call, so independent parts of
an application can share one model by name.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from proflow.action import action
from proflow.core import Configuration, Value, core_of, reactivate
from proflow.sequence import ReactiveSequence

logger = logging.getLogger("proflow.registry")


class Registry:
    """Name-keyed store of reactivated values."""

    def __init__(self, config: Configuration | None = None) -> None:
        self._config = config
        self._values: dict[str, Any] = {}

    def make(self, name: str, value: Any, meta: Mapping | None = None) -> Any:
        """Create-or-fetch the reactive form of value under name."""
        existing = self._values.get(name)
        if existing is not None:
            return existing
        reactive = reactivate(value, meta, self._config)
        self._values[name] = reactive
        logger.info("Registered %r as %s", name, type(reactive).__name__)
        return reactive

    def get(self, name: str) -> Any:
        return self._values.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def names(self) -> list[str]:
        return list(self._values)

    @action
    def update(self, values: Mapping[str, Any]) -> None:
        """Write several registered Values at once; listeners run after the last write."""
        for name, value in values.items():
            target = self._values.get(name)
            if isinstance(target, Value):
                target.v = value
            elif target is None:
                raise KeyError(name)
            else:
                raise TypeError(f"{name!r} is not a Value, it can not be assigned directly")

    def destroy(self, name: str) -> None:
        """Destroy and forget one registered value."""
        reactive = self._values.pop(name)
        _destroy(reactive)
        logger.debug("Destroyed %r", name)

    def dispose(self, names: Iterable[str] | None = None) -> None:
        """Destroy every registered value (or only `names`)."""
        for name in list(names if names is not None else self._values):
            self.destroy(name)


def _destroy(reactive: Any) -> None:
    if isinstance(reactive, ReactiveSequence):
        reactive.destroy()
        return
    core = core_of(reactive)
    if core is not None:
        core.destroy()
