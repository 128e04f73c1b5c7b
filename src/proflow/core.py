"""Reactivation of host values.

reactivate() turns a plain Python object into a reactive host in place: every
instance attribute moves into a Container held by the host's Core, and the
host's class is swapped for a generated subclass whose properties read and
write those containers. Code that reads `host.x` inside a computed field or a
reaction is therefore registered as a dependent of `x` without ever
subscribing explicitly.
"""

from __future__ import annotations

import functools
import logging
import types
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, Mapping, TypeVar

from proflow.container import Container, Kind, State
from proflow.errors import ReservedNameError
from proflow.sequence import ReactiveSequence

T = TypeVar("T")

logger = logging.getLogger("proflow.core")

CORE_ATTR = "__core__"

# Binder: receives a wired Container and attaches sources, listeners or transforms to it.
Binder = Callable[[Container], Any]


@dataclass(frozen=True)
class Configuration:
    """Options applied when a host is reactivated.

    accessors: install the retrieval accessor(s) on the host class.
    accessor_names: names the accessor is installed under; hosts may not
        have fields with these names.
    """

    accessors: bool = True
    accessor_names: tuple[str, ...] = ("p",)

    @property
    def reserved_names(self) -> frozenset[str]:
        names = set(self.accessor_names) if self.accessors else set()
        return frozenset(names | {CORE_ATTR})


DEFAULT_CONFIGURATION = Configuration()


class Core:
    """Per-host registry of Containers plus the host's lifecycle state."""

    def __init__(self, host: Any, config: Configuration = DEFAULT_CONFIGURATION) -> None:
        self.host = host
        self.config = config
        self.containers: dict[str, Container] = {}
        self._state = State.INIT

    @property
    def state(self) -> State:
        return self._state

    def __getitem__(self, name: str) -> Container:
        return self.containers[name]

    def __contains__(self, name: str) -> bool:
        return name in self.containers

    def __iter__(self):
        return iter(self.containers)

    def _wire(self, fields: Mapping[str, Any], meta: Mapping[str, Any] | None) -> None:
        """Build one Container per field and install the accessor class."""
        reserved = self.config.reserved_names
        for name in fields:
            if name in reserved:
                self._state = State.ERROR
                logger.warning("Reserved field name %r on %s", name, type(self.host).__name__)
                raise ReservedNameError(name)

        try:
            pass_host = getattr(type(self.host), "_pass_host", True)
            for name, value in fields.items():
                self.containers[name] = _make_container(
                    name, value, self.host if pass_host else None, self.config
                )
            self.host.__class__ = _accessor_class(type(self.host), tuple(fields), self.config)
            for name in fields:
                del vars(self.host)[name]
            for name, binders in (meta or {}).items():
                container = self.containers[name]
                if callable(binders):
                    binders = [binders]
                for binder in binders:
                    binder(container)
        except Exception:
            self._state = State.ERROR
            raise

        self._state = State.READY
        logger.debug(
            "Reactivated %s with fields %s", type(self.host).__name__, list(self.containers)
        )

    def snapshot(self) -> dict[str, Any]:
        """Current field values as a plain dict, nested reactive values unwrapped."""
        return {name: _plain(container.get()) for name, container in self.containers.items()}

    def destroy(self) -> None:
        """Destroy every Container. Field reads and writes raise afterwards."""
        if self._state is State.DESTROYED:
            return
        for container in self.containers.values():
            container.destroy()
        self._state = State.DESTROYED
        logger.debug("Destroyed core of %s", type(self.host).__name__)

    def __repr__(self) -> str:
        return f"Core({type(self.host).__name__}, {self._state.value}, {list(self.containers)})"


class ReactiveRecord:
    """Attribute-style host built from a mapping by reactivate()."""

    def __init__(self, fields: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        vars(self).update(fields or {}, **kwargs)

    def __repr__(self) -> str:
        core = vars(self).get(CORE_ATTR)
        if core is None:
            items = {k: v for k, v in vars(self).items()}
        else:
            items = {
                name: ("<computed>" if c.kind is Kind.COMPUTED else c._value)
                for name, c in core.containers.items()
            }
        body = ", ".join(f"{name}={value!r}" for name, value in items.items())
        return f"ReactiveRecord({body})"


class Value(Generic[T]):
    """A host with a single reactive field `v`.

    reactivate() wraps scalars and functions in a Value. A function becomes a
    computed field evaluated with no arguments.

    Usage:
        price = Value(10)
        total = Value(lambda: price.v * 2)
        total.v      # 20
        price.v = 4
        total.v      # 8
    """

    _pass_host = False

    def __init__(self, v: Any = None, *, config: Configuration | None = None) -> None:
        self.v = v
        reactivate(self, config=config)

    def __repr__(self) -> str:
        container = vars(self)[CORE_ATTR].containers["v"]
        if container.kind is Kind.COMPUTED:
            return f"Value(<computed {container.state.value}>)"
        return f"Value({container._value!r})"


# Values that become computed fields. Other callables are ordinary values.
_FUNCTION_TYPES = (
    types.FunctionType,
    types.MethodType,
    types.BuiltinFunctionType,
    functools.partial,
)


def _is_function(value: Any) -> bool:
    return isinstance(value, _FUNCTION_TYPES)


def _make_container(name: str, value: Any, host: Any, config: Configuration) -> Container:
    if _is_function(value):
        return Container(name, fn=value, host=host)
    if isinstance(value, dict):
        value = reactivate(value, config=config)
    elif isinstance(value, list):
        value = reactivate_sequence(value)
    return Container(name, value)


def _plain(value: Any) -> Any:
    if isinstance(value, ReactiveSequence):
        return value.to_list()
    core = vars(value).get(CORE_ATTR) if hasattr(value, "__dict__") else None
    if isinstance(core, Core):
        return core.snapshot()
    return value


# ─── Accessor classes ────────────────────────────────────────────────────────
# Entries go away once no host uses the generated class.
_accessor_classes: weakref.WeakValueDictionary[tuple, type] = weakref.WeakValueDictionary()


def _field_property(name: str) -> property:
    def fget(self):
        return vars(self)[CORE_ATTR].containers[name].get()

    def fset(self, value):
        vars(self)[CORE_ATTR].containers[name].set(value)

    return property(fget, fset, doc=f"Reactive field {name!r}.")


def _retrieve(self, name: str | None = None):
    """Return the host's Core, or the Container of one field."""
    core = vars(self)[CORE_ATTR]
    if name is None or name == "*":
        return core
    return core.containers[name]


def _accessor_class(cls: type, fields: tuple[str, ...], config: Configuration) -> type:
    key = (cls, fields, config.accessors, config.accessor_names)
    generated = _accessor_classes.get(key)
    if generated is None:
        namespace: dict[str, Any] = {name: _field_property(name) for name in fields}
        if config.accessors:
            for accessor in config.accessor_names:
                namespace[accessor] = _retrieve
        namespace["__module__"] = cls.__module__
        namespace["__qualname__"] = cls.__qualname__
        generated = type(cls.__name__, (cls,), namespace)
        _accessor_classes[key] = generated
    return generated


# ─── Entry points ────────────────────────────────────────────────────────────


def core_of(host: Any) -> Core | None:
    """The Core of a reactivated host, or None."""
    if isinstance(host, ReactiveSequence):
        return host.p()
    if not hasattr(host, "__dict__"):
        return None
    return vars(host).get(CORE_ATTR)


def reactivate_sequence(items: Iterable | None = None) -> ReactiveSequence:
    """Wrap items in a ReactiveSequence. A ReactiveSequence is returned as-is."""
    if isinstance(items, ReactiveSequence):
        return items
    return ReactiveSequence(items)


def reactivate(
    value: Any,
    meta: Mapping[str, Binder | Iterable[Binder]] | None = None,
    config: Configuration | None = None,
):
    """Turn a plain value into its reactive form.

    - objects with an instance __dict__ are reactivated in place and returned;
    - dicts become a ReactiveRecord, lists and tuples a ReactiveSequence;
    - functions become a computed Value, anything else a plain Value.

    Reactivating an already reactive host returns it unchanged.

    Usage:
        point = reactivate({"x": 0, "y": 0, "sum": lambda p: p.x + p.y})
        point.x = 5
        point.y = 4
        point.sum         # 9
        point.p("sum")    # the Container behind `sum`
    """
    config = config or DEFAULT_CONFIGURATION
    if isinstance(value, ReactiveSequence):
        return value
    if isinstance(value, (list, tuple)):
        return reactivate_sequence(value)
    if isinstance(value, dict):
        value = ReactiveRecord(value)
    elif _is_function(value):
        return Value(value, config=config)
    elif isinstance(value, type) or not hasattr(value, "__dict__"):
        return Value(value, config=config)

    if isinstance(vars(value).get(CORE_ATTR), Core):
        return value

    core = Core(value, config)
    fields = {name: v for name, v in vars(value).items() if not name.startswith("__")}
    vars(value)[CORE_ATTR] = core
    core._wire(fields, meta)
    return value
