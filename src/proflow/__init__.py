"""proflow: fine-grained reactive dataflow for Python objects and sequences."""

from importlib.metadata import version as _version

__version__ = _version("proflow")

from proflow._tracking import get_pending_count, set_scheduler
from proflow.events import ChangeRecord, Operation, ValueEvent
from proflow.diff import Patch, apply_patches, diff
from proflow.container import Container, Kind, State, computed
from proflow.sequence import IndexContainer, ReactiveSequence, SequenceCore
from proflow.core import (
    DEFAULT_CONFIGURATION,
    Configuration,
    Core,
    ReactiveRecord,
    Value,
    core_of,
    reactivate,
    reactivate_sequence,
)
from proflow.reaction import Reaction, autorun, reaction
from proflow.action import action, transaction
from proflow.stream import SKIP, BufferedStream, EventStream, Many, SizeBufferedStream
from proflow.registry import Registry
from proflow.errors import BufferSizeError, DestroyedError, ProflowError, ReservedNameError
# proflow.textual is opt-in and not imported here

__all__ = [
    "ChangeRecord",
    "Operation",
    "ValueEvent",
    "Patch",
    "diff",
    "apply_patches",
    "Container",
    "Kind",
    "State",
    "computed",
    "IndexContainer",
    "ReactiveSequence",
    "SequenceCore",
    "Configuration",
    "DEFAULT_CONFIGURATION",
    "Core",
    "ReactiveRecord",
    "Value",
    "core_of",
    "reactivate",
    "reactivate_sequence",
    "Reaction",
    "autorun",
    "reaction",
    "action",
    "transaction",
    "get_pending_count",
    "set_scheduler",
    "EventStream",
    "BufferedStream",
    "SizeBufferedStream",
    "SKIP",
    "Many",
    "Registry",
    "ProflowError",
    "ReservedNameError",
    "DestroyedError",
    "BufferSizeError",
]
