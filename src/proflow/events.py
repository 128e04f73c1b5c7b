"""Event records passed to listeners.

ValueEvent describes one container change; ChangeRecord describes one
mutation of a ReactiveSequence. Both are immutable and consumed in the turn
that produced them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any


class Operation(enum.Enum):
    """Kinds of sequence mutation."""

    SET = "set"
    ADD = "add"
    REMOVE = "remove"
    SET_LENGTH = "set_length"
    REVERSE = "reverse"
    SORT = "sort"
    SPLICE = "splice"


@dataclass(frozen=True)
class ValueEvent:
    """A container moved from `previous` to `value`."""

    source: Any
    previous: Any
    value: Any


@dataclass(frozen=True)
class ChangeRecord:
    """One sequence mutation.

    `index` is where the mutation starts (None for REVERSE/SORT, which touch
    every position). For SET_LENGTH it is the new length. For SORT, `added`
    holds the (key, reverse) arguments the sort ran with.
    """

    op: Operation
    index: int | None
    removed: tuple = ()
    added: tuple = ()

    @property
    def delta(self) -> int:
        """Change in sequence length caused by this record."""
        if self.op in (Operation.REVERSE, Operation.SORT, Operation.SET):
            return 0
        return len(self.added) - len(self.removed)
