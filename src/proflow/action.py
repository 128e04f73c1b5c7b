"""Actions and transactions — batched notification flow.

Writes inside an @action or `with transaction()` still update their containers
immediately, but listener notifications are queued and run once the outermost
scope exits. A computed container or reaction notified several times in one
batch runs once, so diamond-shaped graphs recompute each node a single time.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

from proflow._tracking import begin_batch, end_batch

P = ParamSpec("P")
R = TypeVar("R")


@contextmanager
def transaction() -> Iterator[None]:
    """Queue notifications until the outermost transaction exits.

    The queue is flushed even when the block raises.

    Usage:
        with transaction():
            point.x = 1
            point.y = 2
            # reactions fire here, after both are set
    """
    begin_batch()
    try:
        yield
    finally:
        end_batch()


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: run fn inside a transaction().

    Usage:
        point = reactivate({"x": 0, "y": 0})

        @action
        def move(dx, dy):
            point.x += dx
            point.y += dy
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with transaction():
            return fn(*args, **kwargs)

    return wrapper
