"""Dependency capture and notification flow — the heart of proflow.

Uses a contextvar as the single active-observer slot: while a computed container
or reaction evaluates, every container it reads registers it as a listener, so the
dependency graph is built without any explicit subscription call.

Batching: notifications raised inside an @action or `with transaction()` are
queued and delivered once the outermost scope exits, in submission order.
"""

from __future__ import annotations

import contextvars
import threading
from typing import Any, Callable

# The currently-evaluating observer (computed container or reaction).
# When set, any container read registers itself as a dependency.
current_observer: contextvars.ContextVar[Any] = contextvars.ContextVar(
    "current_observer", default=None
)

# Batch depth counter. When > 0, notifications are deferred.
_batch_depth: int = 0

# Queued (listener, event) pairs. Observers are keyed by identity so a second
# notification only refreshes the event; plain callables get a fresh key each time.
_pending: dict[object, tuple[Any, object]] = {}

# Cross-thread marshaling for Container.set().
_scheduler: Callable[[Callable[[], None]], Any] | None = None
_scheduler_thread: threading.Thread | None = None


def track(dependency) -> None:
    """Register the active observer, if any, as a dependent of `dependency`."""
    observer = current_observer.get()
    if observer is not None and observer is not dependency:
        dependency._add_observer(observer)
        observer._dependencies.add(dependency)


def release_stale(observer, previous: set) -> None:
    """Detach observer from the dependencies of its last run it did not read again.

    Dependencies read again keep their place in the listener lists.
    """
    for dep in previous - observer._dependencies:
        dep._remove_observer(observer)


def is_observer(listener) -> bool:
    return hasattr(listener, "_run")


def deliver(listener, event) -> None:
    """Invoke one listener with one event."""
    if is_observer(listener):
        listener._run(event)
    else:
        listener(event)


def begin_batch() -> None:
    """Enter a batching scope. Nested batches are supported."""
    global _batch_depth
    _batch_depth += 1


def end_batch() -> None:
    """Exit a batching scope. When the outermost scope exits, flush pending notifications.

    The flush itself runs with the batch still open, so observers notified again
    while it drains are queued (and coalesced) for the next wave.
    """
    global _batch_depth
    if _batch_depth > 1:
        _batch_depth -= 1
        return
    try:
        _flush_pending()
    finally:
        _batch_depth = 0


def schedule(listener, event) -> None:
    """Schedule one listener invocation.

    If inside a batch, defers. Otherwise, runs immediately.
    """
    if _batch_depth > 0:
        key = listener if is_observer(listener) else object()
        _pending[key] = (listener, event)
    else:
        deliver(listener, event)


def _flush_pending() -> None:
    """Run all pending notifications. Handles notifications scheduled during flush."""
    try:
        while _pending:
            # Listeners may schedule new work while a wave runs.
            batch = list(_pending.values())
            _pending.clear()
            for listener, event in batch:
                deliver(listener, event)
    finally:
        _pending.clear()


def get_pending_count() -> int:
    """Number of notifications waiting to run. Useful for testing."""
    return len(_pending)


def set_scheduler(scheduler) -> None:
    """Set the global thread scheduler for cross-thread Container writes.

    Call once from the main/UI thread:
        proflow.set_scheduler(app.call_from_thread)

    After this, any Container.set() from a background thread is marshaled
    through `scheduler`. Main-thread writes remain synchronous.
    Pass None to uninstall.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def marshal(fn: Callable[[], None]) -> None:
    """Run fn now, or hand it to the scheduler when called off the scheduler thread."""
    if _scheduler is not None and threading.current_thread() is not _scheduler_thread:
        _scheduler(fn)
    else:
        fn()
