"""Textual view binding for proflow. Opt-in — requires textual.

Connects containers, host fields and streams to Textual widgets. Every effect
passes through one guard: it is skipped while the app is not running or while
its widget tree is paused, NoMatches from widget queries is swallowed, and calls
made off the main thread are marshaled through app.call_from_thread.
"""

import logging
import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

from proflow.reaction import autorun as _autorun
from proflow.reaction import reaction as _reaction

logger = logging.getLogger("proflow.textual")

# Apps whose widget tree is being rebuilt, keyed by id(app).
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound effects while widgets are replaced."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Can the widget tree be queried right now?"""
    return app.is_running and id(app) not in _paused_apps


def _guarded(app, effect):
    """Wrap effect so it only touches widgets when is_safe(app), on the app's thread."""
    main = threading.get_ident()

    def _safe(*args):
        try:
            effect(*args)
        except NoMatches:
            logger.debug("Skipped %r: widget not mounted", effect)

    def guard(*args):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    return guard


def bind(app, data_fn, effect_fn, *, fire_immediately=False):
    """reaction() whose effect is applied to the app's widgets through the guard."""
    return _reaction(data_fn, _guarded(app, effect_fn), fire_immediately=fire_immediately)


def autorun(app, fn):
    """autorun() guarded the same way as bind()."""
    return _autorun(_guarded(app, fn))


def bind_attribute(app, source, selector, attribute):
    """Keep `attribute` of the widget matching `selector` equal to source.

    `source` is a container (anything with get()) or a zero-argument callable
    reading reactive state. The widget is painted immediately when it is mounted.
    """
    data_fn = source.get if hasattr(source, "get") else source

    def _apply(value):
        setattr(app.query_one(selector), attribute, value)

    return bind(app, data_fn, _apply, fire_immediately=True)


def subscribe(app, stream, fn):
    """Subscribe fn to an EventStream through the guard. Returns the disposer."""
    return stream.subscribe(_guarded(app, fn))
