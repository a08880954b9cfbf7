"""Textual integration for SignalFlow. Opt-in — requires textual.

// [LAW:single-enforcer] Guard + NoMatches + thread-marshal enforced here, not at callsites.
// [LAW:locality-or-seam] Textual coupling isolated in this module — core SignalFlow stays agnostic.
// [LAW:no-shared-mutable-globals] _paused_apps has single owner (this module), explicit API
//   (pause/is_safe), documented invariant (id present ↔ inside pause context).
"""

import logging
import threading
from contextlib import contextmanager

from textual.css.query import NoMatches
from signalflow import reaction as _reaction

logger = logging.getLogger("signalflow.textual")

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded side effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _guard(app, fn):
    """Wrap fn so it is skipped while unsafe and marshaled onto the app thread."""
    main = threading.get_ident()

    def _safe(*args):
        try:
            fn(*args)
        except NoMatches as exc:
            logger.debug("Skipped side effect, widget not mounted: %s", exc)

    def _guarded(*args):
        if not is_safe(app):
            return
        if threading.get_ident() != main:
            app.call_from_thread(_safe, *args)
        else:
            _safe(*args)

    return _guarded


def reaction(app, data_fn, effect_fn, *, fire_immediately=False):
    """reaction() that safely bridges to Textual widgets.

    data_fn stays tracked whatever the app state; only effect_fn is guarded
    against pause/not-running, NoMatches from widget queries, and calls
    from foreign threads. Returns the result Signal.
    """
    return _reaction(data_fn, _guard(app, effect_fn), fire_immediately=fire_immediately)


def watch(app, signal, key, effect_fn, *, fire_immediately=False):
    """Call effect_fn(value) whenever signal[key] changes, guarded like reaction()."""
    return reaction(app, lambda: signal[key], effect_fn, fire_immediately=fire_immediately)
