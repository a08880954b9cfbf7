"""Tests for signalflow.textual — Textual integration layer."""

import logging
import threading

import pytest
from textual.css.query import NoMatches

from signalflow import destroy, signal
from signalflow import textual as stx


class _MockApp:
    """Minimal mock matching the Textual App interface stx needs."""

    def __init__(self, *, is_running=True):
        self.is_running = is_running
        self._call_from_thread_log = []

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)


class TestReaction:
    def test_skips_when_not_running(self):
        app = _MockApp(is_running=False)
        o = signal({"v": 1})
        effects = []
        stx.reaction(app, lambda: o["v"], lambda v: effects.append(v))
        o["v"] = 2
        assert effects == []

    def test_skips_during_pause(self):
        app = _MockApp()
        o = signal({"v": 1})
        effects = []
        stx.reaction(app, lambda: o["v"], lambda v: effects.append(v))
        with stx.pause(app):
            o["v"] = 2
        assert effects == []

    def test_still_tracks_while_paused(self):
        app = _MockApp()
        o = signal({"v": 1})
        effects = []
        stx.reaction(app, lambda: o["v"], lambda v: effects.append(v))
        with stx.pause(app):
            o["v"] = 2
        o["v"] = 3
        assert effects == [3]

    def test_fires_when_safe(self):
        app = _MockApp()
        o = signal({"v": 1})
        effects = []
        stx.reaction(app, lambda: o["v"], lambda v: effects.append(v))
        o["v"] = 2
        assert effects == [2]

    def test_catches_nomatch(self, caplog):
        """NoMatches from widget queries are swallowed and logged at debug."""
        app = _MockApp()
        o = signal({"v": 1})

        def _raise_nomatch(v):
            raise NoMatches("StatusFooter")

        r = stx.reaction(app, lambda: o["v"], _raise_nomatch)
        with caplog.at_level(logging.DEBUG, logger="signalflow.textual"):
            o["v"] = 2
        assert "widget not mounted" in caplog.text
        destroy(r)

    def test_propagates_real_errors(self):
        """Non-NoMatches exceptions propagate normally."""
        app = _MockApp()
        o = signal({"v": 1})

        def _raise_value_error(v):
            raise ValueError("boom")

        stx.reaction(app, lambda: o["v"], _raise_value_error)
        with pytest.raises(ValueError, match="boom"):
            o["v"] = 2

    def test_destroy_stops_reaction(self):
        app = _MockApp()
        o = signal({"v": 1})
        effects = []
        r = stx.reaction(app, lambda: o["v"], lambda v: effects.append(v))
        o["v"] = 2
        assert effects == [2]
        destroy(r)
        o["v"] = 3
        assert effects == [2]

    def test_thread_marshal(self):
        """Triggers from background thread use call_from_thread."""
        app = _MockApp()
        o = signal({"v": 1})
        effects = []
        stx.reaction(app, lambda: o["v"], lambda v: effects.append(v))

        def _bg():
            o["v"] = 2

        t = threading.Thread(target=_bg)
        t.start()
        t.join()

        assert effects == [2]
        assert len(app._call_from_thread_log) == 1


class TestWatch:
    def test_watches_one_key(self):
        app = _MockApp()
        o = signal({"v": 1, "other": 1})
        effects = []
        stx.watch(app, o, "v", effects.append, fire_immediately=True)
        o["other"] = 2
        o["v"] = 5
        assert effects == [1, 5]


class TestPause:
    def test_pause_restores_on_exception(self):
        app = _MockApp()
        assert stx.is_safe(app)

        with pytest.raises(RuntimeError):
            with stx.pause(app):
                assert not stx.is_safe(app)
                raise RuntimeError("oops")

        # Restored despite exception
        assert stx.is_safe(app)

    def test_pause_does_not_mutate_app(self):
        """// [LAW:no-shared-mutable-globals] pause state lives in the module, not on the app."""
        app = _MockApp()
        attrs_before = set(vars(app))
        with stx.pause(app):
            attrs_during = set(vars(app))
        assert attrs_before == attrs_during
        assert attrs_before == set(vars(app))

    def test_multiple_apps_independent(self):
        """Pausing one app does not affect another."""
        app_a = _MockApp()
        app_b = _MockApp()
        with stx.pause(app_a):
            assert not stx.is_safe(app_a)
            assert stx.is_safe(app_b)
