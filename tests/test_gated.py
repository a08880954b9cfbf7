"""Tests for throttled_effect and clock_effect."""

import pytest

from signalflow import (
    Clock,
    RecursiveCallError,
    clock_effect,
    destroy,
    signal,
    throttled_effect,
)


class TestThrottledEffect:
    def test_at_most_twice_per_window(self, fake_time):
        s = signal({"v": 0})
        runs = []
        r = throttled_effect(lambda: runs.append(s["v"]) or s["v"], 0.010)
        assert runs == [0]

        for i in range(1, 101):
            s["v"] = i
        assert runs == [0]

        fake_time.advance(0.010)
        assert runs == [0, 100]
        assert r.current == 100

        fake_time.advance(0.010)
        assert runs == [0, 100]  # nothing changed during the second window

    def test_runs_immediately_after_window(self, fake_time):
        s = signal({"v": 0})
        runs = []
        throttled_effect(lambda: runs.append(s["v"]), 0.5)
        fake_time.advance(1.0)
        s["v"] = 1
        assert runs == [0, 1]

    def test_destroy_cancels_pending_rerun(self, fake_time):
        s = signal({"v": 0})
        runs = []
        r = throttled_effect(lambda: runs.append(s["v"]), 0.1)
        s["v"] = 1
        destroy(r)
        fake_time.advance(0.1)
        assert runs == [0]

    def test_guarded_against_recursion(self):
        def body():
            return None

        throttled_effect(body, 0.1)
        with pytest.raises(RecursiveCallError):
            throttled_effect(body, 0.1)


class TestClockEffect:
    def test_gated_by_tick(self):
        clock = signal(Clock())
        s = signal({"v": 1})
        runs = []
        clock_effect(lambda: runs.append(s["v"]), clock)
        assert runs == [1]

        s["v"] = 2
        s["v"] = 3
        assert runs == [1]  # tick unchanged

        clock.tick()
        assert runs == [1, 3]

        clock.tick()
        assert runs == [1, 3]  # tick advanced without a change

    def test_result_signal(self):
        clock = signal(Clock())
        s = signal({"v": 2})
        r = clock_effect(lambda: s["v"] * 2, clock)
        assert r.current == 4
        s["v"] = 5
        assert r.current == 4
        clock.tick()
        assert r.current == 10

    def test_accepts_raw_clock(self):
        tick_source = Clock()
        s = signal({"v": 1})
        runs = []
        clock_effect(lambda: runs.append(s["v"]), tick_source)
        s["v"] = 2
        signal(tick_source).tick()
        assert runs == [1, 2]

    def test_mutual_dependency_advances_one_step_per_tick(self):
        clock = signal(Clock())
        s = signal({"a": 0, "b": 0})

        def first():
            s["b"] = s["a"] + 1

        def second():
            s["a"] = s["b"] + 1

        clock_effect(first, clock)
        clock_effect(second, clock)
        assert (s["a"], s["b"]) == (2, 1)

        clock.tick()
        assert (s["a"], s["b"]) == (4, 3)
        clock.tick()
        assert (s["a"], s["b"]) == (6, 5)
        clock.tick()
        assert (s["a"], s["b"]) == (8, 7)

    def test_change_written_on_a_tick_reaches_downstream(self):
        clock = signal(Clock())
        s = signal({"a": 0, "b": 0, "c": 0})
        seen = []

        def first():
            s["b"] = s["a"] + 1

        def second():
            seen.append(s["b"])
            s["c"] = s["b"] + 1

        clock_effect(first, clock)
        clock_effect(second, clock)
        assert seen == [1]

        s["a"] = 10
        clock.tick()
        assert seen == [1, 11]
        assert s["c"] == 12

        clock.tick()
        clock.tick()
        assert seen == [1, 11]

    def test_change_after_tick_waits_for_next_tick(self):
        clock = signal(Clock())
        s = signal({"v": 1})
        runs = []
        clock_effect(lambda: runs.append(s["v"]), clock)

        clock.tick()  # no pending change, only the tick is consumed
        s["v"] = 2
        assert runs == [1]

        clock.tick()
        assert runs == [1, 2]

    def test_destroy(self):
        clock = signal(Clock())
        s = signal({"v": 1})
        runs = []
        r = clock_effect(lambda: runs.append(s["v"]), clock)
        destroy(r)
        s["v"] = 2
        clock.tick()
        assert runs == [1]
