"""Tests for Engine isolation and configuration."""

import asyncio
import queue
import threading

import pytest

from signalflow import (
    Engine,
    current_engine,
    effect,
    set_scheduler,
    signal,
    throttled_effect,
    use_engine,
)


class TestEngine:
    def test_fixture_engine_is_current(self, engine):
        assert current_engine() is engine

    def test_use_engine_isolates_signals(self, engine):
        data = {"v": 1}
        outer = signal(data)
        with use_engine() as inner_engine:
            assert current_engine() is inner_engine
            inner = signal(data)
            assert inner is not outer
            assert inner._signal_engine is inner_engine
        assert current_engine() is engine
        assert signal(data) is outer

    def test_signal_keeps_its_engine(self):
        with use_engine(Engine()):
            s = signal({"v": 1})
            log = []
            effect(lambda: log.append(s["v"]))
        # A signal remembers its engine, so writes still reach its effects
        s["v"] = 2
        assert log == [1, 2]

    def test_state_cleared_between_runs(self, engine):
        s = signal({"v": 1})
        r = effect(lambda: s["v"])
        assert engine.computations
        assert engine.compute_stack == []
        assert engine.signal_stack == []
        assert r.current == 1

    def test_repr(self, engine):
        assert "Engine(" in repr(engine)


class TestDefaultTimer:
    def test_thread_timer_hands_callback_to_scheduler(self):
        handed = queue.Queue()
        engine = Engine(scheduler=handed.put)
        fired = []
        timer = engine.call_later(0.01, lambda: fired.append(threading.get_ident()))
        assert isinstance(timer, threading.Timer)

        callback = handed.get(timeout=2)
        assert fired == []  # nothing ran on the timer thread
        callback()
        assert fired == [threading.get_ident()]

    def test_no_loop_and_no_scheduler_raises(self):
        with pytest.raises(RuntimeError, match="set_scheduler"):
            Engine().call_later(0.01, lambda: None)

    def test_set_scheduler_targets_current_engine(self, engine):
        handed = []
        set_scheduler(handed.append)
        assert engine.scheduler == handed.append

    def test_throttled_rerun_stays_on_engine_thread(self):
        handed = queue.Queue()
        runs = []
        with use_engine(Engine(scheduler=handed.put)):
            s = signal({"v": 0})
            throttled_effect(lambda: runs.append((s["v"], threading.get_ident())), 0.01)
            s["v"] = 1
            handed.get(timeout=2)()
        main = threading.get_ident()
        assert runs == [(0, main), (1, main)]

    def test_throttled_effect_without_timer_source_fails_cleanly(self):
        with use_engine(Engine()) as engine:
            with pytest.raises(RuntimeError):
                throttled_effect(lambda: None, 0.01)
            assert engine.computations == {}

    def test_loop_timer_inside_loop(self):
        async def main():
            fired = asyncio.Event()
            handle = Engine().call_later(0.01, fired.set)
            assert isinstance(handle, asyncio.TimerHandle)
            await asyncio.wait_for(fired.wait(), 2)

        asyncio.run(main())
