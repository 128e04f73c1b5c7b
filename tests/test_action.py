"""Tests for action/transaction batching and cross-thread marshaling."""

import threading

import pytest

from proflow import (
    Container,
    action,
    autorun,
    get_pending_count,
    reactivate,
    set_scheduler,
    transaction,
)


class TestAction:
    def test_batches_updates(self):
        point = reactivate({"a": 0, "b": 0})
        log = []
        autorun(lambda: log.append((point.a, point.b)))
        assert log == [(0, 0)]

        @action
        def update_both():
            point.a = 1
            point.b = 2

        update_both()
        # Should see (1, 2) not intermediate (1, 0)
        assert log == [(0, 0), (1, 2)]

    def test_nested_actions(self):
        host = reactivate({"v": 0})
        log = []
        autorun(lambda: log.append(host.v))

        @action
        def outer():
            host.v = 1

            @action
            def inner():
                host.v = 2

            inner()
            host.v = 3

        outer()
        # Only fires after outermost action completes
        assert log == [0, 3]

    def test_flushes_and_propagates_when_raising(self):
        host = reactivate({"v": 0})
        log = []
        autorun(lambda: log.append(host.v))

        @action
        def fail():
            host.v = 1
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            fail()
        assert log == [0, 1]
        assert get_pending_count() == 0

    def test_preserves_return_value(self):
        @action
        def compute():
            return 42

        assert compute() == 42

    def test_writes_apply_immediately(self):
        host = reactivate({"v": 0})
        with transaction():
            host.v = 5
            assert host.v == 5


class TestTransaction:
    def test_defers_until_exit(self):
        host = reactivate({"v": 0})
        log = []
        autorun(lambda: log.append(host.v))
        with transaction():
            host.v = 1
            assert get_pending_count() == 1
            assert log == [0]
        assert log == [0, 1]
        assert get_pending_count() == 0

    def test_diamond_recomputes_once(self):
        source = Container("source", 1)
        left = Container("left", fn=lambda: source.get() + 1)
        right = Container("right", fn=lambda: source.get() * 2)
        runs = []
        bottom = Container("bottom", fn=lambda: runs.append(1) or left.get() + right.get())
        bottom.get()
        with transaction():
            source.set(2)
        assert bottom.get() == 7
        assert len(runs) == 2

    def test_plain_listeners_are_not_coalesced(self):
        c = Container("c", 0)
        events = []
        c.add_listener(events.append)
        with transaction():
            c.set(1)
            c.set(2)
        assert [e.value for e in events] == [1, 2]

    def test_exception_still_flushes(self):
        host = reactivate({"v": 0})
        log = []
        autorun(lambda: log.append(host.v))
        with pytest.raises(RuntimeError):
            with transaction():
                host.v = 1
                raise RuntimeError("oops")
        assert log == [0, 1]


class TestScheduler:
    def teardown_method(self):
        set_scheduler(None)

    def test_main_thread_is_synchronous(self):
        calls = []
        set_scheduler(calls.append)
        c = Container("c", 0)
        c.set(42)
        assert c.get() == 42
        assert calls == []

    def test_background_thread_marshals(self):
        queued = []
        set_scheduler(queued.append)
        c = Container("c", 0)

        t = threading.Thread(target=lambda: c.set(7))
        t.start()
        t.join()

        assert c.get() == 0  # not applied until the scheduler runs it
        assert len(queued) == 1
        queued[0]()
        assert c.get() == 7

    def test_without_scheduler_runs_in_place(self):
        c = Container("c", 0)
        t = threading.Thread(target=lambda: c.set(3))
        t.start()
        t.join()
        assert c.get() == 3
