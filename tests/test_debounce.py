"""
Tests for the trailing-edge debouncer.
"""

import threading
import time

from slipdesk.utils.debounce import Debouncer


class TestDebouncer:
    def test_burst_collapses_into_one_call(self):
        calls = []
        debouncer = Debouncer(lambda: calls.append(time.monotonic()), delay=0.05)

        for _ in range(10):
            debouncer.schedule()

        time.sleep(0.3)
        assert len(calls) == 1
        assert not debouncer.pending

    def test_each_schedule_restarts_countdown(self):
        calls = []
        debouncer = Debouncer(lambda: calls.append(1), delay=0.2)

        debouncer.schedule()
        time.sleep(0.1)
        debouncer.schedule()
        time.sleep(0.15)

        assert calls == []
        time.sleep(0.2)
        assert calls == [1]

    def test_flush_runs_pending_call_immediately(self):
        calls = []
        debouncer = Debouncer(lambda: calls.append(1), delay=10)

        debouncer.schedule()
        assert debouncer.pending

        assert debouncer.flush() is True
        assert calls == [1]
        assert not debouncer.pending

    def test_flush_without_pending_call(self):
        calls = []
        debouncer = Debouncer(lambda: calls.append(1), delay=10)

        assert debouncer.flush() is False
        assert calls == []

    def test_func_runs_without_shared_lock_held(self):
        lock = threading.RLock()
        started = threading.Event()
        release = threading.Event()

        def slow():
            started.set()
            release.wait(2)

        debouncer = Debouncer(slow, delay=0.01, lock=lock)
        debouncer.schedule()
        assert started.wait(1)

        acquired = lock.acquire(timeout=0.5)
        release.set()
        assert acquired
        lock.release()
