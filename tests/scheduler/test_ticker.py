"""
Supervisor Ticker Tests.
"""

import threading
import time

from src.scheduler import SupervisorTicker, TickerState


class TestRunOnce:

    def test_records_stats(self):
        ticker = SupervisorTicker(lambda: {"jobs_requeued": 2}, interval=60)

        assert ticker.run_once() == {"jobs_requeued": 2}
        assert ticker.ticks_run == 1
        assert ticker.last_stats == {"jobs_requeued": 2}

    def test_failed_tick_is_logged_not_raised(self, caplog):
        def broken():
            raise RuntimeError("store unreachable")

        ticker = SupervisorTicker(broken, interval=60)

        assert ticker.run_once() is None
        assert ticker.ticks_failed == 1
        assert ticker.ticks_run == 0
        assert "store unreachable" in caplog.text


class TestBackgroundLoop:

    def test_start_runs_ticks_until_stopped(self):
        ticked = threading.Event()
        calls = []

        def tick():
            calls.append(1)
            ticked.set()
            return {}

        ticker = SupervisorTicker(tick, interval=0.01)
        ticker.start()
        try:
            assert ticked.wait(timeout=5)
            assert ticker.is_running()
            assert ticker.state == TickerState.RUNNING
        finally:
            ticker.stop(timeout=5)

        assert ticker.state == TickerState.STOPPED
        count = len(calls)
        time.sleep(0.05)
        assert len(calls) == count

    def test_loop_survives_failing_ticks(self):
        attempts = []
        recovered = threading.Event()

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise RuntimeError("transient")
            recovered.set()
            return {}

        ticker = SupervisorTicker(flaky, interval=0.01)
        ticker.start()
        try:
            assert recovered.wait(timeout=5)
        finally:
            ticker.stop(timeout=5)

        assert ticker.ticks_failed == 2
        assert ticker.ticks_run >= 1

    def test_start_and_stop_are_idempotent(self):
        ticker = SupervisorTicker(lambda: {}, interval=60)

        ticker.stop()
        ticker.start()
        ticker.start()
        ticker.stop(timeout=5)
        ticker.stop()

        assert not ticker.is_running()
