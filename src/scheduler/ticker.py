"""
Periodic trigger for the supervisor.

Runs ``tick()`` on a background thread at a fixed interval. All timing
and threading stays here, outside the scheduling core.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class TickerState(str, Enum):
    """Ticker lifecycle states."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"


class SupervisorTicker:
    """
    Calls ``tick`` every ``interval`` seconds until stopped.

    A failing tick is logged and retried on the next interval; the loop
    itself never dies from a tick error.
    """

    def __init__(self, tick: Callable[[], dict], interval: float = 15.0):
        """
        Initialize the ticker.

        Args:
            tick: Supervision pass to run
            interval: Seconds between passes
        """
        self._tick = tick
        self.interval = interval

        self._state = TickerState.STOPPED
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

        self.ticks_run = 0
        self.ticks_failed = 0
        self.last_stats: Optional[dict] = None

    @property
    def state(self) -> TickerState:
        return self._state

    def is_running(self) -> bool:
        return self._state == TickerState.RUNNING

    def run_once(self) -> Optional[dict]:
        """Run a single tick, recording but not raising its failure."""
        try:
            stats = self._tick()
        except Exception as e:
            self.ticks_failed += 1
            logger.error(f"Supervisor tick failed, will retry next interval: {e}", exc_info=True)
            return None

        self.ticks_run += 1
        self.last_stats = stats
        return stats

    def _loop(self) -> None:
        logger.info(f"Supervisor ticker started (interval={self.interval}s)")
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.interval)
        logger.info("Supervisor ticker stopped")

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        with self._lock:
            if self._state == TickerState.RUNNING:
                return

            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop,
                name="supervisor-ticker",
                daemon=True,
            )
            self._state = TickerState.RUNNING
            self._thread.start()

    def stop(self, timeout: float = 30.0) -> None:
        """Stop the loop, waiting up to ``timeout`` for an in-flight tick."""
        with self._lock:
            if self._state != TickerState.RUNNING:
                return

            self._state = TickerState.STOPPING
            self._stop_event.set()
            if self._thread is not None:
                self._thread.join(timeout=timeout)
                if self._thread.is_alive():
                    logger.warning("Supervisor ticker did not stop within timeout")
            self._thread = None
            self._state = TickerState.STOPPED
