"""
In-process sweep scheduler.
"""

import logging
import threading
from typing import Callable, List, Optional

from ..models.sync import SweepResult

logger = logging.getLogger(__name__)


class SweepScheduler:
    """
    Runs sweeps periodically on background threads.

    Each sweep has its own thread and waits for the previous run to finish
    before the next interval starts, so a sweep never overlaps itself.
    """

    def __init__(self):
        self._jobs: List[tuple] = []
        self._threads: List[threading.Thread] = []
        self._stop = threading.Event()

    def add_sweep(self, name: str, sweep: Callable[[], SweepResult], interval_seconds: float,
                  run_immediately: bool = True) -> None:
        """
        Register a sweep.

        Args:
            name: Name used for the thread and in logs
            sweep: Callable running one sweep
            interval_seconds: Delay between the end of one run and the start of the next
            run_immediately: Run once at start instead of waiting one interval
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._jobs.append((name, sweep, interval_seconds, run_immediately))

    def _run(self, name: str, sweep: Callable[[], SweepResult], interval_seconds: float,
             run_immediately: bool) -> None:
        if not run_immediately and self._stop.wait(interval_seconds):
            return
        while not self._stop.is_set():
            try:
                result = sweep()
                logger.info(f"Sweep {name} finished: {result.get_summary()}")
            except Exception as e:
                # Keep the loop alive; the next interval retries
                logger.error(f"Sweep {name} failed: {e}")
            if self._stop.wait(interval_seconds):
                break

    def start(self) -> None:
        """Start one thread per registered sweep."""
        if self._threads:
            raise RuntimeError("scheduler already started")
        self._stop.clear()
        for name, sweep, interval, run_immediately in self._jobs:
            thread = threading.Thread(target=self._run, args=(name, sweep, interval, run_immediately),
                                      name=f"sweep-{name}", daemon=True)
            thread.start()
            self._threads.append(thread)
            logger.info(f"Scheduled sweep {name} every {interval}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal every sweep to stop and wait for running sweeps to finish."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("Sweep scheduler stopped")

    def wait(self) -> None:
        """Block until ``stop`` is called from another thread or a signal handler."""
        while not self._stop.wait(1.0):
            pass

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)
