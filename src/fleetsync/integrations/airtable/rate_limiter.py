"""Process-wide throttle for outbound remote calls."""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Serializes call starts so that no two are closer than ``min_interval`` seconds.

    One instance is shared by every client in the process. ``acquire`` holds
    an internal lock while it waits, so callers on different threads are
    admitted one at a time and in arrival order.
    """

    def __init__(
        self,
        min_interval: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            min_interval: Minimum gap between two call starts, in seconds
            clock: Monotonic time source
            sleep: Blocking sleep, injectable for tests
        """
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_start: Optional[float] = None

    @classmethod
    def from_milliseconds(cls, min_interval_ms: int, **kwargs) -> "RateLimiter":
        return cls(min_interval=min_interval_ms / 1000.0, **kwargs)

    def acquire(self) -> float:
        """Block until the next call may start.

        Returns:
            Seconds spent waiting
        """
        with self._lock:
            waited = 0.0
            now = self._clock()
            if self._last_start is not None:
                wait = self._last_start + self.min_interval - now
                while wait > 0:
                    logger.debug(f"Rate limiter waiting {wait:.3f}s")
                    self._sleep(wait)
                    waited += wait
                    now = self._clock()
                    wait = self._last_start + self.min_interval - now
            self._last_start = now
            return waited

    def reset(self) -> None:
        with self._lock:
            self._last_start = None
