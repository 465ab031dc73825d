"""Retry policy for remote store calls."""

import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Optional, TypeVar

from ...exceptions import RateLimitError, TransientRemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds.

    Args:
        value: Raw header value
        now: Reference time for HTTP-date values

    Returns:
        Non-negative seconds, or None if absent or unparseable
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable Retry-After header: {value!r}")
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


class RetryPolicy:
    """Bounded retries with backoff.

    * rate limited: wait ``Retry-After`` if the server sent one, otherwise
      ``base_delay * attempt``
    * 5xx, connection reset, timeout: wait ``base_delay * 2 ** (attempt - 1)``
    * anything else propagates on the first failure
    """

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    def delay_for(self, error: Exception, attempt: int) -> Optional[float]:
        """Seconds to wait after ``attempt`` failed with ``error``, or None to give up."""
        if isinstance(error, RateLimitError):
            if error.retry_after is not None:
                return error.retry_after
            return self.base_delay * attempt
        if isinstance(error, TransientRemoteError):
            return self.base_delay * (2 ** (attempt - 1))
        return None

    def call(self, func: Callable[[], T], description: str = "remote call") -> T:
        """Run ``func`` until it succeeds, fails permanently or attempts run out."""
        attempt = 1
        while True:
            try:
                return func()
            except (RateLimitError, TransientRemoteError) as e:
                if attempt >= self.max_attempts:
                    logger.error(f"{description} failed after {attempt} attempts: {e}")
                    raise
                delay = self.delay_for(e, attempt)
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}): {e}; "
                    f"retrying in {delay:.2f}s"
                )
                self._sleep(delay)
                attempt += 1
