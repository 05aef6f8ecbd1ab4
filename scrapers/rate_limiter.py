"""
Per-source request spacing.

Rate limits belong to the source, not to whoever calls it: every
scraper instance for the same source shares one limiter.
"""

import time
from threading import Lock
from typing import Callable, Optional
import structlog

logger = structlog.get_logger(__name__)


class SourceRateLimiter:
    """Enforces a minimum delay between consecutive requests."""

    def __init__(
        self,
        min_interval_ms: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.min_interval = max(0, min_interval_ms) / 1000
        self.last_request_time: Optional[float] = None
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()

    def wait(self) -> float:
        """
        Block until the next request may go out.

        Returns:
            Seconds actually waited
        """
        with self._lock:
            waited = 0.0
            if self.last_request_time is not None:
                elapsed = self._clock() - self.last_request_time
                waited = max(0.0, self.min_interval - elapsed)
                if waited > 0:
                    self._sleep(waited)
            self.last_request_time = self._clock()
            return waited


_limiters: dict[str, SourceRateLimiter] = {}
_limiters_lock = Lock()


def get_rate_limiter(source_key: str, min_interval_ms: int) -> SourceRateLimiter:
    """Shared limiter for a source; the interval is updated if it changed."""
    with _limiters_lock:
        limiter = _limiters.get(source_key)
        if limiter is None:
            limiter = SourceRateLimiter(min_interval_ms)
            _limiters[source_key] = limiter
            logger.debug("rate_limiter_created", source=source_key, interval_ms=min_interval_ms)
        else:
            limiter.min_interval = max(0, min_interval_ms) / 1000
        return limiter


def reset_rate_limiters() -> None:
    with _limiters_lock:
        _limiters.clear()
