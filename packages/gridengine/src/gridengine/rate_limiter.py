"""Minimum-interval throttle for outbound exchange requests.

One RateLimiter is created per process and passed to every GridEngine, so
the spacing between requests holds globally no matter how many engines
share an account. Exchanges such as Bumpin enforce limits per API key
rather than per symbol, which is why the throttle is shared.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Enforce a minimum wall-clock interval between requests.

    Concurrent callers serialize on an asyncio.Lock, in call order, so the
    read-check-update of the last request time is atomic.

    Example:
        limiter = RateLimiter(min_interval=5.0)

        await limiter.throttle()
        price = await client.get_price("BTCUSD")
    """

    def __init__(
        self,
        min_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between consecutive requests.
            clock: Monotonic time source in seconds.
            sleep: Async sleep function.
        """
        if min_interval < 0:
            raise ValueError(f"min_interval must not be negative, got {min_interval}")
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: float | None = None
        self._lock = asyncio.Lock()
        self._total_wait = 0.0
        self._request_count = 0

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def throttle(self) -> None:
        """Wait until min_interval has passed since the previous request."""
        async with self._lock:
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                wait = self._min_interval - elapsed
                if wait > 0:
                    logger.debug("Throttling request: waiting %.3fs", wait)
                    self._total_wait += wait
                    await self._sleep(wait)

            self._last_request = self._clock()
            self._request_count += 1

    def wait_time(self) -> float:
        """Seconds a request made now would wait (0.0 if none)."""
        if self._last_request is None:
            return 0.0
        return max(0.0, self._min_interval - (self._clock() - self._last_request))

    def get_stats(self) -> dict:
        return {
            "requests": self._request_count,
            "total_wait": self._total_wait,
        }

    def reset(self) -> None:
        """Forget the last request time. Useful for testing."""
        self._last_request = None
        self._total_wait = 0.0
        self._request_count = 0
