"""Bounded retry with a fixed delay for single exchange calls.

Request volume is already spaced by the shared RateLimiter, so a fixed
delay is enough here.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def is_rate_limited_response(result: Any) -> bool:
    """Recognise a raw HTTP-style response carrying a 429 code."""
    if isinstance(result, dict):
        return result.get("code") == 429
    return getattr(result, "code", None) == 429


class RetryPolicy:
    """Retry an operation up to max_attempts times with a fixed delay.

    An attempt fails when the operation raises, or when its result is
    recognised as a rate-limit response. The last attempt's exception
    propagates unmodified; a rate-limited result from the last attempt is
    returned as-is.

    Example:
        policy = RetryPolicy(max_attempts=3, delay=5.0)
        price = await policy.execute(lambda: client.get_price("BTCUSD"))
    """

    def __init__(
        self,
        max_attempts: int = 3,
        delay: float = 5.0,
        is_rate_limited: Callable[[Any], bool] = is_rate_limited_response,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize retry policy.

        Args:
            max_attempts: Total attempts, including the first.
            delay: Seconds to wait between attempts.
            is_rate_limited: Predicate flagging a result as a rate-limit response.
            sleep: Async sleep function.
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if delay < 0:
            raise ValueError(f"delay must not be negative, got {delay}")
        self.max_attempts = max_attempts
        self.delay = delay
        self._is_rate_limited = is_rate_limited
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Any],
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
    ) -> Any:
        """Run operation with retries.

        Args:
            operation: Zero-argument callable, sync or async.
            max_attempts: Override the policy's attempt count for this call.
            delay: Override the policy's delay for this call.

        Returns:
            The operation's result.

        Raises:
            Exception: Whatever the final attempt raised.
        """
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        wait = delay if delay is not None else self.delay

        for attempt in range(1, attempts + 1):
            try:
                result = operation()
                # Handle both sync and async operations
                if asyncio.iscoroutine(result):
                    result = await result
            except Exception as e:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Request failed, retrying in %.1fs (%d/%d): %s",
                    wait, attempt, attempts, e,
                )
                await self._sleep(wait)
                continue

            if self._is_rate_limited(result) and attempt < attempts:
                logger.warning(
                    "Rate limited (429), retrying in %.1fs (%d/%d)",
                    wait, attempt, attempts,
                )
                await self._sleep(wait)
                continue

            return result

        # Unreachable: the loop either returns or raises on the last attempt
        raise RuntimeError("retry loop exited without a result")
