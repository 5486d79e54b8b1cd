"""Cancellable repeating task for periodic engine cycles.

Runs a coroutine callback on a fixed interval without ever overlapping two
runs. Stopping never interrupts a run in progress: the current run is
allowed to finish and no new run starts afterwards.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RepeatingTask:
    """Invoke callback every interval seconds in a background asyncio task.

    The next run is scheduled interval seconds after the previous run
    started. If a run overruns, the missed ticks are skipped rather than
    queued.

    Example:
        task = RepeatingTask(engine.run_cycle, interval=10.0, name="BTCUSD")
        await task.start()
        ...
        await task.stop()
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        interval: float,
        initial_delay: float = 0.0,
        name: str = "repeating-task",
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize repeating task.

        Args:
            callback: Coroutine function to run each tick.
            interval: Seconds between run starts.
            initial_delay: Seconds to wait before the first run.
            name: Name used in logs and for the asyncio task.
            clock: Monotonic time source in seconds.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._callback = callback
        self._interval = interval
        self._initial_delay = max(0.0, initial_delay)
        self._name = name
        self._clock = clock

        self._running = False
        self._in_run = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self._run_count = 0
        self._skipped_ticks = 0

    @property
    def running(self) -> bool:
        """Whether the background task is scheduled."""
        return self._running

    @property
    def in_run(self) -> bool:
        """Whether the callback is executing right now."""
        return self._in_run

    @property
    def run_count(self) -> int:
        return self._run_count

    @property
    def skipped_ticks(self) -> int:
        return self._skipped_ticks

    async def start(self) -> None:
        """Start the background loop. Calling start on a running task is a no-op."""
        if self._running:
            return

        self._running = True
        self._wakeup = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name=self._name)
        logger.debug("%s: repeating task started (interval=%ss)", self._name, self._interval)

    async def stop(self) -> None:
        """Stop scheduling runs and wait for an in-progress run to finish.

        Idempotent.
        """
        if not self._running and self._task is None:
            return

        self._running = False
        self._wakeup.set()

        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task():
            if self.in_run:
                logger.info("%s: waiting for the current run to finish", self._name)
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.debug("%s: repeating task stopped after %d runs", self._name, self._run_count)

    async def _sleep_until(self, deadline: float) -> None:
        """Sleep until deadline or until stop() wakes us."""
        remaining = deadline - self._clock()
        if remaining <= 0:
            return
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=remaining)
        except asyncio.TimeoutError:
            pass

    async def _run_loop(self) -> None:
        """Background loop that runs the callback on schedule."""
        next_run = self._clock() + self._initial_delay
        await self._sleep_until(next_run)

        while self._running:
            started = self._clock()
            self._in_run = True
            try:
                await self._callback()
            except Exception as e:
                logger.error("%s: error in scheduled run: %s", self._name, e, exc_info=True)
            finally:
                self._in_run = False
                self._run_count += 1

            elapsed = self._clock() - started
            if elapsed >= self._interval:
                # Ticks that came due while the run was still going are dropped
                overdue = int(elapsed // self._interval)
                self._skipped_ticks += overdue
                logger.warning(
                    "%s: run took %.1fs (interval %.1fs), skipped %d tick(s)",
                    self._name, elapsed, self._interval, overdue,
                )
                next_run = started + (overdue + 1) * self._interval
            else:
                next_run = started + self._interval

            if not self._running:
                break
            await self._sleep_until(next_run)
