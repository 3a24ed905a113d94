"""Sliding-window admission control for outbound transcription requests."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# The API allows 100 requests per minute; stay below it.
DEFAULT_CAPACITY = 80
DEFAULT_WINDOW = 60.0
MAX_WAIT_ITERATIONS = 10


class RateLimiter:
    """Admit at most ``capacity`` requests in any trailing ``window`` seconds.

    One instance is shared by every transcription call in the process. The
    clock and sleep functions are injectable so tests can drive time.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        window: float = DEFAULT_WINDOW,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_wait_iterations: int = MAX_WAIT_ITERATIONS,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._max_wait_iterations = max_wait_iterations
        self._timestamps: deque[float] = deque()

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window:
            self._timestamps.popleft()

    @property
    def in_window(self) -> int:
        self._prune(self._clock())
        return len(self._timestamps)

    def can_proceed(self) -> bool:
        self._prune(self._clock())
        return len(self._timestamps) < self.capacity

    async def await_slot(self) -> None:
        """Suspend until a request may be sent, then record it."""
        iterations = 0
        while not self.can_proceed():
            iterations += 1
            if iterations > self._max_wait_iterations:
                logger.error(
                    "Rate limiter exceeded %d wait iterations; resetting window",
                    self._max_wait_iterations,
                )
                self._timestamps.clear()
                break

            wait = self._timestamps[0] + self.window - self._clock()
            if wait <= 0:
                # Oldest entry aged out since the check
                self._timestamps.popleft()
                continue
            logger.info("Rate limit reached, waiting %.1fs", wait)
            await self._sleep(wait)

        self._timestamps.append(self._clock())

    def reset(self) -> None:
        self._timestamps.clear()
