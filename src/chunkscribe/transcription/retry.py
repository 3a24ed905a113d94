"""Generic async retry with a pluggable backoff schedule."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def exponential_backoff(initial: float = 1.0) -> Callable[[int], float]:
    """Return a schedule giving ``initial * 2**(attempt-1)`` seconds after ``attempt``."""

    def delay(attempt: int) -> float:
        return initial * 2 ** (attempt - 1)

    return delay


@dataclass
class RetryOutcome(Generic[T]):
    value: T | None
    error: BaseException | None
    attempts: int

    @property
    def ok(self) -> bool:
        return self.error is None


async def retry_async(
    attempt: Callable[[int], Awaitable[T]],
    max_attempts: int = 3,
    backoff: Callable[[int], float] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> RetryOutcome[T]:
    """Call ``attempt(n)`` for n = 1..max_attempts until it returns without raising.

    Never raises the attempt's exceptions: the last one is returned in the
    outcome. No sleep happens after the final attempt.
    """
    if backoff is None:
        backoff = exponential_backoff()
    last_error: BaseException | None = None
    for n in range(1, max_attempts + 1):
        try:
            value = await attempt(n)
            return RetryOutcome(value=value, error=None, attempts=n)
        except retry_on as e:
            last_error = e
            logger.debug("Attempt %d/%d failed: %s", n, max_attempts, e)
            if n < max_attempts:
                if on_retry is not None:
                    on_retry(n, e)
                await sleep(backoff(n))
    return RetryOutcome(value=None, error=last_error, attempts=max_attempts)
