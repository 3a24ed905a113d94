"""Tests for the async retry helper."""

from __future__ import annotations

import asyncio

import pytest

from chunkscribe.transcription.retry import exponential_backoff, retry_async


class TestExponentialBackoff:
    def test_doubles(self):
        delay = exponential_backoff(1.0)
        assert [delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_initial_scales(self):
        assert exponential_backoff(0.5)(3) == 2.0


class TestRetryAsync:
    def test_first_attempt_succeeds(self, clock):
        async def attempt(n):
            return f"ok-{n}"

        outcome = asyncio.run(retry_async(attempt, sleep=clock.sleep))
        assert outcome.ok
        assert outcome.value == "ok-1"
        assert outcome.attempts == 1
        assert clock.sleeps == []

    def test_succeeds_on_third_attempt(self, clock):
        async def attempt(n):
            if n < 3:
                raise ConnectionError(f"reset {n}")
            return "done"

        retried = []
        outcome = asyncio.run(
            retry_async(attempt, max_attempts=3, sleep=clock.sleep, on_retry=lambda n, e: retried.append(n))
        )
        assert outcome.value == "done"
        assert outcome.attempts == 3
        assert clock.sleeps == [1.0, 2.0]
        assert retried == [1, 2]

    def test_exhaustion_returns_last_error_without_final_sleep(self, clock):
        async def attempt(n):
            raise TimeoutError(f"timeout {n}")

        outcome = asyncio.run(retry_async(attempt, max_attempts=3, sleep=clock.sleep))
        assert not outcome.ok
        assert outcome.value is None
        assert str(outcome.error) == "timeout 3"
        assert outcome.attempts == 3
        assert clock.sleeps == [1.0, 2.0]

    def test_custom_backoff(self, clock):
        async def attempt(n):
            raise RuntimeError("nope")

        asyncio.run(retry_async(attempt, max_attempts=4, backoff=lambda n: 10.0 * n, sleep=clock.sleep))
        assert clock.sleeps == [10.0, 20.0, 30.0]

    def test_unlisted_exception_propagates(self, clock):
        async def attempt(n):
            raise KeyError("boom")

        with pytest.raises(KeyError):
            asyncio.run(retry_async(attempt, sleep=clock.sleep, retry_on=(ConnectionError,)))
        assert clock.sleeps == []
