"""Transcribe a single chunk with rate limiting, retry and response validation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from chunkscribe.transcription.backend import TranscriptionBackend
from chunkscribe.transcription.models import (
    AudioChunk,
    ChunkPayload,
    ChunkResult,
    ModelConfig,
    SpeakerReference,
)
from chunkscribe.transcription.rate_limiter import RateLimiter
from chunkscribe.transcription.retry import exponential_backoff, retry_async

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_BACKOFF = 1.0

ProgressCallback = Callable[[int, int, int], None]


class EmptyTranscriptionError(Exception):
    """The API answered but returned no text, cues or segments."""


class ChunkTranscriber:
    """Sends chunks to a backend; failures come back as failed ChunkResults."""

    def __init__(
        self,
        backend: TranscriptionBackend,
        rate_limiter: RateLimiter,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_attempt: ProgressCallback | None = None,
    ) -> None:
        self._backend = backend
        self._rate_limiter = rate_limiter
        self._max_retries = max_retries
        self._backoff = exponential_backoff(initial_backoff)
        self._sleep = sleep
        self._on_attempt = on_attempt

    async def transcribe(
        self,
        chunk: AudioChunk,
        model: ModelConfig,
        prompt: str | None = None,
        speaker_refs: Sequence[SpeakerReference] | None = None,
        total: int = 1,
    ) -> ChunkResult:
        async def attempt(n: int) -> ChunkPayload:
            if self._on_attempt is not None:
                self._on_attempt(chunk.index, total, n)
            await self._rate_limiter.await_slot()
            payload = await self._backend.transcribe(chunk.path, model, prompt, speaker_refs)
            if payload.is_empty_for(model.kind):
                raise EmptyTranscriptionError("Empty transcription response")
            return payload

        def log_retry(n: int, error: BaseException) -> None:
            logger.warning(
                "Chunk %d/%d attempt %d failed: %s; retrying in %.0fs",
                chunk.index + 1, total, n, error, self._backoff(n),
            )

        outcome = await retry_async(
            attempt,
            max_attempts=self._max_retries,
            backoff=self._backoff,
            sleep=self._sleep,
            on_retry=log_retry,
        )
        if outcome.ok:
            return ChunkResult(index=chunk.index, success=True, payload=outcome.value, attempts=outcome.attempts)

        error = str(outcome.error) or type(outcome.error).__name__
        logger.error(
            "Chunk %d/%d failed after %d attempts: %s",
            chunk.index + 1, total, outcome.attempts, error,
        )
        return ChunkResult.failed(chunk.index, error, attempts=outcome.attempts)
