"""Batch strategies: concurrent batches for plain models, strict sequence for diarization."""

from __future__ import annotations

import abc
import asyncio
import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from chunkscribe.audio.prep import AudioPrep
from chunkscribe.transcription.backend import MAX_KNOWN_SPEAKERS
from chunkscribe.transcription.chunk_transcriber import ChunkTranscriber
from chunkscribe.transcription.models import AudioChunk, ChunkResult, ModelConfig, SpeakerReference
from chunkscribe.transcription.speakers import extract_new_speaker_samples

logger = logging.getLogger(__name__)

MAX_CONCURRENT_CHUNKS = 5
CONTEXT_CHARS = 200

References = dict[str, SpeakerReference]


def context_prompt(prompt: str | None, previous_text: str) -> str | None:
    """Append the tail of the previous chunk's text to the caller prompt."""
    tail = previous_text[-CONTEXT_CHARS:]
    if not tail:
        return prompt
    if prompt:
        return f"{prompt}\n\nPrevious context: {tail}"
    return tail


class BatchStrategy(abc.ABC):
    """Drives a chunk transcriber across all chunks of one file."""

    def __init__(self, transcriber: ChunkTranscriber) -> None:
        self._transcriber = transcriber

    @abc.abstractmethod
    async def run(
        self,
        chunks: Sequence[AudioChunk],
        model: ModelConfig,
        prompt: str | None = None,
        speaker_refs: Sequence[SpeakerReference] | None = None,
    ) -> list[ChunkResult]:
        """Return one result per chunk, in chunk order."""

    @property
    def owned_files(self) -> list[Path]:
        """Files created during the run that the caller must delete."""
        return []


class ParallelStrategy(BatchStrategy):
    """Transcribe fixed-size batches concurrently, one batch after another."""

    def __init__(self, transcriber: ChunkTranscriber, batch_size: int = MAX_CONCURRENT_CHUNKS) -> None:
        super().__init__(transcriber)
        self.batch_size = batch_size

    def _prompt_for(self, position: int, results: list[ChunkResult | None], prompt: str | None) -> str | None:
        if position == 0:
            return prompt
        previous = results[position - 1]
        # Only results from earlier batches are known at launch time
        if previous is None or not previous.success:
            return prompt
        return context_prompt(prompt, previous.payload.plain_text)

    async def run(
        self,
        chunks: Sequence[AudioChunk],
        model: ModelConfig,
        prompt: str | None = None,
        speaker_refs: Sequence[SpeakerReference] | None = None,
    ) -> list[ChunkResult]:
        total = len(chunks)
        results: list[ChunkResult | None] = [None] * total
        num_batches = (total + self.batch_size - 1) // self.batch_size

        for start in range(0, total, self.batch_size):
            positions = range(start, min(start + self.batch_size, total))
            calls = [
                self._transcriber.transcribe(
                    chunks[pos], model, self._prompt_for(pos, results, prompt), total=total,
                )
                for pos in positions
            ]
            batch_results = await asyncio.gather(*calls)
            for pos, result in zip(positions, batch_results):
                results[pos] = result
            logger.info("Completed batch %d of %d", start // self.batch_size + 1, num_batches)

        return [r for r in results if r is not None]


class SequentialStrategy(BatchStrategy):
    """Transcribe one chunk at a time, carrying speaker voice samples forward."""

    def __init__(
        self,
        transcriber: ChunkTranscriber,
        prep: AudioPrep,
        extract: Callable[..., list[SpeakerReference]] = extract_new_speaker_samples,
    ) -> None:
        super().__init__(transcriber)
        self._prep = prep
        self._extract = extract
        self._extracted: list[SpeakerReference] = []

    @property
    def owned_files(self) -> list[Path]:
        return [ref.path for ref in self._extracted]

    async def step(
        self,
        chunk: AudioChunk,
        model: ModelConfig,
        references: References,
        *,
        is_last: bool,
        total: int = 1,
    ) -> tuple[ChunkResult, References]:
        """Transcribe ``chunk`` and return the result with the updated reference map.

        ``references`` is not mutated; labels already present are never replaced.
        """
        sent = list(references.values())[:MAX_KNOWN_SPEAKERS]
        result = await self._transcriber.transcribe(chunk, model, speaker_refs=sent, total=total)
        if not result.success or is_last or not result.payload.segments:
            return result, references

        new_refs = self._extract(chunk.path, result.payload.segments, references.keys(), self._prep)
        self._extracted.extend(new_refs)
        merged = dict(references)
        for ref in new_refs:
            merged.setdefault(ref.label, ref)
        if new_refs:
            logger.info("Extracted %d speaker samples from chunk %d", len(new_refs), chunk.index + 1)
        return result, merged

    async def run(
        self,
        chunks: Sequence[AudioChunk],
        model: ModelConfig,
        prompt: str | None = None,
        speaker_refs: Sequence[SpeakerReference] | None = None,
    ) -> list[ChunkResult]:
        references: References = {}
        for ref in speaker_refs or []:
            references.setdefault(ref.label, ref)

        total = len(chunks)
        results = []
        for pos, chunk in enumerate(chunks):
            result, references = await self.step(chunk, model, references, is_last=pos == total - 1, total=total)
            results.append(result)
            logger.info("Completed chunk %d of %d (sequential diarization)", pos + 1, total)
        return results


def select_strategy(
    model: ModelConfig,
    transcriber: ChunkTranscriber,
    prep: AudioPrep,
    batch_size: int = MAX_CONCURRENT_CHUNKS,
) -> BatchStrategy:
    """Diarized models need speaker continuity, so they run sequentially."""
    if model.diarized:
        return SequentialStrategy(transcriber, prep)
    return ParallelStrategy(transcriber, batch_size=batch_size)
