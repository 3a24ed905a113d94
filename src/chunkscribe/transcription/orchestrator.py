"""Run the full transcription flow for one file and assemble the merged transcript."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from chunkscribe.audio.prep import AudioPrep, cleanup_chunks, remove_file
from chunkscribe.errors import AllChunksFailedError
from chunkscribe.transcription.backend import TranscriptionBackend
from chunkscribe.transcription.chunk_transcriber import (
    INITIAL_BACKOFF,
    MAX_RETRIES,
    ChunkTranscriber,
    ProgressCallback,
)
from chunkscribe.transcription.models import (
    AudioChunk,
    ChunkResult,
    Cue,
    FailedChunk,
    ModelConfig,
    ModelKind,
    SpeakerReference,
    Transcript,
    TranscriptFormat,
    TranscriptionOutcome,
    resolve_model,
)
from chunkscribe.transcription.rate_limiter import RateLimiter
from chunkscribe.transcription.strategies import MAX_CONCURRENT_CHUNKS, BatchStrategy, select_strategy

logger = logging.getLogger(__name__)


@dataclass
class TranscribeOptions:
    model: str = "whisper-1"
    prompt: str | None = None
    speakers: list[SpeakerReference] = field(default_factory=list)
    speed: float = 1.0
    compress: bool = False
    target_chunk_size_mb: float = 20


def assemble(
    chunks: Sequence[AudioChunk],
    results: Sequence[ChunkResult],
    model: ModelConfig,
    speed: float = 1.0,
) -> TranscriptionOutcome:
    """Merge per-chunk results into one transcript on the source timeline.

    Chunk-relative timestamps are shifted by the summed duration of the
    chunks before them, then multiplied by ``speed`` when the audio was
    sped up before splitting. Raises AllChunksFailedError when nothing
    succeeded.
    """
    total = len(chunks)
    failed = [
        FailedChunk(index=pos + 1, duration=chunk.duration * speed, error=result.error or "Unknown error")
        for pos, (chunk, result) in enumerate(zip(chunks, results))
        if not result.success
    ]
    if total and len(failed) == total:
        raise AllChunksFailedError(failed)

    cues: list[Cue] = []
    texts: list[str] = []
    offset = 0.0
    for chunk, result in zip(chunks, results):
        if result.success:
            payload = result.payload
            if model.kind is ModelKind.DIARIZED:
                for seg in payload.segments:
                    start, end = (offset + seg.start) * speed, (offset + seg.end) * speed
                    cues.append(Cue(start=start, end=max(start, end), text=seg.text.strip(), speaker=seg.speaker))
            elif model.kind is ModelKind.VTT:
                for cue in payload.cues:
                    start, end = (offset + cue.start) * speed, (offset + cue.end) * speed
                    cues.append(Cue(start=start, end=max(start, end), text=cue.text, speaker=cue.speaker))
            elif payload.plain_text:
                texts.append(payload.plain_text)
        offset += chunk.duration

    if model.kind is ModelKind.JSON:
        transcript = Transcript(format=TranscriptFormat.PLAIN, text=" ".join(texts))
    else:
        cues.sort(key=lambda c: c.start)
        transcript = Transcript(format=TranscriptFormat.CUE, cues=cues, diarized=model.diarized)

    warning = None
    if failed:
        warning = (
            f"{len(failed)} of {total} chunks failed to transcribe; "
            "the transcript has gaps where those chunks were."
        )
        logger.warning("%s", warning)

    return TranscriptionOutcome(
        transcript=transcript,
        model=model.name,
        duration=sum(c.duration for c in chunks) * speed,
        chunked=total > 1,
        total_chunks=total,
        failed_chunks=failed,
        warning=warning,
    )


class Orchestrator:
    """Prepare audio, pick a batch strategy, transcribe and clean up."""

    def __init__(
        self,
        backend: TranscriptionBackend,
        rate_limiter: RateLimiter,
        prep: AudioPrep | None = None,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF,
        batch_size: int = MAX_CONCURRENT_CHUNKS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_attempt: ProgressCallback | None = None,
    ) -> None:
        self.prep = prep or AudioPrep()
        self.batch_size = batch_size
        self.transcriber = ChunkTranscriber(
            backend,
            rate_limiter,
            max_retries=max_retries,
            initial_backoff=initial_backoff,
            sleep=sleep,
            on_attempt=on_attempt,
        )

    def _prepare(self, path: Path, options: TranscribeOptions, intermediates: list[Path]) -> tuple[Path, float]:
        work = path
        if self.prep.needs_conversion(work):
            work = self.prep.convert_to_standard_format(work)
            intermediates.append(work)

        speed = 1.0
        if options.speed != 1.0:
            sped = self.prep.adjust_speed(work, options.speed)
            if sped != work:
                intermediates.append(sped)
                work, speed = sped, options.speed

        if options.compress:
            work = self.prep.compress_for_transport(work)
            intermediates.append(work)
        return work, speed

    async def transcribe_chunks(
        self,
        chunks: Sequence[AudioChunk],
        model: ModelConfig,
        prompt: str | None = None,
        speakers: Sequence[SpeakerReference] | None = None,
        strategy: BatchStrategy | None = None,
    ) -> list[ChunkResult]:
        strategy = strategy or select_strategy(model, self.transcriber, self.prep, self.batch_size)
        return await strategy.run(chunks, model, prompt, speakers)

    async def transcribe_file(self, path: Path, options: TranscribeOptions | None = None) -> TranscriptionOutcome:
        """Transcribe one audio file end to end.

        Temporary chunks, voice samples and intermediate files are removed
        whether or not transcription succeeds; the input file is never touched.
        """
        options = options or TranscribeOptions()
        path = Path(path)
        model = resolve_model(options.model)
        intermediates: list[Path] = []
        chunks: list[AudioChunk] = []
        strategy: BatchStrategy | None = None
        try:
            work, speed = self._prepare(path, options, intermediates)
            chunks = self.prep.split(work, options.target_chunk_size_mb)
            logger.info("Transcribing %d chunk(s) with %s", len(chunks), model.name)
            strategy = select_strategy(model, self.transcriber, self.prep, self.batch_size)
            results = await self.transcribe_chunks(chunks, model, options.prompt, options.speakers, strategy)
            return assemble(chunks, results, model, speed)
        finally:
            cleanup_chunks(chunks)
            if strategy is not None:
                for sample in strategy.owned_files:
                    remove_file(sample, keep=path)
            for intermediate in intermediates:
                remove_file(intermediate, keep=path)
