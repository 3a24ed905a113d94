"""Pipeline glue: transcribe -> store, and the library commands behind the CLI."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from chunkscribe.audio.prep import AudioPrep
from chunkscribe.config import Config
from chunkscribe.errors import ChunkscribeError
from chunkscribe.library import TranscriptLibrary
from chunkscribe.progress import NullProgress, PipelineProgress, Spinner
from chunkscribe.storage.cache import TranscriptCache
from chunkscribe.storage.metadata import TranscriptRecord
from chunkscribe.transcription.backend import OpenAIBackend
from chunkscribe.transcription.models import SpeakerReference, TranscriptionOutcome
from chunkscribe.transcription.orchestrator import Orchestrator, TranscribeOptions
from chunkscribe.transcription.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def open_library(config: Config) -> TranscriptLibrary:
    """Open the transcript library under the configured data directory."""
    storage = config.storage
    cache = TranscriptCache(
        max_entries=storage.cache_entries,
        max_bytes=int(storage.cache_max_mb * 1024 * 1024),
        ttl=storage.cache_ttl_minutes * 60,
    )
    return TranscriptLibrary.open(storage.resolved_dir, cache=cache, max_backups=storage.max_backups)


def create_rate_limiter(config: Config) -> RateLimiter:
    return RateLimiter(capacity=config.limits.requests_per_minute)


def _create_orchestrator(config: Config, rate_limiter: RateLimiter, progress) -> Orchestrator:
    backend = OpenAIBackend(
        api_key=config.transcription.api_key or None,
        base_url=config.transcription.base_url or None,
    )
    return Orchestrator(
        backend,
        rate_limiter,
        prep=AudioPrep(),
        max_retries=config.limits.max_retries,
        initial_backoff=config.limits.initial_backoff,
        batch_size=config.limits.max_concurrent_chunks,
        on_attempt=progress.chunk_attempt,
    )


def parse_speaker(value: str) -> SpeakerReference:
    """Parse ``LABEL=PATH`` into a speaker reference."""
    label, sep, path = value.partition("=")
    if not sep or not label.strip() or not path.strip():
        raise click.BadParameter(f"expected LABEL=PATH, got {value!r}")
    p = Path(path.strip()).expanduser()
    if not p.is_file():
        raise click.BadParameter(f"speaker sample not found: {p}")
    return SpeakerReference(label=label.strip(), path=p)


def _report_outcome(record: TranscriptRecord, outcome: TranscriptionOutcome) -> None:
    chunks = f", {outcome.total_chunks} chunks" if outcome.chunked else ""
    click.echo(f"Saved transcript {record.id}: {record.name} ({record.tokens} tokens{chunks})")
    if outcome.warning:
        click.echo(f"Warning: {outcome.warning}", err=True)
        for fc in outcome.failed_chunks:
            click.echo(f"  chunk {fc.index} ({fc.duration:.0f}s): {fc.error}", err=True)


def run_transcribe(
    config: Config,
    files: list[str],
    name: str | None = None,
    speakers: list[SpeakerReference] | None = None,
) -> list[TranscriptRecord]:
    """Transcribe one or more audio files and store the results."""
    prep = AudioPrep()
    if not prep.is_available():
        click.echo(
            "Error: ffmpeg/ffprobe not found. Install with:\n"
            "  macOS: brew install ffmpeg\n"
            "  Ubuntu/Debian: sudo apt-get install ffmpeg",
            err=True,
        )
        raise SystemExit(1)
    if not config.transcription.api_key and not config.transcription.base_url:
        click.echo("Error: No API key. Set OPENAI_API_KEY or transcription.api_key in the config.", err=True)
        raise SystemExit(1)

    library = open_library(config)
    # One limiter for every request this process makes
    rate_limiter = create_rate_limiter(config)
    options = TranscribeOptions(
        model=config.transcription.model,
        prompt=config.transcription.prompt or None,
        speakers=list(speakers or []),
        speed=config.transcription.speed,
        compress=config.transcription.compress,
        target_chunk_size_mb=config.transcription.target_chunk_size_mb,
    )

    records = []
    for file in files:
        path = Path(file)
        display_name = name if name and len(files) == 1 else path.stem
        progress = PipelineProgress() if sys.stderr.isatty() else NullProgress()
        with progress:
            progress.begin("preparing")
            orchestrator = _create_orchestrator(config, rate_limiter, progress)
            outcome = asyncio.run(orchestrator.transcribe_file(path, options))
            progress.begin("saving")
            record = library.add(display_name, outcome, source_file=str(path.resolve()))
            progress.complete("saving")
        _report_outcome(record, outcome)
        records.append(record)
    return records


def _require(library: TranscriptLibrary, transcript_id: str) -> TranscriptRecord:
    record = library.get(transcript_id)
    if record is None:
        click.echo(f"Error: No transcript with id {transcript_id}", err=True)
        raise SystemExit(1)
    return record


def run_export(config: Config, transcript_id: str, fmt: str, output: str | None = None) -> str:
    from chunkscribe.output.formats import export, file_suffix

    library = open_library(config)
    record = _require(library, transcript_id)
    content = library.content(transcript_id)
    if content is None:
        raise ChunkscribeError(f"Content file for {transcript_id} is missing")
    rendered = export(record, content, fmt)
    if output:
        out = Path(output)
        if out.is_dir():
            out = out / f"{record.id}{file_suffix(fmt)}"
        out.write_text(rendered, encoding="utf-8")
        click.echo(f"Exported to {out}")
    else:
        click.echo(rendered)
    return rendered


def run_ask(config: Config, transcript_id: str, question: str) -> str:
    """Ask the configured chat backend a question about one transcript."""
    from chunkscribe.chat import create_chat_backend

    library = open_library(config)
    record = _require(library, transcript_id)
    text = library.plain_text(transcript_id)
    if not text:
        raise ChunkscribeError(f"Transcript {transcript_id} has no content")

    backend = create_chat_backend(config)
    if not backend.is_available():
        where = config.chat.host or "the OpenAI API"
        click.echo(f"Error: {config.chat.backend} is not reachable at {where}. Is the server running?", err=True)
        raise SystemExit(1)

    with Spinner(f"Asking {config.chat.model}"):
        answer = backend.ask(question, text, name=record.name)
    click.echo(f"\n{answer}")
    return answer


def run_migrate(config: Config) -> None:
    library = open_library(config)
    report = library.migrate_inline()
    click.echo(
        f"Migrated {report.migrated} transcript(s), skipped {report.skipped}, failed {report.failed}."
    )
    if report.failed:
        raise SystemExit(1)


def _format_duration(seconds: float) -> str:
    m, s = divmod(int(seconds), 60)
    h, m = divmod(m, 60)
    return f"{h}:{m:02d}:{s:02d}" if h else f"{m}:{s:02d}"


def run_stats(config: Config) -> dict:
    library = open_library(config)
    stats = library.stats()
    storage = stats["storage"]
    click.echo(f"Transcripts:    {stats['transcripts']} ({stats['starred']} starred, {stats['inline']} inline)")
    click.echo(f"Total duration: {_format_duration(stats['total_duration'])}")
    click.echo(f"Total tokens:   {stats['total_tokens']}")
    click.echo(f"Content files:  {storage['files']} ({storage['total_bytes'] / 1024:.1f} KB)")
    return stats


def format_record_line(record: TranscriptRecord) -> str:
    star = "*" if record.starred else " "
    tags = f"  [{', '.join(record.tags)}]" if record.tags else ""
    speakers = "  (diarized)" if record.diarized else ""
    return f"{star} {record.id}  {_format_duration(record.duration):>8}  {record.name}{speakers}{tags}"
