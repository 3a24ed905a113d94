"""Transcript library: joins the metadata store with compressed content files."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path

from chunkscribe.errors import StorageError
from chunkscribe.storage import codec
from chunkscribe.storage.cache import TranscriptCache
from chunkscribe.storage.metadata import METADATA_FILENAME, MetadataStore, TranscriptRecord, new_transcript_id
from chunkscribe.storage.store import TranscriptStore
from chunkscribe.transcription.models import TranscriptionOutcome
from chunkscribe.transcription.vtt import render_vtt

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough token count (4 characters per token)."""
    return math.ceil(len(text) / 4) if text else 0


@dataclass
class MigrationReport:
    migrated: int = 0
    skipped: int = 0
    failed: int = 0


class TranscriptLibrary:
    """High-level transcript operations used by the CLI and pipeline."""

    def __init__(self, store: TranscriptStore, metadata: MetadataStore) -> None:
        self.store = store
        self.metadata = metadata

    @classmethod
    def open(cls, data_dir: Path, cache: TranscriptCache | None = None, max_backups: int = 10) -> TranscriptLibrary:
        from chunkscribe.storage.atomic import BackupManager

        data_dir = Path(data_dir).expanduser()
        store = TranscriptStore(data_dir / "transcripts", cache=cache)
        metadata = MetadataStore(
            data_dir / METADATA_FILENAME,
            backups=BackupManager(data_dir / "backups", max_backups=max_backups),
        )
        return cls(store, metadata)

    # -- create --------------------------------------------------------------

    def add(
        self,
        name: str,
        content: TranscriptionOutcome | str,
        *,
        duration: float = 0.0,
        model: str = "",
        diarized: bool = False,
        source_file: str = "",
    ) -> TranscriptRecord:
        """Store new transcript content and its metadata record.

        ``content`` is either a transcription outcome (rendered as WebVTT) or
        ready-made text. If the content file cannot be written the text is
        kept inline in the record instead.
        """
        warning = None
        if isinstance(content, TranscriptionOutcome):
            duration = duration or content.duration
            model = model or content.model
            diarized = diarized or content.diarized
            warning = content.warning
            text = render_vtt(content.transcript)
        else:
            text = content

        record = TranscriptRecord(
            id=new_transcript_id(),
            name=name,
            duration=duration,
            tokens=estimate_tokens(codec.vtt_to_plain_text(text)),
            diarized=diarized,
            model=model,
            source_file=source_file,
            warning=warning,
        )
        try:
            self.store.save(record.id, text)
        except StorageError:
            logger.exception("Content file write failed for %s, storing inline", record.id)
            record.has_content_file = False
            record.content = text
        try:
            self.metadata.add(record)
        except StorageError:
            if record.has_content_file:
                self.store.delete(record.id)
            raise
        logger.info("Saved transcript %s (%s, %d tokens)", record.id, name, record.tokens)
        return record

    # -- read ----------------------------------------------------------------

    def list(self) -> list[TranscriptRecord]:
        return self.metadata.all()

    def get(self, transcript_id: str) -> TranscriptRecord | None:
        return self.metadata.get(transcript_id)

    def content(self, transcript_id: str) -> str | None:
        record = self.metadata.get(transcript_id)
        if record is None:
            return None
        if not record.has_content_file:
            return self._inline_content(record)
        return self.store.load(transcript_id)

    def _inline_content(self, record: TranscriptRecord) -> str:
        value = record.content or ""
        if codec.looks_like_legacy_blob(value):
            try:
                return codec.decode_legacy_blob(value)
            except ValueError:
                logger.warning("Inline content of %s is not a valid legacy blob", record.id)
        return value

    def plain_text(self, transcript_id: str) -> str | None:
        content = self.content(transcript_id)
        return None if content is None else codec.vtt_to_plain_text(content)

    # -- update --------------------------------------------------------------

    def update(self, transcript_id: str, *, content: str | None = None, **changes) -> TranscriptRecord | None:
        """Update metadata fields and optionally replace the content."""
        if self.metadata.get(transcript_id) is None:
            return None
        if content is not None:
            self.store.save(transcript_id, content)
            changes.update(
                has_content_file=True,
                content=None,
                tokens=estimate_tokens(codec.vtt_to_plain_text(content)),
            )
        return self.metadata.update(transcript_id, **changes)

    def toggle_star(self, transcript_id: str) -> TranscriptRecord | None:
        record = self.metadata.get(transcript_id)
        if record is None:
            return None
        return self.metadata.update(transcript_id, starred=not record.starred)

    def set_tags(self, transcript_id: str, tags: list[str]) -> TranscriptRecord | None:
        cleaned = sorted({t.strip() for t in tags if t.strip()})
        return self.metadata.update(transcript_id, tags=cleaned)

    def delete(self, transcript_id: str) -> bool:
        """Delete content file, cache entry and metadata; False if the id is unknown."""
        if self.metadata.get(transcript_id) is None:
            return False
        self.store.delete(transcript_id)
        return self.metadata.delete(transcript_id)

    # -- queries -------------------------------------------------------------

    def search(self, query: str) -> list[TranscriptRecord]:
        """Case-insensitive match against names and tags."""
        needle = query.strip().lower()
        if not needle:
            return self.list()
        return [
            r for r in self.list()
            if needle in r.name.lower() or any(needle in t.lower() for t in r.tags)
        ]

    def stats(self) -> dict:
        records = self.list()
        return {
            "transcripts": len(records),
            "starred": sum(1 for r in records if r.starred),
            "inline": sum(1 for r in records if not r.has_content_file),
            "total_duration": sum(r.duration for r in records),
            "total_tokens": sum(r.tokens for r in records),
            "storage": self.store.stats(),
        }

    def migrate_inline(self) -> MigrationReport:
        """Move inline content into compressed content files."""
        report = MigrationReport()
        for record in self.metadata.all():
            if record.has_content_file or not record.content:
                report.skipped += 1
                continue
            text = self._inline_content(record)
            try:
                self.store.save(record.id, text)
                self.metadata.update(record.id, has_content_file=True, content=None)
            except StorageError:
                logger.exception("Failed to migrate %s", record.id)
                report.failed += 1
                continue
            report.migrated += 1
            logger.info("Migrated %s to compressed storage", record.id)
        return report
