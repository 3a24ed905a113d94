"""Lightweight JSON metadata store for transcript records."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path

from chunkscribe.errors import MetadataWriteError, StorageError
from chunkscribe.storage.atomic import BackupManager, atomic_write

logger = logging.getLogger(__name__)

METADATA_FILENAME = "transcripts.json"
FORMAT_VERSION = 1

_IMMUTABLE = {"id", "created_at"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_transcript_id(now: datetime | None = None) -> str:
    now = now or utcnow()
    return f"{now:%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:6]}"


@dataclass
class TranscriptRecord:
    id: str
    name: str
    duration: float = 0.0
    created_at: str = ""
    updated_at: str = ""
    starred: bool = False
    tags: list[str] = field(default_factory=list)
    tokens: int = 0
    diarized: bool = False
    model: str = ""
    has_content_file: bool = True
    content: str | None = None
    source_file: str = ""
    warning: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["content"] is None:
            del data["content"]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> TranscriptRecord:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class MetadataStore:
    """All records live in one JSON file, rewritten atomically with a backup first."""

    def __init__(
        self,
        path: Path,
        backups: BackupManager | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.path = Path(path)
        self.backups = backups or BackupManager(self.path.parent / "backups")
        self._clock = clock

    # -- reading -------------------------------------------------------------

    def _read(self) -> list[TranscriptRecord]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"Could not read metadata file {self.path}: {e}") from e
        items = data.get("transcripts", []) if isinstance(data, dict) else data
        return [TranscriptRecord.from_dict(item) for item in items]

    def all(self) -> list[TranscriptRecord]:
        """Records, newest first."""
        return sorted(self._read(), key=lambda r: r.created_at, reverse=True)

    def get(self, transcript_id: str) -> TranscriptRecord | None:
        for record in self._read():
            if record.id == transcript_id:
                return record
        return None

    # -- writing -------------------------------------------------------------

    def _write(self, records: list[TranscriptRecord]) -> None:
        payload = json.dumps(
            {"version": FORMAT_VERSION, "transcripts": [r.to_dict() for r in records]},
            indent=2,
            ensure_ascii=False,
        )
        self.backups.create(self.path)
        try:
            atomic_write(self.path, payload, validate_json=True)
        except (OSError, ValueError) as e:
            logger.error("Metadata write failed: %s; restoring latest backup", e)
            try:
                self.backups.restore_latest(self.path)
            except OSError:
                logger.exception("Backup restore failed")
            raise MetadataWriteError(f"Failed to write {self.path.name}: {e}") from e

    def _now(self) -> str:
        return self._clock().isoformat(timespec="microseconds")

    def add(self, record: TranscriptRecord) -> TranscriptRecord:
        records = self._read()
        if any(r.id == record.id for r in records):
            raise StorageError(f"Transcript id already exists: {record.id}")
        now = self._now()
        record.created_at = record.created_at or now
        record.updated_at = record.updated_at or record.created_at
        records.append(record)
        self._write(records)
        return record

    def update(self, transcript_id: str, **changes) -> TranscriptRecord | None:
        """Apply ``changes`` to a record; None when the id is unknown."""
        bad = (set(changes) & _IMMUTABLE) | (set(changes) - {f.name for f in fields(TranscriptRecord)})
        if bad:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(bad))}")

        records = self._read()
        for record in records:
            if record.id == transcript_id:
                break
        else:
            return None

        for key, value in changes.items():
            setattr(record, key, value)
        # ISO-8601 strings in UTC compare chronologically
        record.updated_at = max(self._now(), record.updated_at)
        self._write(records)
        return record

    def delete(self, transcript_id: str) -> bool:
        records = self._read()
        remaining = [r for r in records if r.id != transcript_id]
        if len(remaining) == len(records):
            return False
        self._write(remaining)
        return True
