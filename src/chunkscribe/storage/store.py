"""One compressed content file per transcript, read through an injected cache."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from chunkscribe.errors import InvalidTranscriptIdError, StorageError
from chunkscribe.storage import codec
from chunkscribe.storage.atomic import atomic_write
from chunkscribe.storage.cache import TranscriptCache

logger = logging.getLogger(__name__)

FILE_SUFFIX = ".vtt.br"

_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass
class SaveResult:
    compressed_size: int
    original_size: int
    path: Path

    @property
    def ratio(self) -> float:
        """Size reduction in percent."""
        if not self.original_size:
            return 0.0
        return (1 - self.compressed_size / self.original_size) * 100


def validate_id(transcript_id: str) -> str:
    if not isinstance(transcript_id, str) or not _ID_RE.match(transcript_id) or ".." in transcript_id:
        raise InvalidTranscriptIdError(f"Invalid transcript id: {transcript_id!r}")
    return transcript_id


class TranscriptStore:
    """Content bytes only; metadata is the caller's business."""

    def __init__(self, directory: Path, cache: TranscriptCache | None = None) -> None:
        self.directory = Path(directory)
        self.cache = cache if cache is not None else TranscriptCache()

    def path_for(self, transcript_id: str) -> Path:
        return self.directory / f"{validate_id(transcript_id)}{FILE_SUFFIX}"

    def save(self, transcript_id: str, content: str) -> SaveResult:
        path = self.path_for(transcript_id)
        try:
            payload = codec.compress(content)
        except Exception:
            logger.exception("Compression failed for %s, storing plain text", transcript_id)
            payload = codec.encode_plain(content)
        original = len(content.encode("utf-8"))

        try:
            atomic_write(path, payload)
        except OSError as e:
            raise StorageError(f"Failed to save transcript {transcript_id}: {e}") from e
        self.cache.invalidate(transcript_id)

        result = SaveResult(compressed_size=len(payload), original_size=original, path=path)
        logger.debug(
            "Saved %s: %d -> %d bytes (%.1f%% reduction)",
            transcript_id, original, result.compressed_size, result.ratio,
        )
        return result

    def load(self, transcript_id: str) -> str | None:
        """Return the transcript text, or None when no content file exists."""
        cached = self.cache.get(transcript_id)
        if cached is not None:
            return cached

        path = self.path_for(transcript_id)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read transcript {transcript_id}: {e}") from e

        try:
            content = codec.decompress(data)
        except ValueError:
            logger.warning("Could not decode %s, falling back to plain text", path.name, exc_info=True)
            content = data.decode("utf-8", errors="replace")
        self.cache.set(transcript_id, content)
        return content

    def exists(self, transcript_id: str) -> bool:
        return self.path_for(transcript_id).exists()

    def delete(self, transcript_id: str) -> bool:
        """Remove the content file; False means it was already absent."""
        path = self.path_for(transcript_id)
        self.cache.invalidate(transcript_id)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("Transcript %s already absent", transcript_id)
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete transcript {transcript_id}: {e}") from e
        return True

    def ids(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(p.name[: -len(FILE_SUFFIX)] for p in self.directory.glob(f"*{FILE_SUFFIX}"))

    def stats(self) -> dict:
        files = list(self.directory.glob(f"*{FILE_SUFFIX}")) if self.directory.exists() else []
        return {
            "files": len(files),
            "total_bytes": sum(f.stat().st_size for f in files),
            "cache": self.cache.stats(),
        }
