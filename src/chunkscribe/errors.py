"""Exception hierarchy shared across the pipeline and storage layers."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chunkscribe.transcription.models import FailedChunk


class ChunkscribeError(Exception):
    """Base class for errors surfaced to the user."""


class AudioPrepError(ChunkscribeError):
    """Raised when probing, converting or splitting audio fails."""


class AllChunksFailedError(ChunkscribeError):
    """Raised when every chunk of an audio file failed to transcribe."""

    def __init__(self, failed_chunks: list[FailedChunk]) -> None:
        self.failed_chunks = failed_chunks
        details = "; ".join(f"chunk {fc.index}: {fc.error}" for fc in failed_chunks)
        super().__init__(f"All chunks failed to transcribe ({details})")


class StorageError(ChunkscribeError):
    """Raised when transcript content cannot be read or written."""


class InvalidTranscriptIdError(StorageError):
    """Raised for ids that cannot be mapped safely to a file name."""


class MetadataWriteError(StorageError):
    """Raised when the metadata file could not be written (after restore attempts)."""
