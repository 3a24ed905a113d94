"""Remote transcription call boundary.

The backend turns one audio file plus request parameters into a normalized
:class:`ChunkPayload`. Retry, rate limiting and validation live in the
chunk transcriber, not here.
"""

from __future__ import annotations

import abc
import base64
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import openai

from chunkscribe.transcription.models import (
    ChunkPayload,
    ModelConfig,
    ModelKind,
    Segment,
    SpeakerReference,
)
from chunkscribe.transcription.vtt import parse_vtt

logger = logging.getLogger(__name__)

# The diarization model accepts at most four known speakers per request.
MAX_KNOWN_SPEAKERS = 4

_MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".webm": "audio/webm",
    ".mp4": "audio/mp4",
    ".ogg": "audio/ogg",
}


def file_to_data_url(path: Path) -> str:
    """Encode an audio file as a base64 ``data:`` URL."""
    path = Path(path)
    mime = _MIME_TYPES.get(path.suffix.lower(), "audio/mpeg")
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def build_request_params(
    model: ModelConfig,
    prompt: str | None = None,
    speaker_refs: Sequence[SpeakerReference] | None = None,
) -> dict[str, Any]:
    """Return the model-specific keyword arguments for one transcription request.

    Known-speaker fields are not part of every SDK release's typed signature,
    so they travel in ``extra_body``.
    """
    params: dict[str, Any] = {"model": model.name, "response_format": model.response_format}
    if model.kind is ModelKind.DIARIZED:
        params["chunking_strategy"] = "auto"
        refs = list(speaker_refs or [])[:MAX_KNOWN_SPEAKERS]
        if refs:
            params["extra_body"] = {
                "known_speaker_names": [ref.label for ref in refs],
                "known_speaker_references": [file_to_data_url(ref.path) for ref in refs],
            }
    elif prompt:
        params["prompt"] = prompt
    return params


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def normalize_response(model: ModelConfig, response: Any) -> ChunkPayload:
    """Convert an SDK response (object, dict or raw string) into a ChunkPayload."""
    if response is None:
        return ChunkPayload()

    if model.kind is ModelKind.VTT:
        content = response if isinstance(response, str) else _field(response, "text", "") or ""
        return ChunkPayload(text=content, cues=parse_vtt(content))

    if model.kind is ModelKind.DIARIZED:
        segments = []
        for seg in _field(response, "segments", None) or []:
            segments.append(
                Segment(
                    start=float(_field(seg, "start", 0.0) or 0.0),
                    end=float(_field(seg, "end", 0.0) or 0.0),
                    text=_field(seg, "text", "") or "",
                    speaker=_field(seg, "speaker", None),
                )
            )
        return ChunkPayload(text=_field(response, "text", "") or "", segments=segments)

    if isinstance(response, str):
        return ChunkPayload(text=response)
    return ChunkPayload(text=_field(response, "text", "") or "")


class TranscriptionBackend(abc.ABC):
    """Base class for remote transcription services."""

    @abc.abstractmethod
    async def transcribe(
        self,
        audio_path: Path,
        model: ModelConfig,
        prompt: str | None = None,
        speaker_refs: Sequence[SpeakerReference] | None = None,
    ) -> ChunkPayload:
        """Transcribe one audio file. Raises on network or HTTP errors."""


class OpenAIBackend(TranscriptionBackend):
    """Transcribes audio with the OpenAI audio transcriptions endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 600.0,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or openai.AsyncOpenAI(api_key=api_key, base_url=base_url or None, timeout=timeout)

    async def transcribe(
        self,
        audio_path: Path,
        model: ModelConfig,
        prompt: str | None = None,
        speaker_refs: Sequence[SpeakerReference] | None = None,
    ) -> ChunkPayload:
        params = build_request_params(model, prompt, speaker_refs)
        logger.debug("Transcribing %s with %s", audio_path, model.name)
        with open(audio_path, "rb") as f:
            response = await self._client.audio.transcriptions.create(file=f, **params)
        return normalize_response(model, response)
