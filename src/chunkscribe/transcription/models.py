"""Data models for chunks, chunk results and assembled transcripts."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path

MIN_SAMPLE_SECONDS = 2.0
MAX_SAMPLE_SECONDS = 10.0


class ModelKind(str, enum.Enum):
    """Response shape of a transcription model."""

    VTT = "vtt"
    JSON = "json"
    DIARIZED = "diarized"


@dataclass(frozen=True)
class ModelConfig:
    name: str
    kind: ModelKind

    @property
    def diarized(self) -> bool:
        return self.kind is ModelKind.DIARIZED

    @property
    def response_format(self) -> str:
        if self.kind is ModelKind.VTT:
            return "vtt"
        if self.kind is ModelKind.DIARIZED:
            return "diarized_json"
        return "json"


KNOWN_MODELS: dict[str, ModelConfig] = {
    "whisper-1": ModelConfig("whisper-1", ModelKind.VTT),
    "gpt-4o-transcribe": ModelConfig("gpt-4o-transcribe", ModelKind.JSON),
    "gpt-4o-mini-transcribe": ModelConfig("gpt-4o-mini-transcribe", ModelKind.JSON),
    "gpt-4o-transcribe-diarize": ModelConfig("gpt-4o-transcribe-diarize", ModelKind.DIARIZED),
}


def resolve_model(name: str) -> ModelConfig:
    """Look up a model by name; unknown names are treated as plain JSON models."""
    if name in KNOWN_MODELS:
        return KNOWN_MODELS[name]
    if name.endswith("-diarize"):
        return ModelConfig(name, ModelKind.DIARIZED)
    return ModelConfig(name, ModelKind.JSON)


@dataclass
class AudioChunk:
    source: Path
    index: int
    start: float
    duration: float
    path: Path
    temporary: bool = True

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass
class Segment:
    start: float
    end: float
    text: str
    speaker: str | None = None

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class Cue:
    start: float
    end: float
    text: str
    speaker: str | None = None


@dataclass
class ChunkPayload:
    """Normalized response for one chunk.

    Exactly one of ``segments`` (diarized), ``cues`` (VTT) or ``text`` (JSON)
    carries content, depending on the model kind.
    """

    text: str = ""
    segments: list[Segment] = field(default_factory=list)
    cues: list[Cue] = field(default_factory=list)

    def is_empty_for(self, kind: ModelKind) -> bool:
        """True when the content the model kind is merged from is missing."""
        if kind is ModelKind.DIARIZED:
            return not self.segments
        if kind is ModelKind.VTT:
            return not self.cues
        return not self.text.strip()

    @property
    def plain_text(self) -> str:
        if self.segments:
            return " ".join(seg.text.strip() for seg in self.segments).strip()
        if self.cues:
            return " ".join(cue.text.strip() for cue in self.cues).strip()
        return self.text.strip()


@dataclass
class ChunkResult:
    index: int
    success: bool
    payload: ChunkPayload = field(default_factory=ChunkPayload)
    error: str | None = None
    attempts: int = 0

    @classmethod
    def failed(cls, index: int, error: str, attempts: int = 0) -> ChunkResult:
        return cls(index=index, success=False, error=error, attempts=attempts)


@dataclass
class FailedChunk:
    index: int  # 1-based chunk number, as shown to the user
    duration: float
    error: str


@dataclass(frozen=True)
class SpeakerReference:
    label: str
    path: Path
    duration: float = 5.0

    def __post_init__(self) -> None:
        clamped = min(max(self.duration, MIN_SAMPLE_SECONDS), MAX_SAMPLE_SECONDS)
        object.__setattr__(self, "duration", clamped)


class TranscriptFormat(str, enum.Enum):
    CUE = "cue"
    PLAIN = "plain"


@dataclass
class Transcript:
    format: TranscriptFormat
    cues: list[Cue] = field(default_factory=list)
    text: str = ""
    diarized: bool = False

    @property
    def full_text(self) -> str:
        if self.format is TranscriptFormat.PLAIN:
            return self.text.strip()
        return " ".join(cue.text.strip() for cue in self.cues).strip()


@dataclass
class TranscriptionOutcome:
    transcript: Transcript
    model: str
    duration: float = 0.0
    chunked: bool = False
    total_chunks: int = 1
    failed_chunks: list[FailedChunk] = field(default_factory=list)
    warning: str | None = None

    @property
    def diarized(self) -> bool:
        return self.transcript.diarized
