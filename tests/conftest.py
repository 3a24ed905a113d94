"""Shared fixtures for chunkscribe tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from chunkscribe.audio.prep import AudioPrep
from chunkscribe.transcription.backend import TranscriptionBackend
from chunkscribe.transcription.models import AudioChunk, ChunkPayload, Segment


class FakeClock:
    """Manually driven clock whose async sleep advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@dataclass
class BackendCall:
    path: Path
    model: str
    prompt: str | None
    speaker_labels: list[str] = field(default_factory=list)


class ScriptedBackend(TranscriptionBackend):
    """Replays scripted responses keyed by chunk file name.

    Each script is a list consumed one item per call (the last item repeats).
    Items are ChunkPayloads or exceptions to raise. ``delays`` maps file
    names to seconds of real asyncio sleep before answering.
    """

    def __init__(self, scripts: dict[str, list], delays: dict[str, float] | None = None) -> None:
        self.scripts = {k: list(v) for k, v in scripts.items()}
        self.delays = delays or {}
        self.calls: list[BackendCall] = []
        self.completed: list[str] = []

    async def transcribe(self, audio_path, model, prompt=None, speaker_refs=None) -> ChunkPayload:
        name = Path(audio_path).name
        self.calls.append(
            BackendCall(Path(audio_path), model.name, prompt, [r.label for r in speaker_refs or []])
        )
        if self.delays.get(name):
            await asyncio.sleep(self.delays[name])
        script = self.scripts[name]
        item = script.pop(0) if len(script) > 1 else script[0]
        self.completed.append(name)
        if isinstance(item, BaseException):
            raise item
        return item


class FakePrep(AudioPrep):
    """AudioPrep that writes placeholder files instead of running ffmpeg."""

    def __init__(self, tmp_path: Path, durations: list[float] | None = None, split_error: Exception | None = None):
        super().__init__(temp_dir=tmp_path / "work")
        self.durations = durations or [60.0]
        self.split_error = split_error
        self.clips: list[tuple[Path, float, float]] = []
        self.failing_clips: set[str] = set()
        self.split_input: Path | None = None

    def is_available(self) -> bool:
        return True

    def _touch(self, prefix: str) -> Path:
        out = self._output_path(prefix, ".mp3")
        out.write_bytes(b"ID3fake")
        return out

    def convert_to_standard_format(self, path: Path) -> Path:
        return self._touch("converted")

    def adjust_speed(self, path: Path, multiplier: float) -> Path:
        if multiplier <= 1.0 or multiplier > 3.0:
            return path
        return self._touch("optimized")

    def compress_for_transport(self, path: Path) -> Path:
        return self._touch("compressed")

    def extract_clip(self, path: Path, start: float, duration: float, prefix: str = "clip") -> Path:
        if any(label in prefix for label in self.failing_clips):
            from chunkscribe.errors import AudioPrepError

            raise AudioPrepError("clip extraction failed")
        self.clips.append((Path(path), start, duration))
        return self._touch(prefix)

    def split(self, path: Path, target_chunk_size_mb: float = 20) -> list[AudioChunk]:
        self.split_input = Path(path)
        if self.split_error is not None:
            raise self.split_error
        chunk_dir = self._temp_dir / "chunks-test"
        chunk_dir.mkdir(parents=True, exist_ok=True)
        chunks = []
        start = 0.0
        for i, duration in enumerate(self.durations):
            p = chunk_dir / f"chunk-{i:03d}.mp3"
            p.write_bytes(b"ID3chunk")
            chunks.append(AudioChunk(source=Path(path), index=i, start=start, duration=duration, path=p))
            start += duration
        return chunks


def segments(*items: tuple[float, float, str, str | None]) -> list[Segment]:
    return [Segment(start=s, end=e, text=t, speaker=sp) for s, e, t, sp in items]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audio_file(tmp_path) -> Path:
    path = tmp_path / "meeting.mp3"
    path.write_bytes(b"ID3" + b"\x00" * 1024)
    return path


@pytest.fixture
def sample_vtt() -> str:
    return (
        "WEBVTT\n\n"
        "1\n00:00:00.000 --> 00:00:02.500\n[Alice] Hello everyone.\n\n"
        "2\n00:00:02.500 --> 00:00:05.000\n[Bob] Hi Alice.\n\n"
        "3\n00:00:05.000 --> 00:00:09.000\n[Alice] Let's talk about the budget.\n\n"
    )
