"""Audio preparation with FFmpeg: probing, conversion, speed-up and splitting."""

from __future__ import annotations

import logging
import math
import shutil
import subprocess
import tempfile
import uuid
from pathlib import Path

from chunkscribe.errors import AudioPrepError
from chunkscribe.transcription.models import AudioChunk

logger = logging.getLogger(__name__)

# Hard upload limit of the transcription API.
API_SIZE_LIMIT_MB = 25
MAX_CHUNK_SECONDS = 1200
MIN_SPEED, MAX_SPEED = 1.0, 3.0

# Containers the API does not accept directly (browser recordings).
_CONVERT_SUFFIXES = {".webm", ".mkv", ".mov", ".avi"}

_INSTALL_HINT = (
    "FFmpeg is not installed or not available in PATH. Install it with:\n"
    "  macOS: brew install ffmpeg\n"
    "  Ubuntu/Debian: sudo apt-get install ffmpeg"
)

_MB = 1024 * 1024


def _atempo_chain(multiplier: float) -> str:
    """Build an atempo filter chain; a single atempo stage accepts at most 2.0."""
    stages = []
    remaining = multiplier
    while remaining > 2.0:
        stages.append("atempo=2.0")
        remaining /= 2.0
    stages.append(f"atempo={remaining:.4f}".rstrip("0").rstrip("."))
    return ",".join(stages)


def chunk_boundaries(duration: float, file_size_mb: float, target_chunk_mb: float) -> list[tuple[float, float]]:
    """Return (start, duration) pairs covering ``duration`` seconds.

    Chunk length is proportional to the target size, capped at
    ``MAX_CHUNK_SECONDS``; the last chunk takes whatever remains.
    """
    by_size = math.floor(duration * target_chunk_mb / file_size_mb)
    chunk_seconds = max(1, min(by_size, MAX_CHUNK_SECONDS))
    count = math.ceil(duration / chunk_seconds)
    bounds = []
    for i in range(count):
        start = float(i * chunk_seconds)
        bounds.append((start, min(float(chunk_seconds), duration - start)))
    return bounds


class AudioPrep:
    """Wraps the ffmpeg/ffprobe command line tools."""

    def __init__(self, temp_dir: Path | None = None, bitrate: str = "128k") -> None:
        self._temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self._bitrate = bitrate

    # -- tools ---------------------------------------------------------------

    def _tool(self, name: str) -> str:
        path = shutil.which(name)
        if path is None:
            raise AudioPrepError(_INSTALL_HINT)
        return path

    def is_available(self) -> bool:
        return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None

    def _run(self, args: list[str], what: str) -> subprocess.CompletedProcess:
        try:
            result = subprocess.run(args, capture_output=True, text=True)
        except OSError as e:
            raise AudioPrepError(f"{what} failed to start: {e}") from e
        if result.returncode != 0:
            stderr = (result.stderr or "").strip().splitlines()
            tail = stderr[-1] if stderr else f"exit code {result.returncode}"
            raise AudioPrepError(f"{what} failed: {tail}")
        return result

    def _output_path(self, prefix: str, suffix: str) -> Path:
        self._temp_dir.mkdir(parents=True, exist_ok=True)
        return self._temp_dir / f"{prefix}-{uuid.uuid4().hex[:12]}{suffix}"

    def _check_input(self, path: Path) -> Path:
        path = Path(path)
        if not path.is_file():
            raise AudioPrepError(f"Audio file not found: {path}")
        return path

    # -- operations ----------------------------------------------------------

    def get_duration(self, path: Path) -> float:
        """Return the duration of ``path`` in seconds (ffprobe)."""
        path = self._check_input(path)
        result = self._run(
            [
                self._tool("ffprobe"),
                "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                str(path),
            ],
            "ffprobe",
        )
        try:
            return float(result.stdout.strip())
        except ValueError as e:
            raise AudioPrepError(f"Could not read duration of {path}") from e

    def needs_conversion(self, path: Path) -> bool:
        return Path(path).suffix.lower() in _CONVERT_SUFFIXES

    def convert_to_standard_format(self, path: Path) -> Path:
        """Re-encode ``path`` as MP3 (44.1 kHz)."""
        path = self._check_input(path)
        if path.stat().st_size == 0:
            raise AudioPrepError(f"Input file is empty (0 bytes): {path}")
        output = self._output_path("converted", ".mp3")
        logger.info("Converting %s to MP3", path.suffix or path.name)
        self._run(
            [
                self._tool("ffmpeg"), "-y", "-i", str(path),
                "-acodec", "libmp3lame", "-b:a", self._bitrate, "-ar", "44100",
                str(output),
            ],
            "Audio conversion",
        )
        return output

    def adjust_speed(self, path: Path, multiplier: float) -> Path:
        """Speed audio up by ``multiplier``; out-of-range values return ``path`` unchanged."""
        path = self._check_input(path)
        if multiplier <= MIN_SPEED or multiplier > MAX_SPEED:
            return path
        output = self._output_path("optimized", ".mp3")
        logger.info("Optimizing audio speed: %sx", multiplier)
        self._run(
            [
                self._tool("ffmpeg"), "-y", "-i", str(path),
                "-af", _atempo_chain(multiplier),
                "-acodec", "libmp3lame", "-b:a", self._bitrate,
                str(output),
            ],
            "Audio speed optimization",
        )
        return output

    def compress_for_transport(self, path: Path) -> Path:
        """Encode as mono 16 kbps Opus, tuned for speech."""
        path = self._check_input(path)
        output = self._output_path("compressed", ".ogg")
        self._run(
            [
                self._tool("ffmpeg"), "-y", "-i", str(path),
                "-ac", "1", "-c:a", "libopus", "-b:a", "16k", "-application", "voip",
                str(output),
            ],
            "Audio compression",
        )
        before, after = path.stat().st_size, output.stat().st_size
        if before:
            logger.info("Audio compressed: %.1f%% size reduction", (1 - after / before) * 100)
        return output

    def extract_clip(self, path: Path, start: float, duration: float, prefix: str = "clip") -> Path:
        """Cut ``duration`` seconds starting at ``start`` into a new MP3 file."""
        path = self._check_input(path)
        output = self._output_path(prefix, ".mp3")
        self._extract(path, start, duration, output)
        return output

    def _extract(self, path: Path, start: float, duration: float, output: Path) -> None:
        # -ss before -i seeks on the input, which is fast and frame-accurate for audio
        self._run(
            [
                self._tool("ffmpeg"), "-y",
                "-ss", f"{start:.3f}", "-i", str(path), "-t", f"{duration:.3f}",
                "-acodec", "libmp3lame", "-b:a", self._bitrate,
                str(output),
            ],
            f"Extracting {duration:.1f}s at {start:.1f}s",
        )

    def split(self, path: Path, target_chunk_size_mb: float = 20) -> list[AudioChunk]:
        """Split ``path`` into chunks small enough for the API size limit.

        Files within the limit come back as a single chunk that *is* the
        source file. Any extraction failure discards the chunks made so far.
        """
        path = self._check_input(path)
        size_mb = path.stat().st_size / _MB
        duration = self.get_duration(path)
        if duration <= 0:
            raise AudioPrepError(f"Audio has no duration: {path}")

        if size_mb <= API_SIZE_LIMIT_MB:
            return [AudioChunk(source=path, index=0, start=0.0, duration=duration, path=path, temporary=False)]

        bounds = chunk_boundaries(duration, size_mb, target_chunk_size_mb)
        logger.info("Splitting %d min audio into %d chunks", int(duration // 60), len(bounds))

        self._temp_dir.mkdir(parents=True, exist_ok=True)
        chunk_dir = Path(tempfile.mkdtemp(prefix="chunks-", dir=self._temp_dir))
        chunks: list[AudioChunk] = []
        try:
            for index, (start, length) in enumerate(bounds):
                output = chunk_dir / f"chunk-{index:03d}.mp3"
                self._extract(path, start, length, output)
                chunks.append(
                    AudioChunk(source=path, index=index, start=start, duration=length, path=output)
                )
        except AudioPrepError as e:
            shutil.rmtree(chunk_dir, ignore_errors=True)
            raise AudioPrepError(f"Failed to split audio: {e}") from e
        return chunks


def cleanup_chunks(chunks: list[AudioChunk]) -> None:
    """Delete temporary chunk files and their directory."""
    dirs = set()
    for chunk in chunks:
        if not chunk.temporary:
            continue
        try:
            chunk.path.unlink(missing_ok=True)
            dirs.add(chunk.path.parent)
        except OSError:
            logger.warning("Could not delete chunk %s", chunk.path, exc_info=True)
    for d in dirs:
        try:
            d.rmdir()
        except OSError:
            logger.debug("Chunk directory not removed: %s", d)


def remove_file(path: Path | None, keep: Path | None = None) -> None:
    """Delete an intermediate file unless it is ``keep`` (the caller's input)."""
    if path is None or (keep is not None and Path(path) == Path(keep)):
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not delete temp file %s", path, exc_info=True)
