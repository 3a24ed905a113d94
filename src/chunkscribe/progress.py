"""Progress indicators for long-running pipeline phases."""

from __future__ import annotations

import itertools
import sys
import threading
import time
from dataclasses import dataclass

_BRAILLE = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
_FILLED = "█"
_EMPTY = "░"
_BAR_WIDTH = 20
_INTERVAL = 0.1


class Spinner:
    """Indeterminate spinner shown during phases with unknown duration."""

    def __init__(self, label: str) -> None:
        self._label = label
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._stderr = sys.stderr

    def __enter__(self) -> Spinner:
        self._stderr = sys.stderr
        self._stop.clear()
        self._thread = threading.Thread(target=self._spin, daemon=True)
        self._thread.start()
        return self

    def __exit__(self, *_exc) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join()
        self._stderr.write(f"\r  ✔ {self._label} done.\033[K\n")
        self._stderr.flush()

    def update(self, label: str) -> None:
        self._label = label

    def _spin(self) -> None:
        for frame in itertools.cycle(_BRAILLE):
            if self._stop.is_set():
                break
            self._stderr.write(f"\r  {frame} {self._label}\033[K")
            self._stderr.flush()
            time.sleep(_INTERVAL)


@dataclass
class _Step:
    key: str
    label: str


class PipelineProgress:
    """Checklist display for prepare -> transcribe -> save.

    The transcribing step shows a bar driven by chunk attempts, with a
    retry note when a chunk is on its second or later attempt.
    """

    def __init__(self) -> None:
        self._steps = [
            _Step("preparing", "Preparing audio"),
            _Step("transcribing", "Transcribing"),
            _Step("saving", "Saving"),
        ]
        self._step_map: dict[str, _Step] = {s.key: s for s in self._steps}
        self._active: set[str] = set()
        self._completed: set[str] = set()
        self._failed: set[str] = set()
        self._progress: dict[str, float] = {}
        self._notes: dict[str, str] = {}
        self._started_chunks: set[int] = set()
        self._lock = threading.Lock()
        self._lines_rendered = 0
        self._stderr = sys.stderr
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # -- context manager -----------------------------------------------------

    def __enter__(self) -> PipelineProgress:
        self._stderr = sys.stderr
        return self

    def __exit__(self, exc_type, *_exc) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
        # Steps still running when an error escapes are shown as failed
        finished = self._failed if exc_type is not None else self._completed
        with self._lock:
            for key in list(self._active):
                finished.add(key)
                self._progress.pop(key, None)
            self._active.clear()
        if self._thread is not None:
            self._render_all(final=True)

    # -- public API ----------------------------------------------------------

    def begin(self, key: str) -> None:
        with self._lock:
            if key not in self._step_map:
                return
            # Only one step runs at a time
            for other in list(self._active):
                self._active.discard(other)
                self._completed.add(other)
            self._active.add(key)
            self._progress.pop(key, None)
        if self._thread is None:
            self._stop.clear()
            self._thread = threading.Thread(target=self._animate, daemon=True)
            self._thread.start()

    def complete(self, key: str) -> None:
        with self._lock:
            if key not in self._step_map:
                return
            self._active.discard(key)
            self._completed.add(key)
            self._progress.pop(key, None)
            self._notes.pop(key, None)

    def update(self, key: str, fraction: float) -> None:
        with self._lock:
            if key in self._step_map:
                self._progress[key] = max(0.0, min(1.0, fraction))

    def chunk_attempt(self, index: int, total: int, attempt: int) -> None:
        """Chunk transcriber callback: ``(chunk index, total chunks, attempt)``."""
        if "transcribing" not in self._active and "transcribing" not in self._completed:
            self.begin("transcribing")
        with self._lock:
            self._started_chunks.add(index)
            if attempt > 1:
                self._notes["transcribing"] = f"chunk {index + 1}/{total} retry {attempt - 1}"
        self.update("transcribing", len(self._started_chunks) / max(total, 1))

    # -- rendering -----------------------------------------------------------

    def _render_all(self, *, final: bool = False) -> None:
        with self._lock:
            active = set(self._active)
            completed = set(self._completed)
            failed = set(self._failed)
            progress = dict(self._progress)
            notes = dict(self._notes)

        frame = ""
        if not final:
            frame = _BRAILLE[int(time.time() / _INTERVAL) % len(_BRAILLE)]

        lines: list[str] = []
        for step in self._steps:
            if step.key in failed:
                lines.append(f"  ✘ {step.label} failed.")
            elif step.key in completed:
                lines.append(f"  ✔ {step.label} done.")
            elif step.key in active:
                frac = progress.get(step.key)
                note = f"  ({notes[step.key]})" if step.key in notes else ""
                if frac is not None:
                    filled = int(frac * _BAR_WIDTH)
                    bar = _FILLED * filled + _EMPTY * (_BAR_WIDTH - filled)
                    pct = int(frac * 100)
                    lines.append(f"  {step.label:<20s} [{bar}] {pct:3d}%{note}")
                else:
                    lines.append(f"  {frame} {step.label}{note}")
            else:
                lines.append(f"  ○ {step.label}")

        if self._lines_rendered > 0:
            self._stderr.write(f"\033[{self._lines_rendered}A")

        output = "\033[K\n".join(lines)
        self._stderr.write(f"{output}\033[K\n")
        self._stderr.flush()
        self._lines_rendered = len(lines)

    def _animate(self) -> None:
        while not self._stop.is_set():
            self._render_all()
            time.sleep(_INTERVAL)


class NullProgress:
    """No-op progress for when no display is needed."""

    def __enter__(self) -> NullProgress:
        return self

    def __exit__(self, *_exc) -> None:
        pass

    def begin(self, key: str) -> None:
        pass

    def complete(self, key: str) -> None:
        pass

    def update(self, key: str, fraction: float) -> None:
        pass

    def chunk_attempt(self, index: int, total: int, attempt: int) -> None:
        pass
