"""WebVTT rendering and parsing for cue-based transcripts."""

from __future__ import annotations

import re

from chunkscribe.transcription.models import Cue, Transcript, TranscriptFormat

HEADER = "WEBVTT"
ARROW = "-->"

_SPEAKER_RE = re.compile(r"^\[([^\]]+)\]\s*(.*)$")
_CUE_NUMBER_RE = re.compile(r"^\d+$")


def format_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS.mmm."""
    total_ms = max(0, int(round(seconds * 1000)))
    s, ms = divmod(total_ms, 1000)
    m, s = divmod(s, 60)
    h, m = divmod(m, 60)
    return f"{h:02d}:{m:02d}:{s:02d}.{ms:03d}"


def parse_timestamp(value: str) -> float:
    """Parse HH:MM:SS.mmm (or MM:SS.mmm) into seconds."""
    parts = value.strip().split(":")
    if len(parts) == 2:
        parts.insert(0, "0")
    if len(parts) != 3:
        raise ValueError(f"Invalid VTT timestamp: {value!r}")
    hours, minutes, rest = parts
    sec_str, _, ms_str = rest.replace(",", ".").partition(".")
    ms = int((ms_str or "0").ljust(3, "0")[:3])
    return int(hours) * 3600 + int(minutes) * 60 + int(sec_str) + ms / 1000


def render_vtt(transcript: Transcript) -> str:
    """Render a transcript as WebVTT with cue numbers starting at 1."""
    if transcript.format is TranscriptFormat.PLAIN:
        return f"{HEADER}\n\n{transcript.text}"

    parts = [f"{HEADER}\n\n"]
    for number, cue in enumerate(transcript.cues, start=1):
        text = cue.text.strip()
        if cue.speaker is not None or transcript.diarized:
            text = f"[{cue.speaker or 'Unknown'}] {text}"
        parts.append(
            f"{number}\n{format_timestamp(cue.start)} {ARROW} {format_timestamp(cue.end)}\n{text}\n\n"
        )
    return "".join(parts)


def parse_vtt(content: str) -> list[Cue]:
    """Parse WebVTT content into cues, reading ``[Speaker]`` prefixes back out."""
    cues: list[Cue] = []
    current: Cue | None = None
    lines: list[str] = []

    def flush() -> None:
        nonlocal current, lines
        if current is not None:
            text = " ".join(lines).strip()
            m = _SPEAKER_RE.match(text)
            if m:
                current.speaker, text = m.group(1), m.group(2)
            current.text = text
            cues.append(current)
        current = None
        lines = []

    for raw in content.splitlines():
        line = raw.strip()
        if ARROW in line:
            flush()
            start, _, end = line.partition(ARROW)
            # Cue settings may follow the end timestamp
            current = Cue(start=parse_timestamp(start), end=parse_timestamp(end.split()[0]), text="")
        elif not line:
            flush()
        elif current is not None:
            lines.append(line)
    flush()
    return cues


def vtt_to_plain_text(content: str) -> str:
    """Strip header, cue numbers, timing lines and NOTE/STYLE blocks."""
    if not content:
        return ""
    text_lines = []
    for raw in content.split("\n"):
        line = raw.strip()
        if not line or line.startswith(HEADER):
            continue
        if _CUE_NUMBER_RE.match(line) or ARROW in line:
            continue
        if line.startswith("NOTE") or line.startswith("STYLE"):
            continue
        text_lines.append(line)
    return " ".join(text_lines)


def vtt_to_speaker_text(content: str) -> str:
    """Render VTT as ``Speaker:`` paragraphs, merging consecutive cues per speaker.

    Falls back to newline-joined text when no cue carries a speaker label.
    """
    cues = parse_vtt(content)
    if not any(cue.speaker for cue in cues):
        if not cues:
            return vtt_to_plain_text(content)
        return "\n".join(cue.text for cue in cues if cue.text).strip()

    paragraphs: list[str] = []
    speaker: str | None = None
    buffer: list[str] = []
    for cue in cues:
        if cue.speaker != speaker and buffer:
            paragraphs.append(f"{speaker}:\n{' '.join(buffer).strip()}")
            buffer = []
        speaker = cue.speaker
        if cue.text.strip():
            buffer.append(cue.text.strip())
    if buffer:
        paragraphs.append(f"{speaker}:\n{' '.join(buffer).strip()}")
    return "\n\n".join(paragraphs)
