"""Export formatters for stored transcripts (VTT, Markdown, plain text, JSON)."""

from __future__ import annotations

import json

from chunkscribe.storage.metadata import TranscriptRecord
from chunkscribe.transcription.vtt import parse_vtt, vtt_to_plain_text, vtt_to_speaker_text

FORMATS = ("vtt", "markdown", "text", "json")


def _format_time(seconds: float) -> str:
    """Format seconds as HH:MM:SS or MM:SS."""
    m, s = divmod(int(seconds), 60)
    h, m = divmod(m, 60)
    if h > 0:
        return f"{h:02d}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"


def format_markdown(record: TranscriptRecord, content: str) -> str:
    """Format stored VTT content as markdown."""
    lines = [f"# {record.name}\n"]
    if record.duration > 0:
        lines.append(f"**Duration:** {_format_time(record.duration)}  ")
    if record.model:
        lines.append(f"**Model:** {record.model}  ")
    if record.tags:
        lines.append(f"**Tags:** {', '.join(record.tags)}  ")
    if record.warning:
        lines.append(f"**Warning:** {record.warning}  ")
    lines.append("")

    cues = parse_vtt(content)
    if not cues:
        lines.append(vtt_to_plain_text(content))
        return "\n".join(lines) + "\n"

    has_speakers = any(cue.speaker for cue in cues)
    current_speaker = None
    for cue in cues:
        timestamp = f"[{_format_time(cue.start)}]"

        if has_speakers and cue.speaker != current_speaker:
            current_speaker = cue.speaker
            lines.append(f"\n**{cue.speaker or 'Unknown'}** {timestamp}")
        else:
            lines.append(f"{timestamp} {cue.text.strip()}")
            continue

        lines.append(cue.text.strip())

    return "\n".join(lines) + "\n"


def format_text(content: str) -> str:
    """Plain text, with speaker paragraphs when the transcript is diarized."""
    return vtt_to_speaker_text(content).strip() + "\n"


def format_json(record: TranscriptRecord, content: str) -> str:
    meta = record.to_dict()
    meta.pop("content", None)
    cues = parse_vtt(content)
    data = {
        **meta,
        "text": vtt_to_plain_text(content),
        "cues": [
            {"start": c.start, "end": c.end, "speaker": c.speaker, "text": c.text}
            for c in cues
        ],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


def export(record: TranscriptRecord, content: str, fmt: str) -> str:
    """Render ``content`` in one of :data:`FORMATS`."""
    if fmt == "vtt":
        return content
    if fmt == "markdown":
        return format_markdown(record, content)
    if fmt == "text":
        return format_text(content)
    if fmt == "json":
        return format_json(record, content)
    raise ValueError(f"Unknown export format: {fmt}")


def file_suffix(fmt: str) -> str:
    return {"vtt": ".vtt", "markdown": ".md", "text": ".txt", "json": ".json"}[fmt]
