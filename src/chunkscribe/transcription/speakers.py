"""Voice samples of newly seen speakers, carried forward between diarized chunks."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path

from chunkscribe.audio.prep import AudioPrep
from chunkscribe.errors import AudioPrepError
from chunkscribe.transcription.models import MIN_SAMPLE_SECONDS, Segment, SpeakerReference

logger = logging.getLogger(__name__)

TARGET_SAMPLE_SECONDS = 5.0

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_-]+")


def sample_duration(seg: Segment) -> float:
    return min(seg.duration, TARGET_SAMPLE_SECONDS)


def longest_segment_per_speaker(segments: Iterable[Segment]) -> dict[str, Segment]:
    """Map each labelled speaker to its longest segment; the earliest wins ties."""
    best: dict[str, Segment] = {}
    for seg in segments:
        if not seg.speaker:
            continue
        current = best.get(seg.speaker)
        if current is None or seg.duration > current.duration:
            best[seg.speaker] = seg
    return best


def extract_new_speaker_samples(
    chunk_audio_path: Path,
    segments: Iterable[Segment],
    known_speakers: Iterable[str],
    prep: AudioPrep,
) -> list[SpeakerReference]:
    """Cut a short clip for every speaker in ``segments`` not in ``known_speakers``.

    Speakers whose longest segment is shorter than the minimum sample
    length are left for a later chunk. A failed extraction only costs
    that speaker its reference.
    """
    known = set(known_speakers)
    refs: list[SpeakerReference] = []
    for speaker, seg in longest_segment_per_speaker(segments).items():
        if speaker in known:
            continue
        if seg.duration < MIN_SAMPLE_SECONDS:
            logger.debug("Longest segment for %s is %.1fs, too short for a sample", speaker, seg.duration)
            continue
        duration = sample_duration(seg)
        prefix = "speaker-" + _UNSAFE_RE.sub("_", speaker)
        try:
            clip = prep.extract_clip(chunk_audio_path, seg.start, duration, prefix=prefix)
        except AudioPrepError as e:
            logger.warning("Could not extract voice sample for %s: %s", speaker, e)
            continue
        refs.append(SpeakerReference(label=speaker, path=clip, duration=duration))
        logger.info("Extracted %.1fs voice sample for %s", duration, speaker)
    return refs
