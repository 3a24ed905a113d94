"""Prompts and response cleanup for asking questions about a transcript."""

from __future__ import annotations

import re

from chunkscribe.library import estimate_tokens

_THINK_RE = re.compile(r"<think>[\s\S]*?</think>\s*", re.IGNORECASE)
_ORPHAN_THINK_CLOSE_RE = re.compile(r"^[\s\S]*?</think>\s*", re.IGNORECASE)

TRUNCATION_MARKER = "\n\n[... transcript truncated ...]"


def clean_response(text: str) -> str:
    """Strip reasoning/thinking tags from LLM responses."""
    text = _THINK_RE.sub("", text).strip()
    if "</think>" in text.lower():
        text = _ORPHAN_THINK_CLOSE_RE.sub("", text).strip()
    return text


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Cut ``text`` so its estimated token count stays within ``max_tokens``."""
    if max_tokens <= 0 or estimate_tokens(text) <= max_tokens:
        return text
    keep = max(0, max_tokens * 4 - len(TRUNCATION_MARKER))
    return text[:keep].rstrip() + TRUNCATION_MARKER


ASK_SYSTEM = (
    "You are an expert assistant specialized in analyzing audio transcripts.\n"
    "\n"
    "Guidelines:\n"
    "- Only answer based on the provided transcript content.\n"
    "- If the information isn't in the transcript, say so clearly. Do not make anything up.\n"
    "- Cite speakers or timestamps when available (e.g. \"Speaker 1 mentioned...\").\n"
    "- Be concise but thorough."
)

ASK_PROMPT = """Question: {question}

Transcript ({name}):
{transcript}"""


def build_ask_prompt(question: str, transcript_text: str, name: str = "transcript", max_tokens: int = 100_000) -> str:
    return ASK_PROMPT.format(
        question=question.strip(),
        name=name,
        transcript=truncate_to_tokens(transcript_text, max_tokens),
    )
