"""Compression codec for transcript content.

Stored payloads are framed as::

    b"CSVT" | version (1 byte) | method (1 byte) | body

where method ``b`` means Brotli and ``p`` means plain UTF-8. Blobs without
the frame come from older versions and are decoded best-effort.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re

import brotli

from chunkscribe.transcription.vtt import vtt_to_plain_text

__all__ = [
    "compress",
    "decompress",
    "encode_plain",
    "is_framed",
    "looks_like_legacy_blob",
    "decode_legacy_blob",
    "estimate_compression",
    "vtt_to_plain_text",
]

logger = logging.getLogger(__name__)

MAGIC = b"CSVT"
VERSION = 1
METHOD_BROTLI = b"b"
METHOD_PLAIN = b"p"
HEADER_SIZE = len(MAGIC) + 2

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")
LEGACY_MIN_LENGTH = 100


def _frame(method: bytes, body: bytes) -> bytes:
    return MAGIC + bytes([VERSION]) + method + body


def compress(text: str) -> bytes:
    """Brotli-compress ``text`` (quality 11, text mode) and frame it."""
    if not isinstance(text, str):
        raise TypeError("compress() expects str")
    body = brotli.compress(text.encode("utf-8"), mode=brotli.MODE_TEXT, quality=11)
    return _frame(METHOD_BROTLI, body)


def encode_plain(text: str) -> bytes:
    """Frame ``text`` without compression."""
    return _frame(METHOD_PLAIN, text.encode("utf-8"))


def is_framed(data: bytes) -> bool:
    return len(data) >= HEADER_SIZE and data[: len(MAGIC)] == MAGIC


def decompress(data: bytes) -> str:
    """Decode a stored payload back into text.

    Raises ValueError for framed payloads that are corrupt or use an
    unknown version or method. Headerless data never raises.
    """
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError("decompress() expects bytes")
    data = bytes(data)

    if is_framed(data):
        version, method, body = data[len(MAGIC)], data[len(MAGIC) + 1 : HEADER_SIZE], data[HEADER_SIZE:]
        if version != VERSION:
            raise ValueError(f"Unsupported transcript payload version: {version}")
        if method == METHOD_BROTLI:
            try:
                return brotli.decompress(body).decode("utf-8")
            except (brotli.error, UnicodeDecodeError) as e:
                raise ValueError(f"Corrupt compressed transcript: {e}") from e
        if method == METHOD_PLAIN:
            return body.decode("utf-8")
        raise ValueError(f"Unknown transcript payload method: {method!r}")

    return _decode_legacy(data)


def _decode_legacy(data: bytes) -> str:
    if not data:
        return ""
    try:
        return brotli.decompress(data).decode("utf-8")
    except (brotli.error, UnicodeDecodeError):
        logger.debug("Headerless payload is not Brotli; treating as plain text")
    return data.decode("utf-8", errors="replace")


def looks_like_legacy_blob(value: str | None) -> bool:
    """Heuristic for inline content written by older versions as base64 Brotli."""
    if not value or not isinstance(value, str):
        return False
    if value.startswith("WEBVTT"):
        return False
    return len(value) >= LEGACY_MIN_LENGTH and bool(_BASE64_RE.match(value))


def decode_legacy_blob(value: str) -> str:
    """Decode base64 inline content written by older versions."""
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Inline content is not valid base64: {e}") from e
    return decompress(raw)


def estimate_compression(text: str) -> dict:
    """Rough size estimate without compressing (assumes 75% reduction)."""
    original = len(text.encode("utf-8"))
    estimated = int(original * 0.25)
    return {
        "original_size": original,
        "estimated_compressed_size": estimated,
        "estimated_ratio": 75.0 if original else 0.0,
    }
