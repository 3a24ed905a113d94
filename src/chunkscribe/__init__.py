"""Chunked audio transcription with compressed local transcript storage."""

__version__ = "0.3.0"
