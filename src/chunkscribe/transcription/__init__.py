"""Chunked transcription against a remote speech API."""
