"""Compressed transcript content and metadata storage."""
