"""Audio preparation helpers (FFmpeg)."""
