"""Configuration management with TOML loading and defaults."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_DIR = Path("~/.config/chunkscribe").expanduser()
CONFIG_PATH = CONFIG_DIR / "config.toml"

DEFAULT_CONFIG_TOML = """\
[transcription]
model = "whisper-1"       # "whisper-1", "gpt-4o-transcribe", "gpt-4o-mini-transcribe", "gpt-4o-transcribe-diarize"
api_key = ""              # or set OPENAI_API_KEY
base_url = ""             # empty = api.openai.com
prompt = ""               # vocabulary / context hint for the first chunk
speed = 1.0               # 1.0-3.0; speeds audio up before upload
compress = false          # re-encode as 16 kbps Opus before upload
target_chunk_size_mb = 20

[limits]
requests_per_minute = 80  # the API allows 100
max_concurrent_chunks = 5
max_retries = 3
initial_backoff = 1.0     # seconds, doubled after every failed attempt

[storage]
data_dir = "~/.local/share/chunkscribe"
cache_entries = 50
cache_max_mb = 100
cache_ttl_minutes = 30
max_backups = 10

[chat]
backend = "openai"        # "openai" or "ollama"
model = "gpt-4o-mini"
host = ""                 # ollama: http://localhost:11434, LM Studio: http://localhost:1234
max_context_tokens = 100000
"""


@dataclass
class TranscriptionConfig:
    model: str = "whisper-1"
    api_key: str = ""
    base_url: str = ""
    prompt: str = ""
    speed: float = 1.0
    compress: bool = False
    target_chunk_size_mb: float = 20


@dataclass
class LimitsConfig:
    requests_per_minute: int = 80
    max_concurrent_chunks: int = 5
    max_retries: int = 3
    initial_backoff: float = 1.0


@dataclass
class StorageConfig:
    data_dir: str = "~/.local/share/chunkscribe"
    cache_entries: int = 50
    cache_max_mb: int = 100
    cache_ttl_minutes: float = 30
    max_backups: int = 10

    @property
    def resolved_dir(self) -> Path:
        return Path(self.data_dir).expanduser()


@dataclass
class ChatConfig:
    backend: str = "openai"
    model: str = "gpt-4o-mini"
    host: str = ""
    max_context_tokens: int = 100_000


@dataclass
class Config:
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)

    @classmethod
    def load(cls) -> Config:
        """Load config from TOML file, falling back to defaults."""
        config = cls()

        if CONFIG_PATH.exists():
            with open(CONFIG_PATH, "rb") as f:
                data = tomllib.load(f)
            config = _merge_toml(config, data)

        # Env var overrides
        if api_key := os.environ.get("OPENAI_API_KEY"):
            config.transcription.api_key = api_key
        if ollama_host := os.environ.get("OLLAMA_HOST"):
            config.chat.host = ollama_host
        if data_dir := os.environ.get("CHUNKSCRIBE_DATA_DIR"):
            config.storage.data_dir = data_dir

        return config


def _merge_toml(config: Config, data: dict) -> Config:
    """Merge TOML data into config dataclass."""
    for section in ("transcription", "limits", "storage", "chat"):
        if section in data:
            target = getattr(config, section)
            for k, v in data[section].items():
                if hasattr(target, k):
                    setattr(target, k, v)
    return config


def ensure_config_file() -> Path:
    """Create default config file if it doesn't exist. Returns the path."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    if not CONFIG_PATH.exists():
        CONFIG_PATH.write_text(DEFAULT_CONFIG_TOML)
    return CONFIG_PATH
