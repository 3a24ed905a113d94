"""Tests for configuration loading."""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

from chunkscribe.config import DEFAULT_CONFIG_TOML, Config, StorageConfig, _merge_toml, ensure_config_file


class TestDefaults:
    def test_default_model(self):
        assert Config().transcription.model == "whisper-1"

    def test_default_limits(self):
        limits = Config().limits
        assert limits.requests_per_minute == 80
        assert limits.max_concurrent_chunks == 5
        assert limits.max_retries == 3
        assert limits.initial_backoff == 1.0

    def test_default_storage(self):
        storage = Config().storage
        assert storage.cache_entries == 50
        assert storage.cache_max_mb == 100
        assert storage.cache_ttl_minutes == 30
        assert storage.max_backups == 10

    def test_default_chat(self):
        assert Config().chat.backend == "openai"

    def test_default_toml_matches_dataclasses(self):
        import tomllib

        merged = _merge_toml(Config(), tomllib.loads(DEFAULT_CONFIG_TOML))
        assert merged == Config()


class TestMergeToml:
    def test_full_override(self):
        data = {
            "transcription": {"model": "gpt-4o-transcribe-diarize", "speed": 1.5, "compress": True},
            "limits": {"requests_per_minute": 40},
            "chat": {"backend": "ollama", "model": "llama3"},
        }
        merged = _merge_toml(Config(), data)
        assert merged.transcription.model == "gpt-4o-transcribe-diarize"
        assert merged.transcription.speed == 1.5
        assert merged.transcription.compress is True
        assert merged.limits.requests_per_minute == 40
        assert merged.chat.backend == "ollama"

    def test_partial_toml_keeps_defaults(self):
        merged = _merge_toml(Config(), {"storage": {"max_backups": 3}})
        assert merged.storage.max_backups == 3
        assert merged.storage.cache_entries == 50
        assert merged.transcription.model == "whisper-1"

    def test_unknown_keys_and_sections_ignored(self):
        merged = _merge_toml(Config(), {"limits": {"nonexistent_key": 42}, "audio": {"device": "x"}})
        assert not hasattr(merged.limits, "nonexistent_key")
        assert not hasattr(merged, "audio")


class TestLoad:
    def test_reads_toml_file(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[transcription]\nmodel = "gpt-4o-transcribe"\n')
        with mock.patch("chunkscribe.config.CONFIG_PATH", path), mock.patch.dict(os.environ, {}, clear=True):
            cfg = Config.load()
        assert cfg.transcription.model == "gpt-4o-transcribe"

    def test_api_key_from_env(self):
        with mock.patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}):
            with mock.patch("chunkscribe.config.CONFIG_PATH") as mock_path:
                mock_path.exists.return_value = False
                cfg = Config.load()
        assert cfg.transcription.api_key == "sk-test"

    def test_ollama_host_from_env(self):
        with mock.patch.dict(os.environ, {"OLLAMA_HOST": "http://remote:11434"}):
            with mock.patch("chunkscribe.config.CONFIG_PATH") as mock_path:
                mock_path.exists.return_value = False
                cfg = Config.load()
        assert cfg.chat.host == "http://remote:11434"

    def test_data_dir_from_env(self, tmp_path):
        with mock.patch.dict(os.environ, {"CHUNKSCRIBE_DATA_DIR": str(tmp_path)}):
            with mock.patch("chunkscribe.config.CONFIG_PATH") as mock_path:
                mock_path.exists.return_value = False
                cfg = Config.load()
        assert cfg.storage.resolved_dir == tmp_path


class TestEnsureConfigFile:
    def test_creates_file_when_missing(self, tmp_path):
        config_dir = tmp_path / "chunkscribe"
        config_path = config_dir / "config.toml"
        with mock.patch("chunkscribe.config.CONFIG_DIR", config_dir), \
             mock.patch("chunkscribe.config.CONFIG_PATH", config_path):
            result = ensure_config_file()
        assert result.exists()
        assert "[transcription]" in result.read_text()

    def test_does_not_overwrite_existing(self, tmp_path):
        config_dir = tmp_path / "chunkscribe"
        config_dir.mkdir()
        config_path = config_dir / "config.toml"
        config_path.write_text("# custom config\n")
        with mock.patch("chunkscribe.config.CONFIG_DIR", config_dir), \
             mock.patch("chunkscribe.config.CONFIG_PATH", config_path):
            ensure_config_file()
        assert config_path.read_text() == "# custom config\n"


class TestResolvedDir:
    def test_expands_tilde(self):
        resolved = StorageConfig(data_dir="~/chunkscribe").resolved_dir
        assert "~" not in str(resolved)
        assert str(resolved).endswith("chunkscribe")

    def test_absolute_path_unchanged(self):
        assert StorageConfig(data_dir="/tmp/transcripts").resolved_dir == Path("/tmp/transcripts")
