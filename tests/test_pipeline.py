"""Tests for pipeline glue between transcription, storage and the CLI."""

from __future__ import annotations

from unittest import mock

import click
import pytest
from conftest import FakePrep, ScriptedBackend

from chunkscribe.config import Config
from chunkscribe.errors import AllChunksFailedError
from chunkscribe.storage.metadata import TranscriptRecord
from chunkscribe.transcription.models import ChunkPayload


def _config(tmp_path) -> Config:
    config = Config()
    config.storage.data_dir = str(tmp_path / "data")
    config.transcription.api_key = "sk-test"
    config.limits.initial_backoff = 0.0
    return config


def _patch_stack(prep, backend):
    return (
        mock.patch("chunkscribe.pipeline.AudioPrep", return_value=prep),
        mock.patch("chunkscribe.pipeline.OpenAIBackend", return_value=backend),
    )


VTT_PAYLOAD = "WEBVTT\n\n1\n00:00:01.000 --> 00:00:02.000\nHello from the chunk.\n\n"


def _vtt_payload() -> ChunkPayload:
    from chunkscribe.transcription.backend import normalize_response
    from chunkscribe.transcription.models import KNOWN_MODELS

    return normalize_response(KNOWN_MODELS["whisper-1"], VTT_PAYLOAD)


class TestRunTranscribe:
    def test_stores_transcript(self, tmp_path, audio_file, capsys):
        from chunkscribe.pipeline import open_library, run_transcribe

        prep = FakePrep(tmp_path, durations=[1200, 1200])
        backend = ScriptedBackend({"chunk-000.mp3": [_vtt_payload()], "chunk-001.mp3": [_vtt_payload()]})
        config = _config(tmp_path)
        p1, p2 = _patch_stack(prep, backend)
        with p1, p2:
            records = run_transcribe(config, [str(audio_file)], name="Planning")

        record = records[0]
        assert record.name == "Planning"
        assert record.duration == 2400
        assert record.source_file == str(audio_file.resolve())
        content = open_library(config).content(record.id)
        assert "00:20:01.000 --> 00:20:02.000" in content
        out = capsys.readouterr()
        assert f"Saved transcript {record.id}" in out.out
        assert "2 chunks" in out.out

    def test_partial_failure_warns(self, tmp_path, audio_file, capsys):
        from chunkscribe.pipeline import run_transcribe

        prep = FakePrep(tmp_path, durations=[600, 600, 600])
        backend = ScriptedBackend(
            {
                "chunk-000.mp3": [_vtt_payload()],
                "chunk-001.mp3": [RuntimeError("HTTP 500")],
                "chunk-002.mp3": [_vtt_payload()],
            }
        )
        p1, p2 = _patch_stack(prep, backend)
        with p1, p2:
            records = run_transcribe(_config(tmp_path), [str(audio_file)])

        assert records[0].warning.startswith("1 of 3 chunks failed")
        err = capsys.readouterr().err
        assert "Warning: 1 of 3 chunks failed" in err
        assert "chunk 2 (600s): HTTP 500" in err

    def test_all_chunks_failed_stores_nothing(self, tmp_path, audio_file):
        from chunkscribe.pipeline import open_library, run_transcribe

        prep = FakePrep(tmp_path, durations=[600])
        backend = ScriptedBackend({"chunk-000.mp3": [RuntimeError("HTTP 500")]})
        config = _config(tmp_path)
        p1, p2 = _patch_stack(prep, backend)
        with p1, p2, pytest.raises(AllChunksFailedError):
            run_transcribe(config, [str(audio_file)])
        assert open_library(config).list() == []

    def test_multiple_files_use_stems(self, tmp_path, audio_file):
        from chunkscribe.pipeline import run_transcribe

        second = tmp_path / "retro.mp3"
        second.write_bytes(b"ID3")
        prep = FakePrep(tmp_path, durations=[60])
        backend = ScriptedBackend({"chunk-000.mp3": [_vtt_payload()]})
        p1, p2 = _patch_stack(prep, backend)
        with p1, p2:
            records = run_transcribe(_config(tmp_path), [str(audio_file), str(second)], name="ignored")
        assert [r.name for r in records] == ["meeting", "retro"]

    def test_missing_ffmpeg(self, tmp_path, audio_file, capsys):
        from chunkscribe.pipeline import run_transcribe

        prep = mock.MagicMock()
        prep.is_available.return_value = False
        with mock.patch("chunkscribe.pipeline.AudioPrep", return_value=prep), pytest.raises(SystemExit) as exc:
            run_transcribe(_config(tmp_path), [str(audio_file)])
        assert exc.value.code == 1
        assert "ffmpeg/ffprobe not found" in capsys.readouterr().err

    def test_missing_api_key(self, tmp_path, audio_file, capsys):
        from chunkscribe.pipeline import run_transcribe

        config = _config(tmp_path)
        config.transcription.api_key = ""
        with mock.patch("chunkscribe.pipeline.AudioPrep", return_value=FakePrep(tmp_path)), pytest.raises(SystemExit):
            run_transcribe(config, [str(audio_file)])
        assert "OPENAI_API_KEY" in capsys.readouterr().err

    def test_backend_configured_from_config(self, tmp_path, audio_file):
        from chunkscribe.pipeline import run_transcribe

        config = _config(tmp_path)
        config.transcription.base_url = "http://localhost:9000/v1"
        prep = FakePrep(tmp_path, durations=[60])
        backend = ScriptedBackend({"chunk-000.mp3": [_vtt_payload()]})
        p1, p2 = _patch_stack(prep, backend)
        with p1, p2 as backend_cls:
            run_transcribe(config, [str(audio_file)])
        backend_cls.assert_called_once_with(api_key="sk-test", base_url="http://localhost:9000/v1")


class TestParseSpeaker:
    def test_valid(self, tmp_path):
        from chunkscribe.pipeline import parse_speaker

        sample = tmp_path / "bob.mp3"
        sample.write_bytes(b"ID3")
        ref = parse_speaker(f" Bob = {sample}")
        assert ref.label == "Bob"
        assert ref.path == sample

    @pytest.mark.parametrize("value", ["Bob", "=x.mp3", "Bob="])
    def test_malformed(self, value):
        from chunkscribe.pipeline import parse_speaker

        with pytest.raises(click.BadParameter):
            parse_speaker(value)

    def test_missing_sample(self, tmp_path):
        from chunkscribe.pipeline import parse_speaker

        with pytest.raises(click.BadParameter, match="not found"):
            parse_speaker(f"Bob={tmp_path / 'nope.mp3'}")


class TestLibraryCommands:
    def test_export_writes_file(self, tmp_path, sample_vtt):
        from chunkscribe.pipeline import open_library, run_export

        config = _config(tmp_path)
        record = open_library(config).add("Notes", sample_vtt)
        out = tmp_path / "notes.md"
        rendered = run_export(config, record.id, "markdown", str(out))
        assert out.read_text() == rendered
        assert rendered.startswith("# Notes")

    def test_migrate_failure_exits_1(self, tmp_path, sample_vtt):
        from chunkscribe.pipeline import open_library, run_migrate

        config = _config(tmp_path)
        open_library(config).metadata.add(
            TranscriptRecord(id="old-1", name="Old", has_content_file=False, content=sample_vtt)
        )
        with mock.patch("chunkscribe.storage.store.atomic_write", side_effect=OSError("read-only")):
            with pytest.raises(SystemExit) as exc:
                run_migrate(config)
        assert exc.value.code == 1

    def test_run_stats(self, tmp_path, sample_vtt, capsys):
        from chunkscribe.pipeline import open_library, run_stats

        config = _config(tmp_path)
        open_library(config).add("Notes", sample_vtt, duration=3725)
        stats = run_stats(config)
        assert stats["transcripts"] == 1
        assert "Total duration: 1:02:05" in capsys.readouterr().out

    def test_open_library_uses_cache_settings(self, tmp_path):
        from chunkscribe.pipeline import open_library

        config = _config(tmp_path)
        config.storage.cache_entries = 7
        config.storage.cache_ttl_minutes = 2
        library = open_library(config)
        assert library.store.cache.max_entries == 7
        assert library.store.cache.ttl == 120
        assert library.store.directory == tmp_path / "data" / "transcripts"


class TestFormatRecordLine:
    def test_line(self):
        from chunkscribe.pipeline import format_record_line

        record = TranscriptRecord(id="t1", name="Standup", duration=65, starred=True, tags=["team"], diarized=True)
        line = format_record_line(record)
        assert line.startswith("* t1")
        assert "1:05" in line
        assert "(diarized)" in line
        assert "[team]" in line
