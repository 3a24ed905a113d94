"""Tests for request building and response normalization."""

from __future__ import annotations

import asyncio
import base64
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

import pytest

from chunkscribe.transcription.backend import (
    MAX_KNOWN_SPEAKERS,
    OpenAIBackend,
    build_request_params,
    file_to_data_url,
    normalize_response,
)
from chunkscribe.transcription.models import KNOWN_MODELS, ModelKind, SpeakerReference, resolve_model

WHISPER = KNOWN_MODELS["whisper-1"]
GPT4O = KNOWN_MODELS["gpt-4o-transcribe"]
DIARIZE = KNOWN_MODELS["gpt-4o-transcribe-diarize"]


def _refs(tmp_path, labels):
    refs = []
    for label in labels:
        p = tmp_path / f"{label}.mp3"
        p.write_bytes(label.encode())
        refs.append(SpeakerReference(label=label, path=p))
    return refs


class TestModels:
    def test_response_formats(self):
        assert WHISPER.response_format == "vtt"
        assert GPT4O.response_format == "json"
        assert DIARIZE.response_format == "diarized_json"
        assert DIARIZE.diarized and not WHISPER.diarized

    def test_resolve_unknown_model(self):
        assert resolve_model("my-model").kind is ModelKind.JSON
        assert resolve_model("next-gen-diarize").kind is ModelKind.DIARIZED

    def test_reference_duration_clamped(self, tmp_path):
        assert SpeakerReference("A", tmp_path / "a.mp3", duration=0.5).duration == 2.0
        assert SpeakerReference("A", tmp_path / "a.mp3", duration=30).duration == 10.0


class TestBuildRequestParams:
    def test_whisper_with_prompt(self):
        params = build_request_params(WHISPER, prompt="Acme Corp standup")
        assert params == {"model": "whisper-1", "response_format": "vtt", "prompt": "Acme Corp standup"}

    def test_json_model_without_prompt(self):
        assert build_request_params(GPT4O) == {"model": "gpt-4o-transcribe", "response_format": "json"}

    def test_diarized_without_refs(self):
        params = build_request_params(DIARIZE, prompt="ignored")
        assert params == {
            "model": "gpt-4o-transcribe-diarize",
            "response_format": "diarized_json",
            "chunking_strategy": "auto",
        }

    def test_diarized_with_refs(self, tmp_path):
        params = build_request_params(DIARIZE, speaker_refs=_refs(tmp_path, ["Alice", "Bob"]))
        extra = params["extra_body"]
        assert extra["known_speaker_names"] == ["Alice", "Bob"]
        assert extra["known_speaker_references"][0].startswith("data:audio/mpeg;base64,")
        assert "prompt" not in params

    def test_refs_capped(self, tmp_path):
        labels = ["A", "B", "C", "D", "E", "F"]
        params = build_request_params(DIARIZE, speaker_refs=_refs(tmp_path, labels))
        assert params["extra_body"]["known_speaker_names"] == labels[:MAX_KNOWN_SPEAKERS]
        assert len(params["extra_body"]["known_speaker_references"]) == 4

    def test_refs_ignored_for_plain_models(self, tmp_path):
        params = build_request_params(WHISPER, speaker_refs=_refs(tmp_path, ["Alice"]))
        assert "extra_body" not in params


class TestDataUrl:
    def test_encodes_bytes_with_mime(self, tmp_path):
        p = tmp_path / "voice.wav"
        p.write_bytes(b"RIFFdata")
        url = file_to_data_url(p)
        assert url == "data:audio/wav;base64," + base64.b64encode(b"RIFFdata").decode()

    def test_unknown_suffix_defaults_to_mpeg(self, tmp_path):
        p = tmp_path / "voice.xyz"
        p.write_bytes(b"x")
        assert file_to_data_url(p).startswith("data:audio/mpeg;")


class TestNormalizeResponse:
    def test_vtt_string(self, sample_vtt):
        payload = normalize_response(WHISPER, sample_vtt)
        assert [c.speaker for c in payload.cues] == ["Alice", "Bob", "Alice"]
        assert payload.cues[1].start == 2.5

    def test_json_object(self):
        payload = normalize_response(GPT4O, SimpleNamespace(text="Hello there."))
        assert payload.text == "Hello there."
        assert payload.plain_text == "Hello there."

    def test_diarized_dict(self):
        response = {
            "text": "Hi. Hello.",
            "segments": [
                {"start": 0.0, "end": 1.5, "text": "Hi.", "speaker": "A"},
                {"start": 1.5, "end": 3.0, "text": "Hello.", "speaker": "B"},
            ],
        }
        payload = normalize_response(DIARIZE, response)
        assert [(s.speaker, s.text) for s in payload.segments] == [("A", "Hi."), ("B", "Hello.")]
        assert payload.segments[1].duration == 1.5

    def test_diarized_objects(self):
        seg = SimpleNamespace(start=2, end=4, text="Yes.", speaker="Alice")
        payload = normalize_response(DIARIZE, SimpleNamespace(text="Yes.", segments=[seg]))
        assert payload.segments[0].start == 2.0
        assert payload.segments[0].speaker == "Alice"

    def test_empty_responses(self):
        assert normalize_response(WHISPER, None).is_empty_for(WHISPER.kind)
        assert normalize_response(GPT4O, {"text": ""}).is_empty_for(GPT4O.kind)
        assert normalize_response(DIARIZE, {"text": "", "segments": []}).is_empty_for(DIARIZE.kind)

    def test_content_outside_the_merged_field_counts_as_empty(self):
        assert normalize_response(WHISPER, "not a vtt document").is_empty_for(WHISPER.kind)
        assert normalize_response(DIARIZE, {"text": "words", "segments": []}).is_empty_for(DIARIZE.kind)
        assert not normalize_response(GPT4O, {"text": "words"}).is_empty_for(GPT4O.kind)


class TestOpenAIBackend:
    def test_sends_file_and_params(self, audio_file, tmp_path):
        client = mock.MagicMock()
        client.audio.transcriptions.create = mock.AsyncMock(
            return_value={"text": "", "segments": [{"start": 0, "end": 2, "text": "Hi", "speaker": "A"}]}
        )
        backend = OpenAIBackend(client=client)
        refs = _refs(tmp_path, ["Alice"])

        payload = asyncio.run(backend.transcribe(audio_file, DIARIZE, prompt=None, speaker_refs=refs))

        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-transcribe-diarize"
        assert kwargs["response_format"] == "diarized_json"
        assert Path(kwargs["file"].name) == audio_file
        assert kwargs["extra_body"]["known_speaker_names"] == ["Alice"]
        assert payload.segments[0].speaker == "A"

    def test_errors_propagate(self, audio_file):
        client = mock.MagicMock()
        client.audio.transcriptions.create = mock.AsyncMock(side_effect=ConnectionError("down"))
        backend = OpenAIBackend(client=client)
        with pytest.raises(ConnectionError, match="down"):
            asyncio.run(backend.transcribe(audio_file, WHISPER))
