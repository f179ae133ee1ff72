from __future__ import annotations

import json
import sys
import types
from pathlib import Path

import pytest

from narrasync.exceptions import DependencyMissingError, InputError
from narrasync.services.ingest import ingest
from narrasync.services.transcribe import FasterWhisperTranscriber, write_transcript


class _Word:
    def __init__(self, word: str, start: float, end: float, probability: float) -> None:
        self.word = word
        self.start = start
        self.end = end
        self.probability = probability


class _Segment:
    def __init__(self, text: str, start: float, end: float, words) -> None:  # noqa: ANN001
        self.text = text
        self.start = start
        self.end = end
        self.words = words


def _install_fake_whisper(monkeypatch, calls: list) -> None:
    class WhisperModel:
        def __init__(self, name: str, device: str, compute_type: str) -> None:
            calls.append((name, device, compute_type))

        def transcribe(self, path: str, word_timestamps: bool = False):
            assert word_timestamps is True
            segments = [
                _Segment(" Hello world.", 0.0, 1.0, [_Word(" Hello", 0.1, 0.5, 0.9), _Word(" world.", 0.5, 1.0, 0.8)]),
                _Segment(" (music)", 1.0, 2.0, None),
            ]
            return iter(segments), {"language": "en"}

    module = types.ModuleType("faster_whisper")
    module.WhisperModel = WhisperModel
    monkeypatch.setitem(sys.modules, "faster_whisper", module)


def test_transcribe_returns_nested_word_timings(monkeypatch, tmp_path: Path) -> None:
    calls: list = []
    _install_fake_whisper(monkeypatch, calls)
    audio = tmp_path / "voice.wav"
    audio.write_bytes(b"RIFF")

    transcriber = FasterWhisperTranscriber("tiny")
    payload = transcriber.transcribe(audio)
    transcriber.transcribe(audio)

    assert calls == [("tiny", "cpu", "int8")]
    assert payload[0]["text"] == "Hello world."
    assert payload[0]["words"][0] == {"word": "Hello", "start": 0.1, "end": 0.5, "probability": 0.9}
    assert payload[1]["words"] is None
    assert [w.text for w in ingest(payload)] == ["Hello", "world."]


def test_missing_faster_whisper_is_a_dependency_error(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setitem(sys.modules, "faster_whisper", None)
    audio = tmp_path / "voice.wav"
    audio.write_bytes(b"RIFF")

    with pytest.raises(DependencyMissingError):
        FasterWhisperTranscriber().transcribe(audio)


def test_missing_audio_is_an_input_error(tmp_path: Path) -> None:
    with pytest.raises(InputError):
        FasterWhisperTranscriber().transcribe(tmp_path / "nope.wav")


def test_write_transcript(tmp_path: Path) -> None:
    out = write_transcript([{"text": "hi", "words": []}], tmp_path / "sub" / "t.json")
    assert json.loads(out.read_text(encoding="utf-8")) == [{"text": "hi", "words": []}]
