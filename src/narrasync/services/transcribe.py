"""
Speech-to-text adapter.

Produces the nested segment/word transcript shape consumed by
`narrasync.services.ingest`. faster-whisper is optional and imported
lazily so the rest of narrasync works without it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from narrasync.domain.contracts import Transcriber
from narrasync.exceptions import DependencyMissingError, InputError
from narrasync.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_MODEL = "base"


class FasterWhisperTranscriber:
    def __init__(self, model: str = DEFAULT_MODEL, *, device: str = "cpu", compute_type: str = "int8") -> None:
        self.model_name = model
        self.device = device
        self.compute_type = compute_type
        self._model = None

    def _load_model(self):
        if self._model is None:
            try:
                from faster_whisper import WhisperModel  # type: ignore
            except ImportError as exc:
                raise DependencyMissingError(
                    "faster-whisper is not installed. Install it with `pip install narrasync[asr]`."
                ) from exc
            log.info("Loading faster-whisper model '%s' (%s/%s)", self.model_name, self.device, self.compute_type)
            self._model = WhisperModel(self.model_name, device=self.device, compute_type=self.compute_type)
        return self._model

    def transcribe(self, audio_path: Path) -> list[dict[str, Any]]:
        audio_path = Path(audio_path)
        if not audio_path.exists():
            raise InputError(f"Audio file not found: {audio_path}")
        model = self._load_model()
        segments, _info = model.transcribe(str(audio_path), word_timestamps=True)
        payload = []
        for seg in segments:
            words = None
            if getattr(seg, "words", None):
                words = [
                    {"word": w.word.strip(), "start": w.start, "end": w.end, "probability": w.probability}
                    for w in seg.words
                ]
            payload.append({"start": seg.start, "end": seg.end, "text": seg.text.strip(), "words": words})
        log.info("Transcribed %s into %d segments", audio_path.name, len(payload))
        return payload


def write_transcript(payload: list[dict[str, Any]], out_path: Path) -> Path:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return out_path


def create_transcriber(model: str = DEFAULT_MODEL) -> Transcriber:
    return FasterWhisperTranscriber(model)
