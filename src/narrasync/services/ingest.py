"""
Word timing ingest.

Normalizes a speech-to-text result into one ordered list of `TimedWord`.

Accepted shapes:
- a flat list of word objects
- a list of recognizer segments, each holding a nested `words` list
- a mapping with a top-level `words` or `segments` key (verbose_json style)

Word objects may use `word`/`text`, `start`/`start_time` and
`end`/`end_time`. Source order is kept; it is assumed chronological.
Segments without word timestamps and multi-word entries are skipped:
segment-level timing is never passed off as word timing.

Script segments are read here too (`load_segments`), as a list or an
object with a `segments` list of `{id, text, start_time, end_time}`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

from narrasync.domain.timeline import NarrationSegment, TimedWord
from narrasync.exceptions import EmptyTranscriptError, SegmentFormatError, TranscriptFormatError
from narrasync.utils.logging import get_logger

log = get_logger(__name__)

_TEXT_KEYS = ("word", "text")
_START_KEYS = ("start", "start_time")
_END_KEYS = ("end", "end_time")
_CONFIDENCE_KEYS = ("confidence", "probability")


def _first(entry: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if entry.get(key) is not None:
            return entry[key]
    return None


def _is_segment(entry: Mapping[str, Any]) -> bool:
    return "words" in entry


def _segment_words(entry: Any) -> list[Any]:
    if not isinstance(entry, Mapping):
        raise TranscriptFormatError(f"Transcript segment is not an object: {entry!r}.")
    words = entry.get("words")
    if words is None:
        # segment-level timing only; never usable as word timing
        log.warning("Skipping transcript segment without word timestamps: %r", entry.get("text"))
        return []
    if not isinstance(words, list):
        raise TranscriptFormatError(f"Segment 'words' is not a list: {words!r}.")
    return words


def _iter_word_entries(raw: Any) -> Iterator[Mapping[str, Any]]:
    if isinstance(raw, Mapping):
        has_segments = isinstance(raw.get("segments"), list)
        if isinstance(raw.get("words"), list) and (raw["words"] or not has_segments):
            yield from _iter_word_entries(raw["words"])
            return
        if has_segments:
            for segment in raw["segments"]:
                yield from _iter_word_entries(_segment_words(segment))
            return
        raise TranscriptFormatError("Transcript object has no 'words' or 'segments' list.")
    if not isinstance(raw, list):
        raise TranscriptFormatError(f"Unsupported transcript type: {type(raw).__name__}.")
    for entry in raw:
        if not isinstance(entry, Mapping):
            raise TranscriptFormatError(f"Transcript entry is not an object: {entry!r}.")
        if _is_segment(entry):
            yield from _iter_word_entries(_segment_words(entry))
        else:
            yield entry


def _to_timed_word(entry: Mapping[str, Any]) -> TimedWord | None:
    text = _first(entry, _TEXT_KEYS)
    text = str(text).strip() if text is not None else ""
    if not text:
        return None
    if len(text.split()) > 1:
        log.warning("Skipping multi-word transcript entry without word timing: %r", text)
        return None
    start = _first(entry, _START_KEYS)
    end = _first(entry, _END_KEYS)
    if start is None or end is None:
        raise TranscriptFormatError(f"Word '{text}' is missing start/end timing.")
    confidence = _first(entry, _CONFIDENCE_KEYS)
    try:
        return TimedWord(
            text=text,
            start=float(start),
            end=float(end),
            confidence=float(confidence) if confidence is not None else None,
        )
    except (TypeError, ValueError) as exc:
        raise TranscriptFormatError(f"Word '{text}' has non-numeric timing.") from exc


def ingest(raw: Any) -> list[TimedWord]:
    """Flatten a raw transcript into ordered timed words."""
    words: list[TimedWord] = []
    for entry in _iter_word_entries(raw):
        word = _to_timed_word(entry)
        if word is not None:
            words.append(word)
    if not words:
        raise EmptyTranscriptError()
    log.debug("Ingested %d timed words", len(words))
    return words


def load_transcript(path: Path) -> list[TimedWord]:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise TranscriptFormatError(f"Transcript {path} is not valid JSON: {exc}") from exc
    return ingest(raw)


def transcript_duration(words: Iterable[TimedWord]) -> float | None:
    ends = [w.end for w in words]
    return max(ends) if ends else None


def parse_segments(raw: Any) -> list[NarrationSegment]:
    """Script segments from a list, or a mapping with a `segments` list."""
    if isinstance(raw, Mapping):
        raw = raw.get("segments")
    if not isinstance(raw, list):
        raise SegmentFormatError("Script must be a list of segments or an object with a 'segments' list.")
    segments = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            raise SegmentFormatError(f"Segment entry is not an object: {entry!r}.")
        segments.append(NarrationSegment.from_dict(entry))
    return segments


def load_segments(path: Path) -> list[NarrationSegment]:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SegmentFormatError(f"Segments file {path} is not valid JSON: {exc}") from exc
    return parse_segments(raw)
