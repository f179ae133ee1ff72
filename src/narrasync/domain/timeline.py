from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from narrasync.exceptions import SegmentFormatError, TranscriptFormatError
from narrasync.utils.timing import DEFAULT_FRAME_RATE, seconds_to_frames, snap_to_frame


@dataclass(frozen=True)
class TimedWord:
    text: str
    start: float
    end: float
    confidence: Optional[float] = None

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise TranscriptFormatError(
                f"Word '{self.text}' ends before it starts ({self.start} > {self.end})."
            )

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {"word": self.text, "start": self.start, "end": self.end}
        if self.confidence is not None:
            entry["confidence"] = self.confidence
        return entry


@dataclass(frozen=True)
class NarrationSegment:
    """A script segment with timings estimated before audio existed."""

    id: str
    text: str
    estimated_start: float
    estimated_end: float
    image_prompt: str = ""

    def __post_init__(self) -> None:
        if self.estimated_start > self.estimated_end:
            raise SegmentFormatError(
                f"Segment '{self.id}' ends before it starts "
                f"({self.estimated_start} > {self.estimated_end})."
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NarrationSegment":
        try:
            seg_id = data["id"]
            start = float(data["start_time"])
            end = float(data["end_time"])
        except KeyError as exc:
            raise SegmentFormatError(f"Segment is missing field {exc}.") from exc
        except (TypeError, ValueError) as exc:
            raise SegmentFormatError(f"Segment '{data.get('id')}' has non-numeric timing.") from exc
        return cls(
            id=str(seg_id),
            text=str(data.get("text") or ""),
            estimated_start=start,
            estimated_end=end,
            image_prompt=str(data.get("image_prompt") or ""),
        )


@dataclass
class AlignedSegment:
    """Working record shared by the aligner and the repair pass."""

    segment: NarrationSegment
    start: float
    end: float
    matched_words: list[TimedWord] = field(default_factory=list)
    word_indices: list[int] = field(default_factory=list)
    alignment_failed: bool = False

    @property
    def id(self) -> str:
        return self.segment.id


@dataclass(frozen=True)
class RealignedSegment:
    id: str
    text: str
    start: float
    end: float
    image_prompt: str = ""
    word_timings: tuple[TimedWord, ...] = ()
    alignment_failed: bool = False

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_narration_segment(self) -> NarrationSegment:
        return NarrationSegment(
            id=self.id,
            text=self.text,
            estimated_start=self.start,
            estimated_end=self.end,
            image_prompt=self.image_prompt,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "start_time": self.start,
            "end_time": self.end,
            "duration": self.duration,
            "image_prompt": self.image_prompt,
            "word_timings": [w.to_dict() for w in self.word_timings],
            "alignment_failed": self.alignment_failed,
        }


@dataclass(frozen=True)
class CaptionChunk:
    text: str
    start: float
    end: float
    words: tuple[TimedWord, ...]
    lines: tuple[str, ...]
    id: str = ""
    segment_id: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def word_count(self) -> int:
        return len(self.words)

    @property
    def char_count(self) -> int:
        return len(self.text)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def confidence(self) -> Optional[float]:
        scores = [w.confidence for w in self.words if w.confidence is not None]
        if not scores:
            return None
        return sum(scores) / len(scores)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "segment_id": self.segment_id,
            "text": self.text,
            "start_time": self.start,
            "end_time": self.end,
            "duration": self.duration,
            "word_count": self.word_count,
            "char_count": self.char_count,
            "line_count": self.line_count,
            "lines": list(self.lines),
            "confidence": self.confidence,
            "word_boundaries": [w.to_dict() for w in self.words],
        }

    def to_track_item(self, frame_rate: int = DEFAULT_FRAME_RATE) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "caption",
            "text": self.text,
            "lines": list(self.lines),
            "start_frame": seconds_to_frames(self.start, frame_rate),
            "end_frame": seconds_to_frames(self.end, frame_rate),
            "start_time": snap_to_frame(self.start, frame_rate),
            "end_time": snap_to_frame(self.end, frame_rate),
        }
