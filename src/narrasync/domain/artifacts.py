from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class TranscriptArtifact:
    path: Path
    word_count: int
    duration_seconds: float | None = None
    text_sha256: str | None = None


@dataclass(frozen=True)
class SegmentsArtifact:
    path: Path
    segment_count: int
    matched_count: int | None = None
    unmatched_ids: tuple[str, ...] = ()
    alignment_quality: str | None = None
    word_coverage: float | None = None


@dataclass(frozen=True)
class CaptionsArtifact:
    path: Path
    format: str = "json"
    srt_path: Path | None = None
    mode: str | None = None
    chunk_count: int | None = None
    chunk_stats: dict | None = None


@dataclass
class Artifacts:
    transcript: Optional[TranscriptArtifact] = None
    segments: Optional[SegmentsArtifact] = None
    captions: Optional[CaptionsArtifact] = None
