"""
Segment aligner.

Maps each narration segment onto the recognized words it was spoken as and
derives the segment's actual start/end from those words.

Matching walks a single cursor forward through the transcript: every token
takes the first word at or after the cursor that equals it or contains / is
contained in it, and the cursor moves just past that word. Repeated words
are therefore resolved purely by position and no word is used twice.

Does NOT:
- reorder segments
- repair overlaps or gaps (see `narrasync.services.repair`)
- score similarity; the substring heuristic is the algorithm
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from narrasync.domain.timeline import AlignedSegment, NarrationSegment, TimedWord
from narrasync.exceptions import NoneMatchedError
from narrasync.utils.logging import get_logger
from narrasync.utils.text import normalize_token, tokenize, tokens_match

log = get_logger(__name__)

# Words without a recognizer confidence are graded as fairly reliable.
DEFAULT_WORD_CONFIDENCE = 0.9


@dataclass(frozen=True)
class AlignmentWarning:
    code: str
    message: str
    segment_id: str | None = None


def segment_unmatched(segment_id: str) -> AlignmentWarning:
    return AlignmentWarning(
        code="segment_unmatched",
        message=f"Segment '{segment_id}' matched no transcript words; keeping estimated timing.",
        segment_id=segment_id,
    )


def none_matched() -> AlignmentWarning:
    return AlignmentWarning(
        code="none_matched",
        message="No segment matched the transcript; estimated timeline preserved.",
    )


@dataclass
class AlignmentResult:
    segments: list[AlignedSegment]
    warnings: list[AlignmentWarning] = field(default_factory=list)
    word_count: int = 0

    @property
    def matched_count(self) -> int:
        return sum(1 for seg in self.segments if not seg.alignment_failed)

    @property
    def none_matched(self) -> bool:
        return any(w.code == "none_matched" for w in self.warnings)

    @property
    def unmatched_ids(self) -> list[str]:
        return [w.segment_id for w in self.warnings if w.code == "segment_unmatched" and w.segment_id]

    @property
    def word_coverage(self) -> float:
        if not self.word_count:
            return 0.0
        used = sum(len(seg.word_indices) for seg in self.segments)
        return used / self.word_count

    @property
    def alignment_quality(self) -> str:
        scores = [
            w.confidence if w.confidence is not None else DEFAULT_WORD_CONFIDENCE
            for seg in self.segments
            for w in seg.matched_words
        ]
        if not scores:
            return "low"
        avg = sum(scores) / len(scores)
        if avg > 0.8:
            return "high"
        if avg > 0.6:
            return "medium"
        return "low"

    def raise_for_status(self) -> None:
        if self.none_matched:
            raise NoneMatchedError([seg.segment for seg in self.segments])


def _match_tokens(
    tokens: Sequence[str],
    normalized_words: Sequence[str],
    search_from: int,
) -> tuple[list[int], int]:
    indices: list[int] = []
    for token in tokens:
        for idx in range(search_from, len(normalized_words)):
            if tokens_match(token, normalized_words[idx]):
                indices.append(idx)
                search_from = idx + 1
                break
    return indices, search_from


def align(segments: Sequence[NarrationSegment], words: Sequence[TimedWord]) -> AlignmentResult:
    """Align segments (in script order) against timed words."""
    normalized_words = [normalize_token(w.text) for w in words]
    search_from = 0
    aligned: list[AlignedSegment] = []
    warnings: list[AlignmentWarning] = []

    for segment in segments:
        indices, search_from = _match_tokens(tokenize(segment.text), normalized_words, search_from)
        if not indices:
            log.warning("Segment %s: no transcript words matched, keeping estimated timing", segment.id)
            warnings.append(segment_unmatched(segment.id))
            aligned.append(
                AlignedSegment(
                    segment=segment,
                    start=segment.estimated_start,
                    end=segment.estimated_end,
                    alignment_failed=True,
                )
            )
            continue

        matched = sorted((words[i] for i in indices), key=lambda w: w.start)
        aligned.append(
            AlignedSegment(
                segment=segment,
                start=min(w.start for w in matched),
                end=max(w.end for w in matched),
                matched_words=matched,
                word_indices=indices,
            )
        )

    if aligned and all(seg.alignment_failed for seg in aligned):
        log.warning("Alignment failed for all %d segments", len(segments))
        warnings.append(none_matched())

    result = AlignmentResult(segments=aligned, warnings=warnings, word_count=len(words))
    log.info(
        "Aligned %d/%d segments (coverage=%.0f%%, quality=%s)",
        result.matched_count,
        len(segments),
        result.word_coverage * 100,
        result.alignment_quality,
    )
    return result
