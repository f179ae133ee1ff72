"""
Timeline repair pass.

Turns aligned segments (script order) into a non-overlapping timeline:

- small gaps (< gap_extend_threshold) are absorbed into the earlier segment
- larger gaps are kept as intentional pauses
- overlaps always trim the earlier segment's end

Segments whose alignment failed keep their estimated timing, confined to the
room left between their aligned neighbours, so a bad estimate never moves a
segment whose timing came from the audio.
"""

from __future__ import annotations

import math
from typing import Sequence

from narrasync.domain.timeline import AlignedSegment, RealignedSegment
from narrasync.exceptions import RepairInvariantViolation
from narrasync.utils.logging import get_logger
from narrasync.utils.timing import gap_between

log = get_logger(__name__)

DEFAULT_GAP_EXTEND_THRESHOLD = 0.5


def _next_aligned_start(work: Sequence[AlignedSegment], index: int) -> float:
    for seg in work[index + 1 :]:
        if not seg.alignment_failed:
            return seg.start
    return math.inf


def _confine_failed(work: list[AlignedSegment]) -> None:
    for idx, seg in enumerate(work):
        if not seg.alignment_failed:
            continue
        lo = work[idx - 1].end if idx > 0 else -math.inf
        hi = _next_aligned_start(work, idx)
        start = min(max(seg.start, lo), hi)
        end = min(max(seg.end, start), hi)
        if (start, end) != (seg.start, seg.end):
            log.debug(
                "Segment %s: estimated %.3f-%.3f confined to %.3f-%.3f",
                seg.id,
                seg.start,
                seg.end,
                start,
                end,
            )
        if end <= start and seg.end > seg.start:
            log.warning("Segment %s: no room left between aligned neighbours, collapsed to %.3f", seg.id, start)
        seg.start, seg.end = start, end


def _copy(seg: AlignedSegment) -> AlignedSegment:
    return AlignedSegment(
        segment=seg.segment,
        start=seg.start,
        end=seg.end,
        matched_words=list(seg.matched_words),
        word_indices=list(seg.word_indices),
        alignment_failed=seg.alignment_failed,
    )


def repair(
    aligned: Sequence[AlignedSegment],
    *,
    gap_extend_threshold: float = DEFAULT_GAP_EXTEND_THRESHOLD,
) -> list[RealignedSegment]:
    work = [_copy(seg) for seg in aligned]
    _confine_failed(work)

    for cur, nxt in zip(work, work[1:]):
        gap = gap_between(cur.end, nxt.start)
        if gap < 0:
            log.debug("Segment %s overlaps %s by %.3fs, trimming", cur.id, nxt.id, -gap)
            cur.end = nxt.start
        elif 0 < gap < gap_extend_threshold:
            cur.end = nxt.start

    repaired = [
        RealignedSegment(
            id=seg.id,
            text=seg.segment.text,
            start=seg.start,
            end=seg.end,
            image_prompt=seg.segment.image_prompt,
            word_timings=tuple(seg.matched_words),
            alignment_failed=seg.alignment_failed,
        )
        for seg in work
    ]
    verify_partition(repaired, gap_extend_threshold=gap_extend_threshold)
    return repaired


def verify_partition(
    segments: Sequence[RealignedSegment],
    *,
    gap_extend_threshold: float = DEFAULT_GAP_EXTEND_THRESHOLD,
) -> None:
    """Raise RepairInvariantViolation unless segments form a valid timeline."""
    for seg in segments:
        if seg.end < seg.start:
            raise RepairInvariantViolation(f"Segment {seg.id} ends before it starts.")
    for cur, nxt in zip(segments, segments[1:]):
        gap = gap_between(cur.end, nxt.start)
        if gap < 0:
            raise RepairInvariantViolation(f"Segments {cur.id} and {nxt.id} overlap by {-gap:.3f}s.")
        if 0 < gap < gap_extend_threshold:
            raise RepairInvariantViolation(
                f"Gap of {gap:.3f}s between {cur.id} and {nxt.id} should have been absorbed."
            )
