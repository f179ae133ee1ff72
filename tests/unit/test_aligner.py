from __future__ import annotations

import pytest

from narrasync.domain.timeline import NarrationSegment, TimedWord
from narrasync.exceptions import NoneMatchedError
from narrasync.services.aligner import align


def _seg(seg_id: str, text: str, start: float = 0.0, end: float = 1.0) -> NarrationSegment:
    return NarrationSegment(id=seg_id, text=text, estimated_start=start, estimated_end=end)


def _words(*entries: tuple[str, float, float]) -> list[TimedWord]:
    return [TimedWord(text=t, start=s, end=e) for t, s, e in entries]


def test_segments_take_timing_from_matched_words() -> None:
    words = _words(("hello", 0.1, 0.5), ("world", 0.5, 1.0), ("goodbye", 1.2, 1.8), ("now", 1.8, 2.0))
    result = align([_seg("a", "Hello, world!"), _seg("b", "Goodbye now.")], words)

    a, b = result.segments
    assert (a.start, a.end) == (0.1, 1.0)
    assert (b.start, b.end) == (1.2, 2.0)
    assert a.word_indices == [0, 1]
    assert b.word_indices == [2, 3]
    assert result.warnings == []
    assert result.word_coverage == 1.0


def test_substring_matches_either_direction() -> None:
    # recognizer split "don't" and merged "ice cream"
    words = _words(("don", 0.0, 0.2), ("t", 0.2, 0.3), ("icecream", 0.4, 0.9))
    result = align([_seg("a", "don't"), _seg("b", "ice cream")], words)

    assert result.segments[0].word_indices == [0]
    assert result.segments[1].word_indices == [2]


def test_repeated_words_resolve_by_position() -> None:
    words = _words(("the", 0.0, 0.2), ("end", 0.2, 0.5), ("the", 1.0, 1.2), ("end", 1.2, 1.5))
    result = align([_seg("a", "the end"), _seg("b", "the end")], words)

    assert result.segments[0].word_indices == [0, 1]
    assert result.segments[1].word_indices == [2, 3]
    assert (result.segments[1].start, result.segments[1].end) == (1.0, 1.5)


def test_matched_indices_strictly_increase_across_segments() -> None:
    words = _words(*[(w, i * 0.3, i * 0.3 + 0.25) for i, w in enumerate("a b c a b c d".split())])
    result = align([_seg("x", "a c"), _seg("y", "b a"), _seg("z", "d c")], words)

    flat = [i for seg in result.segments for i in seg.word_indices]
    assert flat == sorted(flat)
    assert len(flat) == len(set(flat))


def test_unmatched_segment_keeps_estimate_and_warns() -> None:
    words = _words(("hello", 0.1, 0.5))
    result = align([_seg("a", "hello"), _seg("b", "nothing here", 3.0, 4.0)], words)

    b = result.segments[1]
    assert b.alignment_failed is True
    assert (b.start, b.end) == (3.0, 4.0)
    assert result.unmatched_ids == ["b"]
    assert result.warnings[0].code == "segment_unmatched"
    assert not result.none_matched
    result.raise_for_status()


def test_none_matched_warns_and_raises_with_originals() -> None:
    segments = [_seg("a", "alpha", 0.0, 2.0), _seg("b", "beta", 2.0, 4.0)]
    result = align(segments, _words(("zulu", 0.0, 1.0)))

    assert result.none_matched
    assert [(s.start, s.end) for s in result.segments] == [(0.0, 2.0), (2.0, 4.0)]
    with pytest.raises(NoneMatchedError) as excinfo:
        result.raise_for_status()
    assert excinfo.value.segments == segments


def test_punctuation_only_segment_matches_nothing() -> None:
    result = align([_seg("a", "hi"), _seg("b", "...")], _words(("hi", 0.0, 0.3)))
    assert result.segments[1].alignment_failed


def test_out_of_order_matches_are_sorted_by_start() -> None:
    # recognizer timestamps may be non-monotonic within a segment
    words = [TimedWord("one", 0.5, 0.9), TimedWord("two", 0.2, 0.4)]
    result = align([_seg("a", "one two")], words)
    seg = result.segments[0]
    assert [w.text for w in seg.matched_words] == ["two", "one"]
    assert (seg.start, seg.end) == (0.2, 0.9)


def test_alignment_quality_grades_confidence() -> None:
    high = align([_seg("a", "hi")], [TimedWord("hi", 0.0, 0.2, confidence=0.95)])
    low = align([_seg("a", "hi")], [TimedWord("hi", 0.0, 0.2, confidence=0.3)])
    assert high.alignment_quality == "high"
    assert low.alignment_quality == "low"
