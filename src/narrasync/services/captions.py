"""
Caption chunking service for narrasync.

Groups timed words into burned-in caption chunks. Chunk boundaries are
always word boundaries and chunk timing always comes from member words.

Responsibilities:
- greedy chunking bounded by word count, characters and duration
- folding short chunks into their successor when the caps allow it
- line layout and SRT / track-item export

Does NOT:
- transcribe audio
- change segment timing (captions are derived from, never fed back into,
  the repaired timeline)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from narrasync.domain.timeline import CaptionChunk, RealignedSegment, TimedWord
from narrasync.exceptions import ConfigurationError
from narrasync.utils.logging import get_logger
from narrasync.utils.timing import DEFAULT_FRAME_RATE, format_srt_time, overlap

log = get_logger(__name__)

MAX_WORDS_PER_CHUNK = 6
MAX_CHARS_PER_LINE = 42
MAX_CAPTION_LINES = 2
MIN_CHUNK_SECONDS = 0.833  # 20 frames at 24fps
MAX_CHUNK_SECONDS = 4.0
UNSCORED_WORD_CONFIDENCE = 0.9


@dataclass(frozen=True)
class ChunkOptions:
    max_words_per_chunk: int = MAX_WORDS_PER_CHUNK
    max_chars_per_line: int = MAX_CHARS_PER_LINE
    max_lines: int = 1
    min_chunk_duration: float = MIN_CHUNK_SECONDS
    max_chunk_duration: float = MAX_CHUNK_SECONDS
    pad_short_chunks: bool = False
    audio_duration: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_words_per_chunk < 1:
            raise ConfigurationError("max_words_per_chunk must be at least 1.")
        if self.max_chars_per_line < 1:
            raise ConfigurationError("max_chars_per_line must be at least 1.")
        if not 1 <= self.max_lines <= MAX_CAPTION_LINES:
            raise ConfigurationError(f"max_lines must be between 1 and {MAX_CAPTION_LINES}.")
        if self.max_chunk_duration <= 0 or self.min_chunk_duration < 0:
            raise ConfigurationError("Chunk durations must be positive.")
        if self.min_chunk_duration > self.max_chunk_duration:
            raise ConfigurationError("min_chunk_duration must not exceed max_chunk_duration.")

    @property
    def max_chars(self) -> int:
        return self.max_chars_per_line * self.max_lines


def _join(words: Sequence[TimedWord]) -> str:
    return " ".join(w.text for w in words)


def _span(words: Sequence[TimedWord]) -> float:
    return words[-1].end - words[0].start


def _fits(words: Sequence[TimedWord], options: ChunkOptions) -> bool:
    return (
        len(words) <= options.max_words_per_chunk
        and len(_join(words)) <= options.max_chars
        and _span(words) <= options.max_chunk_duration
    )


def split_into_lines(text: str, max_chars_per_line: int = MAX_CHARS_PER_LINE, max_lines: int = 1) -> list[str]:
    words = text.split()
    if not words:
        return []
    lines: list[str] = []
    current: list[str] = []
    current_len = 0
    for word in words:
        next_len = current_len + (1 if current else 0) + len(word)
        if current and next_len > max_chars_per_line:
            lines.append(" ".join(current))
            current = [word]
            current_len = len(word)
        else:
            current.append(word)
            current_len = next_len
    lines.append(" ".join(current))
    if len(lines) > max_lines:
        # Overflow stays on the last line; words are never dropped.
        lines = lines[: max_lines - 1] + [" ".join(lines[max_lines - 1 :])]
    return lines


def _group_words(words: Sequence[TimedWord], options: ChunkOptions) -> list[list[TimedWord]]:
    groups: list[list[TimedWord]] = []
    current: list[TimedWord] = []
    for word in words:
        if current and not _fits(current + [word], options):
            groups.append(current)
            current = [word]
        else:
            current.append(word)
    if current:
        groups.append(current)
    return groups


def _merge_short_groups(groups: list[list[TimedWord]], options: ChunkOptions) -> list[list[TimedWord]]:
    merged: list[list[TimedWord]] = []
    carry: list[TimedWord] = []
    for idx, group in enumerate(groups):
        group = carry + group
        carry = []
        is_last = idx == len(groups) - 1
        if (
            not is_last
            and _span(group) < options.min_chunk_duration
            and _fits(group + groups[idx + 1], options)
        ):
            carry = group
            continue
        merged.append(group)
    return merged


def _build_chunks(
    groups: Sequence[Sequence[TimedWord]],
    options: ChunkOptions,
    *,
    id_for: Callable[[int], str],
    segment_id: Optional[str] = None,
    limit: Optional[float] = None,
    next_start: Optional[float] = None,
) -> list[CaptionChunk]:
    chunks: list[CaptionChunk] = []
    for idx, group in enumerate(groups):
        start = group[0].start
        end = group[-1].end
        if options.pad_short_chunks and end - start < options.min_chunk_duration:
            following = groups[idx + 1][0].start if idx + 1 < len(groups) else next_start
            bounds = [b for b in (following, limit, options.audio_duration) if b is not None]
            ceiling = min(bounds) if bounds else math.inf
            end = max(end, min(start + options.min_chunk_duration, ceiling))
        if options.audio_duration is not None:
            end = max(start, min(end, options.audio_duration))
        text = _join(group)
        chunks.append(
            CaptionChunk(
                text=text,
                start=start,
                end=end,
                words=tuple(group),
                lines=tuple(split_into_lines(text, options.max_chars_per_line, options.max_lines)),
                id=id_for(idx),
                segment_id=segment_id,
            )
        )
    return chunks


def chunk_words(words: Sequence[TimedWord], options: ChunkOptions | None = None) -> list[CaptionChunk]:
    """Chunk a flat, ordered word sequence into captions."""
    options = options or ChunkOptions()
    groups = _merge_short_groups(_group_words(words, options), options)
    chunks = _build_chunks(groups, options, id_for=lambda n: f"caption-{n}")
    log.info("Built %d caption chunks from %d words", len(chunks), len(words))
    return chunks


def _owner_index(word: TimedWord, segments: Sequence[RealignedSegment]) -> int:
    best, best_overlap = -1, 0.0
    for idx, seg in enumerate(segments):
        shared = overlap(word.start, word.end, seg.start, seg.end)
        if shared > best_overlap:
            best, best_overlap = idx, shared
    if best >= 0:
        return best
    # pauses and zero-length words go to the last segment started by then
    for idx in range(len(segments) - 1, -1, -1):
        if segments[idx].start <= word.start:
            return idx
    return 0


def assign_words(
    segments: Sequence[RealignedSegment],
    words: Sequence[TimedWord],
) -> list[tuple[TimedWord, ...]]:
    """
    Give every transcript word to a segment.

    Matched words stay with the segment that matched them; any other word
    goes to the segment its timing overlaps most.
    """
    if not segments:
        return []
    claimed: dict[TimedWord, int] = {}
    for idx, seg in enumerate(segments):
        for word in seg.word_timings:
            claimed.setdefault(word, idx)
    owned: list[list[TimedWord]] = [[] for _ in segments]
    for word in words:
        idx = claimed.get(word)
        if idx is None:
            idx = _owner_index(word, segments)
        owned[idx].append(word)
    return [tuple(group) for group in owned]


def chunk_segments(
    segments: Sequence[RealignedSegment],
    options: ChunkOptions | None = None,
    *,
    words: Sequence[TimedWord] | None = None,
) -> list[CaptionChunk]:
    """
    Chunk each repaired segment on its own so captions follow segment boundaries.

    With `words` (the full transcript) every spoken word is captioned,
    including fillers and words inside failed segments that the matcher
    skipped. Without it only each segment's matched words are used.
    """
    options = options or ChunkOptions()
    if words is None:
        per_segment = [seg.word_timings for seg in segments]
    else:
        per_segment = assign_words(segments, words)
    with_words = [(seg, owned) for seg, owned in zip(segments, per_segment) if owned]
    chunks: list[CaptionChunk] = []
    for pos, (seg, owned) in enumerate(with_words):
        groups = _merge_short_groups(_group_words(owned, options), options)
        following = with_words[pos + 1][1][0].start if pos + 1 < len(with_words) else None
        chunks.extend(
            _build_chunks(
                groups,
                options,
                id_for=lambda n, seg_id=seg.id: f"{seg_id}_chunk_{n}",
                segment_id=seg.id,
                limit=seg.end,
                next_start=following,
            )
        )
    log.info("Built %d caption chunks across %d segments", len(chunks), len(with_words))
    return chunks


def caption_metrics(chunks: Sequence[CaptionChunk], *, max_chars_per_line: int = MAX_CHARS_PER_LINE) -> dict:
    if not chunks:
        return {}
    durations = [c.duration for c in chunks]
    word_scores = [
        w.confidence if w.confidence is not None else UNSCORED_WORD_CONFIDENCE
        for c in chunks
        for w in c.words
    ]
    readability = 100.0
    for chunk in chunks:
        if chunk.word_count < 2:
            readability -= 5
        if chunk.word_count > 8:
            readability -= 3
        if chunk.char_count > max_chars_per_line * MAX_CAPTION_LINES:
            readability -= 5
        if 1.0 <= chunk.duration <= 4.0:
            readability += 2
        elif chunk.duration < MIN_CHUNK_SECONDS or chunk.duration > 6.0:
            readability -= 3
    return {
        "chunk_count": len(chunks),
        "avg_words_per_chunk": sum(c.word_count for c in chunks) / len(chunks),
        "avg_confidence": round(sum(word_scores) / len(word_scores), 2) if word_scores else None,
        "readability_score": max(0.0, min(100.0, readability)),
        "min_seconds": min(durations),
        "max_seconds": max(durations),
        "avg_seconds": sum(durations) / len(durations),
    }


def captions_payload(
    chunks: Sequence[CaptionChunk],
    *,
    frame_rate: int = DEFAULT_FRAME_RATE,
    max_chars_per_line: int = MAX_CHARS_PER_LINE,
) -> dict:
    return {
        "captions": [c.to_dict() for c in chunks],
        "track_items": [c.to_track_item(frame_rate) for c in chunks],
        "frame_rate": frame_rate,
        "metrics": caption_metrics(chunks, max_chars_per_line=max_chars_per_line),
    }


def render_srt(chunks: Sequence[CaptionChunk]) -> str:
    lines: list[str] = []
    for idx, chunk in enumerate(chunks, start=1):
        lines.append(str(idx))
        lines.append(f"{format_srt_time(chunk.start)} --> {format_srt_time(chunk.end)}")
        lines.append("\n".join(chunk.lines) or chunk.text)
        lines.append("")
    return "\n".join(lines).strip() + "\n" if lines else ""


def write_srt(chunks: Sequence[CaptionChunk], out_path: Path) -> Path:
    out_path.write_text(render_srt(chunks), encoding="utf-8")
    return out_path
