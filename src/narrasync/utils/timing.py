from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, List


Clock = Callable[[], datetime]

DEFAULT_FRAME_RATE = 30


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------------------------------------------------------
# Interval arithmetic
# ----------------------------------------------------------------------
def overlap(a_start: float, a_end: float, b_start: float, b_end: float) -> float:
    """Length of the shared part of two intervals (0.0 when disjoint)."""
    return max(0.0, min(a_end, b_end) - max(a_start, b_start))


def gap_between(prev_end: float, next_start: float) -> float:
    # positive: silence between the two, negative: overlap
    return next_start - prev_end


# ----------------------------------------------------------------------
# Unit conversion
# ----------------------------------------------------------------------
def seconds_to_frames(seconds: float, frame_rate: int = DEFAULT_FRAME_RATE) -> int:
    return int(round(seconds * frame_rate))


def frames_to_seconds(frames: int, frame_rate: int = DEFAULT_FRAME_RATE) -> float:
    return frames / frame_rate


def snap_to_frame(seconds: float, frame_rate: int = DEFAULT_FRAME_RATE) -> float:
    return frames_to_seconds(seconds_to_frames(seconds, frame_rate), frame_rate)


def seconds_to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))


def format_srt_time(seconds: float) -> str:
    # seconds -> "HH:MM:SS,mmm"
    total_ms = seconds_to_ms(max(seconds, 0.0))
    s, ms = divmod(total_ms, 1000)
    hh = s // 3600
    mm = (s % 3600) // 60
    ss = s % 60
    return f"{hh:02d}:{mm:02d}:{ss:02d},{ms:03d}"


# ----------------------------------------------------------------------
# Step timing
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class StepTiming:
    name: str
    started_at: datetime
    finished_at: datetime

    @property
    def duration_s(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


class StepTimer:
    def __init__(self, *, clock: Clock = utc_now) -> None:
        self._clock = clock
        self.steps: List[StepTiming] = []

    @property
    def clock(self) -> Clock:
        return self._clock

    @contextmanager
    def step(self, name: str) -> Iterator[None]:
        started_at = self._clock()
        try:
            yield
        finally:
            finished_at = self._clock()
            self.steps.append(
                StepTiming(
                    name=name,
                    started_at=started_at,
                    finished_at=finished_at,
                )
            )
