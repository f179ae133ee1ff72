from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from narrasync.utils import timing


def test_overlap_and_gap() -> None:
    assert timing.overlap(0.0, 2.0, 1.5, 3.0) == pytest.approx(0.5)
    assert timing.overlap(0.0, 1.0, 2.0, 3.0) == 0.0
    assert timing.gap_between(1.0, 1.2) == pytest.approx(0.2)
    assert timing.gap_between(3.5, 3.0) == pytest.approx(-0.5)


def test_frame_conversions() -> None:
    assert timing.seconds_to_frames(1.0) == 30
    assert timing.seconds_to_frames(0.833, 24) == 20
    assert timing.frames_to_seconds(45, 30) == 1.5
    assert timing.snap_to_frame(0.51, 10) == pytest.approx(0.5)


def test_ms_conversions_and_srt_format() -> None:
    assert timing.seconds_to_ms(1.2345) == 1234
    assert timing.format_srt_time(3723.5) == "01:02:03,500"
    assert timing.format_srt_time(0.9996) == "00:00:01,000"
    assert timing.format_srt_time(-1.0) == "00:00:00,000"


def test_step_timer_records_steps() -> None:
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ticks = iter([base, base + timedelta(seconds=2), base + timedelta(seconds=2), base + timedelta(seconds=5)])
    timer = timing.StepTimer(clock=lambda: next(ticks))

    with timer.step("ingest"):
        pass
    with pytest.raises(RuntimeError):
        with timer.step("align"):
            raise RuntimeError("boom")

    assert [s.name for s in timer.steps] == ["ingest", "align"]
    assert [s.duration_s for s in timer.steps] == [2.0, 3.0]
