from __future__ import annotations

import threading

from narrasync.services.sync_state import (
    SyncState,
    SyncTracker,
    TrackerRegistry,
    needs_regeneration,
)


def test_edits_accumulate_dirty_segments() -> None:
    tracker = SyncTracker("t1")
    assert tracker.edit("s3") is SyncState.OUT_OF_SYNC
    assert tracker.dirty_segment_ids == {"s3"}
    assert tracker.edit("s5") is SyncState.OUT_OF_SYNC
    assert tracker.dirty_segment_ids == {"s3", "s5"}


def test_regenerate_then_complete_returns_to_synced() -> None:
    tracker = SyncTracker("t1")
    tracker.edit_many(["a", "b"])

    ticket = tracker.request_regenerate()

    assert ticket is not None
    assert ticket.segment_ids == {"a", "b"}
    assert tracker.state is SyncState.REGENERATING
    assert tracker.complete(ticket) is True
    assert tracker.state is SyncState.SYNCED
    assert tracker.dirty_segment_ids == frozenset()


def test_edit_during_regeneration_lands_out_of_sync() -> None:
    tracker = SyncTracker("t1")
    tracker.edit("a")
    ticket = tracker.request_regenerate()

    assert tracker.edit("b") is SyncState.REGENERATING
    assert tracker.complete(ticket) is True

    assert tracker.state is SyncState.OUT_OF_SYNC
    assert tracker.dirty_segment_ids == {"b"}


def test_reedit_of_in_flight_segment_stays_dirty() -> None:
    tracker = SyncTracker("t1")
    tracker.edit_many(["a", "b"])
    ticket = tracker.request_regenerate()
    tracker.edit("a")

    assert tracker.complete(ticket) is True

    assert tracker.state is SyncState.OUT_OF_SYNC
    assert tracker.dirty_segment_ids == {"a"}
    follow_up = tracker.request_regenerate()
    assert follow_up.segment_ids == {"a"}
    assert tracker.complete(follow_up) is True
    assert tracker.state is SyncState.SYNCED


def test_failure_keeps_dirty_set_and_records_error() -> None:
    tracker = SyncTracker("t1")
    tracker.edit("a")
    ticket = tracker.request_regenerate()

    assert tracker.fail(ticket, "tts timeout") is True

    snap = tracker.snapshot()
    assert snap.state is SyncState.OUT_OF_SYNC
    assert snap.dirty_segment_ids == {"a"}
    assert snap.last_error == "tts timeout"
    retry = tracker.request_regenerate()
    assert retry is not None
    assert tracker.snapshot().last_error is None


def test_request_regenerate_while_synced_is_ignored(caplog) -> None:
    tracker = SyncTracker("t1")
    assert tracker.request_regenerate() is None
    assert tracker.state is SyncState.SYNCED
    assert "ignoring request_regenerate" in caplog.text


def test_superseded_ticket_is_discarded() -> None:
    tracker = SyncTracker("t1")
    tracker.edit("a")
    first = tracker.request_regenerate()
    tracker.edit("b")
    second = tracker.request_regenerate()

    assert second.epoch == first.epoch + 1
    assert second.segment_ids == {"a", "b"}
    assert tracker.complete(first) is False
    assert tracker.state is SyncState.REGENERATING
    assert tracker.complete(second) is True
    assert tracker.state is SyncState.SYNCED


def test_cancel_discards_late_result() -> None:
    tracker = SyncTracker("t1")
    tracker.edit("a")
    ticket = tracker.request_regenerate()

    assert tracker.cancel() is True
    assert tracker.state is SyncState.OUT_OF_SYNC
    assert tracker.complete(ticket) is False
    assert tracker.fail(ticket, "late") is False
    assert tracker.dirty_segment_ids == {"a"}
    assert tracker.cancel() is False


def test_completion_outside_regeneration_is_ignored() -> None:
    tracker = SyncTracker("t1")
    tracker.edit("a")
    ticket = tracker.request_regenerate()
    tracker.complete(ticket)
    assert tracker.complete(ticket) is False
    assert tracker.state is SyncState.SYNCED


def test_snapshot_to_dict() -> None:
    tracker = SyncTracker("t1")
    tracker.edit_many(["b", "a"])
    assert tracker.snapshot().to_dict() == {
        "timeline_id": "t1",
        "state": "out_of_sync",
        "dirty_segment_ids": ["a", "b"],
        "epoch": 0,
        "last_error": None,
    }


def test_concurrent_edits_are_all_recorded() -> None:
    tracker = SyncTracker("t1")
    threads = [
        threading.Thread(target=lambda n=n: [tracker.edit(f"s{n}-{i}") for i in range(100)])
        for n in range(8)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(tracker.dirty_segment_ids) == 800


def test_registry_keeps_one_tracker_per_timeline() -> None:
    registry = TrackerRegistry()
    a = registry.get("a")
    assert registry.get("a") is a
    assert registry.get("b") is not a
    a.edit("s1")
    assert registry.get("b").state is SyncState.SYNCED
    assert "a" in registry
    assert len(registry) == 2
    assert {s.timeline_id for s in registry.snapshots()} == {"a", "b"}
    registry.discard("a")
    assert "a" not in registry


def test_needs_regeneration_reads_upstream_flag() -> None:
    segments = [
        {"id": "s1", "needs_voice_regen": True},
        {"id": "s2"},
        {"id": 3, "needs_voice_regen": 1},
        {"id": "s4", "needs_voice_regen": False},
    ]
    assert needs_regeneration(segments) == ["s1", "3"]
