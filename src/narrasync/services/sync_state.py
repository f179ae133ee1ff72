"""
Sync state tracking per timeline.

    synced --edit--> out_of_sync --request_regenerate--> regenerating
    regenerating --complete--> synced | out_of_sync (edits arrived meanwhile)
    regenerating --fail--> out_of_sync
    regenerating --edit--> regenerating (queued in the dirty set)

Each tracker serializes its own transitions behind a lock. A regeneration
is identified by an epoch; superseding or cancelling a run bumps the epoch
so a late result from the old run is discarded instead of applied.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from narrasync.utils.logging import get_logger

log = get_logger(__name__)


class SyncState(str, Enum):
    SYNCED = "synced"
    OUT_OF_SYNC = "out_of_sync"
    REGENERATING = "regenerating"


@dataclass(frozen=True)
class RegenerationTicket:
    timeline_id: str
    epoch: int
    segment_ids: frozenset[str]


@dataclass(frozen=True)
class SyncSnapshot:
    timeline_id: str
    state: SyncState
    dirty_segment_ids: frozenset[str]
    epoch: int
    last_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeline_id": self.timeline_id,
            "state": self.state.value,
            "dirty_segment_ids": sorted(self.dirty_segment_ids),
            "epoch": self.epoch,
            "last_error": self.last_error,
        }


class SyncTracker:
    def __init__(self, timeline_id: str) -> None:
        self.timeline_id = timeline_id
        self._lock = threading.RLock()
        self._state = SyncState.SYNCED
        # segment id -> epoch of its latest edit
        self._dirty: dict[str, int] = {}
        self._epoch = 0
        self._in_flight: Optional[RegenerationTicket] = None
        self._last_error: Optional[str] = None

    @property
    def state(self) -> SyncState:
        with self._lock:
            return self._state

    @property
    def dirty_segment_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._dirty)

    def snapshot(self) -> SyncSnapshot:
        with self._lock:
            return SyncSnapshot(
                timeline_id=self.timeline_id,
                state=self._state,
                dirty_segment_ids=frozenset(self._dirty),
                epoch=self._epoch,
                last_error=self._last_error,
            )

    def _ignore(self, event: str) -> None:
        log.warning("Timeline %s: ignoring %s while %s", self.timeline_id, event, self._state.value)

    def _is_current(self, ticket: RegenerationTicket, event: str) -> bool:
        if self._state is SyncState.REGENERATING and self._in_flight == ticket:
            return True
        if ticket.epoch != self._epoch:
            log.warning(
                "Timeline %s: discarding stale %s from epoch %d (current %d)",
                self.timeline_id,
                event,
                ticket.epoch,
                self._epoch,
            )
        else:
            self._ignore(event)
        return False

    def edit(self, segment_id: str) -> SyncState:
        with self._lock:
            self._dirty[segment_id] = self._epoch
            if self._state is SyncState.SYNCED:
                self._state = SyncState.OUT_OF_SYNC
            elif self._state is SyncState.REGENERATING:
                log.info("Timeline %s: edit to %s queued behind regeneration", self.timeline_id, segment_id)
            return self._state

    def edit_many(self, segment_ids: Iterable[str]) -> SyncState:
        with self._lock:
            for segment_id in segment_ids:
                self.edit(segment_id)
            return self._state

    def request_regenerate(self) -> Optional[RegenerationTicket]:
        """Start (or supersede) a regeneration covering the current dirty set."""
        with self._lock:
            if self._state is SyncState.SYNCED:
                self._ignore("request_regenerate")
                return None
            if self._state is SyncState.REGENERATING:
                log.info(
                    "Timeline %s: superseding regeneration epoch %d",
                    self.timeline_id,
                    self._epoch,
                )
            self._epoch += 1
            self._state = SyncState.REGENERATING
            self._last_error = None
            self._in_flight = RegenerationTicket(
                timeline_id=self.timeline_id,
                epoch=self._epoch,
                segment_ids=frozenset(self._dirty),
            )
            return self._in_flight

    def complete(self, ticket: RegenerationTicket) -> bool:
        """Apply a successful regeneration; returns False when the result is stale."""
        with self._lock:
            if not self._is_current(ticket, "completion"):
                return False
            # an id edited again under this ticket's epoch was narrated from stale text
            for segment_id in ticket.segment_ids:
                if self._dirty.get(segment_id, ticket.epoch) < ticket.epoch:
                    del self._dirty[segment_id]
            self._in_flight = None
            if self._dirty:
                self._state = SyncState.OUT_OF_SYNC
                log.info(
                    "Timeline %s: regenerated, but %d segment(s) edited meanwhile",
                    self.timeline_id,
                    len(self._dirty),
                )
            else:
                self._state = SyncState.SYNCED
            return True

    def fail(self, ticket: RegenerationTicket, error: str) -> bool:
        with self._lock:
            if not self._is_current(ticket, "failure"):
                return False
            self._in_flight = None
            self._state = SyncState.OUT_OF_SYNC
            self._last_error = error
            log.warning("Timeline %s: regeneration failed: %s", self.timeline_id, error)
            return True

    def cancel(self) -> bool:
        with self._lock:
            if self._state is not SyncState.REGENERATING:
                self._ignore("cancel")
                return False
            self._epoch += 1
            self._in_flight = None
            self._state = SyncState.OUT_OF_SYNC
            return True


class TrackerRegistry:
    """Owns one SyncTracker per timeline id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._trackers: dict[str, SyncTracker] = {}

    def get(self, timeline_id: str) -> SyncTracker:
        with self._lock:
            tracker = self._trackers.get(timeline_id)
            if tracker is None:
                tracker = SyncTracker(timeline_id)
                self._trackers[timeline_id] = tracker
            return tracker

    def discard(self, timeline_id: str) -> None:
        with self._lock:
            self._trackers.pop(timeline_id, None)

    def snapshots(self) -> list[SyncSnapshot]:
        with self._lock:
            trackers = list(self._trackers.values())
        return [t.snapshot() for t in trackers]

    def __contains__(self, timeline_id: object) -> bool:
        with self._lock:
            return timeline_id in self._trackers

    def __len__(self) -> int:
        with self._lock:
            return len(self._trackers)


def needs_regeneration(segments: Iterable[Mapping[str, Any]]) -> list[str]:
    """Ids of upstream segment dicts flagged with `needs_voice_regen`."""
    return [str(seg["id"]) for seg in segments if seg.get("needs_voice_regen")]
