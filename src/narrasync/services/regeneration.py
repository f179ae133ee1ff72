"""
Regeneration coordinator.

Drives one narration round trip per timeline: request a ticket from the
timeline's tracker, await the external backend, realign the new transcript
and report the result back to the tracker. A newer request for the same
timeline cancels the older task; the tracker's epoch check drops anything
the older task still manages to report.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

from narrasync.domain.contracts import RegenerationBackend
from narrasync.domain.timeline import NarrationSegment, RealignedSegment
from narrasync.exceptions import NarraSyncError, RegenerationError
from narrasync.pipeline import SyncPipeline
from narrasync.services.sync_state import RegenerationTicket, SyncState, SyncTracker, TrackerRegistry
from narrasync.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class RegenerationOutcome:
    timeline_id: str
    accepted: bool
    state: SyncState
    applied: bool = False
    superseded: bool = False
    epoch: Optional[int] = None
    segments: tuple[RealignedSegment, ...] = ()
    error: Optional[str] = None


class RegenerationCoordinator:
    def __init__(
        self,
        backend: RegenerationBackend,
        *,
        pipeline: SyncPipeline | None = None,
        registry: TrackerRegistry | None = None,
    ) -> None:
        self.backend = backend
        self.pipeline = pipeline or SyncPipeline()
        self.registry = registry or TrackerRegistry()
        self._tasks: dict[str, asyncio.Task] = {}
        self._segments: dict[str, list[RealignedSegment]] = {}

    def tracker(self, timeline_id: str) -> SyncTracker:
        return self.registry.get(timeline_id)

    def edit(self, timeline_id: str, segment_id: str) -> SyncState:
        return self.registry.get(timeline_id).edit(segment_id)

    def current_segments(self, timeline_id: str) -> list[RealignedSegment] | None:
        """Last applied realignment for a timeline, if any."""
        segments = self._segments.get(timeline_id)
        return list(segments) if segments is not None else None

    async def regenerate(self, timeline_id: str, segments: Sequence[NarrationSegment]) -> RegenerationOutcome:
        tracker = self.registry.get(timeline_id)
        ticket = tracker.request_regenerate()
        if ticket is None:
            return RegenerationOutcome(timeline_id=timeline_id, accepted=False, state=tracker.state)

        previous = self._tasks.get(timeline_id)
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.ensure_future(self._run(tracker, ticket, list(segments)))
        self._tasks[timeline_id] = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._tasks.get(timeline_id) is not task:
                log.info("Timeline %s: regeneration epoch %d superseded", timeline_id, ticket.epoch)
                return RegenerationOutcome(
                    timeline_id=timeline_id,
                    accepted=True,
                    state=tracker.state,
                    superseded=True,
                    epoch=ticket.epoch,
                )
            # caller went away; release the tracker unless a newer run owns it
            if tracker.snapshot().epoch == ticket.epoch:
                tracker.cancel()
            raise
        finally:
            if self._tasks.get(timeline_id) is task:
                del self._tasks[timeline_id]

    def cancel(self, timeline_id: str) -> bool:
        task = self._tasks.pop(timeline_id, None)
        if task is not None and not task.done():
            task.cancel()
        return self.registry.get(timeline_id).cancel()

    async def _run(
        self,
        tracker: SyncTracker,
        ticket: RegenerationTicket,
        segments: list[NarrationSegment],
    ) -> RegenerationOutcome:
        try:
            transcript = await self.backend.narrate(segments, ticket.segment_ids)
            result = self.pipeline.run(segments, transcript)
        except NarraSyncError as exc:
            failure = exc
        except Exception as exc:
            failure = RegenerationError(f"Narration backend failed: {exc}")
        else:
            applied = tracker.complete(ticket)
            if applied:
                self._segments[tracker.timeline_id] = result.segments
            return RegenerationOutcome(
                timeline_id=tracker.timeline_id,
                accepted=True,
                state=tracker.state,
                applied=applied,
                epoch=ticket.epoch,
                segments=tuple(result.segments) if applied else (),
            )

        error = f"{failure.label()}: {failure.message}"
        tracker.fail(ticket, error)
        return RegenerationOutcome(
            timeline_id=tracker.timeline_id,
            accepted=True,
            state=tracker.state,
            epoch=ticket.epoch,
            error=error,
        )
