"""
Pipeline orchestration for narrasync.

One sync pass over a script and a speech-to-text transcript:

1) Ingest word timings
2) Align segments to words
3) Repair the timeline (gaps / overlaps)
4) Chunk captions

Responsibilities:
- Run the pure stages in order with the configured options
- Record step timings and, for a Job, write artifacts and run.json

Does NOT:
- Produce audio or transcripts (external collaborators do)
- Track edit / regeneration state (see `narrasync.services.sync_state`)

A transcript with no usable words or a script that matches no words raises
(`EmptyTranscriptError` / `NoneMatchedError`); the caller's estimated
segments are never modified, so the estimated timeline stays in place.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Sequence

from narrasync.config.settings import Settings
from narrasync.domain.artifacts import Artifacts, CaptionsArtifact, SegmentsArtifact, TranscriptArtifact
from narrasync.domain.job import Job
from narrasync.domain.timeline import CaptionChunk, NarrationSegment, RealignedSegment, TimedWord
from narrasync.services.aligner import AlignmentResult, AlignmentWarning, align
from narrasync.services.captions import captions_payload, chunk_segments, chunk_words, write_srt
from narrasync.services.ingest import ingest, transcript_duration
from narrasync.services.repair import repair
from narrasync.utils.logging import get_logger
from narrasync.utils.manifest import write_run_manifest
from narrasync.utils.text import sha256_text
from narrasync.utils.timing import StepTimer, StepTiming, utc_now

log = get_logger(__name__)


@dataclass
class SyncResult:
    segments: list[RealignedSegment]
    captions: list[CaptionChunk]
    alignment: AlignmentResult
    words: list[TimedWord]
    steps: list[StepTiming] = field(default_factory=list)

    @property
    def warnings(self) -> list[AlignmentWarning]:
        return list(self.alignment.warnings)

    @property
    def audio_duration(self) -> float | None:
        return transcript_duration(self.words)


class SyncPipeline:
    """
    Runs ingest -> align -> repair -> captions with one Settings instance.

    Each stage is pure; running the pipeline again on its own output with
    the same transcript gives the same timeline.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()

    def run(
        self,
        segments: Sequence[NarrationSegment],
        transcript: Any,
        *,
        job: Job | None = None,
    ) -> SyncResult:
        timer = StepTimer(clock=utc_now)
        started_at = timer.clock()
        alignment: AlignmentResult | None = None
        error: BaseException | None = None
        if job is not None:
            job.artifacts = Artifacts()
            job.script_sha256 = sha256_text("\n".join(seg.text for seg in segments))

        try:
            with timer.step("ingest"):
                words = ingest(transcript)

            with timer.step("align"):
                alignment = align(segments, words)
            alignment.raise_for_status()

            with timer.step("repair"):
                repaired = repair(alignment.segments, gap_extend_threshold=self.settings.gap_extend_threshold)

            with timer.step("captions"):
                options = self.settings.chunk_options(audio_duration=transcript_duration(words))
                if self.settings.caption_mode == "segments":
                    captions = chunk_segments(repaired, options, words=words)
                else:
                    captions = chunk_words(words, options)

            result = SyncResult(
                segments=repaired,
                captions=captions,
                alignment=alignment,
                words=words,
                steps=timer.steps,
            )
            if job is not None:
                with timer.step("write_artifacts"):
                    self._write_artifacts(job, result, transcript)
            return result
        except Exception as exc:
            error = exc
            raise
        finally:
            if job is not None:
                finished_at = timer.clock()
                write_run_manifest(
                    job=job,
                    steps=timer.steps,
                    started_at=started_at,
                    finished_at=finished_at,
                    alignment=alignment,
                    error=error,
                )

    def _write_artifacts(self, job: Job, result: SyncResult, transcript: Any) -> None:
        ws = job.workspace
        ws.transcript_json.write_text(json.dumps(transcript, indent=2), encoding="utf-8")
        job.artifacts.transcript = TranscriptArtifact(
            path=ws.transcript_json,
            word_count=len(result.words),
            duration_seconds=result.audio_duration,
            text_sha256=sha256_text(" ".join(w.text for w in result.words)),
        )

        ws.realigned_segments_json.write_text(
            json.dumps([seg.to_dict() for seg in result.segments], indent=2),
            encoding="utf-8",
        )
        job.artifacts.segments = SegmentsArtifact(
            path=ws.realigned_segments_json,
            segment_count=len(result.segments),
            matched_count=result.alignment.matched_count,
            unmatched_ids=tuple(result.alignment.unmatched_ids),
            alignment_quality=result.alignment.alignment_quality,
            word_coverage=result.alignment.word_coverage,
        )

        payload = captions_payload(
            result.captions,
            frame_rate=self.settings.frame_rate,
            max_chars_per_line=self.settings.max_chars_per_line,
        )
        ws.captions_json.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        write_srt(result.captions, ws.captions_srt)
        job.artifacts.captions = CaptionsArtifact(
            path=ws.captions_json,
            srt_path=ws.captions_srt,
            mode=self.settings.caption_mode,
            chunk_count=len(result.captions),
            chunk_stats=payload["metrics"] or None,
        )
        log.info("Wrote artifacts to %s", ws.root)
