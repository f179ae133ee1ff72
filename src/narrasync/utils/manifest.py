from __future__ import annotations

import json
import subprocess
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable

from narrasync.domain.job import Job
from narrasync.utils.timing import StepTiming

if TYPE_CHECKING:
    from narrasync.services.aligner import AlignmentResult


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


def _artifact_entry(artifact: Any) -> dict[str, Any] | None:
    if artifact is None:
        return None
    entry = {k: v for k, v in asdict(artifact).items() if v is not None and v != ()}
    path = Path(artifact.path)
    entry["path"] = str(path)
    entry["size_bytes"] = path.stat().st_size if path.exists() else None
    srt_path = getattr(artifact, "srt_path", None)
    if srt_path:
        entry["srt_path"] = str(srt_path)
    if "unmatched_ids" in entry:
        entry["unmatched_ids"] = list(entry["unmatched_ids"])
    return entry


def _find_repo_root(start: Path) -> Path | None:
    current = start
    for _ in range(6):
        if (current / ".git").exists():
            return current
        if current.parent == current:
            break
        current = current.parent
    return None


def _git_commit() -> str | None:
    root = _find_repo_root(Path(__file__).resolve())
    if root is None:
        return None
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=str(root),
            capture_output=True,
            text=True,
        )
    except OSError:
        return None
    if proc.returncode != 0:
        return None
    value = proc.stdout.strip()
    return value or None


def _serialize_steps(steps: Iterable[StepTiming]) -> list[dict[str, Any]]:
    serialized = []
    for step in steps:
        serialized.append(
            {
                "name": step.name,
                "started_at": _iso(step.started_at),
                "finished_at": _iso(step.finished_at),
                "duration_s": step.duration_s,
            }
        )
    return serialized


def _alignment_entry(alignment: "AlignmentResult | None") -> dict[str, Any] | None:
    if alignment is None:
        return None
    return {
        "segment_count": len(alignment.segments),
        "matched_count": alignment.matched_count,
        "unmatched_ids": alignment.unmatched_ids,
        "none_matched": alignment.none_matched,
        "word_count": alignment.word_count,
        "word_coverage": alignment.word_coverage,
        "alignment_quality": alignment.alignment_quality,
        "warnings": [asdict(w) for w in alignment.warnings],
    }


def write_run_manifest(
    *,
    job: Job,
    steps: Iterable[StepTiming],
    started_at: datetime,
    finished_at: datetime,
    alignment: "AlignmentResult | None" = None,
    error: BaseException | None = None,
) -> Path:
    artifacts = job.artifacts
    if alignment is not None and alignment.none_matched:
        status = "none_matched"
    elif error is not None:
        status = "failed"
    else:
        status = "ok"

    payload: dict[str, Any] = {
        "run_id": job.workspace.run_id,
        "started_at": _iso(started_at),
        "finished_at": _iso(finished_at),
        "duration_seconds_total": (finished_at - started_at).total_seconds(),
        "git_commit": _git_commit(),
        "status": status,
        "error": str(error) if error is not None else None,
        "settings_public": job.settings.to_public_dict(),
        "cli_overrides": job.cli_overrides,
        "caption_mode": job.settings.caption_mode,
        "script_sha256": job.script_sha256,
        "steps": _serialize_steps(steps),
        "artifacts": {
            "transcript": _artifact_entry(artifacts.transcript),
            "segments": _artifact_entry(artifacts.segments),
            "captions": _artifact_entry(artifacts.captions),
        },
        "alignment": _alignment_entry(alignment),
    }

    out = job.workspace.run_manifest
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return out
