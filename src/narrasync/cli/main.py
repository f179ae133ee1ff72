from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import typer
from pydantic import ValidationError

from narrasync.config.settings import Settings
from narrasync.domain.job import Job
from narrasync.domain.workspace import Workspace
from narrasync.exceptions import ConfigurationError, InputError, NarraSyncError
from narrasync.pipeline import SyncPipeline
from narrasync.services.captions import captions_payload, chunk_words, write_srt
from narrasync.services.ingest import ingest, load_segments, transcript_duration
from narrasync.services.transcribe import create_transcriber, write_transcript
from narrasync.utils.logging import configure_logging, get_logger

app = typer.Typer(add_completion=False)
log = get_logger(__name__)


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except ValidationError as exc:
        err = ConfigurationError(str(exc))
        typer.echo(f"{err.label()}: {err.message}", err=True)
        raise typer.Exit(code=err.exit_code)
    except NarraSyncError as exc:
        typer.echo(f"{exc.label()}: {exc.message}", err=True)
        raise typer.Exit(code=exc.exit_code)


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid settings: {exc}") from exc


def _read_json(path: Path) -> object:
    if not path.exists():
        raise InputError(f"File not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InputError(f"{path} is not valid JSON: {exc}") from exc


def _resolve_workdir(workdir: str | None) -> Path:
    settings = _load_settings()
    return Path(workdir or settings.workdir).expanduser().resolve()


def _load_run_manifest(path: Path) -> dict | None:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return None


def _list_runs(workdir: Path) -> list[Path]:
    if not workdir.exists():
        return []
    candidates = []
    for run_dir in workdir.iterdir():
        if not run_dir.is_dir():
            continue
        if not (run_dir / "run.json").exists():
            continue
        candidates.append(run_dir)
    candidates.sort(key=lambda p: (p / "run.json").stat().st_mtime, reverse=True)
    return candidates


def _resolve_run_dir(workdir: Path, run_id: str) -> Path:
    if run_id == "latest":
        runs_list = _list_runs(workdir)
        if not runs_list:
            raise typer.BadParameter("No runs found.")
        return runs_list[0]
    return workdir / run_id


def _run_realign(
    *,
    settings: Settings,
    segments_path: Path,
    transcript_path: Path,
    run_id: str | None = None,
    cli_overrides: dict[str, str] | None = None,
) -> tuple[Job, Workspace]:
    segments = load_segments(segments_path)
    transcript = _read_json(transcript_path)

    workspace = Workspace.create(settings.workdir, run_id=run_id)
    job = Job(
        settings=settings,
        workspace=workspace,
        cli_overrides=cli_overrides or {},
    )
    SyncPipeline(settings).run(segments, transcript, job=job)
    return job, workspace


@app.command()
def config() -> None:
    """Print resolved config."""
    with _handle_errors():
        s = _load_settings()
    typer.echo(json.dumps(s.to_public_dict(), indent=2))


@app.command()
def realign(
    segments: Path = typer.Argument(..., help="Script segments JSON (id, text, start_time, end_time)."),
    transcript: Path = typer.Argument(..., help="Speech-to-text transcript JSON with word timings."),
    workdir: str = typer.Option(None, help="Workdir for outputs (overrides config)."),
    run_id: str = typer.Option(None, help="Run id (defaults to a random id)."),
    caption_mode: str = typer.Option(None, help="Caption source: words or segments (overrides config)."),
    log_level: str = typer.Option(None, help="Log level (overrides config)."),
) -> None:
    """Realign script segments to a transcript and build captions."""
    with _handle_errors():
        settings = _load_settings()
        cli_overrides: dict[str, str] = {}
        if workdir is not None:
            settings.workdir = workdir
            cli_overrides["workdir"] = workdir
        if caption_mode is not None:
            settings.caption_mode = caption_mode
            cli_overrides["caption_mode"] = caption_mode

        configure_logging(log_level or settings.log_level)

        job, workspace = _run_realign(
            settings=settings,
            segments_path=segments,
            transcript_path=transcript,
            run_id=run_id,
            cli_overrides=cli_overrides,
        )

    typer.echo(f"Done. run_id={workspace.run_id}")
    if job.artifacts.segments:
        typer.echo(f"Segments: {job.artifacts.segments.path}")
    if job.artifacts.captions:
        typer.echo(f"Captions: {job.artifacts.captions.path}")
        typer.echo(f"SRT: {job.artifacts.captions.srt_path}")
    unmatched = job.artifacts.segments.unmatched_ids if job.artifacts.segments else ()
    if unmatched:
        typer.echo(f"Unmatched segments (estimated timing kept): {', '.join(unmatched)}")


@app.command()
def captions(
    transcript: Path = typer.Argument(..., help="Speech-to-text transcript JSON with word timings."),
    out: Path = typer.Option(None, help="Write captions JSON here instead of stdout."),
    srt: Path = typer.Option(None, help="Also write an SRT file."),
    log_level: str = typer.Option(None, help="Log level (overrides config)."),
) -> None:
    """Chunk a transcript into captions without a script."""
    with _handle_errors():
        settings = _load_settings()
        configure_logging(log_level or settings.log_level)
        words = ingest(_read_json(transcript))
        chunks = chunk_words(words, settings.chunk_options(audio_duration=transcript_duration(words)))
        payload = captions_payload(
            chunks,
            frame_rate=settings.frame_rate,
            max_chars_per_line=settings.max_chars_per_line,
        )

    text = json.dumps(payload, indent=2)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        typer.echo(f"Captions: {out}")
    else:
        typer.echo(text)
    if srt is not None:
        srt.parent.mkdir(parents=True, exist_ok=True)
        write_srt(chunks, srt)
        typer.echo(f"SRT: {srt}")


@app.command()
def transcribe(
    audio: Path = typer.Argument(..., help="Narration audio file."),
    out: Path = typer.Option(None, help="Transcript JSON path (defaults to <audio>.transcript.json)."),
    model: str = typer.Option(None, help="faster-whisper model name (overrides config)."),
    log_level: str = typer.Option(None, help="Log level (overrides config)."),
) -> None:
    """Transcribe narration audio into word timings (requires faster-whisper)."""
    with _handle_errors():
        settings = _load_settings()
        configure_logging(log_level or settings.log_level)
        transcriber = create_transcriber(model or settings.asr_model)
        payload = transcriber.transcribe(audio)
        out_path = out or audio.with_suffix(".transcript.json")
        write_transcript(payload, out_path)
    typer.echo(f"Transcript: {out_path}")


@app.command()
def runs(
    workdir: str = typer.Option(None, help="Workdir for outputs (overrides config)."),
    limit: int = typer.Option(5, help="Limit number of runs shown."),
) -> None:
    """List recent runs."""
    with _handle_errors():
        root = _resolve_workdir(workdir)
    runs_list = _list_runs(root)
    if limit is not None and limit > 0:
        runs_list = runs_list[:limit]

    typer.echo("run_id\tstarted_at\tduration_s\tstatus\tmatched\tpath")
    for run_dir in runs_list:
        manifest = _load_run_manifest(run_dir / "run.json")
        if not manifest:
            continue
        started_at = manifest.get("started_at", "n/a")
        duration = manifest.get("duration_seconds_total")
        duration_str = f"{duration:.2f}" if isinstance(duration, (float, int)) else "n/a"
        alignment = manifest.get("alignment") or {}
        matched = (
            f"{alignment['matched_count']}/{alignment['segment_count']}"
            if "matched_count" in alignment and "segment_count" in alignment
            else "n/a"
        )
        status = manifest.get("status", "n/a")
        typer.echo(f"{run_dir.name}\t{started_at}\t{duration_str}\t{status}\t{matched}\t{run_dir}")


@app.command()
def inspect(
    run_id: str = typer.Argument(..., help="Run id or 'latest'."),
    workdir: str = typer.Option(None, help="Workdir for outputs (overrides config)."),
) -> None:
    """Pretty-print run.json for a run."""
    with _handle_errors():
        root = _resolve_workdir(workdir)
    run_dir = _resolve_run_dir(root, run_id)

    manifest = _load_run_manifest(run_dir / "run.json")
    if manifest is None:
        raise typer.BadParameter(f"run.json not found for run_id '{run_dir.name}'.")
    typer.echo(json.dumps(manifest, indent=2))


def _main() -> None:
    app()


if __name__ == "__main__":
    _main()
