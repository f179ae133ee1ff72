from __future__ import annotations

import inspect
import os

import pytest
import typer.testing

from narrasync.domain.timeline import NarrationSegment


def _patch_clirunner() -> None:
    if "mix_stderr" in inspect.signature(typer.testing.CliRunner).parameters:
        return

    class PatchedCliRunner(typer.testing.CliRunner):
        def __init__(self, *args, **kwargs):  # noqa: ANN002, ANN003
            kwargs.pop("mix_stderr", None)
            super().__init__(*args, **kwargs)

    typer.testing.CliRunner = PatchedCliRunner


_patch_clirunner()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path) -> None:
    for key in list(os.environ):
        if key.startswith("NARRASYNC_"):
            monkeypatch.delenv(key)
    # keep a stray .env in the invoking directory out of Settings()
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def hello_goodbye_segments() -> list[NarrationSegment]:
    return [
        NarrationSegment(id="s0", text="hello world", estimated_start=0.0, estimated_end=2.0),
        NarrationSegment(id="s1", text="goodbye now", estimated_start=2.0, estimated_end=4.0),
    ]


@pytest.fixture
def hello_goodbye_transcript() -> list[dict]:
    return [
        {"word": "hello", "start": 0.1, "end": 0.5},
        {"word": "world", "start": 0.5, "end": 1.0},
        {"word": "goodbye", "start": 1.2, "end": 1.8},
        {"word": "now", "start": 1.8, "end": 2.0},
    ]
