from __future__ import annotations

from dataclasses import dataclass, field

from narrasync.config.settings import Settings
from narrasync.domain.artifacts import Artifacts
from narrasync.domain.workspace import Workspace


@dataclass
class Job:
    settings: Settings
    workspace: Workspace
    artifacts: Artifacts = field(default_factory=Artifacts)
    cli_overrides: dict[str, str] = field(default_factory=dict)
    script_sha256: str | None = None
