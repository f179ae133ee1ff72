from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import uuid


@dataclass(frozen=True)
class Workspace:
    root: Path
    run_id: str

    @classmethod
    def create(cls, workdir: str, run_id: str | None = None) -> "Workspace":
        rid = run_id or uuid.uuid4().hex[:12]
        root = Path(workdir).expanduser().resolve() / rid
        root.mkdir(parents=True, exist_ok=True)
        return cls(root=root, run_id=rid)

    def path(self, name: str) -> Path:
        p = self.root / name
        p.parent.mkdir(parents=True, exist_ok=True)
        return p

    @property
    def transcript_json(self) -> Path:
        return self.path("transcript.json")

    @property
    def realigned_segments_json(self) -> Path:
        return self.path("realigned_segments.json")

    @property
    def captions_json(self) -> Path:
        return self.path("captions.json")

    @property
    def captions_srt(self) -> Path:
        return self.path("captions.srt")

    @property
    def run_manifest(self) -> Path:
        return self.path("run.json")
