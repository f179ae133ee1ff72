from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, Sequence

from narrasync.domain.timeline import NarrationSegment


class Transcriber(Protocol):
    def transcribe(self, audio_path: Path) -> list[dict[str, Any]]: ...


class RegenerationBackend(Protocol):
    """
    External narration round trip (TTS + speech-to-text).

    Receives the full script and the ids that changed; returns a raw
    transcript in any shape `narrasync.services.ingest.ingest` accepts.
    """

    async def narrate(
        self,
        segments: Sequence[NarrationSegment],
        dirty_ids: frozenset[str],
    ) -> Any: ...
