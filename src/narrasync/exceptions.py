from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from narrasync.domain.timeline import NarrationSegment


class ErrorCategory(str, Enum):
    CONFIG = "config"
    DEPENDENCY = "dependency"
    INPUT = "input"
    RUNTIME = "runtime"


DEFAULT_EXIT_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.RUNTIME: 1,
    ErrorCategory.CONFIG: 2,
    ErrorCategory.DEPENDENCY: 3,
    ErrorCategory.INPUT: 4,
}


@dataclass
class NarraSyncError(Exception):
    """Base exception for narrasync with standardized categories."""

    message: str
    category: ErrorCategory = ErrorCategory.RUNTIME
    exit_code: int | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.exit_code is None:
            self.exit_code = DEFAULT_EXIT_CODES.get(self.category, 1)

    def label(self) -> str:
        return {
            ErrorCategory.CONFIG: "Configuration error",
            ErrorCategory.DEPENDENCY: "Dependency error",
            ErrorCategory.INPUT: "Input error",
            ErrorCategory.RUNTIME: "Runtime error",
        }.get(self.category, "Error")


class DependencyMissingError(NarraSyncError):
    """Raised when a required external dependency is missing."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(
            message,
            category=ErrorCategory.DEPENDENCY,
            exit_code=exit_code,
        )


class ConfigurationError(NarraSyncError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(
            message,
            category=ErrorCategory.CONFIG,
            exit_code=exit_code,
        )


class InputError(NarraSyncError):
    """Raised when transcript or script input cannot be used."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(
            message,
            category=ErrorCategory.INPUT,
            exit_code=exit_code,
        )


class IngestError(InputError):
    """Raised when a speech-to-text transcript cannot be ingested."""


class EmptyTranscriptError(IngestError):
    """No usable word timings; callers keep the estimated timings."""

    def __init__(self, message: str = "Transcript contains no timed words.") -> None:
        super().__init__(message)


class TranscriptFormatError(IngestError):
    """A transcript entry is missing fields or carries invalid timings."""


class SegmentFormatError(InputError):
    """A script segment is missing fields or carries invalid timings."""


class AlignmentError(NarraSyncError):
    """Raised when alignment cannot produce a usable timeline."""


class NoneMatchedError(AlignmentError):
    """
    No segment matched any transcript word.

    `segments` holds the original estimated segments, unmodified, so the
    caller can keep showing the estimated timeline.
    """

    def __init__(self, segments: Sequence["NarrationSegment"]) -> None:
        super().__init__("Could not sync audio: no narration segment matched the transcript.")
        self.segments = list(segments)


class RepairInvariantViolation(NarraSyncError):
    """Repaired timeline breaks the partition invariant (programming error)."""


class RegenerationError(NarraSyncError):
    """Raised when the external narration round trip fails."""
