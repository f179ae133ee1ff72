from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from narrasync.services.captions import ChunkOptions


class Settings(BaseSettings):
    """
    Runtime configuration for narrasync.

    All settings are loaded from environment variables with the
    `NARRASYNC_` prefix and optional `.env` support.

    Timing and caption defaults live here and nowhere else; services
    receive them explicitly through `chunk_options()` and
    `gap_extend_threshold`.
    """

    model_config = SettingsConfigDict(
        env_prefix="NARRASYNC_",
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------
    workdir: str = Field(
        default=".narrasync",
        description="Root directory for run outputs.",
    )
    caption_mode: str = Field(
        default="words",
        pattern="^(words|segments)$",
        description="Caption source: words (flat transcript) or segments (per repaired segment).",
    )

    # ------------------------------------------------------------------
    # Timeline repair
    # ------------------------------------------------------------------
    gap_extend_threshold: float = Field(
        default=0.5,
        ge=0.0,
        description="Gaps shorter than this (seconds) are absorbed into the preceding segment.",
    )

    # ------------------------------------------------------------------
    # Captions
    # ------------------------------------------------------------------
    max_words_per_chunk: int = Field(
        default=6,
        gt=0,
        description="Maximum words per caption chunk.",
    )
    max_chars_per_line: int = Field(
        default=42,
        gt=0,
        description="Maximum characters per caption line.",
    )
    max_lines: int = Field(
        default=1,
        ge=1,
        le=2,
        description="Caption lines per chunk (1 or 2).",
    )
    min_chunk_duration: float = Field(
        default=0.833,
        ge=0.0,
        description="Minimum caption chunk duration in seconds.",
    )
    max_chunk_duration: float = Field(
        default=4.0,
        gt=0.0,
        description="Maximum caption chunk duration in seconds.",
    )
    pad_short_chunks: bool = Field(
        default=False,
        description="Extend short chunks towards the minimum duration when room allows.",
    )
    frame_rate: int = Field(
        default=30,
        gt=0,
        description="Frame rate used for frame-based track items.",
    )

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------
    asr_model: str = Field(
        default="base",
        description="faster-whisper model name used by `narrasync transcribe`.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )

    @model_validator(mode="after")
    def _check_chunk_durations(self) -> "Settings":
        if self.min_chunk_duration > self.max_chunk_duration:
            raise ValueError("min_chunk_duration must not exceed max_chunk_duration")
        return self

    def chunk_options(self, *, audio_duration: float | None = None) -> ChunkOptions:
        return ChunkOptions(
            max_words_per_chunk=self.max_words_per_chunk,
            max_chars_per_line=self.max_chars_per_line,
            max_lines=self.max_lines,
            min_chunk_duration=self.min_chunk_duration,
            max_chunk_duration=self.max_chunk_duration,
            pad_short_chunks=self.pad_short_chunks,
            audio_duration=audio_duration,
        )

    # ------------------------------------------------------------------
    # Public / safe export
    # ------------------------------------------------------------------
    def to_public_dict(self) -> dict:
        """
        Return a dictionary of settings suitable
        for logging or CLI display.
        """
        return {
            "workdir": self.workdir,
            "caption_mode": self.caption_mode,
            "gap_extend_threshold": self.gap_extend_threshold,
            "max_words_per_chunk": self.max_words_per_chunk,
            "max_chars_per_line": self.max_chars_per_line,
            "max_lines": self.max_lines,
            "min_chunk_duration": self.min_chunk_duration,
            "max_chunk_duration": self.max_chunk_duration,
            "pad_short_chunks": self.pad_short_chunks,
            "frame_rate": self.frame_rate,
            "asr_model": self.asr_model,
            "log_level": self.log_level,
        }
