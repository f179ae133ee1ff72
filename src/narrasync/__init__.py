"""Narration-to-timeline synchronization."""

__version__ = "0.1.0"
