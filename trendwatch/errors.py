"""
Error types shared across the analysis pipeline.
"""
from __future__ import annotations

from typing import Optional


class TrendwatchError(Exception):
    """Base class for every error raised by the package."""


class ProviderError(TrendwatchError):
    """
    One content source failed. Non-fatal: the scheduler degrades that
    provider to an empty result and carries on with the others.
    """

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class StageError(TrendwatchError):
    """
    A pipeline transformation failed. Fatal for the current cycle only.
    """

    def __init__(self, stage: str, message: str, run_count: Optional[int] = None) -> None:
        super().__init__(f"stage '{stage}' failed: {message}")
        self.stage = stage
        self.message = message
        self.run_count = run_count


class CycleInProgressError(StageError):
    def __init__(self, run_count: Optional[int] = None) -> None:
        super().__init__("schedule", "another cycle is already in flight", run_count=run_count)


class ValidationError(TrendwatchError, ValueError):
    """Invalid caller-supplied configuration."""
