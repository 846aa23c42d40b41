"""
trendwatch: multi-feed content aggregation with keyword scoring, cross-source
deduplication and trending topic detection.
"""
from __future__ import annotations

from trendwatch.dedupe import DedupConfig, Deduplicator
from trendwatch.errors import CycleInProgressError, ProviderError, StageError, TrendwatchError, ValidationError
from trendwatch.keywords import KeywordConfig
from trendwatch.models import ContentItem, ProviderType
from trendwatch.scoring import KeywordScorer
from trendwatch.trending import TrendConfig, TrendEngine

_SCHEDULER = None


def get_scheduler(settings=None):
    """Return a process-wide Scheduler, built on first use."""
    global _SCHEDULER
    if _SCHEDULER is None:
        from trendwatch.scheduler import Scheduler

        _SCHEDULER = Scheduler(settings=settings)
    return _SCHEDULER


__all__ = [
    "ContentItem",
    "CycleInProgressError",
    "DedupConfig",
    "Deduplicator",
    "KeywordConfig",
    "KeywordScorer",
    "ProviderError",
    "ProviderType",
    "StageError",
    "TrendConfig",
    "TrendEngine",
    "TrendwatchError",
    "ValidationError",
    "get_scheduler",
]
