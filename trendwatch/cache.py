"""
Single-slot, TTL-bound cache for trend analysis results.

The entry is an explicit ``CacheEntry{value, created_at, ttl}``; it expires
purely by age, never by content change. Callers that need fresh data bypass
it with ``force_refresh`` on the engine or call ``invalidate()``.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    created_at: float
    ttl: float

    def age(self, now: float) -> float:
        return max(0.0, now - self.created_at)

    def is_valid(self, now: float) -> bool:
        return self.age(now) < self.ttl

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl


class AnalysisCache(Generic[T]):
    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entry: Optional[CacheEntry[T]] = None

    def get(self) -> Optional[T]:
        with self._lock:
            entry = self._entry
            if entry is None:
                return None
            if entry.is_valid(self._clock()):
                return entry.value
            return None

    def set(self, value: T) -> CacheEntry[T]:
        entry = CacheEntry(value=value, created_at=self._clock(), ttl=float(self.ttl_seconds))
        with self._lock:
            self._entry = entry
        return entry

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None
        logger.debug("Analysis cache invalidated")

    @property
    def entry(self) -> Optional[CacheEntry[T]]:
        return self._entry

    def status(self) -> str:
        entry = self._entry
        if entry is None:
            return "empty"
        return "valid" if entry.is_valid(self._clock()) else "expired"

    def snapshot(self) -> Dict[str, Any]:
        """Lightweight view for status output without exposing the cached payload."""
        now = self._clock()
        with self._lock:
            entry = self._entry
        return {
            "ttl_seconds": self.ttl_seconds,
            "status": self.status(),
            "age_seconds": round(entry.age(now), 2) if entry else None,
            "expires_in_seconds": round(max(0.0, entry.expires_at - now), 2) if entry else None,
        }
