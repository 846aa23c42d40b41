"""
Per-keyword trend history that outlives individual analysis calls.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from trendwatch.models import HistoryPoint, Topic, TopicHistory

logger = logging.getLogger(__name__)


class TopicHistoryStore:
    def __init__(self, retention: timedelta = timedelta(hours=24 * 7)) -> None:
        self.retention = retention
        self._lock = threading.Lock()
        self._topics: Dict[str, TopicHistory] = {}

    def record(self, topics: Iterable[Topic], now: datetime) -> int:
        """Append one point per topic, update peak/cumulative counters and prune old points."""
        cutoff = now - self.retention
        count = 0
        with self._lock:
            for topic in topics:
                history = self._topics.get(topic.keyword)
                if history is None:
                    history = TopicHistory(keyword=topic.keyword, first_seen=now)
                    self._topics[topic.keyword] = history
                history.points.append(
                    HistoryPoint(
                        timestamp=now,
                        score=topic.scores.trending,
                        mentions=topic.total_mentions,
                        platforms=len(topic.platforms),
                        engagement=topic.avg_engagement,
                    )
                )
                history.peak_score = max(history.peak_score, topic.scores.trending)
                history.total_mentions += topic.total_mentions
                history.points = [point for point in history.points if point.timestamp > cutoff]
                count += 1
        logger.debug("Recorded history for %d topics", count)
        return count

    def get(self, keyword: str) -> Optional[TopicHistory]:
        with self._lock:
            return self._topics.get(keyword)

    def all(self) -> Dict[str, TopicHistory]:
        with self._lock:
            return dict(self._topics)

    def clear_older_than(self, cutoff: datetime) -> int:
        """Drop topics first seen before ``cutoff``. Returns how many were removed."""
        with self._lock:
            stale = [keyword for keyword, history in self._topics.items() if history.first_seen < cutoff]
            for keyword in stale:
                del self._topics[keyword]
        if stale:
            logger.info("Cleared %d stale topic histories", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._topics)
