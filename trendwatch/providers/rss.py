"""
Provider that fetches and normalizes RSS/Atom feeds with feedparser.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser

from trendwatch.errors import ProviderError
from trendwatch.models import FetchCriteria, ProviderType, RawRecord
from trendwatch.providers.base import parse_records
from trendwatch.providers.http import HttpClient

logger = logging.getLogger(__name__)


def parse_feed_entries(feed_content: bytes, source: str, limit: int) -> List[Dict[str, Any]]:
    feed = feedparser.parse(feed_content)
    entries: List[Dict[str, Any]] = []
    for entry in getattr(feed, "entries", [])[:limit]:
        summary = getattr(entry, "summary", None) or getattr(entry, "description", None) or ""
        entries.append(
            {
                "id": getattr(entry, "id", None) or None,
                "title": getattr(entry, "title", ""),
                "body": summary.strip()[:800],
                "url": getattr(entry, "link", ""),
                "author": getattr(entry, "author", ""),
                "source_name": source,
                "published_at": _parse_datetime(getattr(entry, "published_parsed", None)),
            }
        )
    return entries


def _parse_datetime(struct_time) -> Optional[datetime]:
    if not struct_time:
        return None
    return datetime(*struct_time[:6], tzinfo=timezone.utc)


class RssProvider:
    provider_type = ProviderType.NEWS

    def __init__(
        self,
        feeds: List[str],
        name: str = "rss",
        source_name: Optional[str] = None,
        limit_per_feed: int = 15,
        http: Optional[HttpClient] = None,
    ) -> None:
        self.name = name
        self.feeds = [feed for feed in feeds if isinstance(feed, str) and feed]
        self.source_name = source_name or name
        self.limit_per_feed = limit_per_feed
        self.http = http or HttpClient(name=name)

    def is_available(self) -> bool:
        return bool(self.feeds)

    def fetch(self, criteria: FetchCriteria, *, now: datetime) -> List[RawRecord]:
        collected: List[Dict[str, Any]] = []
        failures: List[str] = []
        limit = min(self.limit_per_feed, criteria.limit)
        for feed in self.feeds:
            try:
                content = self.http.get_bytes(feed)
            except ProviderError as exc:
                failures.append(exc.message)
                logger.warning("RSS fetch failed for %s (%s): %s", self.name, feed, exc.message)
                continue
            collected.extend(parse_feed_entries(content, self.source_name, limit))
        if failures and not collected:
            raise ProviderError(self.name, "; ".join(failures))
        return parse_records(self.name, collected[: criteria.limit])
