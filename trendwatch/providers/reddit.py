"""
Provider for public subreddit listings (``/r/<name>/<sort>.json``).
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from trendwatch.errors import ProviderError
from trendwatch.models import FetchCriteria, ProviderType, RawRecord
from trendwatch.providers.base import parse_records
from trendwatch.providers.http import HttpClient

logger = logging.getLogger(__name__)

BASE_URL = "https://www.reddit.com"


class RedditProvider:
    provider_type = ProviderType.SOCIAL

    def __init__(
        self,
        subreddits: List[str],
        name: str = "reddit",
        sort: str = "hot",
        http: Optional[HttpClient] = None,
    ) -> None:
        self.name = name
        self.subreddits = [sub.strip().removeprefix("r/") for sub in subreddits if isinstance(sub, str) and sub.strip()]
        self.sort = sort
        self.http = http or HttpClient(name=name)

    def is_available(self) -> bool:
        return bool(self.subreddits)

    def fetch(self, criteria: FetchCriteria, *, now: datetime) -> List[RawRecord]:
        posts: List[Dict[str, Any]] = []
        failures: List[str] = []
        per_sub = max(1, criteria.limit // max(len(self.subreddits), 1))
        for sub in self.subreddits:
            url = f"{BASE_URL}/r/{sub}/{self.sort}.json"
            try:
                payload = self.http.get_json(url, params={"limit": per_sub, "raw_json": 1})
            except ProviderError as exc:
                failures.append(exc.message)
                logger.warning("Reddit fetch failed for r/%s: %s", sub, exc.message)
                continue
            children = (payload.get("data") or {}).get("children") or [] if isinstance(payload, dict) else []
            for child in children:
                data = child.get("data") if isinstance(child, dict) else None
                if not isinstance(data, dict) or data.get("stickied"):
                    continue
                post = dict(data)
                # Link posts point elsewhere; keep the discussion URL.
                post["url"] = f"https://reddit.com{data['permalink']}" if data.get("permalink") else data.get("url", "")
                post["metadata"] = {"subreddit": data.get("subreddit", sub), "upvote_ratio": data.get("upvote_ratio", 0)}
                posts.append(post)
        if failures and not posts:
            raise ProviderError(self.name, "; ".join(failures))
        return parse_records(self.name, posts)
