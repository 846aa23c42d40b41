"""
Provider for NewsAPI-compatible top-headlines endpoints.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from trendwatch.errors import ProviderError
from trendwatch.models import FetchCriteria, ProviderType, RawRecord
from trendwatch.providers.base import parse_records
from trendwatch.providers.http import HttpClient
from trendwatch.security import is_configured_key

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://newsapi.org/v2/top-headlines"


class NewsApiProvider:
    """
    Thin wrapper around a REST news provider. Designed for NewsAPI-compatible schemas.
    """

    provider_type = ProviderType.NEWS

    def __init__(
        self,
        api_key: Optional[str],
        name: str = "newsapi",
        endpoint: str = DEFAULT_ENDPOINT,
        country: Optional[str] = "us",
        category: Optional[str] = None,
        language: Optional[str] = None,
        http: Optional[HttpClient] = None,
    ) -> None:
        self.name = name
        self.api_key = api_key
        self.endpoint = endpoint
        self.country = country
        self.category = category
        self.language = language
        self.http = http or HttpClient(name=name)

    def is_available(self) -> bool:
        return is_configured_key(self.api_key)

    def fetch(self, criteria: FetchCriteria, *, now: datetime) -> List[RawRecord]:
        if not self.is_available():
            raise ProviderError(self.name, "NewsAPI key missing")
        params: Dict[str, Any] = {"pageSize": min(criteria.limit, 100)}
        if criteria.query:
            params["q"] = criteria.query
        for key in ("country", "category", "language"):
            value = getattr(self, key)
            if value:
                params[key] = value
        payload = self.http.get_json(self.endpoint, params=params, headers={"X-Api-Key": self.api_key or ""})
        if not isinstance(payload, dict) or payload.get("status") == "error":
            message = payload.get("message") if isinstance(payload, dict) else "unexpected payload"
            raise ProviderError(self.name, str(message))
        articles = [
            dict(article, metadata={"provider": "newsapi"})
            for article in payload.get("articles") or []
            if isinstance(article, dict) and article.get("title") and article.get("title") != "[Removed]"
        ]
        records = parse_records(self.name, articles[: criteria.limit])
        logger.debug("NewsAPI returned %d articles", len(records))
        return records
