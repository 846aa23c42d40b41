"""
Provider for the GDELT DOC 2.0 article list API.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from trendwatch.errors import ProviderError
from trendwatch.models import FetchCriteria, ProviderType, RawRecord
from trendwatch.providers.base import parse_records
from trendwatch.providers.http import HttpClient

logger = logging.getLogger(__name__)

DOC_ENDPOINT = "https://api.gdeltproject.org/api/v2/doc/doc"
DEFAULT_QUERY = "crisis OR emergency OR breaking"


class GdeltProvider:
    provider_type = ProviderType.GLOBAL_EVENT

    def __init__(
        self,
        name: str = "gdelt",
        query: str = DEFAULT_QUERY,
        timespan: str = "1day",
        endpoint: str = DOC_ENDPOINT,
        http: Optional[HttpClient] = None,
    ) -> None:
        self.name = name
        self.query = query
        self.timespan = timespan
        self.endpoint = endpoint
        self.http = http or HttpClient(name=name)

    def is_available(self) -> bool:
        return True

    def fetch(self, criteria: FetchCriteria, *, now: datetime) -> List[RawRecord]:
        params = {
            "query": criteria.query or self.query,
            "mode": "artlist",
            "format": "json",
            "timespan": self.timespan,
            "maxrecords": min(criteria.limit, 250),
        }
        payload = self.http.get_json(self.endpoint, params=params)
        if not isinstance(payload, dict):
            raise ProviderError(self.name, "unexpected payload")
        articles = []
        for article in payload.get("articles") or []:
            if not isinstance(article, dict):
                continue
            event = dict(article)
            # GDELT has no body text; the author slot carries the publishing domain.
            event.setdefault("author", article.get("domain", ""))
            event["metadata"] = {
                "language": article.get("language", ""),
                "sourcecountry": article.get("sourcecountry", ""),
            }
            articles.append(event)
        return parse_records(self.name, articles)
