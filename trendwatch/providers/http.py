"""
HTTP helper with retries + polite headers reused by providers.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from trendwatch.errors import ProviderError
from trendwatch.security import redact_secrets

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "trendwatch/0.1 (+https://github.com/trendwatch/trendwatch)"


class HttpClient:
    def __init__(
        self,
        name: str = "http",
        timeout: int = 15,
        max_retries: int = 3,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.name = name
        self.timeout = timeout
        self.session = session or requests.Session()
        retry = Retry(
            total=max_retries,
            backoff_factor=0.6,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)
        self.session.headers.update({"User-Agent": user_agent or DEFAULT_USER_AGENT})

    def _get(self, url: str, params: Optional[Dict[str, Any]], headers: Optional[Dict[str, str]]) -> requests.Response:
        try:
            resp = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            message = redact_secrets(str(exc))
            logger.warning("HTTP GET exception for %s: %s", self.name, message)
            raise ProviderError(self.name, message) from exc
        if resp.status_code != 200:
            message = f"HTTP {resp.status_code}: {redact_secrets(resp.text[:200])}"
            logger.warning("HTTP GET failed for %s: %s", self.name, message)
            raise ProviderError(self.name, message)
        return resp

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        resp = self._get(url, params, {"Accept": "application/json", **(headers or {})})
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderError(self.name, f"invalid JSON payload: {exc}") from exc

    def get_bytes(self, url: str, params: Optional[Dict[str, Any]] = None) -> bytes:
        return self._get(url, params, None).content
