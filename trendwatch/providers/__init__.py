"""
Content providers and the factory that builds them from the ``providers:`` config section.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from trendwatch.providers.base import Provider, ProviderFactory, ProviderRegistry, parse_records
from trendwatch.providers.gdelt import GdeltProvider
from trendwatch.providers.http import HttpClient
from trendwatch.providers.newsapi import NewsApiProvider
from trendwatch.providers.reddit import RedditProvider
from trendwatch.providers.rss import RssProvider
from trendwatch.settings import Settings

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: Dict[str, Callable[..., Provider]] = {
    "newsapi": NewsApiProvider,
    "rss": RssProvider,
    "reddit": RedditProvider,
    "gdelt": GdeltProvider,
}

DEFAULT_PROVIDERS: Dict[str, Dict[str, Any]] = {
    "newsapi": {"type": "newsapi", "country": "in"},
    "reddit": {"type": "reddit", "subreddits": ["india", "worldnews", "news"]},
    "gdelt": {"type": "gdelt"},
}


def build_registry(config: Mapping[str, Any], settings: Settings) -> ProviderRegistry:
    registry = ProviderRegistry()
    section = config.get("providers")
    if not isinstance(section, Mapping) or not section:
        section = DEFAULT_PROVIDERS
    for key, cfg in section.items():
        if not isinstance(cfg, Mapping) or cfg.get("enabled") is False:
            continue
        kind = str(cfg.get("type", key)).lower()
        provider_cls = PROVIDER_CLASSES.get(kind)
        if provider_cls is None:
            logger.warning("Unknown provider type '%s' for %s; skipping", kind, key)
            continue
        options = {k: v for k, v in cfg.items() if k not in ("type", "enabled")}
        options.setdefault("name", key)
        if kind == "newsapi":
            options["api_key"] = options.get("api_key") or settings.newsapi_api_key
        registry.register(key, ProviderFactory(provider_cls, options))
    return registry


def build_providers(config: Mapping[str, Any], settings: Optional[Settings] = None) -> List[Provider]:
    providers = build_registry(config, settings or Settings()).build_all()
    if not providers:
        logger.warning("No providers configured for trendwatch")
    return providers


__all__ = [
    "GdeltProvider",
    "HttpClient",
    "NewsApiProvider",
    "Provider",
    "ProviderFactory",
    "ProviderRegistry",
    "RedditProvider",
    "RssProvider",
    "build_providers",
    "build_registry",
    "parse_records",
]
