"""
Status/health helpers for the trendwatch pipeline.

The output is JSON-ready and keeps payloads light: counts and health, never
content bodies or credentials.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from trendwatch.models import ProviderStatus
from trendwatch.scheduler import Scheduler
from trendwatch.settings import Settings


def _provider_to_dict(status: ProviderStatus) -> Dict[str, Any]:
    return {
        "name": status.name,
        "provider_type": status.provider_type.value,
        "state": status.state,
        "healthy": status.healthy,
        "available": status.available,
        "last_error": status.last_error,
        "last_success": status.last_success.isoformat() if status.last_success else None,
        "items_last_fetch": status.items_last_fetch,
        "latency_ms": round(status.latency_ms, 2) if status.latency_ms is not None else None,
    }


def build_status(scheduler: Scheduler, settings: Settings) -> Dict[str, Any]:
    providers = [_provider_to_dict(status) for status in scheduler.get_provider_status()]
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "scheduler": scheduler.get_status(),
        "providers": providers,
        "analysis_cache": scheduler.trend_engine.cache.snapshot(),
        "stats": {
            "keywords": scheduler.get_keyword_stats(),
            "dedupe": scheduler.get_dedup_stats(),
            "trending": scheduler.get_trending_stats(),
        },
        "config": {
            "config_path": str(settings.config_path),
            "interval_minutes": settings.interval_minutes,
            "analysis_ttl_seconds": settings.analysis_ttl_seconds,
            "fetch_timeout_seconds": settings.fetch_timeout_seconds,
            "fetch_limit": settings.fetch_limit,
            "max_errors": settings.max_errors,
            "newsapi_configured": bool(settings.newsapi_api_key),
        },
    }
