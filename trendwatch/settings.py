"""
Centralised settings for the trendwatch pipeline (env-first, code-light).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    interval_minutes: int = 5
    analysis_ttl_seconds: int = 300
    max_errors: int = 10
    fetch_timeout_seconds: int = 30
    fetch_limit: int = 25
    config_path: Path = Path("trendwatch.yaml")
    newsapi_api_key: Optional[str] = None


def _int_from_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        logger.warning("Invalid int value for %s=%s; using default %s", key, raw, default)
        return default


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    return Settings(
        interval_minutes=_int_from_env(env, "TRENDWATCH_INTERVAL_MINUTES", 5),
        analysis_ttl_seconds=_int_from_env(env, "TRENDWATCH_ANALYSIS_TTL", 300),
        max_errors=_int_from_env(env, "TRENDWATCH_MAX_ERRORS", 10),
        fetch_timeout_seconds=_int_from_env(env, "TRENDWATCH_FETCH_TIMEOUT", 30),
        fetch_limit=_int_from_env(env, "TRENDWATCH_FETCH_LIMIT", 25),
        config_path=Path(env.get("TRENDWATCH_CONFIG") or "trendwatch.yaml"),
        newsapi_api_key=(env.get("NEWSAPI_API_KEY") or "").strip() or None,
    )
