"""
Load the trendwatch YAML config with ``${ENV}`` expansion.
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)

# ${NAME} or ${NAME:-fallback}
_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    config_path = Path(path) if path else Path(os.getenv("TRENDWATCH_CONFIG") or "trendwatch.yaml")
    if not config_path.exists():
        logger.warning("trendwatch config not found at %s; using defaults", config_path)
        return {}
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: top level must be a mapping", config_path)
        return {}
    logger.debug("Loaded trendwatch config sections: %s", sorted(data))
    return expand_env(data)


def expand_env(value: Any, env: Optional[Mapping[str, str]] = None) -> Any:
    """Substitute ``${NAME}`` references in every string of a nested config structure."""
    env = os.environ if env is None else env
    if isinstance(value, str):
        return _ENV_REF.sub(lambda match: env.get(match.group(1)) or (match.group(2) or ""), value)
    if isinstance(value, dict):
        return {key: expand_env(item, env) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item, env) for item in value]
    return value
