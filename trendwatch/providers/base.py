"""
Provider protocol + registry for pluggable content sources.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Protocol

from pydantic import ValidationError as SchemaError

from trendwatch.errors import ValidationError
from trendwatch.models import FetchCriteria, ProviderType, RawRecord

logger = logging.getLogger(__name__)


class Provider(Protocol):
    name: str
    provider_type: ProviderType

    def is_available(self) -> bool:
        ...

    def fetch(self, criteria: FetchCriteria, *, now: datetime) -> List[RawRecord]:
        """Return raw records. Failures are raised as ProviderError, never returned."""
        ...


@dataclass
class ProviderFactory:
    provider_cls: Callable[..., Provider]
    config: Dict[str, Any]

    def build(self) -> Provider:
        return self.provider_cls(**self.config)


class ProviderRegistry:
    """
    Keeps track of all configured providers (from YAML + env overrides).
    """

    def __init__(self) -> None:
        self._factories: Dict[str, ProviderFactory] = {}

    def register(self, key: str, factory: ProviderFactory) -> None:
        if key in self._factories:
            raise ValidationError(f"Provider '{key}' already registered")
        self._factories[key] = factory

    def build_all(self) -> List[Provider]:
        providers: List[Provider] = []
        for key, factory in self._factories.items():
            try:
                providers.append(factory.build())
            except (TypeError, ValueError) as exc:
                logger.warning("Failed to configure provider %s: %s", key, exc)
        return providers

    def keys(self) -> Iterable[str]:
        return self._factories.keys()

    def __len__(self) -> int:
        return len(self._factories)


def parse_records(provider: str, payloads: Iterable[Any]) -> List[RawRecord]:
    """Validate provider payload mappings, dropping ones that are not mappings."""
    records: List[RawRecord] = []
    for payload in payloads:
        if not isinstance(payload, Mapping):
            logger.debug("%s returned a non-mapping record; skipping", provider)
            continue
        try:
            records.append(RawRecord.model_validate(payload))
        except SchemaError as exc:
            logger.debug("%s returned a malformed record: %s", provider, exc)
    return records
