"""
Cross-source duplicate detection for scored content batches.

Four passes run in order (exact, url, title, fuzzy); an item grouped by one
pass is excluded from the later ones. Each group keeps a single survivor.
"""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from trendwatch.errors import ValidationError
from trendwatch.models import ContentItem, DedupResult, DuplicateGroup, ProviderType, utcnow
from trendwatch.text import jaccard

logger = logging.getLogger(__name__)

STRATEGIES = ("exact", "url", "title", "fuzzy")


def _default_priority() -> Dict[ProviderType, int]:
    return {ProviderType.NEWS: 3, ProviderType.GLOBAL_EVENT: 2, ProviderType.SOCIAL: 1}


@dataclass
class DedupConfig:
    title_similarity_threshold: float = 0.8
    fuzzy_threshold: float = 0.75
    min_url_length: int = 10
    enable_exact: bool = True
    enable_url: bool = True
    enable_title: bool = True
    enable_fuzzy: bool = True
    platform_priority: Dict[ProviderType, int] = field(default_factory=_default_priority)
    max_cache_size: int = 1000

    def validated(self, **options: Any) -> "DedupConfig":
        """Return a copy with ``options`` applied, raising ValidationError on bad values."""
        names = {f.name for f in fields(self)}
        clean: Dict[str, Any] = {}
        for key, value in options.items():
            if key not in names:
                raise ValidationError(f"unknown dedup option '{key}'")
            if key in ("title_similarity_threshold", "fuzzy_threshold"):
                try:
                    value = float(value)
                except (TypeError, ValueError):
                    raise ValidationError(f"{key} must be a number, got {value!r}") from None
                if not 0.0 <= value <= 1.0:
                    raise ValidationError(f"{key} must be within [0, 1], got {value}")
            elif key in ("min_url_length", "max_cache_size"):
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    raise ValidationError(f"{key} must be a non-negative integer, got {value!r}")
            elif key == "platform_priority":
                if not isinstance(value, dict):
                    raise ValidationError("platform_priority must be a mapping")
                merged = dict(self.platform_priority)
                for ptype, priority in value.items():
                    try:
                        merged[ProviderType(ptype)] = int(priority)
                    except (TypeError, ValueError):
                        raise ValidationError(f"invalid platform priority {ptype!r}: {priority!r}") from None
                value = merged
            else:
                value = bool(value)
            clean[key] = value
        return replace(self, **clean)

    def snapshot(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["platform_priority"] = {ptype.value: prio for ptype, prio in self.platform_priority.items()}
        return data


class Deduplicator:
    def __init__(self, config: Optional[DedupConfig] = None) -> None:
        self.config = config or DedupConfig()
        self._recent: "OrderedDict[str, None]" = OrderedDict()
        self.reset_stats()

    def deduplicate(self, items: Iterable[ContentItem], **overrides: Any) -> DedupResult:
        """
        Remove duplicates from ``items``.

        Args:
            items: Normalized (usually keyword-scored) content items.
            **overrides: Per-call DedupConfig options; the stored config is untouched.

        Returns:
            DedupResult with survivors in input order, the groups found and per-run stats.
        """
        started = time.perf_counter()
        config = self.config.validated(**overrides) if overrides else self.config
        batch = list(items)
        groups = self._find_groups(batch, config)

        dropped = set()
        for group, indexes in groups:
            survivor_index = self._pick_survivor(batch, indexes, config)
            group.survivor = batch[survivor_index]
            dropped.update(index for index in indexes if index != survivor_index)

        survivors = [item for index, item in enumerate(batch) if index not in dropped]
        repeats = self._remember(survivors)

        by_strategy = {name: 0 for name in STRATEGIES}
        for group, indexes in groups:
            by_strategy[group.strategy] += len(indexes) - 1

        stats = {
            "processed": len(batch),
            "duplicates_found": sum(len(indexes) for _, indexes in groups),
            "duplicates_removed": len(dropped),
            "groups": len(groups),
            "strategies": by_strategy,
            "repeats_seen": repeats,
            "processing_time_ms": round((time.perf_counter() - started) * 1000, 3),
        }
        self._accumulate(stats)
        if dropped:
            logger.info(
                "Deduplication removed %d of %d items (%s)",
                len(dropped),
                len(batch),
                ", ".join(f"{k}={v}" for k, v in by_strategy.items() if v),
            )
        return DedupResult(items=survivors, groups=[group for group, _ in groups], stats=stats)

    def analyze_for_duplicates(self, items: Iterable[ContentItem]) -> Dict[str, Any]:
        """Report duplicate groups without removing anything or touching counters."""
        batch = list(items)
        groups = self._find_groups(batch, self.config)
        return {
            "total_items": len(batch),
            "duplicate_groups": len(groups),
            "duplicate_items": sum(len(indexes) for _, indexes in groups),
            "groups": [
                {
                    "group_id": group.group_id,
                    "strategy": group.strategy,
                    "item_count": len(indexes),
                    "providers": sorted({batch[i].provider_type.value for i in indexes}),
                    "titles": [batch[i].title for i in indexes[:3]],
                }
                for group, indexes in groups
            ],
        }

    def _find_groups(self, batch: List[ContentItem], config: DedupConfig) -> List[Tuple[DuplicateGroup, List[int]]]:
        grouped = [False] * len(batch)
        found: List[Tuple[DuplicateGroup, List[int]]] = []

        def record(strategy: str, indexes: List[int]) -> None:
            for index in indexes:
                grouped[index] = True
            group = DuplicateGroup(
                group_id=f"{strategy}_{len(found) + 1}",
                strategy=strategy,
                members=[batch[i] for i in indexes],
            )
            found.append((group, indexes))

        if config.enable_exact:
            for indexes in self._bucket(batch, grouped, lambda item: item.combined_hash):
                record("exact", indexes)
        if config.enable_url:
            min_length = config.min_url_length
            key = lambda item: item.normalized_url if len(item.normalized_url) >= min_length else ""
            for indexes in self._bucket(batch, grouped, key):
                record("url", indexes)
        if config.enable_title:
            threshold = config.title_similarity_threshold
            similar = lambda a, b: jaccard(a.normalized_title, b.normalized_title) >= threshold
            for indexes in self._greedy(batch, grouped, similar, lambda item: bool(item.normalized_title)):
                record("title", indexes)
        if config.enable_fuzzy:
            threshold = config.fuzzy_threshold
            similar = lambda a, b: self.fuzzy_similarity(a, b) >= threshold
            for indexes in self._greedy(batch, grouped, similar, lambda item: bool(item.combined_hash)):
                record("fuzzy", indexes)
        return found

    @staticmethod
    def fuzzy_similarity(a: ContentItem, b: ContentItem) -> float:
        return 0.7 * jaccard(a.normalized_title, b.normalized_title) + 0.3 * jaccard(a.normalized_body, b.normalized_body)

    @staticmethod
    def _bucket(batch: List[ContentItem], grouped: List[bool], key_fn: Callable[[ContentItem], str]) -> List[List[int]]:
        buckets: "OrderedDict[str, List[int]]" = OrderedDict()
        for index, item in enumerate(batch):
            if grouped[index]:
                continue
            key = key_fn(item)
            if not key:
                continue
            buckets.setdefault(key, []).append(index)
        return [indexes for indexes in buckets.values() if len(indexes) > 1]

    @staticmethod
    def _greedy(
        batch: List[ContentItem],
        grouped: List[bool],
        similar: Callable[[ContentItem, ContentItem], bool],
        eligible: Callable[[ContentItem], bool],
    ) -> List[List[int]]:
        # Every candidate is compared with the seed only, not with other members.
        result: List[List[int]] = []
        claimed = list(grouped)
        for i, seed in enumerate(batch):
            if claimed[i] or not eligible(seed):
                continue
            members = [i]
            for j in range(i + 1, len(batch)):
                if claimed[j] or not eligible(batch[j]):
                    continue
                if similar(seed, batch[j]):
                    members.append(j)
                    claimed[j] = True
            if len(members) > 1:
                claimed[i] = True
                result.append(members)
        return result

    @staticmethod
    def _pick_survivor(batch: List[ContentItem], indexes: List[int], config: DedupConfig) -> int:
        def rank(item: ContentItem) -> Tuple[int, float, int, int]:
            length = len(item.normalized_title + item.normalized_body)
            return (
                config.platform_priority.get(item.provider_type, 0),
                item.crisis_score,
                length,
                item.engagement_total,
            )

        best = indexes[0]
        best_rank = rank(batch[best])
        for index in indexes[1:]:
            candidate = rank(batch[index])
            if candidate > best_rank:
                best, best_rank = index, candidate
        return best

    def _remember(self, survivors: List[ContentItem]) -> int:
        repeats = 0
        for item in survivors:
            key = item.combined_hash or item.url_hash or item.id
            if key in self._recent:
                repeats += 1
                self._recent.move_to_end(key)
            else:
                self._recent[key] = None
            while len(self._recent) > self.config.max_cache_size:
                self._recent.popitem(last=False)
        return repeats

    def _accumulate(self, stats: Dict[str, Any]) -> None:
        totals = self._stats
        totals["runs"] += 1
        totals["total_processed"] += stats["processed"]
        totals["duplicates_found"] += stats["duplicates_found"]
        totals["duplicates_removed"] += stats["duplicates_removed"]
        totals["repeats_seen"] += stats["repeats_seen"]
        totals["processing_time_ms"] += stats["processing_time_ms"]
        for name, count in stats["strategies"].items():
            totals["strategies"][name] += count
        totals["last_run"] = utcnow()

    def get_stats(self) -> Dict[str, Any]:
        totals = dict(self._stats)
        totals["strategies"] = dict(self._stats["strategies"])
        processed = totals["total_processed"]
        totals["duplicate_rate"] = round(totals["duplicates_removed"] / processed, 4) if processed else 0.0
        totals["avg_processing_time_ms"] = (
            round(totals["processing_time_ms"] / totals["runs"], 3) if totals["runs"] else 0.0
        )
        totals["cache_size"] = len(self._recent)
        last_run = totals.get("last_run")
        totals["last_run"] = last_run.isoformat() if last_run else None
        return totals

    def reset_stats(self) -> None:
        self._stats: Dict[str, Any] = {
            "runs": 0,
            "total_processed": 0,
            "duplicates_found": 0,
            "duplicates_removed": 0,
            "repeats_seen": 0,
            "processing_time_ms": 0.0,
            "strategies": {name: 0 for name in STRATEGIES},
            "last_run": None,
        }

    def clear_caches(self) -> None:
        self._recent.clear()
        logger.info("Deduplication caches cleared")

    def update_config(self, **options: Any) -> None:
        self.config = self.config.validated(**options)
        logger.info("Deduplication configuration updated: %s", sorted(options))

    def get_config(self) -> Dict[str, Any]:
        return self.config.snapshot()
