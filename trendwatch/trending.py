"""
Topic extraction and multi-factor trend scoring across providers.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from trendwatch.cache import AnalysisCache
from trendwatch.errors import ValidationError
from trendwatch.history import TopicHistoryStore
from trendwatch.models import (
    AnalysisResult,
    ContentItem,
    Mention,
    ProviderType,
    ScoredContent,
    Topic,
    TopicHistory,
    TopicScores,
    normalize_record,
    utcnow,
)
from trendwatch.text import TOPIC_STOP_WORDS, clean_text

logger = logging.getLogger(__name__)

ALGORITHM = "multi-source-trending-v1"

CRISIS_TERMS = [
    "breaking", "urgent", "emergency", "alert", "warning", "crisis",
    "disaster", "flood", "earthquake", "fire", "explosion", "attack",
    "outbreak", "pandemic", "epidemic", "vaccine", "death", "killed",
    "injured", "missing", "evacuation", "lockdown", "shutdown",
    "fake", "hoax", "misinformation", "conspiracy", "scam", "fraud",
]

VIRAL_INDICATORS = [
    "viral", "trending", "everyone", "share", "retweet", "spread",
    "shocking", "unbelievable", "must see", "breaking news",
]

URGENT_TERMS = ("breaking", "urgent", "alert")

ContentInput = Union[Mapping[Any, Iterable[Any]], Iterable[Any]]


def _default_weights() -> Dict[str, float]:
    return {
        "frequency": 0.30,
        "velocity": 0.25,
        "engagement": 0.20,
        "cross_platform": 0.15,
        "recency": 0.10,
    }


_THRESHOLDS = (
    "trending_threshold",
    "viral_threshold",
    "crisis_content_threshold",
    "crisis_alert_threshold",
    "crisis_topic_min_score",
)


@dataclass
class TrendConfig:
    min_mention_count: int = 3
    trending_threshold: float = 0.6
    viral_threshold: float = 0.8
    short_window: timedelta = timedelta(hours=1)
    medium_window: timedelta = timedelta(hours=6)
    long_window: timedelta = timedelta(hours=24)
    weights: Dict[str, float] = field(default_factory=_default_weights)
    crisis_bonus: float = 1.3
    viral_bonus: float = 1.2
    max_platforms: int = 3
    max_mentions: int = 100
    max_engagement: float = 1000.0
    crisis_keywords: List[str] = field(default_factory=lambda: list(CRISIS_TERMS))
    viral_indicators: List[str] = field(default_factory=lambda: list(VIRAL_INDICATORS))
    cache_ttl_seconds: float = 300
    history_retention_factor: int = 7
    top_trending: int = 20
    top_viral: int = 10
    top_crisis: int = 10
    top_content: int = 10
    crisis_content_threshold: float = 0.6
    crisis_alert_threshold: float = 0.8
    crisis_topic_min_score: float = 0.5

    @property
    def history_retention(self) -> timedelta:
        return self.long_window * self.history_retention_factor

    def validated(self, **options: Any) -> "TrendConfig":
        names = {f.name for f in fields(self)}
        clean: Dict[str, Any] = {}
        for key, value in options.items():
            if key not in names:
                raise ValidationError(f"unknown trend option '{key}'")
            if key == "weights":
                if not isinstance(value, Mapping):
                    raise ValidationError("weights must be a mapping")
                merged = dict(self.weights)
                for name, weight in value.items():
                    if name not in merged:
                        raise ValidationError(f"unknown trend weight '{name}'")
                    merged[name] = _non_negative(f"weight '{name}'", weight)
                value = merged
            elif key in _THRESHOLDS:
                value = _unit_interval(key, value)
            elif key in ("crisis_bonus", "viral_bonus", "cache_ttl_seconds", "max_engagement"):
                value = _non_negative(key, value)
            elif key in ("short_window", "medium_window", "long_window"):
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    value = timedelta(seconds=value)
                if not isinstance(value, timedelta) or value <= timedelta(0):
                    raise ValidationError(f"{key} must be a positive duration, got {value!r}")
            elif key in ("crisis_keywords", "viral_indicators"):
                if isinstance(value, str) or not all(isinstance(term, str) for term in value):
                    raise ValidationError(f"{key} must be a list of strings")
                value = [term.lower() for term in value]
            else:
                if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                    raise ValidationError(f"{key} must be a positive integer, got {value!r}")
            clean[key] = value
        return replace(self, **clean)

    def snapshot(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, timedelta):
                value = value.total_seconds()
            elif isinstance(value, (dict, list)):
                value = type(value)(value)
            data[f.name] = value
        return data


def _non_negative(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}") from None
    if number < 0:
        raise ValidationError(f"{name} must be >= 0, got {number}")
    return number


def _unit_interval(name: str, value: Any) -> float:
    number = _non_negative(name, value)
    if number > 1.0:
        raise ValidationError(f"{name} must be within [0, 1], got {number}")
    return number


class TrendEngine:
    """
    Detects trending, viral and crisis topics over a snapshot of content.

    Topics are recomputed from scratch on every fresh analysis. Only the
    topic history and the single cached result persist between calls.
    """

    def __init__(self, config: Optional[TrendConfig] = None, clock: Callable[[], float] = time.time) -> None:
        self.config = config or TrendConfig()
        self.cache: AnalysisCache[AnalysisResult] = AnalysisCache(self.config.cache_ttl_seconds, clock=clock)
        self.history = TopicHistoryStore(self.config.history_retention)
        self._lock = threading.Lock()
        self._trending: List[Topic] = []
        self._last_analysis: Optional[datetime] = None
        self._runs = 0

    def detect_trending_topics(
        self,
        content: ContentInput,
        *,
        force_refresh: bool = False,
        now: Optional[datetime] = None,
    ) -> AnalysisResult:
        """
        Full analysis over ``content``.

        Args:
            content: Mapping of provider type to records, or a flat iterable of records.
                Records may be ContentItems or raw provider mappings.
            force_refresh: Skip the cached result and recompute.
            now: Reference time for recency/age calculations.

        Returns:
            The AnalysisResult. Inside the cache window this is the cached object itself.
        """
        if not force_refresh:
            cached = self.cache.get()
            if cached is not None:
                logger.debug("Returning cached trend analysis from %s", cached.timestamp.isoformat())
                return cached

        started = time.perf_counter()
        now = now or utcnow()
        items = self.normalize_content(content, now=now)
        scored = self._score(items, now)
        viral_content = self.detect_viral_content(items, now=now)
        crisis_content = self.detect_crisis_content(items)
        self.history.record(scored, now)
        result = self._build_result(scored, viral_content, crisis_content, items, now, started)

        with self._lock:
            self._trending = list(result.trending_topics)
            self._last_analysis = result.timestamp
            self._runs += 1
        self.cache.set(result)
        logger.info(
            "Trend analysis complete: %d items, %d topics, %d trending",
            len(items),
            result.summary["total_topics"],
            result.summary["trending_count"],
        )
        return result

    def score_topics(self, content: ContentInput, now: Optional[datetime] = None) -> List[Topic]:
        """Extract and score every topic above the mention floor. No cache or history side effects."""
        now = now or utcnow()
        return self._score(self.normalize_content(content, now=now), now)

    def normalize_content(self, content: ContentInput, now: Optional[datetime] = None) -> List[ContentItem]:
        now = now or utcnow()
        items: List[ContentItem] = []
        if isinstance(content, Mapping):
            groups: Iterable = content.items()
        else:
            groups = [(None, content)]
        for key, records in groups:
            if records is None:
                continue
            if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
                logger.debug("Skipping %r content bucket of type %s", key, type(records).__name__)
                continue
            label = key.value if isinstance(key, ProviderType) else (str(key) if key is not None else "news")
            for record in records:
                item = normalize_record(record, label, provider_name=label, now=now)
                if item is not None:
                    items.append(item)
        return items

    def extract_keywords(self, text: str) -> List[str]:
        """Candidate topics for one item, each appearing once."""
        words = [word for word in clean_text(text).split(" ") if len(word) >= 3 and word not in TOPIC_STOP_WORDS]
        keywords: Dict[str, None] = dict.fromkeys(words)
        for i in range(len(words) - 1):
            phrase = f"{words[i]} {words[i + 1]}"
            if len(phrase) >= 6:
                keywords[phrase] = None
        for i in range(len(words) - 2):
            phrase = f"{words[i]} {words[i + 1]} {words[i + 2]}"
            if len(phrase) >= 10 and (
                self.is_crisis_keyword(phrase)
                or self.is_viral_keyword(phrase)
                or words[i] in ("breaking", "urgent")
            ):
                keywords[phrase] = None
        return list(keywords)

    def is_crisis_keyword(self, keyword: str) -> bool:
        lowered = keyword.lower()
        return any(term in lowered for term in self.config.crisis_keywords)

    def is_viral_keyword(self, keyword: str) -> bool:
        lowered = keyword.lower()
        return any(term in lowered for term in self.config.viral_indicators)

    def extract_topics(self, items: Sequence[ContentItem]) -> Dict[str, Topic]:
        topics: Dict[str, Topic] = {}
        for item in items:
            engagement = item.engagement_total
            for keyword in self.extract_keywords(item.text):
                topic = topics.get(keyword)
                if topic is None:
                    topic = Topic(
                        keyword=keyword,
                        mentions=[],
                        total_mentions=0,
                        platforms=[],
                        sources=[],
                        first_seen=item.published_at,
                        last_seen=item.published_at,
                        total_engagement=0,
                        avg_engagement=0.0,
                        crisis_score=0.0,
                        is_crisis_related=self.is_crisis_keyword(keyword),
                        is_viral_indicator=self.is_viral_keyword(keyword),
                    )
                    topics[keyword] = topic
                topic.mentions.append(
                    Mention(
                        item_id=item.id,
                        provider_type=item.provider_type,
                        published_at=item.published_at,
                        engagement=engagement,
                        crisis_score=item.crisis_score,
                        url=item.url,
                    )
                )
                topic.total_mentions += 1
                if item.provider_type.value not in topic.platforms:
                    topic.platforms.append(item.provider_type.value)
                if item.source_name and item.source_name not in topic.sources:
                    topic.sources.append(item.source_name)
                topic.first_seen = min(topic.first_seen, item.published_at)
                topic.last_seen = max(topic.last_seen, item.published_at)
                topic.total_engagement += engagement
                topic.avg_engagement = topic.total_engagement / topic.total_mentions
                topic.crisis_score = max(topic.crisis_score, item.crisis_score)
        return topics

    def _score(self, items: Sequence[ContentItem], now: datetime) -> List[Topic]:
        scored: List[Topic] = []
        for topic in self.extract_topics(items).values():
            if topic.total_mentions < self.config.min_mention_count:
                continue
            self.score_topic(topic, now)
            scored.append(topic)
        scored.sort(key=lambda t: t.scores.trending, reverse=True)
        return scored

    def score_topic(self, topic: Topic, now: datetime) -> Topic:
        config = self.config
        scores = TopicScores(
            frequency=self.frequency_score(topic),
            velocity=self.velocity_score(topic),
            engagement=self.engagement_score(topic),
            cross_platform=self.cross_platform_score(topic),
            recency=self.recency_score(topic, now),
        )
        weights = config.weights
        composite = (
            scores.frequency * weights["frequency"]
            + scores.velocity * weights["velocity"]
            + scores.engagement * weights["engagement"]
            + scores.cross_platform * weights["cross_platform"]
            + scores.recency * weights["recency"]
        )
        if topic.is_crisis_related:
            composite *= config.crisis_bonus
        if topic.is_viral_indicator:
            composite *= config.viral_bonus
        scores.trending = min(1.0, max(0.0, composite))
        topic.scores = scores
        topic.is_trending = scores.trending >= config.trending_threshold
        topic.is_viral = scores.trending >= config.viral_threshold
        return topic

    def frequency_score(self, topic: Topic) -> float:
        normalized = min(topic.total_mentions, self.config.max_mentions) / self.config.max_mentions
        return math.log10(1 + normalized * 9)

    def velocity_score(self, topic: Topic) -> float:
        span = topic.last_seen - topic.first_seen
        if span < self.config.short_window:
            return min(1.0, topic.total_mentions / 10)
        per_hour = topic.total_mentions / (span.total_seconds() / 3600.0)
        return min(1.0, per_hour / 5)

    def engagement_score(self, topic: Topic) -> float:
        if topic.avg_engagement <= 0:
            return 0.0
        normalized = min(topic.avg_engagement, self.config.max_engagement) / self.config.max_engagement
        return math.log10(1 + normalized * 9)

    def cross_platform_score(self, topic: Topic) -> float:
        return min(1.0, len(topic.platforms) / self.config.max_platforms)

    def recency_score(self, topic: Topic, now: datetime) -> float:
        since = now - topic.last_seen
        if since < self.config.short_window:
            return 1.0
        if since < self.config.medium_window:
            return 0.7
        if since < self.config.long_window:
            return 0.4
        return 0.1

    def detect_viral_content(self, items: Sequence[ContentItem], now: Optional[datetime] = None) -> List[ScoredContent]:
        now = now or utcnow()
        found: List[ScoredContent] = []
        for item in items:
            engagement = item.engagement_total
            score = 0.0
            if engagement > 500:
                score += 0.4
            elif engagement > 100:
                score += 0.2
            text = item.text.lower()
            indicators = [term for term in self.config.viral_indicators if term in text]
            score += min(0.3, len(indicators) * 0.1)
            if now - item.published_at < self.config.short_window and engagement > 50:
                score += 0.3
            if item.crisis_score > 0.7:
                score += 0.2
            score = round(score, 6)
            if score >= self.config.viral_threshold:
                found.append(ScoredContent(item=item, score=score, indicators=indicators))
        found.sort(key=lambda entry: entry.score, reverse=True)
        return found

    def detect_crisis_content(self, items: Sequence[ContentItem]) -> List[ScoredContent]:
        found: List[ScoredContent] = []
        for item in items:
            text = item.text.lower()
            terms = [term for term in self.config.crisis_keywords if term in text]
            score = item.crisis_score + min(0.5, len(terms) * 0.1)
            if any(term in text for term in URGENT_TERMS):
                score += 0.2
            if item.engagement_total > 100 and terms:
                score += 0.1
            score = round(min(1.0, score), 6)
            if score >= self.config.crisis_content_threshold:
                found.append(ScoredContent(item=item, score=score, indicators=terms))
        found.sort(key=lambda entry: entry.score, reverse=True)
        return found

    def _build_result(
        self,
        scored: List[Topic],
        viral_content: List[ScoredContent],
        crisis_content: List[ScoredContent],
        items: List[ContentItem],
        now: datetime,
        started: float,
    ) -> AnalysisResult:
        config = self.config
        trending = [topic for topic in scored if topic.is_trending]
        viral = [topic for topic in scored if topic.is_viral]
        crisis = [
            topic for topic in scored
            if topic.is_crisis_related and topic.scores.trending > config.crisis_topic_min_score
        ]
        return AnalysisResult(
            timestamp=now,
            summary={
                "total_topics": len(scored),
                "trending_count": len(trending),
                "viral_count": len(viral),
                "crisis_count": len(crisis),
                "total_content": len(items),
            },
            trending_topics=trending[: config.top_trending],
            viral_topics=viral[: config.top_viral],
            crisis_topics=crisis[: config.top_crisis],
            viral_content=viral_content[: config.top_content],
            crisis_content=crisis_content[: config.top_content],
            platform_stats=self.platform_stats(items),
            insights=self.insights(trending, viral_content, crisis_content, now),
            metadata={
                "analysis_time_ms": round((time.perf_counter() - started) * 1000, 3),
                "cache_expiry": (now + timedelta(seconds=config.cache_ttl_seconds)).isoformat(),
                "algorithm": ALGORITHM,
            },
        )

    @staticmethod
    def platform_stats(items: Sequence[ContentItem]) -> Dict[str, Dict[str, float]]:
        stats: Dict[str, Dict[str, float]] = {
            ptype.value: {"count": 0, "engagement": 0, "avg_engagement": 0.0, "avg_crisis_score": 0.0}
            for ptype in ProviderType
        }
        for item in items:
            entry = stats[item.provider_type.value]
            entry["count"] += 1
            entry["engagement"] += item.engagement_total
            entry["avg_crisis_score"] += item.crisis_score
        for entry in stats.values():
            if entry["count"]:
                entry["avg_engagement"] = entry["engagement"] / entry["count"]
                entry["avg_crisis_score"] = entry["avg_crisis_score"] / entry["count"]
        return stats

    def insights(
        self,
        trending: List[Topic],
        viral_content: List[ScoredContent],
        crisis_content: List[ScoredContent],
        now: datetime,
    ) -> Dict[str, Any]:
        return {
            "top_categories": self._top_categories(trending),
            "emerging_topics": [
                topic.keyword
                for topic in trending
                if now - topic.first_seen < self.config.short_window and topic.scores.velocity > 0.7
            ][:5],
            "cross_platform_trends": [
                {"keyword": topic.keyword, "platforms": list(topic.platforms)}
                for topic in sorted(
                    (t for t in trending if len(t.platforms) >= 2),
                    key=lambda t: len(t.platforms),
                    reverse=True,
                )[:5]
            ],
            "crisis_alerts": [
                {
                    "title": entry.item.title,
                    "provider_type": entry.item.provider_type.value,
                    "crisis_score": entry.score,
                    "crisis_keywords": list(entry.indicators),
                    "url": entry.item.url,
                    "published_at": entry.item.published_at.isoformat(),
                }
                for entry in crisis_content
                if entry.score > self.config.crisis_alert_threshold
            ][:3],
            "viral_patterns": self._viral_patterns(viral_content),
        }

    @staticmethod
    def _top_categories(trending: List[Topic]) -> List[Dict[str, Any]]:
        buckets: Dict[str, Dict[str, Any]] = {}
        for topic in trending:
            keyword = topic.keyword
            if topic.is_crisis_related:
                category = "crisis"
            elif topic.is_viral_indicator:
                category = "viral"
            elif "health" in keyword or "medical" in keyword:
                category = "health"
            elif "politics" in keyword or "election" in keyword:
                category = "politics"
            elif "tech" in keyword:
                category = "technology"
            else:
                category = "general"
            bucket = buckets.setdefault(category, {"category": category, "count": 0, "total_score": 0.0})
            bucket["count"] += 1
            bucket["total_score"] += topic.scores.trending
        ranked = [dict(bucket, avg_score=bucket["total_score"] / bucket["count"]) for bucket in buckets.values()]
        ranked.sort(key=lambda bucket: bucket["avg_score"], reverse=True)
        return ranked[:5]

    @staticmethod
    def _viral_patterns(viral_content: List[ScoredContent]) -> Dict[str, Any]:
        if not viral_content:
            return {"avg_viral_score": 0.0, "common_indicators": []}
        counts: Dict[str, int] = {}
        for entry in viral_content:
            for indicator in entry.indicators:
                counts[indicator] = counts.get(indicator, 0) + 1
        common = sorted(counts.items(), key=lambda pair: pair[1], reverse=True)[:5]
        return {
            "avg_viral_score": sum(entry.score for entry in viral_content) / len(viral_content),
            "common_indicators": [{"indicator": name, "count": count} for name, count in common],
        }

    def get_current_trending_topics(self) -> List[Topic]:
        with self._lock:
            return list(self._trending)

    def get_topic_history(self, keyword: Optional[str] = None) -> Union[Optional[TopicHistory], Dict[str, TopicHistory]]:
        if keyword is not None:
            return self.history.get(keyword)
        return self.history.all()

    def clear_old_history(self, max_age: Optional[timedelta] = None, now: Optional[datetime] = None) -> int:
        cutoff = (now or utcnow()) - (max_age or self.config.history_retention)
        return self.history.clear_older_than(cutoff)

    def invalidate_cache(self) -> None:
        self.cache.invalidate()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            last = self._last_analysis
            trending = len(self._trending)
            runs = self._runs
        return {
            "topics_tracked": len(self.history),
            "current_trending_count": trending,
            "analyses_run": runs,
            "cache_status": "valid" if self.cache.status() == "valid" else "expired",
            "last_analysis_time": last.isoformat() if last else None,
            "config": self.config.snapshot(),
        }

    def update_config(self, **options: Any) -> None:
        self.config = self.config.validated(**options)
        self.cache.ttl_seconds = self.config.cache_ttl_seconds
        self.history.retention = self.config.history_retention
        logger.info("Trend configuration updated: %s", sorted(options))


def topic_to_dict(topic: Topic) -> Dict[str, Any]:
    return {
        "keyword": topic.keyword,
        "total_mentions": topic.total_mentions,
        "platforms": list(topic.platforms),
        "sources": list(topic.sources),
        "first_seen": topic.first_seen.isoformat(),
        "last_seen": topic.last_seen.isoformat(),
        "timespan_seconds": topic.timespan_seconds,
        "total_engagement": topic.total_engagement,
        "avg_engagement": topic.avg_engagement,
        "crisis_score": topic.crisis_score,
        "is_crisis_related": topic.is_crisis_related,
        "is_viral_indicator": topic.is_viral_indicator,
        "is_trending": topic.is_trending,
        "is_viral": topic.is_viral,
        "scores": {
            "trending": topic.scores.trending,
            "frequency": topic.scores.frequency,
            "velocity": topic.scores.velocity,
            "engagement": topic.scores.engagement,
            "cross_platform": topic.scores.cross_platform,
            "recency": topic.scores.recency,
        },
    }


def scored_content_to_dict(entry: ScoredContent) -> Dict[str, Any]:
    item = entry.item
    return {
        "id": item.id,
        "title": item.title,
        "url": item.url,
        "provider_type": item.provider_type.value,
        "published_at": item.published_at.isoformat(),
        "score": entry.score,
        "indicators": list(entry.indicators),
    }


def analysis_to_dict(result: AnalysisResult) -> Dict[str, Any]:
    return {
        "timestamp": result.timestamp.isoformat(),
        "summary": dict(result.summary),
        "trending_topics": [topic_to_dict(topic) for topic in result.trending_topics],
        "viral_topics": [topic_to_dict(topic) for topic in result.viral_topics],
        "crisis_topics": [topic_to_dict(topic) for topic in result.crisis_topics],
        "viral_content": [scored_content_to_dict(entry) for entry in result.viral_content],
        "crisis_content": [scored_content_to_dict(entry) for entry in result.crisis_content],
        "platform_stats": result.platform_stats,
        "insights": result.insights,
        "metadata": result.metadata,
    }
