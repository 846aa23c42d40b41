"""
Core data structures shared by the analysis pipeline.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Mapping, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as SchemaError

from trendwatch.text import make_digest, normalize_text, normalize_url

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderType(str, Enum):
    NEWS = "news"
    SOCIAL = "social"
    GLOBAL_EVENT = "global_event"

    @classmethod
    def _missing_(cls, value: object) -> Optional["ProviderType"]:
        if isinstance(value, str):
            return _PROVIDER_ALIASES.get(value.strip().lower())
        return None


_PROVIDER_ALIASES: Dict[str, ProviderType] = {
    "news": ProviderType.NEWS,
    "newsapi": ProviderType.NEWS,
    "rss": ProviderType.NEWS,
    "social": ProviderType.SOCIAL,
    "reddit": ProviderType.SOCIAL,
    "global_event": ProviderType.GLOBAL_EVENT,
    "global-event": ProviderType.GLOBAL_EVENT,
    "gdelt": ProviderType.GLOBAL_EVENT,
}


@dataclass
class Engagement:
    shares: int = 0
    comments: int = 0
    reactions: int = 0

    @property
    def total(self) -> int:
        return self.shares + self.comments + self.reactions


@dataclass
class FetchCriteria:
    limit: int = 25
    query: Optional[str] = None
    lookback_hours: int = 24


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError):
        return 0


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
        # millisecond epochs
        if seconds > 1e11:
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    raw = value.strip()
    try:
        return _parse_timestamp(float(raw))
    except ValueError:
        pass
    for fmt in ("%Y%m%dT%H%M%SZ", "%Y%m%d%H%M%S"):
        try:
            return datetime.strptime(raw, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    try:
        return _parse_timestamp(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        return _parse_timestamp(parsedate_to_datetime(raw))
    except (TypeError, ValueError, IndexError):
        return None


class RawRecord(BaseModel):
    """
    Provider contract payload. Validation aliases absorb the field names used by
    the different upstream APIs so every record lands in one shape.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    title: str = Field("", validation_alias=AliasChoices("title", "name", "headline"))
    body: str = Field(
        "",
        validation_alias=AliasChoices("body", "description", "content", "selftext", "text", "summary"),
    )
    url: str = Field("", validation_alias=AliasChoices("url", "link", "permalink"))
    published_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices(
            "published_at", "publishedAt", "created_utc", "created", "seendate", "timestamp", "published"
        ),
    )
    author: str = ""
    source_name: str = Field("", validation_alias=AliasChoices("source_name", "sourceName", "source", "subreddit", "domain"))
    engagement: Engagement = Field(default_factory=Engagement)
    crisis_score: float = Field(0.0, validation_alias=AliasChoices("crisis_score", "crisisScore"))
    tone: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _flatten_provider_fields(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        engagement = data.get("engagement")
        if isinstance(engagement, Mapping):
            data["engagement"] = {
                "shares": _to_int(engagement.get("shares")),
                "comments": _to_int(engagement.get("comments")),
                "reactions": _to_int(engagement.get("reactions")),
            }
        else:
            reactions = _first(data, "reactions", "socialscore")
            if reactions is None:
                reactions = _to_int(data.get("ups")) + _to_int(data.get("downs"))
            data["engagement"] = {
                "shares": _to_int(_first(data, "shares", "score", "socialfacebookshares")),
                "comments": _to_int(_first(data, "comments", "num_comments", "numComments")),
                "reactions": _to_int(reactions),
            }
        source = data.get("source")
        if isinstance(source, Mapping):
            data["source"] = source.get("name") or ""
        permalink = data.get("permalink")
        if not data.get("url") and isinstance(permalink, str) and permalink.startswith("/"):
            data["url"] = f"https://reddit.com{permalink}"
            data.pop("permalink")
        if data.get("id") is not None and not isinstance(data["id"], str):
            data["id"] = str(data["id"])
        return data

    @field_validator("title", "body", "url", "author", "source_name", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if isinstance(value, str):
            return value.strip()
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return ""

    @field_validator("published_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Optional[datetime]:
        return _parse_timestamp(value)

    @field_validator("crisis_score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> float:
        try:
            return min(1.0, max(0.0, float(value)))
        except (TypeError, ValueError):
            return 0.0

    @field_validator("tone", mode="before")
    @classmethod
    def _coerce_tone(cls, value: Any) -> Optional[float]:
        if isinstance(value, Mapping):
            value = value.get("score")
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> Dict[str, Any]:
        return dict(value) if isinstance(value, Mapping) else {}


@dataclass(frozen=True, eq=False)
class ContentItem:
    """
    Normalized representation of a post/article/event across all providers.

    Items are never mutated; scoring produces a copy via ``dataclasses.replace``.
    The normalized text and hashes are derived at construction.
    """

    id: str
    provider_type: ProviderType
    title: str = ""
    body: str = ""
    url: str = ""
    published_at: datetime = field(default_factory=utcnow)
    author: str = ""
    source_name: str = ""
    provider_name: str = ""
    engagement: Engagement = field(default_factory=Engagement)
    crisis_score: float = 0.0
    misinformation_score: float = 0.0
    tone: Optional[float] = None
    keyword_scores: Dict[str, float] = field(default_factory=dict)
    keyword_matches: Dict[str, List[str]] = field(default_factory=dict)
    matched_categories: Tuple[str, ...] = ()
    overall_keyword_score: float = 0.0
    primary_category: str = "none"
    metadata: Dict[str, Any] = field(default_factory=dict)
    normalized_title: str = field(init=False, repr=False)
    normalized_body: str = field(init=False, repr=False)
    normalized_url: str = field(init=False, repr=False)
    title_hash: str = field(init=False, repr=False)
    body_hash: str = field(init=False, repr=False)
    url_hash: str = field(init=False, repr=False)
    combined_hash: str = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.published_at.tzinfo is None:
            object.__setattr__(self, "published_at", self.published_at.replace(tzinfo=timezone.utc))
        title = normalize_text(self.title)
        body = normalize_text(self.body)
        url = normalize_url(self.url)
        object.__setattr__(self, "normalized_title", title)
        object.__setattr__(self, "normalized_body", body)
        object.__setattr__(self, "normalized_url", url)
        object.__setattr__(self, "title_hash", make_digest([title]) if title else "")
        object.__setattr__(self, "body_hash", make_digest([body]) if body else "")
        object.__setattr__(self, "url_hash", make_digest([url]) if url else "")
        object.__setattr__(self, "combined_hash", make_digest([title, body]) if (title or body) else "")

    @property
    def text(self) -> str:
        return f"{self.title} {self.body}".strip()

    @property
    def engagement_total(self) -> int:
        return self.engagement.total


def normalize_record(
    record: Any,
    provider_type: ProviderType | str,
    provider_name: str = "",
    now: Optional[datetime] = None,
) -> Optional[ContentItem]:
    """
    Convert one provider record (mapping, RawRecord or ContentItem) into a ContentItem.

    Returns None for records that cannot be interpreted at all.
    """
    if isinstance(record, ContentItem):
        return record
    try:
        ptype = ProviderType(provider_type)
    except ValueError:
        logger.debug("Unknown provider type %r; treating record as news", provider_type)
        ptype = ProviderType.NEWS
    if isinstance(record, RawRecord):
        raw = record
    elif isinstance(record, Mapping):
        try:
            raw = RawRecord.model_validate(record)
        except SchemaError as exc:
            logger.debug("Skipping malformed %s record: %s", ptype.value, exc)
            return None
    else:
        logger.debug("Skipping non-mapping %s record of type %s", ptype.value, type(record).__name__)
        return None

    now = now or utcnow()
    item_id = raw.id or f"{ptype.value}_{make_digest([raw.url or raw.title])[:12]}"
    return ContentItem(
        id=item_id,
        provider_type=ptype,
        title=raw.title,
        body=raw.body,
        url=raw.url,
        published_at=raw.published_at or now,
        author=raw.author,
        source_name=raw.source_name,
        provider_name=provider_name or ptype.value,
        engagement=Engagement(
            shares=raw.engagement.shares,
            comments=raw.engagement.comments,
            reactions=raw.engagement.reactions,
        ),
        crisis_score=raw.crisis_score,
        tone=raw.tone,
        metadata=raw.metadata,
    )


@dataclass
class DuplicateGroup:
    group_id: str
    strategy: str
    members: List[ContentItem]
    survivor: Optional[ContentItem] = None


@dataclass
class DedupResult:
    items: List[ContentItem]
    groups: List[DuplicateGroup]
    stats: Dict[str, Any]


@dataclass
class Mention:
    item_id: str
    provider_type: ProviderType
    published_at: datetime
    engagement: int
    crisis_score: float
    url: str = ""


@dataclass
class TopicScores:
    trending: float = 0.0
    frequency: float = 0.0
    velocity: float = 0.0
    engagement: float = 0.0
    cross_platform: float = 0.0
    recency: float = 0.0


@dataclass
class Topic:
    keyword: str
    mentions: List[Mention]
    total_mentions: int
    platforms: List[str]
    sources: List[str]
    first_seen: datetime
    last_seen: datetime
    total_engagement: int
    avg_engagement: float
    crisis_score: float
    is_crisis_related: bool
    is_viral_indicator: bool
    scores: TopicScores = field(default_factory=TopicScores)
    is_trending: bool = False
    is_viral: bool = False

    @property
    def timespan_seconds(self) -> float:
        return (self.last_seen - self.first_seen).total_seconds()


@dataclass
class HistoryPoint:
    timestamp: datetime
    score: float
    mentions: int
    platforms: int
    engagement: float


@dataclass
class TopicHistory:
    keyword: str
    first_seen: datetime
    points: List[HistoryPoint] = field(default_factory=list)
    peak_score: float = 0.0
    total_mentions: int = 0


@dataclass
class ScoredContent:
    """An item flagged by the item-level viral or crisis scan."""

    item: ContentItem
    score: float
    indicators: List[str] = field(default_factory=list)


@dataclass
class AnalysisResult:
    timestamp: datetime
    summary: Dict[str, int]
    trending_topics: List[Topic]
    viral_topics: List[Topic]
    crisis_topics: List[Topic]
    viral_content: List[ScoredContent]
    crisis_content: List[ScoredContent]
    platform_stats: Dict[str, Dict[str, float]]
    insights: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderStatus:
    name: str
    provider_type: ProviderType
    state: str = "fulfilled"
    available: bool = True
    last_error: Optional[str] = None
    last_success: Optional[datetime] = None
    items_last_fetch: int = 0
    latency_ms: Optional[float] = None

    @property
    def healthy(self) -> bool:
        return self.state == "fulfilled"


@dataclass
class ErrorRecord:
    timestamp: datetime
    message: str
    stage: Optional[str]
    run_count: int
    traceback: str = ""


@dataclass
class ContentCache:
    buckets: Dict[ProviderType, List[ContentItem]] = field(
        default_factory=lambda: {ptype: [] for ptype in ProviderType}
    )
    last_updated: Optional[datetime] = None
    dedup_stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_items(self) -> int:
        return sum(len(items) for items in self.buckets.values())

    def all_items(self) -> List[ContentItem]:
        merged: List[ContentItem] = []
        for ptype in ProviderType:
            merged.extend(self.buckets.get(ptype, []))
        return merged


@dataclass
class RunRecord:
    max_errors: int = 10
    run_count: int = 0
    last_run_time: Optional[datetime] = None
    errors: Deque[ErrorRecord] = field(default_factory=deque)
    content: ContentCache = field(default_factory=ContentCache)
    keyword_stats: Dict[str, Any] = field(default_factory=dict)
    dedup_stats: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.errors = deque(self.errors, maxlen=self.max_errors)


@dataclass
class CycleResult:
    success: bool
    run_count: int
    duration_ms: float
    analysis: Dict[str, Any]
    timestamp: datetime
    providers: List[ProviderStatus] = field(default_factory=list)
