"""
Weighted multi-category keyword scoring for normalized content items.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from trendwatch.keywords import KeywordConfig
from trendwatch.models import ContentItem, utcnow
from trendwatch.text import word_count

logger = logging.getLogger(__name__)


@dataclass
class CategoryMatch:
    category: str
    score: float
    matches: List[str]
    unique_matches: int
    total_matches: int
    density: float
    coverage: float


@dataclass
class KeywordScores:
    scores: Dict[str, float] = field(default_factory=dict)
    matches: Dict[str, List[str]] = field(default_factory=dict)
    matched_categories: List[str] = field(default_factory=list)
    overall: float = 0.0
    primary_category: str = "none"


class KeywordScorer:
    """
    Scores text against the categories of an injected KeywordConfig.

    Scores depend only on the text and the configuration. The running
    statistics are observational and never feed back into a score.
    """

    def __init__(self, config: Optional[KeywordConfig] = None) -> None:
        self.config = config or KeywordConfig.default()
        self._pattern_cache: Dict[Tuple[str, bool], "re.Pattern[str]"] = {}
        self.reset_stats()

    def match_category(self, text: str, category: str) -> CategoryMatch:
        entry = self.config.categories.get(category)
        terms = entry.terms if entry else []
        case_sensitive = self.config.case_sensitive
        haystack = (text or "") if case_sensitive else (text or "").lower()

        matches: List[str] = []
        total = 0
        for term in terms:
            needle = term if case_sensitive else term.lower()
            if not needle:
                continue
            if self.config.whole_word:
                count = len(self._word_pattern(needle, case_sensitive).findall(haystack))
            else:
                count = haystack.count(needle)
            if count:
                matches.append(term)
                total += count

        unique = len(matches)
        density = total / word_count(haystack)
        coverage = unique / max(len(terms), 1)
        score = min(1.0, max(0.0, coverage * 0.7 + density * 0.3))
        return CategoryMatch(
            category=category,
            score=score,
            matches=matches,
            unique_matches=unique,
            total_matches=total,
            density=density,
            coverage=coverage,
        )

    def _word_pattern(self, needle: str, case_sensitive: bool) -> "re.Pattern[str]":
        key = (needle, case_sensitive)
        pattern = self._pattern_cache.get(key)
        if pattern is None:
            flags = 0 if case_sensitive else re.IGNORECASE
            pattern = re.compile(rf"\b{re.escape(needle)}\b", flags)
            self._pattern_cache[key] = pattern
        return pattern

    def score_item(
        self,
        item: Union[ContentItem, str],
        categories: Optional[Sequence[str]] = None,
    ) -> KeywordScores:
        text = item if isinstance(item, str) else item.text
        names = list(categories) if categories is not None else list(self.config.categories)
        result = KeywordScores()
        for name in names:
            match = self.match_category(text, name)
            result.scores[name] = match.score
            result.matches[name] = match.matches
            entry = self.config.categories.get(name)
            if entry and match.score > entry.threshold:
                result.matched_categories.append(name)

        weights = {name: cat.weight for name, cat in self.config.categories.items()}
        result.overall = sum(score * weights.get(name, 0.1) for name, score in result.scores.items())

        best_name, best_score = "none", 0.0
        for name, score in result.scores.items():
            if score > best_score:
                best_name, best_score = name, score
        result.primary_category = best_name
        return result

    def apply(self, item: ContentItem) -> ContentItem:
        """Return a scored copy of ``item``."""
        scores = self.score_item(item)
        return replace(
            item,
            keyword_scores=dict(scores.scores),
            keyword_matches={name: list(terms) for name, terms in scores.matches.items()},
            matched_categories=tuple(scores.matched_categories),
            overall_keyword_score=scores.overall,
            primary_category=scores.primary_category,
            crisis_score=max(item.crisis_score, scores.scores.get("crisis", 0.0)),
            misinformation_score=scores.scores.get("misinformation", 0.0),
        )

    def remove_spam(
        self,
        items: Iterable[ContentItem],
        max_spam_score: Optional[float] = None,
    ) -> Tuple[List[ContentItem], int]:
        threshold = self.config.spam_threshold if max_spam_score is None else max_spam_score
        kept: List[ContentItem] = []
        removed = 0
        for item in items:
            if self.match_category(item.text, "spam").score >= threshold:
                removed += 1
                continue
            kept.append(item)
        self._stats["spam_removed"] += removed
        return kept, removed

    def score_batch(self, items: Iterable[ContentItem]) -> Tuple[List[ContentItem], int]:
        """Spam removal followed by category scoring. Returns (scored items, spam removed)."""
        kept, removed = self.remove_spam(items)
        scored = [self.apply(item) for item in kept]
        self._record(scored)
        if removed:
            logger.info("Keyword scoring kept %d items, removed %d as spam", len(scored), removed)
        return scored, removed

    def get_crisis_content(self, items: Iterable[ContentItem], min_score: float = 0.3) -> List[ContentItem]:
        return self._select(items, ("crisis",), min_score)

    def get_misinformation_content(self, items: Iterable[ContentItem], min_score: float = 0.4) -> List[ContentItem]:
        return self._select(items, ("misinformation", "viral"), min_score)

    def _select(self, items: Iterable[ContentItem], categories: Sequence[str], min_score: float) -> List[ContentItem]:
        ranked: List[Tuple[float, ContentItem]] = []
        for item in items:
            if not all(name in item.keyword_scores for name in categories):
                item = self.apply(item)
            score = max(item.keyword_scores.get(name, 0.0) for name in categories)
            if score >= min_score:
                ranked.append((score, item))
        ranked.sort(key=lambda pair: pair[0], reverse=True)
        return [item for _, item in ranked]

    def _record(self, items: Sequence[ContentItem]) -> None:
        self._stats["total_scored"] += len(items)
        matches = self._stats["category_matches"]
        for item in items:
            for name in item.matched_categories:
                matches[name] = matches.get(name, 0) + 1

    def get_stats(self) -> Dict[str, Any]:
        last_reset: datetime = self._stats["last_reset"]
        return {
            "total_scored": self._stats["total_scored"],
            "spam_removed": self._stats["spam_removed"],
            "category_matches": dict(self._stats["category_matches"]),
            "keyword_counts": {name: len(cat.terms) for name, cat in self.config.categories.items()},
            "config": self.config.snapshot(),
            "uptime_seconds": round((utcnow() - last_reset).total_seconds()),
            "last_reset": last_reset.isoformat(),
        }

    def reset_stats(self) -> None:
        self._stats: Dict[str, Any] = {
            "total_scored": 0,
            "spam_removed": 0,
            "category_matches": {},
            "last_reset": utcnow(),
        }

    # Runtime keyword mutation goes through the owned config.

    def add_keywords(self, category: str, terms: Iterable[str]) -> int:
        return self.config.add_keywords(category, terms)

    def remove_keywords(self, category: str, terms: Iterable[str]) -> int:
        return self.config.remove_keywords(category, terms)

    def update_config(self, **options: Any) -> None:
        self.config.update(**options)
        logger.info("Keyword scorer configuration updated: %s", sorted(options))
