"""
Keyword categories used by the scorer, plus the owned configuration object that holds them.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from trendwatch.errors import ValidationError

logger = logging.getLogger(__name__)

CRISIS_KEYWORDS = [
    "breaking", "urgent", "emergency", "alert", "warning",
    "evacuation", "disaster", "flood", "earthquake", "outbreak",
]

DISASTER_KEYWORDS = [
    "crisis", "fire", "explosion", "attack", "lockdown", "pandemic", "epidemic",
    "terrorist", "shooting", "bomb", "threat", "danger", "rescue", "casualty",
    "victim", "injured", "death", "killed", "missing", "storm", "hurricane",
    "tornado", "tsunami", "landslide", "accident", "crash", "collision",
    "derailment", "sinking",
]

MISINFORMATION_KEYWORDS = [
    "fake news", "hoax", "conspiracy", "cover-up", "hidden truth",
    "they don't want you to know", "mainstream media lies", "wake up",
    "sheeple", "deep state", "illuminati", "new world order", "big pharma",
    "government conspiracy", "false flag", "unverified", "unconfirmed",
    "alleged", "rumored", "claimed", "miracle cure", "secret remedy",
    "doctors hate this", "suppressed information", "banned", "censored", "deleted",
]

VIRAL_KEYWORDS = [
    "shocking", "unbelievable", "incredible", "amazing", "stunning",
    "mind-blowing", "jaw-dropping", "viral", "trending", "explosive",
    "bombshell", "exclusive", "leaked", "exposed", "revealed",
    "you won't believe", "this will shock you", "gone viral",
    "breaking the internet", "everyone is talking about", "must see",
    "watch this", "share if you agree",
]

SPAM_KEYWORDS = [
    "click here", "buy now", "limited time", "act fast", "don't miss",
    "free money", "get rich quick", "work from home", "easy money",
    "guaranteed", "100% effective", "no risk", "instant results",
    "lose weight fast", "anti-aging", "fountain of youth",
    "singles in your area", "hot singles", "meet tonight",
    "enlarge", "enhancement", "pills", "supplement",
]

LOCATION_KEYWORDS = [
    "mumbai", "delhi", "bangalore", "chennai", "kolkata", "hyderabad",
    "pune", "ahmedabad", "surat", "jaipur", "lucknow", "kanpur",
    "india", "indian", "bharath", "hindustan", "desi",
]

HEALTH_KEYWORDS = [
    "covid", "coronavirus", "vaccine", "vaccination", "immunity",
    "cure", "treatment", "medicine", "drug", "therapy",
    "symptoms", "diagnosis", "disease", "infection", "contagious",
    "quarantine", "isolation", "mask", "sanitizer", "social distancing",
]

# name -> (terms, threshold, weight)
DEFAULT_CATEGORIES = {
    "crisis": (CRISIS_KEYWORDS, 0.3, 0.4),
    "disaster": (DISASTER_KEYWORDS, 0.3, 0.1),
    "misinformation": (MISINFORMATION_KEYWORDS, 0.4, 0.3),
    "viral": (VIRAL_KEYWORDS, 0.2, 0.2),
    "spam": (SPAM_KEYWORDS, 0.6, 0.1),
    "location": (LOCATION_KEYWORDS, 0.2, 0.1),
    "health": (HEALTH_KEYWORDS, 0.3, 0.1),
}

_OPTION_NAMES = ("case_sensitive", "whole_word", "min_keyword_length", "max_keywords_per_category", "spam_threshold")


@dataclass
class KeywordCategory:
    name: str
    terms: List[str]
    threshold: float = 0.3
    weight: float = 0.1


def _check_threshold(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"threshold for '{name}' must be a number, got {value!r}") from None
    if not 0.0 <= number <= 1.0:
        raise ValidationError(f"threshold for '{name}' must be within [0, 1], got {number}")
    return number


def _check_weight(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"weight for '{name}' must be a number, got {value!r}") from None
    if number < 0:
        raise ValidationError(f"weight for '{name}' must be >= 0, got {number}")
    return number


def _check_terms(category: str, terms: Any) -> List[str]:
    if isinstance(terms, str) or not isinstance(terms, Iterable):
        raise ValidationError(f"keywords for '{category}' must be a list of strings")
    terms = list(terms)
    if not all(isinstance(term, str) for term in terms):
        raise ValidationError(f"keywords for '{category}' must be a list of strings")
    return terms


@dataclass
class KeywordConfig:
    """
    Explicitly owned keyword configuration. Mutate only through its methods.
    """

    categories: Dict[str, KeywordCategory] = field(default_factory=dict)
    case_sensitive: bool = False
    whole_word: bool = False
    min_keyword_length: int = 3
    max_keywords_per_category: int = 100
    spam_threshold: float = 0.6

    @classmethod
    def default(cls, env: Optional[Mapping[str, str]] = None) -> "KeywordConfig":
        return cls.from_mapping({}, env=env)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], env: Optional[Mapping[str, str]] = None) -> "KeywordConfig":
        """
        Build from the ``keywords:`` YAML section, layered over the defaults.

        ``<CATEGORY>_KEYWORDS`` environment variables are merged into their category.
        """
        env = os.environ if env is None else env
        options = {key: data[key] for key in _OPTION_NAMES if key in data}
        config = cls()
        config.update(**options)

        for name, (terms, threshold, weight) in DEFAULT_CATEGORIES.items():
            config.set_category(name, terms, threshold=threshold, weight=weight)

        for name, section in (data.get("categories") or {}).items():
            if isinstance(section, Mapping):
                existing = config.categories.get(name)
                terms = section.get("terms", existing.terms if existing else [])
                config.set_category(
                    name,
                    terms,
                    threshold=section.get("threshold", existing.threshold if existing else 0.3),
                    weight=section.get("weight", existing.weight if existing else 0.1),
                )
            else:
                config.set_category(name, section)

        for name in list(config.categories):
            raw = env.get(f"{name.upper()}_KEYWORDS")
            if raw and raw.strip():
                config.add_keywords(name, raw.split(","))
        return config

    def _clean(self, terms: Iterable[str]) -> List[str]:
        cleaned = [term.strip().lower() for term in terms]
        return [term for term in cleaned if len(term) >= self.min_keyword_length]

    def set_category(
        self,
        name: str,
        terms: Iterable[str],
        *,
        threshold: float = 0.3,
        weight: float = 0.1,
    ) -> KeywordCategory:
        if not name or not isinstance(name, str):
            raise ValidationError("category name must be a non-empty string")
        cleaned = list(dict.fromkeys(self._clean(_check_terms(name, terms))))
        category = KeywordCategory(
            name=name,
            terms=cleaned[: self.max_keywords_per_category],
            threshold=_check_threshold(name, threshold),
            weight=_check_weight(name, weight),
        )
        self.categories[name] = category
        return category

    def add_keywords(self, name: str, terms: Iterable[str]) -> int:
        """Add terms to a category, creating it when unknown. Returns the number added."""
        terms = _check_terms(name, terms)
        category = self.categories.get(name)
        if category is None:
            category = self.set_category(name, [])
        added = 0
        for term in self._clean(terms):
            if len(category.terms) >= self.max_keywords_per_category:
                break
            if term not in category.terms:
                category.terms.append(term)
                added += 1
        logger.info("Added %d keywords to category '%s'", added, name)
        return added

    def remove_keywords(self, name: str, terms: Iterable[str]) -> int:
        terms = _check_terms(name, terms)
        category = self.categories.get(name)
        if category is None:
            raise ValidationError(f"unknown keyword category '{name}'")
        drop = {term.strip().lower() for term in terms}
        before = len(category.terms)
        category.terms = [term for term in category.terms if term not in drop]
        removed = before - len(category.terms)
        logger.info("Removed %d keywords from category '%s'", removed, name)
        return removed

    def update(self, **options: Any) -> None:
        for key, value in options.items():
            if key not in _OPTION_NAMES:
                raise ValidationError(f"unknown keyword option '{key}'")
            if key == "spam_threshold":
                value = _check_threshold("spam", value)
            elif key in ("min_keyword_length", "max_keywords_per_category"):
                if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                    raise ValidationError(f"{key} must be a positive integer, got {value!r}")
            else:
                value = bool(value)
            setattr(self, key, value)

    def get_terms(self, name: str) -> List[str]:
        category = self.categories.get(name)
        return list(category.terms) if category else []

    def snapshot(self) -> Dict[str, Any]:
        return {
            "case_sensitive": self.case_sensitive,
            "whole_word": self.whole_word,
            "min_keyword_length": self.min_keyword_length,
            "max_keywords_per_category": self.max_keywords_per_category,
            "spam_threshold": self.spam_threshold,
            "categories": {
                name: {"terms": len(cat.terms), "threshold": cat.threshold, "weight": cat.weight}
                for name, cat in self.categories.items()
            },
        }
