"""
Text and URL normalization helpers shared by hashing, dedupe and topic extraction.
"""
from __future__ import annotations

import hashlib
import re
from typing import FrozenSet, Sequence

# Words dropped before hashing/comparison.
DEDUPE_STOP_WORDS: FrozenSet[str] = frozenset(
    {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}
)

# Broader list used for topic extraction.
TOPIC_STOP_WORDS: FrozenSet[str] = DEDUPE_STOP_WORDS | frozenset(
    {
        "is", "are", "was", "were", "be", "been", "have", "has", "had", "do",
        "does", "did", "will", "would", "could", "should", "may", "might",
        "must", "can", "this", "that", "these", "those",
    }
)

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


def make_digest(parts: Sequence[str]) -> str:
    joined = "|".join(part or "" for part in parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def clean_text(text: str) -> str:
    """Lowercase, punctuation to spaces, collapsed whitespace."""
    if not text:
        return ""
    lowered = _PUNCT_RE.sub(" ", text.lower())
    return _SPACE_RE.sub(" ", lowered).strip()


def normalize_text(text: str) -> str:
    cleaned = clean_text(text)
    if not cleaned:
        return ""
    return " ".join(word for word in cleaned.split(" ") if word not in DEDUPE_STOP_WORDS)


def normalize_url(url: str) -> str:
    """Strip scheme, ``www.``, query, fragment and trailing slashes."""
    if not url:
        return ""
    value = url.strip().lower()
    value = re.sub(r"^https?://", "", value)
    if value.startswith("www."):
        value = value[4:]
    value = value.split("#", 1)[0].split("?", 1)[0]
    return value.rstrip("/")


def jaccard(left: str, right: str) -> float:
    """Token-set Jaccard similarity of two whitespace-separated strings."""
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    a = set(left.split())
    b = set(right.split())
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def word_count(text: str) -> int:
    return max(len(text.split()), 1)
