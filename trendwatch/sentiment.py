"""
Tone scoring for content items using the VADER sentiment analyzer.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List

from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

from trendwatch.models import ContentItem

logger = logging.getLogger(__name__)

# VADER compound is in [-1, 1]; provider tone (GDELT) is roughly [-10, 10].
TONE_SCALE = 10.0


def tone_label(tone: float) -> str:
    """Map a tone value on the provider scale to a label.

    Args:
        tone: Tone between -10 (negative) and 10 (positive).

    Returns:
        "positive", "negative" or "neutral".
    """
    if tone > 0.5:
        return "positive"
    if tone < -0.5:
        return "negative"
    return "neutral"


class ToneAnalyzer:
    """
    Fills in tone for items whose provider did not supply one.
    """

    def __init__(self) -> None:
        self.analyzer = SentimentIntensityAnalyzer()

    def score_text(self, text: str) -> float:
        if not text:
            return 0.0
        return self.analyzer.polarity_scores(text)["compound"] * TONE_SCALE

    def analyze(self, item: ContentItem) -> ContentItem:
        """
        Return ``item`` with a tone value.

        Args:
            item: ContentItem to analyze.

        Returns:
            The same item if it already carries a provider tone, otherwise a copy
            with the VADER compound score scaled to the provider range.
        """
        if item.tone is not None:
            return item
        return replace(item, tone=round(self.score_text(item.text), 4))

    def analyze_batch(self, items: Iterable[ContentItem]) -> List[ContentItem]:
        return [self.analyze(item) for item in items]

    @staticmethod
    def summarize(items: Iterable[ContentItem]) -> Dict[str, float]:
        counts = {"positive": 0, "negative": 0, "neutral": 0}
        total = 0.0
        scored = 0
        for item in items:
            tone = item.tone if item.tone is not None else 0.0
            counts[tone_label(tone)] += 1
            total += tone
            scored += 1
        return {
            "average_tone": total / scored if scored else 0.0,
            "positive_count": counts["positive"],
            "negative_count": counts["negative"],
            "neutral_count": counts["neutral"],
            "total_count": scored,
        }
