#!/usr/bin/env python3
"""
Urgency detection for incoming messages.

The score is the sum of two signals:
- every urgency keyword found in the text adds a fixed increment
- an "urgent message" classifier label adds its confidence times a weight

The 0-1 score is scaled to a 0-10 priority and bucketed into a level.
"""

import math
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from config_manager import AnalysisSettings

logger = logging.getLogger(__name__)

URGENCY_KEYWORDS = (
    "urgente", "emergência", "imediato", "agora", "rápido", "hoje",
    "problema", "erro", "não funciona", "parado", "ajuda", "socorro",
    "importante", "preciso", "quanto antes",
)

URGENT_LABEL = "urgent message"
URGENCY_LABELS = (URGENT_LABEL, "normal message", "low priority")


@dataclass
class UrgencyResult:
    priority: int
    level: str
    is_urgent: bool
    keywords: tuple = ()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def urgency_level(priority: int, settings: AnalysisSettings = AnalysisSettings()) -> str:
    """Bucket a 0-10 priority: critical >= 8, high 6-7, medium 4-5, low below"""
    if priority >= settings.urgency_critical_min:
        return "critical"
    if priority >= settings.urgency_high_min:
        return "high"
    if priority >= settings.urgency_medium_min:
        return "medium"
    return "low"


def clamp_priority(value: float) -> int:
    return max(0, min(10, round_half_up(value)))


def find_urgency_keywords(text: str) -> tuple:
    lowered = text.lower()
    return tuple(keyword for keyword in URGENCY_KEYWORDS if keyword in lowered)


def detect_urgency(text: str, classifier: Optional[Dict[str, float]] = None,
                   settings: AnalysisSettings = AnalysisSettings()) -> UrgencyResult:
    """
    Score the urgency of a text.

    Args:
        text: Message text
        classifier: Optional label -> confidence map from a zero-shot model
            over URGENCY_LABELS; only the top label counts, and only when it
            is the urgent label
        settings: Weights and thresholds

    Returns:
        UrgencyResult with a 0-10 priority. Errors yield a medium default.
    """
    try:
        keywords = find_urgency_keywords(text or "")
        score = len(keywords) * settings.urgency_keyword_increment

        if classifier:
            top_label = max(classifier, key=classifier.get)
            if top_label == URGENT_LABEL:
                score += classifier[top_label] * settings.urgency_classifier_weight

        priority = min(round_half_up(score * 10), 10)
        return UrgencyResult(
            priority=priority,
            level=urgency_level(priority, settings),
            is_urgent=priority >= settings.urgent_priority_threshold,
            keywords=keywords,
        )
    except (TypeError, ValueError) as e:
        logger.error(f"Urgency detection failed: {str(e)}")
        return UrgencyResult(priority=5, level="medium", is_urgent=False)
