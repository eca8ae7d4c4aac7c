#!/usr/bin/env python3
"""
Hybrid sentiment for commercial chat.

Keyword evidence decides when it is one-sided; the model score on the most
recent messages decides otherwise. `score` is the confidence in the label.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from config_manager import AnalysisSettings

logger = logging.getLogger(__name__)

POSITIVE_KEYWORDS = (
    "obrigad", "ótimo", "perfeito", "excelente", "bom", "legal", "show", "top",
    "maravilh", "pode entregar", "vou pegar", "vou comprar", "okay", "certo", "beleza",
)

NEGATIVE_KEYWORDS = (
    "problema", "ruim", "péssimo", "horrível", "não gostei", "reclamação",
    "insatisfeito", "decepcionado", "não funciona", "defeito", "cancelar", "devolver",
)

NEUTRAL = ("neutral", 0.5)


@dataclass
class SentimentResult:
    sentiment: str
    score: float
    method: str
    positive_hits: int = 0
    negative_hits: int = 0


def keyword_hits(text: str) -> Tuple[int, int]:
    """Occurrences of positive and negative keywords in the text; repeats count"""
    lowered = (text or "").lower()
    positive = sum(lowered.count(keyword) for keyword in POSITIVE_KEYWORDS)
    negative = sum(lowered.count(keyword) for keyword in NEGATIVE_KEYWORDS)
    return positive, negative


def recent_window(texts: Iterable[str], settings: AnalysisSettings = AnalysisSettings()) -> str:
    """Text the model sees: the last few messages, truncated"""
    texts = [t for t in texts if t]
    joined = " ".join(texts[-settings.sentiment_recent_messages:])
    return joined[:settings.sentiment_max_chars]


def normalize_model_output(label: Optional[str], score: Optional[float],
                           settings: AnalysisSettings = AnalysisSettings()) -> Tuple[str, float]:
    """
    Map a binary sentiment model answer onto the three-way scale.
    Answers below the confidence threshold count as neutral.
    """
    if not label or score is None:
        return NEUTRAL
    if score < settings.sentiment_neutral_threshold:
        return NEUTRAL
    lowered = label.lower()
    if lowered.startswith("pos"):
        return "positive", float(score)
    if lowered.startswith("neg"):
        return "negative", float(score)
    return NEUTRAL


def hybrid_sentiment(texts: Iterable[str], model_signal: Optional[Tuple[str, float]] = None,
                     settings: AnalysisSettings = AnalysisSettings()) -> SentimentResult:
    """
    Blend keyword counts with a model signal.

    Args:
        texts: Message texts, oldest first
        model_signal: (sentiment, score) already normalized with
            normalize_model_output, or None when no model is loaded
        settings: Thresholds

    Returns:
        SentimentResult
    """
    try:
        positive, negative = keyword_hits(" ".join(t for t in texts if t))
    except TypeError as e:
        logger.error(f"Keyword sentiment failed: {str(e)}")
        positive, negative = 0, 0

    if positive and not negative:
        return SentimentResult("positive", min(0.7 + positive * 0.05, 0.95), "keywords", positive, negative)
    if negative and not positive:
        return SentimentResult("negative", min(0.7 + negative * 0.05, 0.95), "keywords", positive, negative)
    if positive and negative and positive != negative:
        winner = "positive" if positive > negative else "negative"
        return SentimentResult(winner, 0.65, "keywords", positive, negative)

    sentiment, score = model_signal or NEUTRAL
    return SentimentResult(sentiment, score, "model" if model_signal else "default", positive, negative)
