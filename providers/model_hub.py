#!/usr/bin/env python3
"""
Hugging Face pipelines used by the local provider: a binary sentiment
classifier and a zero-shot classifier for category, intent and urgency labels.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple

import torch
from transformers import pipeline

logger = logging.getLogger(__name__)

DEFAULT_ZERO_SHOT_MODEL = "typeform/mobilebert-uncased-mnli"
DEFAULT_SENTIMENT_MODEL = "distilbert-base-uncased-finetuned-sst-2-english"


class TransformersModelHub:
    """Loads the pipelines once and serves synchronous predictions"""

    def __init__(self, zero_shot_model: str = DEFAULT_ZERO_SHOT_MODEL,
                 sentiment_model: str = DEFAULT_SENTIMENT_MODEL) -> None:
        self.zero_shot_model = zero_shot_model
        self.sentiment_model = sentiment_model
        self.device = 0 if torch.cuda.is_available() else -1
        self.zeroshot_pipeline = None
        self.sentiment_pipeline = None

    @property
    def ready(self) -> bool:
        return self.zeroshot_pipeline is not None and self.sentiment_pipeline is not None

    def initialize(self) -> None:
        if self.ready:
            return
        logger.info(f"Loading local models: {self.zero_shot_model}, {self.sentiment_model}")
        self.zeroshot_pipeline = pipeline("zero-shot-classification", model=self.zero_shot_model, device=self.device)
        self.sentiment_pipeline = pipeline("sentiment-analysis", model=self.sentiment_model, device=self.device)
        logger.info("Local models loaded")

    def sentiment(self, text: str) -> Optional[Tuple[str, float]]:
        """Top label and score, e.g. ("POSITIVE", 0.98)"""
        if not text.strip():
            return None
        self.initialize()
        outputs = self.sentiment_pipeline(text, truncation=True)
        if outputs and isinstance(outputs[0], list):
            outputs = outputs[0]
        top = outputs[0]
        return top["label"], float(top["score"])

    def zero_shot(self, text: str, labels: Sequence[str]) -> Dict[str, float]:
        if not text.strip():
            return {label: 0.0 for label in labels}
        self.initialize()
        result = self.zeroshot_pipeline(text, candidate_labels=list(labels), multi_label=False)
        return {label: float(score) for label, score in zip(result["labels"], result["scores"])}

    def close(self) -> None:
        self.zeroshot_pipeline = None
        self.sentiment_pipeline = None
