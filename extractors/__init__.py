"""
Signal extractors: pure functions deriving one signal from text or a message list.
"""

from extractors.urgency import detect_urgency, urgency_level, UrgencyResult
from extractors.sentiment import hybrid_sentiment, keyword_hits, SentimentResult
from extractors.classification import classify_category, classify_extended_category, classify_intent
from extractors.extraction import extract_information, parse_brl_amount
from extractors.stage import classify_stage, is_regression
from extractors.lead import extract_lead_heuristics
from extractors.metrics import conversation_metrics
