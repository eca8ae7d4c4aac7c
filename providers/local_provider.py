#!/usr/bin/env python3
"""
Local analysis provider built on the signal extractors.

An optional model hub adds zero-shot and sentiment model signals; without
one the provider runs on keyword evidence alone.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config_manager import AnalysisSettings
from extractors.classification import (
    CATEGORY_LABEL_MAP, INTENT_LABEL_MAP, classify_category, classify_extended_category,
    classify_intent, detect_topics, intent_from_topics,
)
from extractors.extraction import extract_information, merge_extractions
from extractors.lead import extract_lead_heuristics
from extractors.sentiment import hybrid_sentiment, normalize_model_output, recent_window
from extractors.urgency import URGENCY_LABELS, detect_urgency
from models import Message, LOCAL, SUMMARY, LEAD_INFO, CONVERSATION_KPIS
from providers.base import AnalysisProvider, ProviderResponse, render_content

logger = logging.getLogger(__name__)

KPI_WINDOW = 50

CONDITION_PATTERNS = [
    r"garantia de [\w\s]{1,20}",
    r"parcelad[oa] em \d+x|em at[ée] \d+x|\d+x sem juros",
    r"[àa] vista",
    r"frete gr[áa]tis",
    r"base de troca",
]

SENTIMENT_REASONS = {
    "keywords": "Baseado em palavras-chave da conversa",
    "model": "Baseado no tom das mensagens mais recentes",
    "default": "Sem sinais claros de sentimento",
}


class LocalProvider(AnalysisProvider):
    """Heuristic provider; always available"""

    name = LOCAL

    def __init__(self, settings: AnalysisSettings = AnalysisSettings(), model_hub=None):
        """
        Args:
            settings: Heuristic weights and thresholds
            model_hub: Object exposing sentiment(text) and zero_shot(text, labels),
                e.g. TransformersModelHub; None disables model signals
        """
        self.settings = settings
        self.model_hub = model_hub

    async def _run_model(self, method: str, *args):
        if self.model_hub is None:
            return None
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, getattr(self.model_hub, method), *args)
        except Exception as e:
            logger.warning(f"Local model {method} failed, continuing without it: {str(e)}")
            return None

    async def _model_sentiment(self, text: str) -> Optional[Tuple[str, float]]:
        output = await self._run_model("sentiment", text)
        if not output:
            return None
        return normalize_model_output(output[0], output[1], self.settings)

    async def _signals(self, texts: Sequence[str]) -> Dict[str, Any]:
        """Sentiment, urgency, category and intent over the recent received texts"""
        window = recent_window(texts, self.settings)
        sentiment = hybrid_sentiment(texts, await self._model_sentiment(window), self.settings)
        urgency = detect_urgency(window, await self._run_model("zero_shot", window, URGENCY_LABELS), self.settings)
        category_scores = await self._run_model("zero_shot", window, list(CATEGORY_LABEL_MAP))
        intent_scores = await self._run_model("zero_shot", window, list(INTENT_LABEL_MAP))
        return {
            "sentiment": sentiment,
            "urgency": urgency,
            "category_scores": category_scores,
            "intent_scores": intent_scores,
        }

    @staticmethod
    def _received_texts(messages: Sequence[Message]) -> List[str]:
        return [m.text for m in messages if m.is_received and m.text]

    async def summarize(self, messages: List[Message], context: Dict[str, Any]) -> ProviderResponse:
        received = [m for m in messages if m.is_received]
        texts = self._received_texts(messages)
        full_text = " ".join(render_content(m) for m in messages)
        words = full_text.split()
        if len(words) > self.settings.local_summary_max_words:
            full_text = " ".join(words[:self.settings.local_summary_max_words])

        topics = detect_topics(full_text)
        extracted = merge_extractions([extract_information(m.text) for m in messages])
        signals = await self._signals(texts)
        intent, intent_confidence = intent_from_topics(topics)

        first, last = messages[0], messages[-1]
        parts = [
            f"Conversa com {len(messages)} mensagens ({len(received)} do cliente, "
            f"{len(messages) - len(received)} da empresa).",
            f"Primeira mensagem: \"{render_content(first)[:150]}\".",
        ]
        if topics:
            parts.append(f"Assuntos abordados: {', '.join(topics)}.")
        if extracted.money:
            parts.append(f"Valores mencionados: {', '.join(extracted.money[:5])}.")
        if extracted.emails:
            parts.append(f"E-mails: {', '.join(extracted.emails[:3])}.")
        if extracted.phones:
            parts.append(f"Telefones: {', '.join(extracted.phones[:3])}.")
        speaker = "cliente" if last.is_received else "empresa"
        parts.append(f"Última mensagem ({speaker}): \"{render_content(last)[:150]}\".")

        sentiment = signals["sentiment"]
        actions = []
        if last.is_received:
            actions.append("Responder a última mensagem do cliente")
        if sentiment.sentiment == "negative":
            actions.append("Tratar a insatisfação do cliente")
        if extracted.money:
            actions.append("Acompanhar a negociação dos valores mencionados")

        data = {
            "summary": " ".join(parts),
            "sentiment": sentiment.sentiment,
            "sentiment_score": sentiment.score,
            "sentiment_reason": SENTIMENT_REASONS[sentiment.method],
            "intent": intent,
            "intent_confidence": intent_confidence,
            "highlights": topics + extracted.money[:3],
            "conclusion": "Aguardando resposta da empresa" if last.is_received else "Aguardando retorno do cliente",
            "urgency": signals["urgency"].priority,
            "suggested_actions": actions,
            "extracted": extracted.to_dict(),
        }
        return ProviderResponse(self.name, SUMMARY, data)

    async def extract_lead_info(self, messages: List[Message], context: Dict[str, Any]) -> ProviderResponse:
        heuristics = extract_lead_heuristics(messages)
        signals = await self._signals(self._received_texts(messages))
        data = {
            "products": heuristics.products,
            "values": heuristics.values,
            "total_value": heuristics.total_value,
            "interest_level": heuristics.interest_level,
            "urgency": signals["urgency"].priority,
            "stage": heuristics.stage,
            "main_need": heuristics.products[0] if heuristics.products else "",
            "objections": heuristics.objections,
            "next_steps": heuristics.next_steps,
            "is_decision_maker": heuristics.is_decision_maker,
            "checking_competitors": heuristics.checking_competitors,
            "sentiment": signals["sentiment"].sentiment,
            "conversion_probability": heuristics.conversion_probability,
            "notes": " | ".join(heuristics.key_points),
        }
        return ProviderResponse(self.name, LEAD_INFO, data)

    async def analyze_for_kpis(self, messages: List[Message]) -> ProviderResponse:
        window = list(messages)[-KPI_WINDOW:]
        texts = self._received_texts(window)
        received_text = " ".join(texts)
        signals = await self._signals(texts)
        category = classify_extended_category(received_text)
        intent = classify_intent(received_text, signals["intent_scores"])
        extracted = merge_extractions([extract_information(m.text) for m in window])
        heuristics = extract_lead_heuristics(window)

        all_text = " ".join(m.text for m in window).lower()
        conditions = []
        for pattern in CONDITION_PATTERNS:
            for match in re.findall(pattern, all_text):
                if match.strip() not in conditions:
                    conditions.append(match.strip())

        data = {
            "sentiment": signals["sentiment"].sentiment,
            "sentiment_score": signals["sentiment"].score,
            "category": category.label,
            "category_confidence": category.confidence,
            "intent": intent.label,
            "intent_confidence": intent.confidence,
            "urgency": signals["urgency"].priority,
            "has_negotiation": heuristics.stage in ("proposal_sent", "negotiation") or category.label == "negociacao",
            "extracted_values": extracted.values,
            "extracted_products": heuristics.products,
            "extracted_conditions": conditions,
            "summary": "",
        }
        return ProviderResponse(self.name, CONVERSATION_KPIS, data)

    async def analyze_message(self, text: str) -> ProviderResponse:
        signals = await self._signals([text])
        category = classify_category(text, signals["category_scores"])
        intent = classify_intent(text, signals["intent_scores"])
        urgency = signals["urgency"]
        data = {
            "category": category.label,
            "category_confidence": category.confidence,
            "urgency": urgency.priority,
            "sentiment": signals["sentiment"].sentiment,
            "sentiment_score": signals["sentiment"].score,
            "intent": intent.label,
            "intent_confidence": intent.confidence,
            "extracted_values": extract_information(text).values,
        }
        return ProviderResponse(self.name, "message", data)

    async def close(self) -> None:
        if self.model_hub is not None:
            self.model_hub.close()
