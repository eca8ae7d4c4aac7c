#!/usr/bin/env python3
"""
Maps raw provider answers onto the canonical payloads.

Remote answers use camelCase keys, Portuguese enum values and a 0-1 urgency
for KPIs; local answers are already close to canonical. Everything that
depends on which provider answered is resolved here and nowhere else.
"""

import logging
import numbers
from typing import Any, Dict, List, Optional, Tuple

from config_manager import AnalysisSettings
from exceptions.analysis_exceptions import MalformedProviderResponse
from extractors.extraction import parse_brl_amount
from extractors.urgency import clamp_priority, urgency_level
from models import (
    KPISignals, LeadPayload, MessageAnalysis, SummaryPayload,
    INTEREST_LEVELS, REMOTE, SENTIMENTS, STAGES, SUMMARY, LEAD_INFO, CONVERSATION_KPIS,
)
from providers.base import ProviderResponse

logger = logging.getLogger(__name__)

SENTIMENT_ALIASES = {
    "positivo": "positive", "positiva": "positive",
    "negativo": "negative", "negativa": "negative",
    "neutro": "neutral", "neutra": "neutral",
}

URGENCY_LEVEL_SCORES = {
    "critical": 9, "crítica": 9, "critica": 9,
    "high": 7, "alta": 7,
    "medium": 5, "média": 5, "media": 5,
    "low": 2, "baixa": 2,
}

STAGE_ALIASES = {
    "contato_inicial": "initial_contact",
    "pesquisando": "interested",
    "interessado": "interested",
    "proposta_enviada": "proposal_sent",
    "negociando": "negotiation",
    "pronto_comprar": "negotiation",
    "fechado": "closed_won",
    "perdido": "closed_lost",
}

INTEREST_ALIASES = {
    "baixo": "low", "baixa": "low",
    "médio": "medium", "medio": "medium", "média": "medium",
    "alto": "high", "alta": "high",
    "muito_alto": "very_high", "muito alto": "very_high",
}

SUMMARY_SENTIMENT_SCORES = {"positive": 0.8, "negative": 0.8, "neutral": 0.5}


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def normalize_sentiment(value: Any) -> str:
    label = str(value or "").strip().lower()
    label = SENTIMENT_ALIASES.get(label, label)
    return label if label in SENTIMENTS else "neutral"


def clamp01(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    if number > 1 and number <= 100:
        number = number / 100
    return round(max(0.0, min(1.0, number)), 4)


def normalize_urgency(score: Any, level: Any = None, settings: AnalysisSettings = AnalysisSettings(),
                      unit_interval: bool = False) -> Tuple[int, str]:
    """
    Resolve an urgency answer to a 0-10 priority and its bucket.

    Args:
        score: Numeric urgency, 0-10 or 0-1 when unit_interval is set
        level: Level name used when no numeric score is given
        settings: Bucket edges
        unit_interval: The score is on a 0-1 scale
    """
    if isinstance(score, str):
        try:
            score = float(score)
        except ValueError:
            score = None
    if _is_number(score):
        value = float(score) * 10 if unit_interval else float(score)
    else:
        value = URGENCY_LEVEL_SCORES.get(str(level or "").strip().lower(), 0)
    priority = clamp_priority(value)
    return priority, urgency_level(priority, settings)


def normalize_stage(value: Any) -> str:
    stage = str(value or "").strip().lower()
    stage = STAGE_ALIASES.get(stage, stage)
    return stage if stage in STAGES else "initial_contact"


def normalize_interest(value: Any) -> str:
    interest = str(value or "").strip().lower()
    interest = INTEREST_ALIASES.get(interest, interest)
    return interest if interest in INTEREST_LEVELS else "medium"


def as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    text = str(value).strip()
    return [text] if text else []


def as_float_list(value: Any) -> List[float]:
    numbers_out = []
    for item in value if isinstance(value, (list, tuple)) else []:
        if _is_number(item):
            numbers_out.append(float(item))
        elif isinstance(item, str):
            parsed = parse_brl_amount(item)
            if parsed is not None:
                numbers_out.append(parsed)
    return numbers_out


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "sim", "yes", "1")
    return bool(value)


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def normalize_summary(response: ProviderResponse, settings: AnalysisSettings) -> SummaryPayload:
    data = response.data
    summary = _pick(data, "summary")
    if not isinstance(summary, str) or not summary.strip():
        raise MalformedProviderResponse("Summary answer without summary text", provider=response.provider)

    sentiment = normalize_sentiment(_pick(data, "sentiment"))
    score = _pick(data, "sentimentScore", "sentiment_score")
    urgency, level = normalize_urgency(_pick(data, "urgency"), _pick(data, "urgencyLevel", "urgency_level"), settings)
    return SummaryPayload(
        summary=summary.strip(),
        sentiment=sentiment,
        sentiment_score=clamp01(score, SUMMARY_SENTIMENT_SCORES[sentiment]) if score is not None
        else SUMMARY_SENTIMENT_SCORES[sentiment],
        sentiment_reason=_text(_pick(data, "sentimentReason", "sentiment_reason")),
        intent=_text(_pick(data, "intent")),
        intent_confidence=clamp01(_pick(data, "intentConfidence", "intent_confidence")),
        highlights=as_str_list(_pick(data, "highlights")),
        conclusion=_text(_pick(data, "conclusion")),
        urgency=urgency,
        urgency_level=level,
        suggested_actions=as_str_list(_pick(data, "suggestedActions", "suggested_actions")),
        extracted=dict(_pick(data, "extracted", default={}) or {}),
    )


def normalize_lead(response: ProviderResponse, settings: AnalysisSettings) -> LeadPayload:
    data = response.data
    if not any(k in data for k in ("stage", "products", "interestLevel", "interest_level")):
        raise MalformedProviderResponse("Lead answer without lead fields", provider=response.provider)

    values = as_str_list(_pick(data, "values"))
    total = _pick(data, "totalValue", "total_value")
    if not _is_number(total):
        total = sum(v for v in (parse_brl_amount(raw) for raw in values) if v is not None)
    urgency, level = normalize_urgency(_pick(data, "urgency"), _pick(data, "urgencyLevel", "urgency_level"), settings)
    return LeadPayload(
        products=as_str_list(_pick(data, "products")),
        values=values,
        total_value=round(float(total), 2),
        interest_level=normalize_interest(_pick(data, "interestLevel", "interest_level")),
        urgency=urgency,
        urgency_level=level,
        stage=normalize_stage(_pick(data, "stage")),
        main_need=_text(_pick(data, "mainNeed", "main_need")),
        budget=_text(_pick(data, "budget")),
        deadline=_text(_pick(data, "deadline")),
        objections=as_str_list(_pick(data, "objections")),
        next_steps=as_str_list(_pick(data, "nextSteps", "next_steps")),
        is_decision_maker=as_bool(_pick(data, "isDecisionMaker", "is_decision_maker", default=False)),
        checking_competitors=as_bool(_pick(data, "checkingCompetitors", "checking_competitors", default=False)),
        sentiment=normalize_sentiment(_pick(data, "sentiment")),
        conversion_probability=clamp01(_pick(data, "conversionProbability", "conversion_probability")),
        notes=_text(_pick(data, "notes")),
    )


def normalize_kpis(response: ProviderResponse, settings: AnalysisSettings) -> KPISignals:
    data = response.data
    if "sentiment" not in data and "category" not in data:
        raise MalformedProviderResponse("KPI answer without sentiment or category", provider=response.provider)

    urgency, level = normalize_urgency(
        _pick(data, "urgency"), _pick(data, "urgencyLevel", "urgency_level"), settings,
        unit_interval=response.provider == REMOTE,
    )
    return KPISignals(
        sentiment=normalize_sentiment(_pick(data, "sentiment")),
        sentiment_score=clamp01(_pick(data, "sentimentScore", "sentiment_score"), 0.5),
        category=_text(_pick(data, "category")) or "geral",
        category_confidence=clamp01(_pick(data, "categoryConfidence", "category_confidence")),
        intent=_text(_pick(data, "intent")) or "outros",
        intent_confidence=clamp01(_pick(data, "intentConfidence", "intent_confidence")),
        urgency=urgency,
        urgency_level=level,
        has_negotiation=as_bool(_pick(data, "hasNegotiation", "has_negotiation", default=False)),
        extracted_values=[f"{v:.2f}" for v in as_float_list(_pick(data, "extractedValues", "extracted_values", default=[]))],
        extracted_products=as_str_list(_pick(data, "extractedProducts", "extracted_products")),
        extracted_conditions=as_str_list(_pick(data, "extractedConditions", "extracted_conditions")),
        summary=_text(_pick(data, "summary")),
    )


def normalize_message(response: ProviderResponse, settings: AnalysisSettings) -> MessageAnalysis:
    data = response.data
    if "sentiment" not in data and "category" not in data:
        raise MalformedProviderResponse("Message answer without sentiment or category", provider=response.provider)

    priority, level = normalize_urgency(_pick(data, "urgency"), _pick(data, "urgencyLevel", "urgency_level"), settings)
    category = _text(_pick(data, "category")).lower()
    category = {"reclamação": "reclamacao", "dúvida": "duvida", "negociação": "negociacao"}.get(category, category)
    return MessageAnalysis(
        category=category or "outros",
        category_confidence=clamp01(_pick(data, "categoryScore", "category_confidence")),
        urgency_priority=priority,
        urgency_level=level,
        is_urgent=priority >= settings.urgent_priority_threshold,
        sentiment=normalize_sentiment(_pick(data, "sentiment")),
        sentiment_score=clamp01(_pick(data, "sentimentScore", "sentiment_score"), 0.5),
        intent=_text(_pick(data, "intent")).lower() or "outros",
        intent_confidence=clamp01(_pick(data, "intentScore", "intent_confidence")),
        extracted_values=as_float_list(_pick(data, "extracted_values", "extractedValues", default=[])),
    )


NORMALIZERS = {
    SUMMARY: normalize_summary,
    LEAD_INFO: normalize_lead,
    CONVERSATION_KPIS: normalize_kpis,
    "message": normalize_message,
}


def normalize(response: ProviderResponse, settings: Optional[AnalysisSettings] = None):
    """
    Normalize a raw provider response of any kind.

    Raises:
        MalformedProviderResponse: If the answer does not fit the kind's schema
    """
    settings = settings or AnalysisSettings()
    if not isinstance(response.data, dict):
        raise MalformedProviderResponse("Provider answer is not an object", provider=response.provider)
    try:
        return NORMALIZERS[response.kind](response, settings)
    except (TypeError, ValueError, AttributeError) as e:
        raise MalformedProviderResponse(f"Could not normalize {response.kind} answer: {str(e)}",
                                        provider=response.provider) from e
