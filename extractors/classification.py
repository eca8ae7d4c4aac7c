#!/usr/bin/env python3
"""
Category and intent classification over a closed label set.

Keyword patterns give every label a confidence of hits/3 (capped at 1).
When zero-shot model scores are supplied they are mapped onto the same
labels and the stronger of the two signals is kept per label.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.3

CATEGORY_PATTERNS = {
    "vendas": [
        r"\bcompr(ar|o|aria)\b", r"\bquero\s+(um|uma|o|a|comprar)\b", r"\bpre[çc]o\b",
        r"quanto\s+(custa|sai|fica)", r"dispon[íi]vel", r"\bestoque\b", r"\bvalor\b",
    ],
    "suporte": [
        r"n[ãa]o\s+funciona", r"\bajuda\b", r"como\s+(fa[çc]o|uso|instalo|configuro)",
        r"\bsuporte\b", r"\berro\b", r"\bconfigura", r"\bparou\b",
    ],
    "reclamacao": [
        r"\breclama", r"p[ée]ssimo", r"\babsurdo\b", r"insatisfeit", r"decepcion",
        r"\batras(o|ado|ou)\b", r"\bdefeito\b", r"\bhorr[íi]vel\b",
    ],
    "duvida": [
        r"\?", r"d[úu]vida", r"gostaria\s+de\s+saber", r"como\s+funciona",
        r"voc[êe]s\s+t[êe]m", r"\bqual\b", r"\bexiste\b",
    ],
    "negociacao": [
        r"\bdesconto\b", r"\bnegoci", r"\bparcel", r"[àa]\s+vista", r"\babaix",
        r"faz\s+por", r"melhor\s+pre[çc]o", r"\bproposta\b",
    ],
}

EXTENDED_CATEGORY_PATTERNS = {
    "consulta_preco": [r"quanto\s+(custa|sai|fica|[ée])", r"qual\s+o\s+(valor|pre[çc]o)", r"\bpre[çc]o\b", r"\bvalor\b"],
    "negociacao": [r"\bdesconto\b", r"\bnegoci", r"\bparcel", r"faz\s+por", r"[àa]\s+vista", r"melhor\s+pre[çc]o"],
    "venda_fechada": [r"\bfechado\b", r"\bfechamos\b", r"pode\s+(enviar|mandar)", r"vou\s+levar", r"\bcomprado\b",
                      r"pedido\s+confirmado", r"\bpaguei\b", r"pix\s+(feito|enviado)"],
    "suporte": [r"n[ãa]o\s+funciona", r"\berro\b", r"\bajuda\b", r"problema\s+t[ée]cnico", r"\bconfigura", r"\bsuporte\b"],
    "reclamacao": [r"\breclama", r"p[ée]ssimo", r"\babsurdo\b", r"insatisfeit", r"\batraso\b", r"decepcion"],
    "orcamento": [r"or[çc]amento", r"cota[çc][ãa]o", r"\bproposta\b", r"\bcotar\b"],
    "agendamento": [r"\bagend", r"hor[áa]rio", r"\bmarcar\b", r"\bvisita\b", r"disponibilidade"],
    "pos_venda": [r"\bgarantia\b", r"\btroca\b", r"devolu", r"\bentrega\b", r"\brastreio\b", r"\bchegou\b"],
}

INTENT_PATTERNS = {
    "comprar": [r"quero\s+comprar", r"vou\s+(comprar|levar|pegar)", r"\bcomprar\b", r"fechar\s+(o\s+)?pedido",
                r"quero\s+(um|uma|o|a)\b"],
    "reclamar": [r"\breclama", r"insatisfeit", r"p[ée]ssimo", r"\babsurdo\b", r"n[ãa]o\s+gostei"],
    "perguntar": [r"\?", r"d[úu]vida", r"gostaria\s+de\s+saber", r"como\s+funciona", r"\bqual\b"],
    "cancelar": [r"\bcancel", r"\bdesist", r"n[ãa]o\s+quero\s+mais", r"\bdevolver\b", r"\bestorno\b"],
    "negociar": [r"\bdesconto\b", r"\bnegoci", r"\bparcel", r"faz\s+por", r"melhor\s+pre[çc]o", r"\babaix"],
}

# Zero-shot labels (English models) and the closed-set label they stand for
CATEGORY_LABEL_MAP = {
    "sales inquiry": "vendas",
    "customer support": "suporte",
    "complaint": "reclamacao",
    "question": "duvida",
    "negotiation": "negociacao",
}

INTENT_LABEL_MAP = {
    "wants to buy": "comprar",
    "has a complaint": "reclamar",
    "asking question": "perguntar",
    "wants to cancel": "cancelar",
    "negotiating price": "negociar",
}

TOPIC_PATTERNS = [
    ("preço/valores", r"pre[çc]o|valor|quanto"),
    ("entrega", r"entrega|frete|envio"),
    ("produtos", r"produto|pe[çc]a|modelo"),
    ("problemas", r"problema|defeito|erro"),
    ("dúvidas", r"d[úu]vida|\?"),
]


@dataclass
class ClassificationResult:
    label: str
    confidence: float
    confidence_label: str
    scores: Dict[str, float] = field(default_factory=dict)


def confidence_label(confidence: float) -> str:
    if confidence > 0.7:
        return "high"
    if confidence > 0.4:
        return "medium"
    return "low"


def _keyword_scores(text: str, patterns: Dict[str, List[str]]) -> Dict[str, float]:
    lowered = text.lower()
    scores = {}
    for label, label_patterns in patterns.items():
        hits = sum(1 for pattern in label_patterns if re.search(pattern, lowered))
        scores[label] = min(1.0, hits / 3.0) if hits else 0.0
    return scores


def _classify(text: str, patterns: Dict[str, List[str]], fallback: str,
              model_scores: Optional[Dict[str, float]] = None,
              label_map: Optional[Dict[str, str]] = None) -> ClassificationResult:
    try:
        scores = _keyword_scores(text or "", patterns)
        for model_label, score in (model_scores or {}).items():
            label = (label_map or {}).get(model_label, model_label)
            if label in scores:
                scores[label] = max(scores[label], float(score))

        best_label, best_score = max(scores.items(), key=lambda item: item[1])
        if best_score < MIN_CONFIDENCE:
            return ClassificationResult(fallback, round(best_score, 2), confidence_label(best_score), scores)
        return ClassificationResult(best_label, round(best_score, 2), confidence_label(best_score), scores)
    except (re.error, TypeError, ValueError) as e:
        logger.error(f"Classification failed: {str(e)}")
        return ClassificationResult(fallback, 0.0, "low")


def classify_category(text: str, model_scores: Optional[Dict[str, float]] = None) -> ClassificationResult:
    """vendas / suporte / reclamacao / duvida / negociacao, else outros"""
    return _classify(text, CATEGORY_PATTERNS, "outros", model_scores, CATEGORY_LABEL_MAP)


def classify_extended_category(text: str) -> ClassificationResult:
    """Domain-specific sales categories, else geral"""
    return _classify(text, EXTENDED_CATEGORY_PATTERNS, "geral")


def classify_intent(text: str, model_scores: Optional[Dict[str, float]] = None) -> ClassificationResult:
    """comprar / reclamar / perguntar / cancelar / negociar, else outros"""
    return _classify(text, INTENT_PATTERNS, "outros", model_scores, INTENT_LABEL_MAP)


def detect_topics(text: str) -> List[str]:
    lowered = (text or "").lower()
    return [topic for topic, pattern in TOPIC_PATTERNS if re.search(pattern, lowered)]


def intent_from_topics(topics: List[str]) -> Tuple[str, float]:
    """Coarse conversation intent used by the local summary"""
    if "problemas" in topics:
        return "Resolver problema ou reclamação", 0.6
    if "preço/valores" in topics:
        return "Consultar preços e condições", 0.6
    if "produtos" in topics:
        return "Informações sobre produtos", 0.6
    if "dúvidas" in topics:
        return "Esclarecer dúvidas", 0.6
    return "Conversa geral", 0.6
