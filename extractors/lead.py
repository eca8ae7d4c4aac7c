#!/usr/bin/env python3
"""
Keyword and pattern heuristics for lead extraction from a conversation.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from extractors.extraction import parse_brl_amount
from extractors.stage import classify_stage
from models import Message

logger = logging.getLogger(__name__)

_WORD = r"[a-záàâãéèêíïóôõöúçñ\s\d]"

PRODUCT_PATTERNS = [
    re.compile(rf"(?:produto|item|mercadoria|artigo)[\s:]+({_WORD}+?)(?:\.|,|!|\?|$)", re.I),
    re.compile(rf"(?:quero|gostaria|preciso de?|me vende|vende)[\s:]+({_WORD}+?)(?:\.|,|!|\?|por|no valor|R\$|$)", re.I),
    re.compile(rf"(?:quanto (?:custa|é|fica|sai))[\s:]+(?:o|a|os|as)?\s*({_WORD}+?)(?:\.|,|!|\?|$)", re.I),
    re.compile(rf"(?:interessado em|interesse em|quero comprar|vou comprar)[\s:]+({_WORD}+?)(?:\.|,|!|\?|$)", re.I),
]

PRODUCT_KEYWORDS = ("plano", "serviço", "produto", "pacote", "kit", "combo", "modelo")

VALUE_PATTERNS = [
    re.compile(r"R\$\s*(\d{1,3}(?:\.\d{3})*(?:,\d{2})?)"),
    re.compile(r"(\d{1,3}(?:\.\d{3})*(?:,\d{2})?)\s*reais?", re.I),
    re.compile(r"valor\s*(?:de|:)?\s*R?\$?\s*(\d{1,3}(?:\.\d{3})*(?:,\d{2})?)", re.I),
    re.compile(r"preço\s*(?:de|:)?\s*R?\$?\s*(\d{1,3}(?:\.\d{3})*(?:,\d{2})?)", re.I),
    re.compile(r"(?:custa|fica|sai|está|esta|é)\s+(\d{3,6})(?!\d)", re.I),
    re.compile(r"(\d{3,6})\s*(?:reais?|pila)", re.I),
]

HIGH_INTEREST = ("quero comprar", "vou comprar", "vou levar", "fechado", "pode enviar", "como pago", "pix")
MEDIUM_INTEREST = ("interessado", "interesse", "gostaria", "quanto custa", "quanto fica", "tem disponível")

OBJECTION_PATTERNS = [
    ("Preço considerado alto", r"\bcaro\b|muito caro|acima do (meu )?or[çc]amento"),
    ("Vai pensar antes de decidir", r"vou pensar|preciso pensar|depois (eu )?vejo"),
    ("Comparando com concorrentes", r"concorr[êe]n|outra loja|outro lugar|mais barato"),
    ("Prazo de entrega", r"demora|prazo|quando chega"),
    ("Precisa consultar outra pessoa", r"falar com (meu|minha)|consultar (meu|minha|o|a)|ver com (meu|minha)"),
]

COMPETITOR_PATTERN = r"concorr[êe]n|outra loja|outro lugar|mais barato|outro fornecedor"
DECISION_MAKER_PATTERN = r"\b(eu decido|sou o dono|sou a dona|sou respons[áa]vel|eu que (compro|decido))\b"
NEEDS_APPROVAL_PATTERN = r"falar com (meu|minha)|consultar (meu|minha|o|a)|ver com (meu|minha)"

CONVERSION_BY_STAGE = {
    "initial_contact": 0.1,
    "interested": 0.3,
    "proposal_sent": 0.45,
    "negotiation": 0.6,
    "closed_won": 1.0,
    "closed_lost": 0.0,
}

NEXT_STEPS_BY_STAGE = {
    "initial_contact": ["Apresentar produtos e entender a necessidade do cliente"],
    "interested": ["Enviar catálogo ou proposta com valores"],
    "proposal_sent": ["Acompanhar retorno da proposta enviada"],
    "negotiation": ["Avaliar condições de pagamento e possível desconto", "Definir prazo para fechamento"],
    "closed_won": ["Confirmar pagamento e prazo de entrega"],
    "closed_lost": ["Registrar motivo da perda e agendar novo contato"],
}


@dataclass
class LeadHeuristics:
    products: List[str] = field(default_factory=list)
    values: List[str] = field(default_factory=list)
    total_value: float = 0.0
    stage: str = "initial_contact"
    interest_level: str = "low"
    objections: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    key_points: List[str] = field(default_factory=list)
    checking_competitors: bool = False
    is_decision_maker: bool = False
    conversion_probability: float = 0.1


def extract_products(messages: Sequence[Message], limit: int = 5) -> List[str]:
    products: List[str] = []
    for message in messages:
        if not message.is_received or not message.text:
            continue
        text = message.text
        for pattern in PRODUCT_PATTERNS:
            for match in pattern.finditer(text):
                product = match.group(1).strip()
                if 3 < len(product) < 100 and product not in products:
                    products.append(product)
        for keyword in PRODUCT_KEYWORDS:
            for match in re.finditer(rf"{keyword}\s+({_WORD}{{3,50}})", text, re.I):
                product = f"{keyword} {match.group(1).strip()}"
                if len(product) < 100 and product not in products:
                    products.append(product)
    return products[:limit]


def extract_values(messages: Sequence[Message], limit: int = 10):
    """
    Monetary mentions across the conversation

    Returns:
        (raw matches, total of the parsed amounts)
    """
    values: List[str] = []
    total = 0.0
    for message in messages:
        if not message.text:
            continue
        seen = set()
        for pattern in VALUE_PATTERNS:
            for match in pattern.finditer(message.text):
                amount = parse_brl_amount(match.group(1))
                if amount is None or not 0 < amount < 1_000_000 or amount in seen:
                    continue
                seen.add(amount)
                values.append(match.group(0).strip())
                total += amount
    return values[:limit], round(total, 2)


def interest_level(text: str, stage: str) -> str:
    lowered = text.lower()
    if stage == "closed_won" or sum(1 for k in HIGH_INTEREST if k in lowered) >= 2:
        return "very_high"
    if stage == "negotiation" or any(k in lowered for k in HIGH_INTEREST):
        return "high"
    if stage in ("interested", "proposal_sent") or any(k in lowered for k in MEDIUM_INTEREST):
        return "medium"
    return "low"


def extract_lead_heuristics(messages: Sequence[Message]) -> LeadHeuristics:
    """
    Local lead extraction over a conversation, oldest message first.
    Falls back to an empty result if anything goes wrong.
    """
    try:
        full_text = " ".join(m.text for m in messages if m.text)
        received_text = " ".join(m.text for m in messages if m.is_received and m.text).lower()

        stage = classify_stage(full_text)
        values, total = extract_values(messages)
        objections = [label for label, pattern in OBJECTION_PATTERNS if re.search(pattern, received_text)]
        key_points = [
            m.text[:100] + ("..." if len(m.text) > 100 else "")
            for m in messages if m.is_received and len(m.text) > 20
        ][:5]

        return LeadHeuristics(
            products=extract_products(messages),
            values=values,
            total_value=total,
            stage=stage,
            interest_level=interest_level(received_text, stage),
            objections=objections,
            next_steps=list(NEXT_STEPS_BY_STAGE.get(stage, [])),
            key_points=key_points,
            checking_competitors=bool(re.search(COMPETITOR_PATTERN, received_text)),
            is_decision_maker=bool(re.search(DECISION_MAKER_PATTERN, received_text))
            and not re.search(NEEDS_APPROVAL_PATTERN, received_text),
            conversion_probability=CONVERSION_BY_STAGE.get(stage, 0.1),
        )
    except (re.error, TypeError, ValueError) as e:
        logger.error(f"Lead heuristics failed: {str(e)}")
        return LeadHeuristics()
