#!/usr/bin/env python3
"""
Negotiation stage classification.

Stages are reassigned on every analysis; a move to an earlier stage is
reported through is_regression, never blocked.
"""

from typing import Optional

from models import STAGES

# Checked from the most advanced stage down; the first match wins
STAGE_KEYWORDS = (
    ("closed_won", ("fechado", "comprado", "confirmado", "contratado", "pedido feito")),
    ("closed_lost", ("não tenho interesse", "desisti", "cancelar", "não quero mais", "muito caro")),
    ("negotiation", ("negociar", "desconto", "proposta", "orçamento", "quanto fica", "valor final")),
    ("proposal_sent", ("enviei proposta", "segue proposta", "proposta anexa")),
    ("interested", ("interessado", "gostaria", "quero saber mais", "me interessou", "tenho interesse")),
)

DEFAULT_STAGE = "initial_contact"

STAGE_ORDER = {stage: position for position, stage in enumerate(STAGES)}


def classify_stage(text: str) -> str:
    lowered = (text or "").lower()
    for stage, keywords in STAGE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return stage
    return DEFAULT_STAGE


def is_regression(previous: Optional[str], current: str) -> bool:
    """
    True when current sits earlier in the funnel than previous.
    closed_lost is terminal, not "further" than closed_won, so moves between
    the two closed stages never count.
    """
    if not previous or previous not in STAGE_ORDER or current not in STAGE_ORDER:
        return False
    closed = ("closed_won", "closed_lost")
    if previous in closed and current in closed:
        return False
    previous_rank = STAGE_ORDER["closed_won"] if previous == "closed_lost" else STAGE_ORDER[previous]
    current_rank = STAGE_ORDER["closed_won"] if current == "closed_lost" else STAGE_ORDER[current]
    return current_rank < previous_rank
