#!/usr/bin/env python3
"""
Core data structures shared by the DAOs, providers and the orchestrator.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

# Analysis kinds
SUMMARY = "summary"
LEAD_INFO = "leadInfo"
CONVERSATION_KPIS = "conversationKPIs"
ANALYSIS_KINDS = (SUMMARY, LEAD_INFO, CONVERSATION_KPIS)

# Providers
REMOTE = "remote"
LOCAL = "local"

# Closed value sets
SENTIMENTS = ("positive", "neutral", "negative")
URGENCY_LEVELS = ("low", "medium", "high", "critical")
INTEREST_LEVELS = ("low", "medium", "high", "very_high")
STAGES = ("initial_contact", "interested", "proposal_sent", "negotiation", "closed_won", "closed_lost")
MESSAGE_TYPES = ("text", "image", "audio", "video", "document")

SENT = "sent"
RECEIVED = "received"


def parse_timestamp(value: Any) -> datetime:
    """Accept a datetime, an ISO string (a trailing Z means UTC) or epoch seconds"""
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def align_timezone(value: datetime, reference: datetime) -> datetime:
    """
    Express `value` the way `reference` is expressed so the two can be
    compared: in the reference's zone when it is aware, as naive local time
    when it is not. Naive values are taken as local time.
    """
    if reference.tzinfo is not None:
        return value.astimezone(reference.tzinfo)
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


@dataclass(frozen=True)
class ConversationKey:
    account_id: str
    contact_number: str

    def __str__(self) -> str:
        return f"{self.account_id}/{self.contact_number}"


@dataclass
class Message:
    id: str
    content: str
    direction: str
    timestamp: datetime
    type: str = "text"
    media_url: Optional[str] = None
    audio_transcription: Optional[str] = None

    @property
    def is_received(self) -> bool:
        return self.direction == RECEIVED

    @property
    def text(self) -> str:
        """Analyzable text: the transcript for audio, otherwise the content"""
        if self.type == "audio" and self.audio_transcription:
            return self.audio_transcription
        return self.content or ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Message":
        return cls(
            id=row["id"],
            content=row.get("content") or "",
            direction=row["direction"],
            timestamp=parse_timestamp(row["timestamp"]),
            type=row.get("type") or "text",
            media_url=row.get("media_url"),
            audio_transcription=row.get("audio_transcription"),
        )


@dataclass
class AnalysisRecord:
    """Last computed analysis for one conversation and kind, with its watermark"""
    key: ConversationKey
    kind: str
    payload: Dict[str, Any]
    source_message_count: int
    source_watermark_timestamp: datetime
    computed_at: datetime
    provider: str


@dataclass
class AnalysisResult:
    """What get_analysis hands back to callers"""
    record: AnalysisRecord
    cached: bool = False
    no_new_messages: bool = False
    stale: bool = False

    @property
    def payload(self) -> Dict[str, Any]:
        return self.record.payload

    def to_dict(self) -> Dict[str, Any]:
        record = self.record
        return {
            "account_id": record.key.account_id,
            "contact_number": record.key.contact_number,
            "kind": record.kind,
            "payload": record.payload,
            "source_message_count": record.source_message_count,
            "source_watermark_timestamp": record.source_watermark_timestamp.isoformat(),
            "computed_at": record.computed_at.isoformat(),
            "provider": record.provider,
            "cached": self.cached,
            "no_new_messages": self.no_new_messages,
            "stale": self.stale,
        }


@dataclass
class ExtractedInfo:
    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)
    money: List[str] = field(default_factory=list)
    values: List[float] = field(default_factory=list)
    percentages: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SummaryPayload:
    summary: str
    sentiment: str = "neutral"
    sentiment_score: float = 0.5
    sentiment_reason: str = ""
    intent: str = ""
    intent_confidence: float = 0.0
    highlights: List[str] = field(default_factory=list)
    conclusion: str = ""
    urgency: int = 0
    urgency_level: str = "low"
    suggested_actions: List[str] = field(default_factory=list)
    extracted: Dict[str, Any] = field(default_factory=dict)
    compression: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LeadPayload:
    products: List[str] = field(default_factory=list)
    values: List[str] = field(default_factory=list)
    total_value: float = 0.0
    interest_level: str = "medium"
    urgency: int = 0
    urgency_level: str = "low"
    stage: str = "initial_contact"
    previous_stage: Optional[str] = None
    stage_regressed: bool = False
    main_need: str = ""
    budget: str = ""
    deadline: str = ""
    objections: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    is_decision_maker: bool = False
    checking_competitors: bool = False
    sentiment: str = "neutral"
    conversion_probability: float = 0.0
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class KPISignals:
    """Provider-derived part of the per-conversation KPI bundle"""
    sentiment: str = "neutral"
    sentiment_score: float = 0.5
    category: str = "geral"
    category_confidence: float = 0.0
    intent: str = "outros"
    intent_confidence: float = 0.0
    urgency: int = 0
    urgency_level: str = "low"
    has_negotiation: bool = False
    extracted_values: List[str] = field(default_factory=list)
    extracted_products: List[str] = field(default_factory=list)
    extracted_conditions: List[str] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MessageAnalysis:
    """Per-message analysis produced by the bulk job"""
    category: str = "outros"
    category_confidence: float = 0.0
    urgency_priority: int = 0
    urgency_level: str = "low"
    is_urgent: bool = False
    sentiment: str = "neutral"
    sentiment_score: float = 0.5
    intent: str = "outros"
    intent_confidence: float = 0.0
    extracted_values: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
