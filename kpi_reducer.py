#!/usr/bin/env python3
"""
Aggregate KPI Reducer.
Folds raw messages, per-message analyses and cached summaries into the
fleet-wide dashboard: category distribution, SLA, sentiment, intent
conversion, ticket values and summary savings.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from config_manager import AnalysisSettings
from models import AnalysisRecord, RECEIVED, SENT, SENTIMENTS, align_timezone, parse_timestamp

logger = logging.getLogger(__name__)

MESSAGE_COLUMNS = ["account_id", "contact_number", "id", "direction", "timestamp"]
ANALYSIS_COLUMNS = [
    "account_id", "contact_number", "message_id", "category", "urgency_priority",
    "sentiment", "intent", "extracted_values", "provider", "timestamp",
]

OFFSET_PATTERN = r"(?:[+-]\d{2}:?\d{2}|[Zz])$"
UTC_REFERENCE = datetime(1970, 1, 1, tzinfo=timezone.utc)
NAIVE_REFERENCE = datetime(1970, 1, 1)


def _num(value: Any, digits: int = 2) -> float:
    """Plain float for JSON output; NaN becomes 0.0"""
    if value is None:
        return 0.0
    value = float(value)
    return 0.0 if math.isnan(value) else round(value, digits)


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _parse_times(values: pd.Series) -> pd.Series:
    """
    ISO timestamps to a datetime column. When any value carries a UTC offset
    the whole column is converted to UTC, naive values being local time.
    """
    if not values.astype(str).str.contains(OFFSET_PATTERN, regex=True).any():
        return pd.to_datetime(values, format="ISO8601")
    return pd.to_datetime(values.map(lambda v: align_timezone(parse_timestamp(v), UTC_REFERENCE)), utc=True)


def _bound(value: datetime, column: pd.Series) -> pd.Timestamp:
    reference = UTC_REFERENCE if column.dt.tz is not None else NAIVE_REFERENCE
    return pd.Timestamp(align_timezone(value, reference))


def _window(df: pd.DataFrame, column: str, start: Optional[datetime], end: Optional[datetime],
            account_id: Optional[str]) -> pd.DataFrame:
    if df.empty:
        return df
    if start is not None:
        df = df[df[column] >= _bound(start, df[column])]
    if end is not None:
        df = df[df[column] <= _bound(end, df[column])]
    if account_id is not None:
        df = df[df["account_id"] == account_id]
    return df


class KPIReducer:
    """Stateless dashboard builder; run it again whenever fresh numbers are needed"""

    def __init__(self, settings: AnalysisSettings = AnalysisSettings()):
        self.settings = settings

    def match_responses(self, messages: pd.DataFrame) -> pd.DataFrame:
        """
        Pair every received message with the first sent message after it in
        the same conversation.

        Args:
            messages: Frame with MESSAGE_COLUMNS, timestamps parsed

        Returns:
            Received messages with `response_at`, `response_minutes` and `responded`
        """
        received = messages[messages["direction"] == RECEIVED].sort_values("timestamp")
        sent = (messages[messages["direction"] == SENT][["account_id", "contact_number", "timestamp"]]
                .rename(columns={"timestamp": "response_at"})
                .sort_values("response_at"))

        if received.empty:
            return received.assign(response_at=pd.Series(dtype="datetime64[ns]"),
                                   response_minutes=pd.Series(dtype=float),
                                   responded=pd.Series(dtype=bool))
        if sent.empty:
            matched = received.assign(response_at=pd.NaT)
        else:
            matched = pd.merge_asof(
                received, sent,
                left_on="timestamp", right_on="response_at",
                by=["account_id", "contact_number"],
                direction="forward",
                allow_exact_matches=False,
            )
        matched["response_minutes"] = (matched["response_at"] - matched["timestamp"]).dt.total_seconds() / 60
        matched["responded"] = matched["response_at"].notna()
        return matched

    def _message_frame(self, messages: Sequence[Dict[str, Any]], start, end, account_id) -> pd.DataFrame:
        df = pd.DataFrame(list(messages), columns=MESSAGE_COLUMNS)
        df["timestamp"] = _parse_times(df["timestamp"])
        return _window(df, "timestamp", start, end, account_id)

    def _analysis_frame(self, analyses: Sequence[Dict[str, Any]], matched: pd.DataFrame,
                        start, end, account_id) -> pd.DataFrame:
        df = pd.DataFrame(list(analyses), columns=ANALYSIS_COLUMNS)
        df["timestamp"] = _parse_times(df["timestamp"])
        df = _window(df, "timestamp", start, end, account_id)

        responses = matched[["account_id", "id", "responded", "response_minutes"]].rename(columns={"id": "message_id"})
        df = df.merge(responses, on=["account_id", "message_id"], how="left")
        df["responded"] = df["responded"].eq(True)
        df["urgency_priority"] = pd.to_numeric(df["urgency_priority"], errors="coerce").fillna(0)
        return df

    def category_distribution(self, analyses: pd.DataFrame) -> Dict[str, Dict[str, Any]]:
        total = len(analyses)
        result = {}
        for category, group in analyses.groupby("category"):
            result[category] = {
                "count": int(len(group)),
                "percentage": _pct(len(group), total),
                "response_rate": _pct(int(group["responded"].sum()), len(group)),
                "avg_response_minutes": _num(group["response_minutes"].mean()),
            }
        return dict(sorted(result.items(), key=lambda item: item[1]["count"], reverse=True))

    def sla(self, analyses: pd.DataFrame, target_minutes: float) -> Dict[str, Any]:
        """
        SLA over urgent messages: answered within target_minutes counts as a hit
        """
        urgent = analyses[analyses["urgency_priority"] >= self.settings.urgent_priority_threshold]
        hits = urgent[urgent["responded"] & (urgent["response_minutes"] <= target_minutes)]
        unanswered = urgent[~urgent["responded"]].sort_values("timestamp")
        return {
            "target_minutes": target_minutes,
            "urgent_messages": int(len(urgent)),
            "within_target": int(len(hits)),
            "hit_rate": _pct(len(hits), len(urgent)),
            "avg_response_minutes": _num(urgent["response_minutes"].mean()),
            "unanswered": [
                {
                    "account_id": row.account_id,
                    "contact_number": row.contact_number,
                    "message_id": row.message_id,
                    "urgency_priority": int(row.urgency_priority),
                    "timestamp": row.timestamp.isoformat() if pd.notna(row.timestamp) else None,
                }
                for row in unanswered.itertuples(index=False)
            ],
        }

    def sentiment_distribution(self, analyses: pd.DataFrame) -> Dict[str, Dict[str, Any]]:
        counts = analyses["sentiment"].value_counts()
        total = len(analyses)
        return {
            label: {"count": int(counts.get(label, 0)), "percentage": _pct(int(counts.get(label, 0)), total)}
            for label in SENTIMENTS
        }

    def intent_conversion(self, analyses: pd.DataFrame) -> Dict[str, Dict[str, Any]]:
        result = {}
        for intent, group in analyses.groupby("intent"):
            responded = int(group["responded"].sum())
            result[intent] = {
                "count": int(len(group)),
                "responded": responded,
                "not_responded": int(len(group)) - responded,
                "conversion_rate": _pct(responded, len(group)),
            }
        return result

    def monetary(self, analyses: pd.DataFrame) -> Dict[str, Any]:
        values = pd.to_numeric(analyses["extracted_values"].explode(), errors="coerce").dropna()
        values = values[values > 0]
        if values.empty:
            return {"count": 0, "total": 0.0, "avg_ticket": 0.0, "min_ticket": 0.0, "max_ticket": 0.0}
        return {
            "count": int(len(values)),
            "total": _num(values.sum()),
            "avg_ticket": _num(values.mean()),
            "min_ticket": _num(values.min()),
            "max_ticket": _num(values.max()),
        }

    def summary_stats(self, summaries: Sequence[AnalysisRecord]) -> Dict[str, Any]:
        """
        Compression and reading time saved across cached summaries.
        Time saved is (original_words - summary_words) * seconds_per_word.
        """
        rows = [
            {
                "provider": record.provider,
                "rate": (record.payload.get("compression") or {}).get("rate", 0.0),
                "original_words": (record.payload.get("compression") or {}).get("original_words", 0),
                "summary_words": (record.payload.get("compression") or {}).get("summary_words", 0),
            }
            for record in summaries
        ]
        if not rows:
            return {"count": 0, "avg_compression_rate": 0.0, "time_saved_seconds": 0.0,
                    "time_saved_hours": 0.0, "by_provider": {}}

        df = pd.DataFrame(rows)
        saved_words = (df["original_words"] - df["summary_words"]).clip(lower=0)
        seconds = float(saved_words.sum() * self.settings.seconds_per_word)
        return {
            "count": int(len(df)),
            "avg_compression_rate": _num(df["rate"].mean(), 1),
            "time_saved_seconds": round(seconds, 2),
            "time_saved_hours": round(seconds / 3600, 2),
            "by_provider": {provider: int(count) for provider, count in df["provider"].value_counts().items()},
        }

    def build_dashboard(self, messages: Sequence[Dict[str, Any]],
                        message_analyses: Sequence[Dict[str, Any]],
                        summaries: Sequence[AnalysisRecord] = (),
                        start: Optional[datetime] = None, end: Optional[datetime] = None,
                        account_id: Optional[str] = None,
                        sla_target_minutes: Optional[float] = None) -> Dict[str, Any]:
        """
        Build the dashboard for a period

        Args:
            messages: Message rows (account_id, contact_number, id, direction, timestamp)
            message_analyses: Rows of the per-message analysis table with message timestamps
            summaries: Cached summary records
            start: Period start, inclusive
            end: Period end, inclusive
            account_id: Restrict to one account
            sla_target_minutes: SLA target; defaults to the configured one

        Returns:
            JSON-ready dashboard dict
        """
        target = sla_target_minutes if sla_target_minutes is not None else self.settings.sla_target_minutes

        message_df = self._message_frame(messages, start, end, account_id)
        matched = self.match_responses(message_df)
        analyses = self._analysis_frame(message_analyses, matched, start, end, account_id)

        summary_records: List[AnalysisRecord] = [
            r for r in summaries
            if (account_id is None or r.key.account_id == account_id)
            and (start is None or align_timezone(r.computed_at, start) >= start)
            and (end is None or align_timezone(r.computed_at, end) <= end)
        ]

        received = int((message_df["direction"] == RECEIVED).sum())
        responded = int(matched["responded"].sum()) if not matched.empty else 0
        logger.info(f"Building dashboard from {len(message_df)} messages and {len(analyses)} analyses")

        return {
            "period": {
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
                "account_id": account_id,
            },
            "totals": {
                "messages": int(len(message_df)),
                "received": received,
                "sent": int((message_df["direction"] == SENT).sum()),
                "conversations": int(message_df[["account_id", "contact_number"]].drop_duplicates().shape[0]),
                "analyzed": int(len(analyses)),
                "response_rate": _pct(responded, received),
                "avg_response_minutes": _num(matched["response_minutes"].mean()) if not matched.empty else 0.0,
            },
            "categories": self.category_distribution(analyses),
            "sla": self.sla(analyses, target),
            "sentiment": self.sentiment_distribution(analyses),
            "intents": self.intent_conversion(analyses),
            "monetary": self.monetary(analyses),
            "summaries": self.summary_stats(summary_records),
        }
