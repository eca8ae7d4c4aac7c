#!/usr/bin/env python3
"""
Per-conversation metrics computed straight from the message list:
response times, reply status, engagement, timing and volume.
"""

from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from models import Message, SENT, align_timezone

WEEKDAYS = ("Segunda", "Terça", "Quarta", "Quinta", "Sexta", "Sábado", "Domingo")


def response_times(messages: Sequence[Message]) -> List[float]:
    """
    Minutes between each received message and the first sent message after it,
    in conversation order. Unanswered messages are skipped.
    """
    times = []
    sent = [m for m in messages if m.direction == SENT]
    for message in messages:
        if not message.is_received:
            continue
        reply = next((s for s in sent if s.timestamp > message.timestamp), None)
        if reply:
            times.append((reply.timestamp - message.timestamp).total_seconds() / 60)
    return times


def response_status(avg_minutes: float) -> str:
    if avg_minutes < 5:
        return "fast"
    if avg_minutes < 30:
        return "normal"
    return "slow"


def engagement_level(response_rate: float) -> str:
    if response_rate > 80:
        return "high"
    if response_rate > 50:
        return "medium"
    return "low"


def _avg(values: Sequence[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def compression_metrics(original_text: str, summary: str, seconds_per_word: float = 0.25) -> Dict[str, Any]:
    """
    Size of a summary relative to the conversation it condenses.
    time_saved_seconds estimates the reading time the summary saves.
    """
    original_words = len((original_text or "").split())
    summary_words = len((summary or "").split())
    saved_words = max(original_words - summary_words, 0)
    rate = round((1 - summary_words / original_words) * 100, 1) if original_words else 0.0
    return {
        "original_words": original_words,
        "summary_words": summary_words,
        "rate": max(rate, 0.0),
        "time_saved_seconds": round(saved_words * seconds_per_word, 2),
    }


def conversation_metrics(messages: Sequence[Message], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Metrics for one conversation, messages oldest first.

    Args:
        messages: Non-empty conversation
        now: Reference time for waiting_minutes; defaults to the current time.
            Naive and aware values both work against either kind of timestamp

    Returns:
        Dict with response_times, status, engagement, timing and stats sections
    """
    if not messages:
        return {}
    now = now or datetime.now()

    received = [m for m in messages if m.is_received]
    sent = [m for m in messages if m.direction == SENT]
    times = response_times(messages)
    avg_time = _avg(times)

    last = messages[-1]
    first = messages[0]
    has_unresponded = last.is_received
    waiting = (align_timezone(now, last.timestamp) - last.timestamp).total_seconds() / 60 if has_unresponded else 0.0

    answered = len(times)
    response_rate = round(answered / len(received) * 100, 1) if received else 0.0

    hours = Counter(m.timestamp.hour for m in messages)
    days = Counter(m.timestamp.weekday() for m in messages)
    lengths = [len(m.text) for m in messages]

    return {
        "response_times": {
            "avg": avg_time,
            "last": round(times[-1], 2) if times else 0.0,
            "fastest": round(min(times), 2) if times else 0.0,
            "slowest": round(max(times), 2) if times else 0.0,
            "status": response_status(avg_time),
        },
        "status": {
            "has_unresponded": has_unresponded,
            "last_message_direction": last.direction,
            "waiting_minutes": round(max(waiting, 0.0), 1),
        },
        "engagement": {
            "response_rate": response_rate,
            "avg_received_length": _avg([len(m.text) for m in received]),
            "avg_sent_length": _avg([len(m.text) for m in sent]),
            "level": engagement_level(response_rate),
        },
        "timing": {
            "first_message_time": first.timestamp.isoformat(),
            "last_message_time": last.timestamp.isoformat(),
            "duration_hours": round((last.timestamp - first.timestamp).total_seconds() / 3600, 2),
            "most_active_hour": hours.most_common(1)[0][0],
            "most_active_day": WEEKDAYS[days.most_common(1)[0][0]],
        },
        "stats": {
            "total_messages": len(messages),
            "received_messages": len(received),
            "sent_messages": len(sent),
            "avg_message_length": _avg(lengths),
            "media_messages": sum(1 for m in messages if m.media_url),
            "longest_message": max(lengths),
        },
    }
