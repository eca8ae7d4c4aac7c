#!/usr/bin/env python3
"""
Provider interface and the message rendering shared by every provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from models import Message

UNTRANSCRIBED_AUDIO = "[Áudio sem transcrição]"
TRANSCRIBED_AUDIO_PREFIX = "[Áudio transcrito]"


@dataclass
class ProviderResponse:
    """Raw answer of one provider, before normalization"""
    provider: str
    kind: str
    data: Dict[str, Any]


def render_content(message: Message) -> str:
    """
    Text a provider sees for a message. Audio is never dropped: it becomes
    its transcript, or a placeholder while no transcript exists.
    """
    if message.type == "audio":
        if message.audio_transcription:
            return f"{TRANSCRIBED_AUDIO_PREFIX}: {message.audio_transcription}"
        return UNTRANSCRIBED_AUDIO
    if message.content:
        return message.content
    if message.audio_transcription:
        return f"{TRANSCRIBED_AUDIO_PREFIX}: {message.audio_transcription}"
    return f"[{message.type.capitalize()}]"


def format_conversation(messages: Sequence[Message], limit: Optional[int] = None,
                        max_chars: int = 800, with_time: bool = True) -> str:
    """
    Lines of the form "[dd/mm HH:MM] Cliente: text"

    Args:
        messages: Conversation, oldest first
        limit: Keep only the most recent `limit` messages
        max_chars: Per-message truncation
        with_time: Prefix each line with the message time
    """
    selected = list(messages)[-limit:] if limit else list(messages)
    lines = []
    for message in selected:
        speaker = "Cliente" if message.is_received else "Empresa"
        content = render_content(message)[:max_chars]
        if with_time:
            lines.append(f"[{message.timestamp.strftime('%d/%m %H:%M')}] {speaker}: {content}")
        else:
            lines.append(f"{speaker}: {content}")
    return "\n".join(lines)


class AnalysisProvider(ABC):
    """One source of analysis; answers with raw ProviderResponse objects"""

    name: str = ""

    @abstractmethod
    async def summarize(self, messages: List[Message], context: Dict[str, Any]) -> ProviderResponse:
        ...

    @abstractmethod
    async def extract_lead_info(self, messages: List[Message], context: Dict[str, Any]) -> ProviderResponse:
        ...

    @abstractmethod
    async def analyze_for_kpis(self, messages: List[Message]) -> ProviderResponse:
        ...

    @abstractmethod
    async def analyze_message(self, text: str) -> ProviderResponse:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
