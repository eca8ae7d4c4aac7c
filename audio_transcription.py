#!/usr/bin/env python3
"""
Attaches transcripts to audio messages before a conversation is summarized.
"""

import asyncio
import logging
import os
from typing import Optional

from api.clients.transcription_client import TranscriptionClient
from dao.message_dao import MessageDAO
from models import ConversationKey
from utils.error.error_handler import APIError, DatabaseError

logger = logging.getLogger(__name__)


class AudioTranscriber:
    """Transcribes pending audio messages of a conversation, one at a time"""

    def __init__(self, client: TranscriptionClient, message_dao: MessageDAO,
                 media_root: Optional[str] = None, language: str = "pt"):
        self.client = client
        self.message_dao = message_dao
        self.media_root = media_root
        self.language = language

    @property
    def available(self) -> bool:
        return self.client.available

    def _resolve(self, media_url: str) -> str:
        if self.media_root and not os.path.isabs(media_url):
            return os.path.join(self.media_root, media_url.lstrip("/"))
        return media_url

    def _transcribe_file(self, account_id: str, message_id: str, path: str) -> bool:
        with open(path, "rb") as f:
            audio = f.read()
        result = self.client.transcribe_audio(audio, filename=os.path.basename(path), language=self.language)
        if not result["text"]:
            logger.warning(f"Empty transcript for message {message_id}")
            return False
        return self.message_dao.attach_transcription(account_id, message_id, result["text"])

    async def transcribe_pending(self, key: ConversationKey) -> int:
        """
        Transcribe every audio message of the conversation that has none yet.
        Individual failures are logged and skipped.

        Returns:
            Number of transcripts attached
        """
        if not self.available:
            return 0

        loop = asyncio.get_running_loop()
        pending = await loop.run_in_executor(None, self.message_dao.list_pending_audio, key)
        if not pending:
            return 0

        logger.info(f"Transcribing {len(pending)} audio messages of {key}")
        attached = 0
        for message in pending:
            path = self._resolve(message.media_url)
            try:
                if await loop.run_in_executor(None, self._transcribe_file, key.account_id, message.id, path):
                    attached += 1
            except (OSError, APIError, DatabaseError) as e:
                logger.warning(f"Could not transcribe message {message.id}: {str(e)}")
        return attached

    def close(self) -> None:
        self.client.close()
