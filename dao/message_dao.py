#!/usr/bin/env python3
"""
Data Access Object for WhatsApp messages.
The message store is written by the transport layer; the pipeline reads it,
attaches audio transcripts, and reacts to deletion and contact migration.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from dao.base_dao import BaseDAO
from models import ConversationKey, Message, RECEIVED

logger = logging.getLogger(__name__)

DeletionListener = Callable[[ConversationKey], None]
MigrationListener = Callable[[str, str, str], None]


class MessageDAO(BaseDAO):
    """DAO for the messages table"""

    TABLE_NAME = "messages"

    def __init__(self, db_path: str):
        super().__init__(db_path)
        self._deletion_listeners: List[DeletionListener] = []
        self._migration_listeners: List[MigrationListener] = []

    def add_deletion_listener(self, listener: DeletionListener) -> None:
        """Register a callback fired after a conversation is deleted"""
        self._deletion_listeners.append(listener)

    def add_migration_listener(self, listener: MigrationListener) -> None:
        """Register a callback fired as listener(account_id, old_number, new_number)"""
        self._migration_listeners.append(listener)

    def add_message(self, key: ConversationKey, message: Message, contact_name: Optional[str] = None) -> int:
        """
        Insert a message, ignoring duplicates by (account_id, id)

        Returns:
            1 if inserted, 0 if it already existed
        """
        return self.execute_update(
            f"""
            INSERT OR IGNORE INTO {self.TABLE_NAME}
            (id, account_id, contact_number, contact_name, content, direction, timestamp, type, media_url, audio_transcription)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (message.id, key.account_id, key.contact_number, contact_name, message.content,
             message.direction, message.timestamp.isoformat(), message.type,
             message.media_url, message.audio_transcription)
        )

    def add_messages(self, entries: List[Tuple[ConversationKey, Message, Optional[str]]]) -> int:
        """
        Bulk insert of (key, message, contact_name) entries, ignoring duplicates

        Returns:
            Number of inserted messages
        """
        return self.execute_batch(
            f"""
            INSERT OR IGNORE INTO {self.TABLE_NAME}
            (id, account_id, contact_number, contact_name, content, direction, timestamp, type, media_url, audio_transcription)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (m.id, key.account_id, key.contact_number, name, m.content, m.direction,
                 m.timestamp.isoformat(), m.type, m.media_url, m.audio_transcription)
                for key, m, name in entries
            ]
        )

    def list_messages(self, key: ConversationKey) -> List[Message]:
        """
        All messages of a conversation, oldest first
        """
        rows = self.execute_query(
            f"""
            SELECT * FROM {self.TABLE_NAME}
            WHERE account_id = ? AND contact_number = ?
            ORDER BY timestamp ASC, rowid ASC
            """,
            (key.account_id, key.contact_number)
        )
        return [Message.from_row(row) for row in rows]

    def count_messages(self, key: ConversationKey) -> int:
        rows = self.execute_query(
            f"SELECT COUNT(*) AS total FROM {self.TABLE_NAME} WHERE account_id = ? AND contact_number = ?",
            (key.account_id, key.contact_number)
        )
        return rows[0]["total"] if rows else 0

    def get_contact_name(self, key: ConversationKey) -> Optional[str]:
        rows = self.execute_query(
            f"""
            SELECT contact_name FROM {self.TABLE_NAME}
            WHERE account_id = ? AND contact_number = ? AND contact_name IS NOT NULL
            ORDER BY timestamp DESC LIMIT 1
            """,
            (key.account_id, key.contact_number)
        )
        return rows[0]["contact_name"] if rows else None

    def list_pending_audio(self, key: ConversationKey) -> List[Message]:
        """Audio messages with a media file and no transcript yet"""
        rows = self.execute_query(
            f"""
            SELECT * FROM {self.TABLE_NAME}
            WHERE account_id = ? AND contact_number = ?
              AND type = 'audio' AND media_url IS NOT NULL AND audio_transcription IS NULL
            ORDER BY timestamp ASC
            """,
            (key.account_id, key.contact_number)
        )
        return [Message.from_row(row) for row in rows]

    def attach_transcription(self, account_id: str, message_id: str, transcription: str) -> bool:
        """
        Attach a transcript to an audio message. A transcript is only ever
        written once; later calls leave the stored one in place.

        Returns:
            True if the transcript was stored by this call
        """
        updated = self.execute_update(
            f"""
            UPDATE {self.TABLE_NAME} SET audio_transcription = ?
            WHERE account_id = ? AND id = ? AND audio_transcription IS NULL
            """,
            (transcription, account_id, message_id)
        )
        return updated > 0

    def list_recent_received(self, limit: int, min_length: int = 5,
                             exclude_analyzed: bool = False) -> List[Dict[str, Any]]:
        """
        Newest received messages with enough text to analyze, used by the bulk job

        Args:
            limit: Maximum number of messages
            min_length: Minimum content length
            exclude_analyzed: Skip messages that already have a message_analysis row

        Returns:
            Rows with account_id, contact_number and the message columns
        """
        query = f"""
        SELECT m.* FROM {self.TABLE_NAME} m
        WHERE m.direction = ?
          AND LENGTH(COALESCE(m.audio_transcription, m.content, '')) >= ?
        """
        if exclude_analyzed:
            query += """
          AND NOT EXISTS (
              SELECT 1 FROM message_analysis a
              WHERE a.account_id = m.account_id AND a.message_id = m.id
          )
        """
        query += " ORDER BY m.timestamp DESC LIMIT ?"
        return self.execute_query(query, (RECEIVED, min_length, limit))

    def list_all(self, start: Optional[datetime] = None, end: Optional[datetime] = None,
                 account_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Raw message rows for dashboard aggregation"""
        clauses, params = [], []
        if start:
            clauses.append("timestamp >= ?")
            params.append(start.isoformat())
        if end:
            clauses.append("timestamp <= ?")
            params.append(end.isoformat())
        if account_id:
            clauses.append("account_id = ?")
            params.append(account_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return self.execute_query(
            f"SELECT account_id, contact_number, id, content, direction, timestamp, type "
            f"FROM {self.TABLE_NAME} {where} ORDER BY timestamp ASC",
            params
        )

    def delete_conversation(self, key: ConversationKey) -> int:
        """
        Delete every message of a conversation and notify listeners

        Returns:
            Number of deleted messages
        """
        deleted = self.execute_update(
            f"DELETE FROM {self.TABLE_NAME} WHERE account_id = ? AND contact_number = ?",
            (key.account_id, key.contact_number)
        )
        logger.info(f"Deleted {deleted} messages of conversation {key}")
        for listener in self._deletion_listeners:
            listener(key)
        return deleted

    def migrate_contact(self, account_id: str, old_number: str, new_number: str) -> int:
        """
        Re-key a conversation, e.g. from a lid identifier to the real phone number

        Returns:
            Number of moved messages
        """
        if old_number == new_number:
            return 0
        moved = self.execute_update(
            f"UPDATE {self.TABLE_NAME} SET contact_number = ? WHERE account_id = ? AND contact_number = ?",
            (new_number, account_id, old_number)
        )
        self.execute_update(
            "UPDATE message_analysis SET contact_number = ? WHERE account_id = ? AND contact_number = ?",
            (new_number, account_id, old_number)
        )
        logger.info(f"Migrated {moved} messages of {account_id} from {old_number} to {new_number}")
        for listener in self._migration_listeners:
            listener(account_id, old_number, new_number)
        return moved
