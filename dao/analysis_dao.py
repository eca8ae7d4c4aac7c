#!/usr/bin/env python3
"""
Conversation Analysis Cache.
Stores the last computed analysis per (account, contact, kind) together with
the message-count and timestamp watermark it was computed from.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from dao.base_dao import BaseDAO
from dao.message_dao import MessageDAO
from models import AnalysisRecord, ConversationKey, parse_timestamp

logger = logging.getLogger(__name__)


class AnalysisCacheDAO(BaseDAO):
    """DAO for the analysis_cache table"""

    TABLE_NAME = "analysis_cache"

    def bind(self, message_dao: MessageDAO) -> None:
        """Follow deletions and contact migrations of the message store"""
        message_dao.add_deletion_listener(self.delete_conversation)
        message_dao.add_migration_listener(self.migrate_contact)

    def _to_record(self, row: Dict[str, Any]) -> AnalysisRecord:
        return AnalysisRecord(
            key=ConversationKey(row["account_id"], row["contact_number"]),
            kind=row["kind"],
            payload=json.loads(row["payload"]),
            source_message_count=row["source_message_count"],
            source_watermark_timestamp=parse_timestamp(row["source_watermark_timestamp"]),
            computed_at=parse_timestamp(row["computed_at"]),
            provider=row["provider"],
        )

    def get(self, key: ConversationKey, kind: str) -> Optional[AnalysisRecord]:
        rows = self.execute_query(
            f"SELECT * FROM {self.TABLE_NAME} WHERE account_id = ? AND contact_number = ? AND kind = ?",
            (key.account_id, key.contact_number, kind)
        )
        return self._to_record(rows[0]) if rows else None

    def save(self, record: AnalysisRecord) -> bool:
        """
        Upsert a record. An existing row is only replaced when neither the
        message count nor the watermark of the new record goes backwards.

        Args:
            record: Record to persist

        Returns:
            True if the row was written, False if it was rejected as a regression

        Raises:
            DatabaseError: If the write fails
        """
        written = self.execute_update(
            f"""
            INSERT INTO {self.TABLE_NAME}
            (account_id, contact_number, kind, payload, source_message_count,
             source_watermark_timestamp, computed_at, provider)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(account_id, contact_number, kind) DO UPDATE SET
                payload = excluded.payload,
                source_message_count = excluded.source_message_count,
                source_watermark_timestamp = excluded.source_watermark_timestamp,
                computed_at = excluded.computed_at,
                provider = excluded.provider
            WHERE excluded.source_message_count >= {self.TABLE_NAME}.source_message_count
              AND excluded.source_watermark_timestamp >= {self.TABLE_NAME}.source_watermark_timestamp
            """,
            (record.key.account_id, record.key.contact_number, record.kind,
             json.dumps(record.payload, ensure_ascii=False), record.source_message_count,
             record.source_watermark_timestamp.isoformat(), record.computed_at.isoformat(),
             record.provider)
        )
        if not written:
            logger.warning(f"Rejected {record.kind} record for {record.key}: watermark would regress")
        return written > 0

    def delete_conversation(self, key: ConversationKey) -> int:
        deleted = self.execute_update(
            f"DELETE FROM {self.TABLE_NAME} WHERE account_id = ? AND contact_number = ?",
            (key.account_id, key.contact_number)
        )
        if deleted:
            logger.info(f"Dropped {deleted} cached analyses of {key}")
        return deleted

    def migrate_contact(self, account_id: str, old_number: str, new_number: str) -> int:
        """
        Move cached analyses from old_number to new_number. When both keys hold
        a record of the same kind, the one computed from more messages is kept.

        Returns:
            Number of records now living under the new key that came from the old one
        """
        moved = 0
        with self.get_connection() as conn:
            old_rows = conn.execute(
                f"SELECT kind, source_message_count FROM {self.TABLE_NAME} WHERE account_id = ? AND contact_number = ?",
                (account_id, old_number)
            ).fetchall()
            for row in old_rows:
                existing = conn.execute(
                    f"SELECT source_message_count FROM {self.TABLE_NAME} WHERE account_id = ? AND contact_number = ? AND kind = ?",
                    (account_id, new_number, row["kind"])
                ).fetchone()
                if existing is None or row["source_message_count"] > existing["source_message_count"]:
                    conn.execute(
                        f"DELETE FROM {self.TABLE_NAME} WHERE account_id = ? AND contact_number = ? AND kind = ?",
                        (account_id, new_number, row["kind"])
                    )
                    conn.execute(
                        f"UPDATE {self.TABLE_NAME} SET contact_number = ? WHERE account_id = ? AND contact_number = ? AND kind = ?",
                        (new_number, account_id, old_number, row["kind"])
                    )
                    moved += 1
                else:
                    conn.execute(
                        f"DELETE FROM {self.TABLE_NAME} WHERE account_id = ? AND contact_number = ? AND kind = ?",
                        (account_id, old_number, row["kind"])
                    )
        logger.info(f"Migrated {moved} cached analyses from {old_number} to {new_number}")
        return moved

    def list_records(self, kind: Optional[str] = None, account_id: Optional[str] = None,
                     since: Optional[datetime] = None) -> List[AnalysisRecord]:
        """Cached records filtered by kind, account and computation time"""
        clauses, params = [], []
        if kind:
            clauses.append("kind = ?")
            params.append(kind)
        if account_id:
            clauses.append("account_id = ?")
            params.append(account_id)
        if since:
            clauses.append("computed_at >= ?")
            params.append(since.isoformat())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.execute_query(f"SELECT * FROM {self.TABLE_NAME} {where} ORDER BY computed_at DESC", params)
        return [self._to_record(row) for row in rows]
