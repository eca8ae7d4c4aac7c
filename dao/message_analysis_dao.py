#!/usr/bin/env python3
"""
DAO for per-message analysis rows written by the bulk analysis job.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from dao.base_dao import BaseDAO
from models import MessageAnalysis

logger = logging.getLogger(__name__)


class MessageAnalysisDAO(BaseDAO):
    """DAO for the message_analysis table"""

    TABLE_NAME = "message_analysis"

    def save(self, account_id: str, contact_number: str, message_id: str,
             analysis: MessageAnalysis, provider: str) -> int:
        data = {
            "account_id": account_id,
            "message_id": message_id,
            "contact_number": contact_number,
            "category": analysis.category,
            "category_confidence": analysis.category_confidence,
            "urgency_priority": analysis.urgency_priority,
            "urgency_level": analysis.urgency_level,
            "is_urgent": int(analysis.is_urgent),
            "sentiment": analysis.sentiment,
            "sentiment_score": analysis.sentiment_score,
            "intent": analysis.intent,
            "intent_confidence": analysis.intent_confidence,
            "extracted_values": json.dumps(analysis.extracted_values),
            "provider": provider,
            "analyzed_at": datetime.now().isoformat(),
        }
        return self.upsert(self.TABLE_NAME, data, ("account_id", "message_id"))

    def list_analyses(self, start: Optional[datetime] = None, end: Optional[datetime] = None,
                      account_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Analyses joined with their message timestamp, filtered on the message time

        Returns:
            Rows with the analysis columns plus `timestamp`; extracted_values decoded
        """
        clauses, params = [], []
        if start:
            clauses.append("m.timestamp >= ?")
            params.append(start.isoformat())
        if end:
            clauses.append("m.timestamp <= ?")
            params.append(end.isoformat())
        if account_id:
            clauses.append("a.account_id = ?")
            params.append(account_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.execute_query(
            f"""
            SELECT a.*, m.timestamp FROM {self.TABLE_NAME} a
            JOIN messages m ON m.account_id = a.account_id AND m.id = a.message_id
            {where}
            ORDER BY m.timestamp ASC
            """,
            params
        )
        for row in rows:
            try:
                row["extracted_values"] = json.loads(row.get("extracted_values") or "[]")
            except json.JSONDecodeError:
                row["extracted_values"] = []
        return rows
