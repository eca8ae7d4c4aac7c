#!/usr/bin/env python3
"""
Data Access Object (DAO) for bulk analysis run statistics.
Run bookkeeping is informational: failures are logged and never interrupt a run.
"""

import sqlite3
import logging
from typing import List, Dict, Any, Optional
from datetime import datetime

logger = logging.getLogger(__name__)


class StatsDAO:
    """DAO for analysis_runs table"""

    TABLE_NAME = "analysis_runs"

    def __init__(self, db_path: str):
        """
        Initialize with database path

        Args:
            db_path: Path to SQLite database
        """
        self.db_path = db_path

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def start_run(self, only_new: bool) -> Optional[int]:
        """
        Open a run record

        Args:
            only_new: Whether the run skips already analyzed messages

        Returns:
            The run id, or None if it could not be recorded
        """
        conn = None
        try:
            conn = self._get_connection()
            cursor = conn.execute(
                f"INSERT INTO {self.TABLE_NAME} (started_at, only_new) VALUES (?, ?)",
                (datetime.now().isoformat(), int(only_new))
            )
            conn.commit()
            return cursor.lastrowid
        except sqlite3.Error as e:
            logger.error(f"Error recording analysis run start: {str(e)}")
            return None
        finally:
            if conn:
                conn.close()

    def finish_run(self, run_id: Optional[int], stats: Dict[str, int]) -> bool:
        """
        Close a run record with its totals

        Args:
            run_id: Id returned by start_run
            stats: Dict with total, analyzed and errors

        Returns:
            Success flag
        """
        if run_id is None:
            return False

        conn = None
        try:
            conn = self._get_connection()
            conn.execute(
                f"""
                UPDATE {self.TABLE_NAME}
                SET finished_at = ?, total = ?, analyzed = ?, errors = ?
                WHERE run_id = ?
                """,
                (datetime.now().isoformat(), stats.get("total", 0), stats.get("analyzed", 0),
                 stats.get("errors", 0), run_id)
            )
            conn.commit()
            return True
        except sqlite3.Error as e:
            logger.error(f"Error recording analysis run {run_id}: {str(e)}")
            return False
        finally:
            if conn:
                conn.close()

    def get_recent_runs(self, limit: int = 10) -> List[Dict[str, Any]]:
        conn = None
        try:
            conn = self._get_connection()
            cursor = conn.execute(
                f"SELECT * FROM {self.TABLE_NAME} ORDER BY run_id DESC LIMIT ?", (limit,)
            )
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.error(f"Error retrieving analysis runs: {str(e)}")
            return []
        finally:
            if conn:
                conn.close()

    def get_summary_stats(self) -> Dict[str, Any]:
        """
        Totals across all runs

        Returns:
            Dict with runs, total, analyzed, errors and last_run
        """
        conn = None
        try:
            conn = self._get_connection()
            row = conn.execute(
                f"""
                SELECT COUNT(*) AS runs,
                       COALESCE(SUM(total), 0) AS total,
                       COALESCE(SUM(analyzed), 0) AS analyzed,
                       COALESCE(SUM(errors), 0) AS errors,
                       MAX(finished_at) AS last_run
                FROM {self.TABLE_NAME}
                """
            ).fetchone()
            return dict(row)
        except sqlite3.Error as e:
            logger.error(f"Error retrieving summary stats: {str(e)}")
            return {"runs": 0, "total": 0, "analyzed": 0, "errors": 0, "last_run": None}
        finally:
            if conn:
                conn.close()
