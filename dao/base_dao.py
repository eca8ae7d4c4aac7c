#!/usr/bin/env python3
"""
Base Data Access Object
Connection handling and query helpers shared by every DAO.
"""

import sqlite3
import logging
from typing import List, Dict, Any, Generator, Sequence
from contextlib import contextmanager

from utils.error.error_handler import DatabaseError, exception_mapper

logger = logging.getLogger(__name__)


class BaseDAO:
    """Base class for all Data Access Objects"""

    def __init__(self, db_path: str):
        """
        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager yielding a configured connection.
        Commits on success and rolls back on any exception.

        Raises:
            DatabaseError: If a database error occurs
        """
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30)
            conn.execute("PRAGMA foreign_keys = ON")
            conn.row_factory = sqlite3.Row
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Database error: {str(e)}")
            if conn:
                conn.rollback()
            raise DatabaseError(str(e)) from e
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    @exception_mapper({sqlite3.Error: DatabaseError})
    def execute_query(self, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """
        Execute a SELECT query

        Returns:
            Rows as dictionaries
        """
        with self.get_connection() as conn:
            cursor = conn.execute(query, tuple(params))
            return [dict(row) for row in cursor.fetchall()]

    @exception_mapper({sqlite3.Error: DatabaseError})
    def execute_update(self, query: str, params: Sequence[Any] = ()) -> int:
        """
        Execute an INSERT, UPDATE or DELETE

        Returns:
            Number of affected rows
        """
        with self.get_connection() as conn:
            cursor = conn.execute(query, tuple(params))
            return cursor.rowcount

    @exception_mapper({sqlite3.Error: DatabaseError})
    def execute_batch(self, query: str, params_list: List[Sequence[Any]]) -> int:
        if not params_list:
            return 0
        with self.get_connection() as conn:
            cursor = conn.executemany(query, [tuple(p) for p in params_list])
            return cursor.rowcount

    @exception_mapper({sqlite3.Error: DatabaseError})
    def upsert(self, table: str, data: Dict[str, Any], conflict_fields: Sequence[str]) -> int:
        """
        Insert a row or update it when the conflict fields already exist

        Args:
            table: Table name
            data: Column -> value
            conflict_fields: Columns of the unique constraint

        Returns:
            Number of affected rows
        """
        columns = list(data.keys())
        placeholders = ', '.join('?' for _ in columns)
        updates = ', '.join(f"{col} = excluded.{col}" for col in columns if col not in conflict_fields)
        query = f"""
        INSERT INTO {table} ({', '.join(columns)})
        VALUES ({placeholders})
        ON CONFLICT({', '.join(conflict_fields)}) DO UPDATE SET {updates}
        """
        with self.get_connection() as conn:
            cursor = conn.execute(query, tuple(data[col] for col in columns))
            return cursor.rowcount
