#!/usr/bin/env python3
"""
Database setup for the WhatsApp conversation intelligence pipeline.
Creates the message store, the analysis cache and the supporting tables.
"""

import os
import sys
import sqlite3
import logging
import argparse

logger = logging.getLogger(__name__)

SCHEMA = """
-- Messages as delivered by the WhatsApp transport
CREATE TABLE IF NOT EXISTS messages (
    id TEXT NOT NULL,
    account_id TEXT NOT NULL,
    contact_number TEXT NOT NULL,
    contact_name TEXT,
    content TEXT,
    direction TEXT NOT NULL CHECK (direction IN ('sent', 'received')),
    timestamp TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'text',
    media_url TEXT,
    audio_transcription TEXT,
    PRIMARY KEY (account_id, id)
);

-- Last computed analysis per conversation and kind
CREATE TABLE IF NOT EXISTS analysis_cache (
    account_id TEXT NOT NULL,
    contact_number TEXT NOT NULL,
    kind TEXT NOT NULL,
    payload TEXT NOT NULL,
    source_message_count INTEGER NOT NULL,
    source_watermark_timestamp TEXT NOT NULL,
    computed_at TEXT NOT NULL,
    provider TEXT NOT NULL,
    PRIMARY KEY (account_id, contact_number, kind)
);

-- Per-message analysis written by the bulk job
CREATE TABLE IF NOT EXISTS message_analysis (
    account_id TEXT NOT NULL,
    message_id TEXT NOT NULL,
    contact_number TEXT NOT NULL,
    category TEXT,
    category_confidence REAL,
    urgency_priority INTEGER,
    urgency_level TEXT,
    is_urgent INTEGER DEFAULT 0,
    sentiment TEXT,
    sentiment_score REAL,
    intent TEXT,
    intent_confidence REAL,
    extracted_values TEXT,
    provider TEXT,
    analyzed_at TEXT NOT NULL,
    PRIMARY KEY (account_id, message_id)
);

-- One row per bulk analysis run
CREATE TABLE IF NOT EXISTS analysis_runs (
    run_id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    total INTEGER DEFAULT 0,
    analyzed INTEGER DEFAULT 0,
    errors INTEGER DEFAULT 0,
    only_new INTEGER DEFAULT 1
);

-- Runtime configuration overrides
CREATE TABLE IF NOT EXISTS config (
    config_key TEXT PRIMARY KEY,
    config_value TEXT,
    value_type TEXT,
    description TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(account_id, contact_number, timestamp);
CREATE INDEX IF NOT EXISTS idx_messages_direction ON messages(direction, timestamp);
CREATE INDEX IF NOT EXISTS idx_messages_pending_audio ON messages(type) WHERE audio_transcription IS NULL;
CREATE INDEX IF NOT EXISTS idx_message_analysis_contact ON message_analysis(account_id, contact_number);
CREATE INDEX IF NOT EXISTS idx_message_analysis_category ON message_analysis(category);
CREATE INDEX IF NOT EXISTS idx_analysis_cache_kind ON analysis_cache(kind);
"""


class DatabaseSetup:
    """
    Creates the database schema
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

        if not os.path.exists(db_path):
            logger.info(f"Creating new database at {db_path}")
        else:
            logger.info(f"Using existing database at {db_path}")

    def connect(self) -> sqlite3.Connection:
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def table_exists(self, table_name: str) -> bool:
        conn = self.connect()
        try:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table_name,)
            )
            return cursor.fetchone() is not None
        finally:
            conn.close()

    def create_tables(self) -> bool:
        """
        Create all tables and indexes

        Returns:
            Success flag
        """
        conn = None
        try:
            conn = self.connect()
            conn.executescript(SCHEMA)
            conn.executescript(INDEXES)
            conn.commit()
            logger.info("Database tables created")
            return True
        except sqlite3.Error as e:
            logger.error(f"Error creating tables: {str(e)}")
            return False
        finally:
            if conn:
                conn.close()


def main():
    parser = argparse.ArgumentParser(description="Create the conversation intelligence database")
    parser.add_argument("--db-path", default="whatsapp_insights.db", help="Path to the database file")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    if DatabaseSetup(args.db_path).create_tables():
        logger.info("Database setup completed successfully")
        return 0
    logger.error("Database setup failed")
    return 1


if __name__ == "__main__":
    sys.exit(main())
