#!/usr/bin/env python3
"""
Configuration Manager for the conversation intelligence pipeline.
Layers defaults, a JSON file, environment variables and the SQLite config table.
"""

import os
import json
import logging
import sqlite3
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from utils.error.error_handler import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "db_path": "whatsapp_insights.db",
    "log_level": "INFO",

    # Urgency scoring
    "urgency_keyword_increment": 0.15,
    "urgency_classifier_weight": 0.5,
    "urgent_priority_threshold": 7,
    "urgency_critical_min": 8,
    "urgency_high_min": 6,
    "urgency_medium_min": 4,

    # Sentiment
    "sentiment_neutral_threshold": 0.65,
    "sentiment_recent_messages": 3,
    "sentiment_max_chars": 500,

    # Summaries
    "seconds_per_word": 0.25,
    "local_summary_max_words": 800,

    # Orchestration
    "analysis_window": 200,
    "availability_ttl": 60.0,
    "bulk_batch_size": 5,
    "bulk_batch_delay": 1.0,
    "sla_target_minutes": 30,

    # Remote provider
    "remote_max_retries": 2,
    "summary_timeout": 30.0,
    "lead_timeout": 30.0,
    "kpi_timeout": 20.0,
    "message_timeout": 10.0,
    "ping_timeout": 10.0,
}


class ConfigManager:
    """
    Configuration Manager

    Sources are applied in order, later ones winning:
    - built-in defaults
    - JSON configuration file
    - environment variables
    - the `config` table of the SQLite database
    """

    ENV_MAPPINGS = {
        "WHATSAPP_INSIGHTS_DB_PATH": "db_path",
        "WHATSAPP_INSIGHTS_LOG_LEVEL": "log_level",
        "SLA_TARGET_MINUTES": "sla_target_minutes",
        "SECONDS_PER_WORD": "seconds_per_word",
        "ANALYSIS_WINDOW": "analysis_window",
        "AVAILABILITY_TTL": "availability_ttl",
        "BULK_BATCH_SIZE": "bulk_batch_size",
        "BULK_BATCH_DELAY": "bulk_batch_delay",
    }

    def __init__(self, config_file: str = None, db_path: str = None):
        """
        Args:
            config_file: Path to the JSON configuration file
            db_path: Path to the SQLite database
        """
        self.config = dict(DEFAULTS)

        if config_file and os.path.exists(config_file):
            self._load_from_file(config_file)

        self._load_from_env()

        if db_path:
            self.config["db_path"] = db_path
        self.db_path = self.config["db_path"]

        self._load_from_db()

    def _load_from_file(self, config_file: str) -> None:
        try:
            with open(config_file, 'r') as f:
                file_config = json.load(f)
            self.config.update(file_config)
            logger.info(f"Loaded configuration from {config_file}")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading configuration from {config_file}: {str(e)}")

    @staticmethod
    def _coerce(current: Any, raw: str) -> Any:
        """Convert a string to the type of the value it replaces"""
        if isinstance(current, bool):
            return raw.lower() in ('true', 'yes', '1')
        if isinstance(current, int):
            return int(raw)
        if isinstance(current, float):
            return float(raw)
        return raw

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        for env_var, config_key in self.ENV_MAPPINGS.items():
            if env_var not in os.environ:
                continue
            try:
                self.config[config_key] = self._coerce(self.config.get(config_key), os.environ[env_var])
                logger.debug(f"Set {config_key} from environment variable {env_var}")
            except ValueError:
                logger.warning(f"Ignoring invalid value for {env_var}")

    def _load_from_db(self) -> None:
        """Load overrides stored in the `config` table, if the database exists"""
        if not self.db_path or not os.path.exists(self.db_path):
            logger.debug(f"Database {self.db_path} does not exist, skipping config load")
            return

        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='config'")
            if not cursor.fetchone():
                return

            cursor.execute("SELECT config_key, config_value, value_type FROM config")
            for key, value, value_type in cursor.fetchall():
                if value_type == 'int':
                    value = int(value)
                elif value_type == 'float':
                    value = float(value)
                elif value_type == 'bool':
                    value = value.lower() in ('true', 'yes', '1')
                elif value_type == 'json':
                    try:
                        value = json.loads(value)
                    except json.JSONDecodeError:
                        logger.warning(f"Failed to parse JSON for config key {key}")
                        continue
                self.config[key] = value
                logger.debug(f"Loaded config {key} from database")
        except sqlite3.Error as e:
            logger.warning(f"Could not load config from database: {str(e)}")
        finally:
            if conn:
                conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def parse_value(self, key: str, raw: str) -> Any:
        """
        Interpret a command-line string with the type of the current value of key

        Raises:
            ConfigurationError: If the string does not fit that type
        """
        try:
            return self._coerce(self.config.get(key), raw)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {key}: {raw}") from e

    def set(self, key: str, value: Any, description: str = None) -> bool:
        """
        Set a configuration value and persist it to the database

        Args:
            key: Configuration key
            value: Configuration value
            description: Optional description

        Returns:
            Success flag
        """
        self.config[key] = value
        if not self.db_path:
            return True

        if isinstance(value, bool):
            value_type, stored = 'bool', '1' if value else '0'
        elif isinstance(value, int):
            value_type, stored = 'int', str(value)
        elif isinstance(value, float):
            value_type, stored = 'float', str(value)
        elif isinstance(value, (dict, list)):
            value_type, stored = 'json', json.dumps(value)
        else:
            value_type, stored = 'string', str(value)

        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.execute("""
            CREATE TABLE IF NOT EXISTS config (
                config_key TEXT PRIMARY KEY,
                config_value TEXT,
                value_type TEXT,
                description TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """)
            conn.execute("""
            INSERT OR REPLACE INTO config (config_key, config_value, value_type, description, updated_at)
            VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
            """, (key, stored, value_type, description))
            conn.commit()
            logger.debug(f"Saved config {key} to database")
            return True
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"Error saving config to database: {str(e)}")
            return False
        finally:
            if conn:
                conn.close()

    def get_all(self) -> Dict[str, Any]:
        return self.config.copy()


@dataclass(frozen=True)
class AnalysisSettings:
    """Heuristic constants and limits injected into the pipeline components"""
    urgency_keyword_increment: float = 0.15
    urgency_classifier_weight: float = 0.5
    urgent_priority_threshold: int = 7
    urgency_critical_min: int = 8
    urgency_high_min: int = 6
    urgency_medium_min: int = 4
    sentiment_neutral_threshold: float = 0.65
    sentiment_recent_messages: int = 3
    sentiment_max_chars: int = 500
    seconds_per_word: float = 0.25
    local_summary_max_words: int = 800
    analysis_window: int = 200
    availability_ttl: float = 60.0
    bulk_batch_size: int = 5
    bulk_batch_delay: float = 1.0
    sla_target_minutes: int = 30
    remote_max_retries: int = 2
    summary_timeout: float = 30.0
    lead_timeout: float = 30.0
    kpi_timeout: float = 20.0
    message_timeout: float = 10.0
    ping_timeout: float = 10.0

    @classmethod
    def from_config(cls, config: Optional[ConfigManager] = None) -> "AnalysisSettings":
        """Snapshot the relevant keys of a ConfigManager"""
        if config is None:
            return cls()
        values = {}
        for field in fields(cls):
            value = config.get(field.name)
            if value is not None:
                values[field.name] = field.type(value) if field.type in (int, float) else value
        return cls(**values)
