#!/usr/bin/env python3
"""
Configuration module for the WhatsApp conversation intelligence pipeline.
Environment-driven paths, API credentials and logging setup.
"""

import os
import logging
from typing import Dict, Any
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

logger = logging.getLogger(__name__)


class AppConfig:
    """Application configuration settings"""

    # Default paths
    DEFAULT_DB_PATH = "./whatsapp_insights.db"
    DEFAULT_EXPORT_DIR = "./exports"
    DEFAULT_LOG_FILE = "./logs/whatsapp_insights.log"
    DEFAULT_CONFIG_FILE = "./insights_config.json"

    # Remote provider
    DEEPSEEK_BASE_URL = "https://api.deepseek.com"
    DEEPSEEK_MODEL = "deepseek-chat"

    # Speech-to-text
    TRANSCRIPTION_BASE_URL = "https://api.groq.com/openai/v1"
    TRANSCRIPTION_MODEL = "whisper-large-v3-turbo"

    @classmethod
    def get_db_path(cls) -> str:
        """Get database path from environment variable or use default"""
        return os.environ.get("WHATSAPP_INSIGHTS_DB_PATH", cls.DEFAULT_DB_PATH)

    @classmethod
    def get_config_file(cls) -> str:
        return os.environ.get("WHATSAPP_INSIGHTS_CONFIG", cls.DEFAULT_CONFIG_FILE)

    @classmethod
    def get_export_dir(cls) -> str:
        """Get export directory from environment variable or use default"""
        export_dir = os.environ.get("EXPORT_DIR", cls.DEFAULT_EXPORT_DIR)
        os.makedirs(export_dir, exist_ok=True)
        return export_dir

    @classmethod
    def get_log_file(cls) -> str:
        return os.environ.get("WHATSAPP_INSIGHTS_LOG_FILE", cls.DEFAULT_LOG_FILE)

    @classmethod
    def local_models_enabled(cls) -> bool:
        """Whether the transformers model hub should be loaded for the local provider"""
        return os.environ.get("LOCAL_MODELS_ENABLED", "false").lower() in ("true", "yes", "1")

    @classmethod
    def get_api_settings(cls) -> Dict[str, Any]:
        """Get remote provider settings"""
        return {
            "base_url": os.environ.get("DEEPSEEK_BASE_URL", cls.DEEPSEEK_BASE_URL),
            "model": os.environ.get("DEEPSEEK_MODEL", cls.DEEPSEEK_MODEL),
            "transcription_base_url": os.environ.get("TRANSCRIPTION_BASE_URL", cls.TRANSCRIPTION_BASE_URL),
            "transcription_model": os.environ.get("TRANSCRIPTION_MODEL", cls.TRANSCRIPTION_MODEL),
        }

    @classmethod
    def get_api_keys(cls) -> Dict[str, str]:
        """Get API keys from environment variables"""
        return {
            "deepseek": os.environ.get("DEEPSEEK_API_KEY", ""),
            "groq": os.environ.get("GROQ_API_KEY", ""),
        }
