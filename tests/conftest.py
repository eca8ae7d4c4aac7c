"""Shared fixtures: a fresh SQLite database per test and message builders."""

from datetime import datetime, timedelta

import pytest

from dao.analysis_dao import AnalysisCacheDAO
from dao.message_analysis_dao import MessageAnalysisDAO
from dao.message_dao import MessageDAO
from dao.stats_dao import StatsDAO
from models import ConversationKey, Message, RECEIVED, SENT
from setup_database import DatabaseSetup

BASE_TIME = datetime(2024, 5, 1, 10, 0, 0)


def make_message(index: int, content: str = None, direction: str = RECEIVED, minutes: int = None,
                 type: str = "text", media_url: str = None, audio_transcription: str = None) -> Message:
    return Message(
        id=f"msg-{index}",
        content=content if content is not None else f"Mensagem numero {index} do cliente",
        direction=direction,
        timestamp=BASE_TIME + timedelta(minutes=index if minutes is None else minutes),
        type=type,
        media_url=media_url,
        audio_transcription=audio_transcription,
    )


def add_conversation(message_dao: MessageDAO, key: ConversationKey, count: int, start: int = 0) -> None:
    for i in range(start, start + count):
        direction = RECEIVED if i % 2 == 0 else SENT
        message_dao.add_message(key, make_message(i, direction=direction), contact_name="Maria")


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "insights.db")
    assert DatabaseSetup(path).create_tables()
    return path


@pytest.fixture
def key():
    return ConversationKey("acc-1", "5511999990000")


@pytest.fixture
def message_dao(db_path):
    return MessageDAO(db_path)


@pytest.fixture
def cache_dao(db_path):
    return AnalysisCacheDAO(db_path)


@pytest.fixture
def message_analysis_dao(db_path):
    return MessageAnalysisDAO(db_path)


@pytest.fixture
def stats_dao(db_path):
    return StatsDAO(db_path)
