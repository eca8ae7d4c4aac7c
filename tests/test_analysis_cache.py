"""Analysis cache and message store tests against a real SQLite file."""

from datetime import datetime, timedelta

import pytest

from models import AnalysisRecord, ConversationKey, SUMMARY, LEAD_INFO, CONVERSATION_KPIS, MessageAnalysis

from conftest import BASE_TIME, add_conversation, make_message


def _record(key, count, watermark=None, kind=SUMMARY, text="resumo"):
    return AnalysisRecord(
        key=key,
        kind=kind,
        payload={"summary": text},
        source_message_count=count,
        source_watermark_timestamp=watermark or BASE_TIME + timedelta(minutes=count),
        computed_at=datetime(2024, 5, 2, 9, 0),
        provider="remote",
    )


class TestAnalysisCache:
    def test_save_and_get(self, cache_dao, key):
        assert cache_dao.save(_record(key, 5))

        record = cache_dao.get(key, SUMMARY)

        assert record.source_message_count == 5
        assert record.payload == {"summary": "resumo"}
        assert record.source_watermark_timestamp == BASE_TIME + timedelta(minutes=5)
        assert record.provider == "remote"
        assert cache_dao.get(key, LEAD_INFO) is None

    def test_kinds_are_independent(self, cache_dao, key):
        cache_dao.save(_record(key, 5, kind=SUMMARY))
        cache_dao.save(_record(key, 3, kind=CONVERSATION_KPIS))
        assert cache_dao.get(key, SUMMARY).source_message_count == 5
        assert cache_dao.get(key, CONVERSATION_KPIS).source_message_count == 3

    def test_regressing_count_is_rejected(self, cache_dao, key):
        assert cache_dao.save(_record(key, 5, text="novo"))
        assert cache_dao.save(_record(key, 4, text="velho")) is False
        assert cache_dao.get(key, SUMMARY).payload["summary"] == "novo"

    def test_regressing_watermark_is_rejected(self, cache_dao, key):
        cache_dao.save(_record(key, 5, watermark=BASE_TIME + timedelta(hours=2)))
        assert cache_dao.save(_record(key, 6, watermark=BASE_TIME + timedelta(hours=1))) is False

    def test_same_count_later_watermark_replaces(self, cache_dao, key):
        cache_dao.save(_record(key, 5, text="antes"))
        assert cache_dao.save(_record(key, 5, watermark=BASE_TIME + timedelta(hours=3), text="depois"))
        assert cache_dao.get(key, SUMMARY).payload["summary"] == "depois"

    def test_list_records_filters_by_kind_and_account(self, cache_dao, key):
        other = ConversationKey("acc-2", "5511888880000")
        cache_dao.save(_record(key, 5))
        cache_dao.save(_record(key, 5, kind=LEAD_INFO))
        cache_dao.save(_record(other, 2))

        assert len(cache_dao.list_records(kind=SUMMARY)) == 2
        assert len(cache_dao.list_records(account_id="acc-1")) == 2
        assert [r.key for r in cache_dao.list_records(kind=SUMMARY, account_id="acc-2")] == [other]


class TestCacheFollowsMessageStore:
    def test_deleting_a_conversation_drops_its_analyses(self, message_dao, cache_dao, key):
        cache_dao.bind(message_dao)
        add_conversation(message_dao, key, 4)
        cache_dao.save(_record(key, 4))
        cache_dao.save(_record(key, 4, kind=CONVERSATION_KPIS))

        assert message_dao.delete_conversation(key) == 4

        assert cache_dao.get(key, SUMMARY) is None
        assert cache_dao.get(key, CONVERSATION_KPIS) is None
        assert message_dao.list_messages(key) == []

    def test_migration_moves_analyses_to_new_number(self, message_dao, cache_dao, key):
        cache_dao.bind(message_dao)
        add_conversation(message_dao, key, 3)
        cache_dao.save(_record(key, 3))

        moved = message_dao.migrate_contact(key.account_id, key.contact_number, "5511777770000")

        new_key = ConversationKey(key.account_id, "5511777770000")
        assert moved == 3
        assert cache_dao.get(key, SUMMARY) is None
        assert cache_dao.get(new_key, SUMMARY).source_message_count == 3
        assert len(message_dao.list_messages(new_key)) == 3

    @pytest.mark.parametrize("old_count,new_count,kept", [(8, 3, 8), (3, 8, 8)])
    def test_migration_keeps_the_record_built_from_more_messages(self, cache_dao, key, old_count, new_count, kept):
        new_key = ConversationKey(key.account_id, "5511777770000")
        cache_dao.save(_record(key, old_count))
        cache_dao.save(_record(new_key, new_count))

        cache_dao.migrate_contact(key.account_id, key.contact_number, new_key.contact_number)

        assert cache_dao.get(new_key, SUMMARY).source_message_count == kept
        assert cache_dao.get(key, SUMMARY) is None


class TestMessageStore:
    def test_messages_come_back_oldest_first(self, message_dao, key):
        message_dao.add_message(key, make_message(2))
        message_dao.add_message(key, make_message(1))
        assert [m.id for m in message_dao.list_messages(key)] == ["msg-1", "msg-2"]

    def test_duplicate_message_is_ignored(self, message_dao, key):
        assert message_dao.add_message(key, make_message(1)) == 1
        assert message_dao.add_message(key, make_message(1)) == 0
        assert message_dao.count_messages(key) == 1

    def test_transcript_is_written_once(self, message_dao, key):
        message_dao.add_message(key, make_message(1, content="", type="audio", media_url="a.ogg"))
        assert [m.id for m in message_dao.list_pending_audio(key)] == ["msg-1"]

        assert message_dao.attach_transcription(key.account_id, "msg-1", "primeiro")
        assert message_dao.attach_transcription(key.account_id, "msg-1", "segundo") is False

        stored = message_dao.list_messages(key)[0]
        assert stored.audio_transcription == "primeiro"
        assert stored.text == "primeiro"
        assert message_dao.list_pending_audio(key) == []

    def test_recent_received_can_skip_analyzed(self, message_dao, message_analysis_dao, key):
        add_conversation(message_dao, key, 6)
        rows = message_dao.list_recent_received(limit=10)
        assert [row["id"] for row in rows] == ["msg-4", "msg-2", "msg-0"]

        message_analysis_dao.save(key.account_id, key.contact_number, "msg-4", MessageAnalysis(), "local")

        rows = message_dao.list_recent_received(limit=10, exclude_analyzed=True)
        assert [row["id"] for row in rows] == ["msg-2", "msg-0"]

    def test_short_messages_are_not_bulk_analyzed(self, message_dao, key):
        message_dao.add_message(key, make_message(1, content="ok"))
        assert message_dao.list_recent_received(limit=10) == []

    def test_contact_name(self, message_dao, key):
        add_conversation(message_dao, key, 2)
        assert message_dao.get_contact_name(key) == "Maria"


class TestStatsDAO:
    def test_run_lifecycle(self, stats_dao):
        run_id = stats_dao.start_run(only_new=True)
        assert run_id is not None
        assert stats_dao.finish_run(run_id, {"total": 3, "analyzed": 2, "errors": 1})

        runs = stats_dao.get_recent_runs()
        assert runs[0]["total"] == 3
        assert runs[0]["errors"] == 1
