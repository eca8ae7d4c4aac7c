"""Dashboard aggregation tests over a small two-conversation fleet."""

from datetime import datetime, timezone

import pandas as pd
import pytest

from config_manager import AnalysisSettings
from kpi_reducer import KPIReducer
from models import AnalysisRecord, ConversationKey, MessageAnalysis, SUMMARY

from conftest import make_message


def _message(contact, message_id, direction, timestamp):
    return {"account_id": "acc-1", "contact_number": contact, "id": message_id,
            "direction": direction, "timestamp": timestamp}


def _analysis(contact, message_id, category, priority, sentiment, intent, values, timestamp):
    return {"account_id": "acc-1", "contact_number": contact, "message_id": message_id,
            "category": category, "urgency_priority": priority, "sentiment": sentiment,
            "intent": intent, "extracted_values": values, "provider": "local", "timestamp": timestamp}


def _summary(provider, original, summary):
    return AnalysisRecord(
        key=ConversationKey("acc-1", "c-a"),
        kind=SUMMARY,
        payload={"summary": "x", "compression": {
            "original_words": original, "summary_words": summary,
            "rate": round((1 - summary / original) * 100, 1),
        }},
        source_message_count=3,
        source_watermark_timestamp=datetime(2024, 5, 1, 11, 0),
        computed_at=datetime(2024, 5, 1, 12, 0),
        provider=provider,
    )


MESSAGES = [
    _message("c-a", "m1", "received", "2024-05-01T10:00:00"),
    _message("c-a", "s1", "sent", "2024-05-01T10:10:00"),
    _message("c-a", "m2", "received", "2024-05-01T11:00:00"),
    _message("c-b", "m3", "received", "2024-05-01T10:00:00"),
    _message("c-b", "s3", "sent", "2024-05-01T10:45:00"),
]

ANALYSES = [
    _analysis("c-a", "m1", "vendas", 8, "positive", "comprar", [1500.0], "2024-05-01T10:00:00"),
    _analysis("c-a", "m2", "suporte", 9, "negative", "reclamar", [], "2024-05-01T11:00:00"),
    _analysis("c-b", "m3", "vendas", 2, "neutral", "comprar", [300.0, 700.0], "2024-05-01T10:00:00"),
]

SUMMARIES = [_summary("remote", 100, 20), _summary("local", 50, 10)]


@pytest.fixture
def dashboard():
    return KPIReducer().build_dashboard(MESSAGES, ANALYSES, SUMMARIES, sla_target_minutes=30)


class TestResponseMatching:
    def test_first_reply_in_same_conversation(self):
        reducer = KPIReducer()
        df = pd.DataFrame(MESSAGES)
        df["timestamp"] = pd.to_datetime(df["timestamp"])

        matched = reducer.match_responses(df).set_index("id")

        assert matched.loc["m1", "response_minutes"] == 10
        assert matched.loc["m3", "response_minutes"] == 45
        assert not matched.loc["m2", "responded"]

    def test_reply_at_the_same_instant_does_not_count(self):
        df = pd.DataFrame([
            _message("c-a", "m1", "received", "2024-05-01T10:00:00"),
            _message("c-a", "s1", "sent", "2024-05-01T10:00:00"),
        ])
        df["timestamp"] = pd.to_datetime(df["timestamp"])
        matched = KPIReducer().match_responses(df)
        assert not matched["responded"].any()

    def test_no_sent_messages(self):
        df = pd.DataFrame([_message("c-a", "m1", "received", "2024-05-01T10:00:00")])
        df["timestamp"] = pd.to_datetime(df["timestamp"])
        matched = KPIReducer().match_responses(df)
        assert matched["responded"].tolist() == [False]


class TestDashboard:
    def test_totals(self, dashboard):
        totals = dashboard["totals"]
        assert totals["messages"] == 5
        assert totals["received"] == 3
        assert totals["sent"] == 2
        assert totals["conversations"] == 2
        assert totals["analyzed"] == 3
        assert totals["response_rate"] == 66.7
        assert totals["avg_response_minutes"] == 27.5

    def test_categories(self, dashboard):
        categories = dashboard["categories"]
        assert list(categories) == ["vendas", "suporte"]
        assert categories["vendas"] == {
            "count": 2, "percentage": 66.7, "response_rate": 100.0, "avg_response_minutes": 27.5,
        }
        assert categories["suporte"]["response_rate"] == 0.0
        assert categories["suporte"]["avg_response_minutes"] == 0.0

    def test_sla(self, dashboard):
        sla = dashboard["sla"]
        assert sla["urgent_messages"] == 2
        assert sla["within_target"] == 1
        assert sla["hit_rate"] == 50.0
        assert sla["avg_response_minutes"] == 10.0
        assert [u["message_id"] for u in sla["unanswered"]] == ["m2"]
        assert sla["unanswered"][0]["urgency_priority"] == 9

    def test_tighter_sla_target(self):
        dashboard = KPIReducer().build_dashboard(MESSAGES, ANALYSES, sla_target_minutes=5)
        assert dashboard["sla"]["hit_rate"] == 0.0
        assert dashboard["sla"]["target_minutes"] == 5

    def test_sentiment_covers_every_label(self, dashboard):
        assert dashboard["sentiment"] == {
            "positive": {"count": 1, "percentage": 33.3},
            "neutral": {"count": 1, "percentage": 33.3},
            "negative": {"count": 1, "percentage": 33.3},
        }

    def test_intent_conversion(self, dashboard):
        intents = dashboard["intents"]
        assert intents["comprar"] == {"count": 2, "responded": 2, "not_responded": 0, "conversion_rate": 100.0}
        assert intents["reclamar"]["not_responded"] == 1

    def test_monetary(self, dashboard):
        assert dashboard["monetary"] == {
            "count": 3, "total": 2500.0, "avg_ticket": 833.33, "min_ticket": 300.0, "max_ticket": 1500.0,
        }

    def test_summary_savings(self, dashboard):
        summaries = dashboard["summaries"]
        assert summaries["count"] == 2
        assert summaries["avg_compression_rate"] == 80.0
        assert summaries["time_saved_seconds"] == 30.0
        assert summaries["by_provider"] == {"remote": 1, "local": 1}

    def test_seconds_per_word_is_configurable(self):
        reducer = KPIReducer(AnalysisSettings(seconds_per_word=0.5))
        assert reducer.summary_stats(SUMMARIES)["time_saved_seconds"] == 60.0

    def test_unknown_account_gives_zeros(self):
        dashboard = KPIReducer().build_dashboard(MESSAGES, ANALYSES, SUMMARIES, account_id="acc-9")
        assert dashboard["totals"]["messages"] == 0
        assert dashboard["totals"]["response_rate"] == 0.0
        assert dashboard["categories"] == {}
        assert dashboard["sla"]["urgent_messages"] == 0
        assert dashboard["monetary"]["count"] == 0
        assert dashboard["summaries"]["count"] == 0

    def test_period_filter(self):
        dashboard = KPIReducer().build_dashboard(
            MESSAGES, ANALYSES, start=datetime(2024, 5, 1, 10, 30), end=datetime(2024, 5, 1, 23, 59),
        )
        assert dashboard["totals"]["messages"] == 1
        assert dashboard["totals"]["analyzed"] == 1
        assert dashboard["period"]["start"] == "2024-05-01T10:30:00"

    def test_offset_timestamps_with_aware_and_naive_bounds(self):
        messages = [dict(m, timestamp=m["timestamp"] + "-03:00") for m in MESSAGES]
        analyses = [dict(a, timestamp=a["timestamp"] + "-03:00") for a in ANALYSES]
        reducer = KPIReducer()

        full = reducer.build_dashboard(messages, analyses, sla_target_minutes=30)
        assert full["totals"]["response_rate"] == 66.7
        assert full["totals"]["avg_response_minutes"] == 27.5

        # 11:00-03:00 is 14:00 UTC; only m2 falls inside
        windowed = reducer.build_dashboard(
            messages, analyses, SUMMARIES,
            start=datetime(2024, 5, 1, 13, 50, tzinfo=timezone.utc),
            end=datetime(2024, 5, 1, 15, 0, tzinfo=timezone.utc),
        )
        assert windowed["totals"]["messages"] == 1
        assert windowed["totals"]["analyzed"] == 1

        naive = reducer.build_dashboard(messages, analyses, start=datetime(2000, 1, 1), end=datetime(2100, 1, 1))
        assert naive["totals"]["messages"] == 5

    def test_empty_inputs(self):
        dashboard = KPIReducer().build_dashboard([], [])
        assert dashboard["totals"]["messages"] == 0
        assert dashboard["sentiment"]["neutral"]["count"] == 0


def test_dashboard_from_stored_rows(message_dao, message_analysis_dao, key):
    message_dao.add_message(key, make_message(1, "Preciso de ajuda urgente", minutes=0))
    message_dao.add_message(key, make_message(2, "Estamos verificando", direction="sent", minutes=20))
    message_analysis_dao.save(key.account_id, key.contact_number, "msg-1",
                              MessageAnalysis(category="suporte", urgency_priority=8, is_urgent=True,
                                              extracted_values=[120.0]), "local")

    dashboard = KPIReducer().build_dashboard(message_dao.list_all(), message_analysis_dao.list_analyses())

    assert dashboard["totals"]["response_rate"] == 100.0
    assert dashboard["sla"]["within_target"] == 1
    assert dashboard["categories"]["suporte"]["avg_response_minutes"] == 20.0
    assert dashboard["monetary"]["total"] == 120.0
