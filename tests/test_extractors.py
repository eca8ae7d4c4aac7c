"""Signal extractor tests: urgency, sentiment, classification, extraction, stage, lead and metrics."""

from datetime import datetime, timedelta, timezone

import pytest

from config_manager import AnalysisSettings
from extractors.classification import (
    classify_category, classify_extended_category, classify_intent, detect_topics, intent_from_topics,
)
from extractors.extraction import extract_information, merge_extractions, parse_brl_amount
from extractors.lead import extract_lead_heuristics
from extractors.metrics import compression_metrics, conversation_metrics
from extractors.sentiment import hybrid_sentiment, normalize_model_output, recent_window
from extractors.stage import classify_stage, is_regression
from extractors.urgency import detect_urgency, urgency_level
from models import Message, RECEIVED, SENT, align_timezone, parse_timestamp


def _msg(i, content, direction=RECEIVED, minutes=0):
    return Message(id=f"m{i}", content=content, direction=direction,
                   timestamp=datetime(2024, 5, 1, 10, 0) + timedelta(minutes=minutes))


class TestUrgency:
    def test_three_keywords_and_urgent_classifier_is_critical(self):
        result = detect_urgency(
            "Urgente, preciso de ajuda",
            {"urgent message": 0.9, "normal message": 0.08, "low priority": 0.02},
        )
        assert len(result.keywords) == 3
        assert result.priority >= 7
        assert result.level in ("critical", "high")
        assert result.priority == 9
        assert result.level == "critical"
        assert result.is_urgent

    def test_plain_text_is_low(self):
        result = detect_urgency("Bom dia, tudo bem?")
        assert result.priority == 0
        assert result.level == "low"
        assert not result.is_urgent

    def test_classifier_counts_only_when_urgent_label_wins(self):
        result = detect_urgency("Olá", {"normal message": 0.7, "urgent message": 0.3})
        assert result.priority == 0

    def test_priority_is_clamped_to_ten(self):
        result = detect_urgency("urgente emergência imediato agora rápido hoje problema erro",
                                {"urgent message": 1.0})
        assert result.priority == 10

    @pytest.mark.parametrize("priority,level", [
        (10, "critical"), (8, "critical"), (7, "high"), (6, "high"),
        (5, "medium"), (4, "medium"), (3, "low"), (0, "low"),
    ])
    def test_bucket_edges(self, priority, level):
        assert urgency_level(priority) == level

    def test_bucket_edges_follow_settings(self):
        settings = AnalysisSettings(urgency_critical_min=9)
        assert urgency_level(8, settings) == "high"


class TestSentiment:
    def test_positive_keywords_only(self):
        result = hybrid_sentiment(["Obrigado, ficou ótimo"])
        assert result.sentiment == "positive"
        assert result.method == "keywords"
        assert result.score == pytest.approx(0.8)

    def test_negative_keywords_only(self):
        result = hybrid_sentiment(["Produto com defeito, quero devolver"])
        assert result.sentiment == "negative"
        assert result.method == "keywords"

    def test_keyword_tie_falls_back_to_model(self):
        result = hybrid_sentiment(["Obrigado, mas veio com defeito"], ("negative", 0.9))
        assert result.sentiment == "negative"
        assert result.score == 0.9
        assert result.method == "model"

    def test_repeated_keywords_count_each_time(self):
        result = hybrid_sentiment(["bom bom bom, mas teve um problema"])
        assert (result.sentiment, result.score, result.method) == ("positive", 0.65, "keywords")
        assert (result.positive_hits, result.negative_hits) == (3, 1)

    def test_repeats_raise_one_sided_score(self):
        assert hybrid_sentiment(["Obrigado! Obrigada mesmo, obrigado"]).score == pytest.approx(0.85)

    def test_no_evidence_is_neutral(self):
        result = hybrid_sentiment(["Qual o horário de vocês"])
        assert (result.sentiment, result.score, result.method) == ("neutral", 0.5, "default")

    def test_low_confidence_model_answer_is_neutral(self):
        assert normalize_model_output("POSITIVE", 0.6) == ("neutral", 0.5)
        assert normalize_model_output("NEGATIVE", 0.9) == ("negative", 0.9)
        assert normalize_model_output(None, None) == ("neutral", 0.5)

    def test_recent_window_keeps_last_messages(self):
        settings = AnalysisSettings(sentiment_recent_messages=2, sentiment_max_chars=10)
        assert recent_window(["um", "dois", "tres"], settings) == "dois tres"
        assert len(recent_window(["a" * 50], settings)) == 10


class TestClassification:
    def test_sales_question(self):
        result = classify_category("Quanto custa o motor? Tem disponível?")
        assert result.label == "vendas"
        assert result.confidence == pytest.approx(0.67)
        assert result.confidence_label == "medium"

    def test_unmatched_text_defaults_to_outros(self):
        result = classify_category("ok")
        assert result.label == "outros"

    def test_model_scores_are_mapped_onto_closed_set(self):
        result = classify_category("hmm", {"complaint": 0.8})
        assert result.label == "reclamacao"
        assert result.confidence == 0.8

    def test_cancel_intent(self):
        result = classify_intent("Quero cancelar e desisto, não quero mais")
        assert result.label == "cancelar"
        assert result.confidence == 1.0

    def test_extended_category(self):
        result = classify_extended_category("Quero agendar uma visita, qual horário tem disponibilidade?")
        assert result.label == "agendamento"
        assert classify_extended_category("oi").label == "geral"

    def test_topics(self):
        topics = detect_topics("Qual o preço e o prazo de entrega?")
        assert topics == ["preço/valores", "entrega", "dúvidas"]
        assert intent_from_topics(topics) == ("Consultar preços e condições", 0.6)


class TestExtraction:
    def test_monetary_scenario(self):
        info = extract_information("Motor sai por R$ 3.500,00, parcelado em 10x")
        assert info.values == [3500.00]
        assert info.money == ["R$ 3.500,00"]
        assert info.emails == []
        assert info.phones == []

    def test_contacts_and_percentages(self):
        info = extract_information("Meu email é joao@example.com, fone (11) 98765-4321, desconto de 10%")
        assert info.emails == ["joao@example.com"]
        assert info.phones == ["(11) 98765-4321"]
        assert info.percentages == ["10%"]

    @pytest.mark.parametrize("text,expected", [
        ("liga no 98765-4321", ["98765-4321"]),
        ("+55 11 987654321 é o meu zap", ["+55 11 987654321"]),
        ("CEP 12345678, pedido 987654321", []),
    ])
    def test_phone_needs_area_code_or_separator(self, text, expected):
        assert extract_information(text).phones == expected

    @pytest.mark.parametrize("raw,expected", [
        ("R$ 1.234,56", 1234.56),
        ("1500", 1500.0),
        ("R$ 1.000", 1000.0),
        ("2,5", 2.5),
        ("abc", None),
    ])
    def test_parse_brl_amount(self, raw, expected):
        assert parse_brl_amount(raw) == expected

    def test_malformed_input_gives_empty_lists(self):
        info = extract_information(None)
        assert info.to_dict() == {"emails": [], "phones": [], "money": [], "values": [], "percentages": []}

    def test_merge_removes_duplicates(self):
        merged = merge_extractions([
            extract_information("a@b.com R$ 10,00"),
            extract_information("a@b.com R$ 20,00"),
        ])
        assert merged.emails == ["a@b.com"]
        assert merged.values == [10.0, 20.0]


class TestStage:
    def test_classify(self):
        assert classify_stage("Fechado, pode enviar") == "closed_won"
        assert classify_stage("Vocês fazem desconto?") == "negotiation"
        assert classify_stage("Tenho interesse no plano") == "interested"
        assert classify_stage("Olá") == "initial_contact"

    def test_regression(self):
        assert is_regression("negotiation", "interested")
        assert is_regression("closed_lost", "negotiation")
        assert not is_regression("interested", "negotiation")
        assert not is_regression("closed_won", "closed_lost")
        assert not is_regression(None, "interested")


class TestLeadHeuristics:
    def test_negotiation_with_objections(self):
        messages = [
            _msg(1, "Quero comprar o plano premium", minutes=0),
            _msg(2, "Fica R$ 1.200,00 à vista", direction=SENT, minutes=5),
            _msg(3, "Quanto fica parcelado? Está caro, vou pensar", minutes=10),
        ]
        lead = extract_lead_heuristics(messages)
        assert lead.stage == "negotiation"
        assert lead.values == ["R$ 1.200,00"]
        assert lead.total_value == 1200.0
        assert lead.interest_level == "high"
        assert "Preço considerado alto" in lead.objections
        assert "Vai pensar antes de decidir" in lead.objections
        assert lead.conversion_probability == 0.6
        assert any("plano" in product for product in lead.products)

    def test_empty_conversation(self):
        lead = extract_lead_heuristics([])
        assert lead.stage == "initial_contact"
        assert lead.products == []


class TestMetrics:
    def test_response_times_and_engagement(self):
        messages = [
            _msg(1, "Oi, tudo bem?", minutes=0),
            _msg(2, "Tudo sim", direction=SENT, minutes=10),
            _msg(3, "Qual o preço?", minutes=20),
            _msg(4, "R$ 50,00", direction=SENT, minutes=50),
        ]
        metrics = conversation_metrics(messages, now=datetime(2024, 5, 1, 12, 0))
        assert metrics["response_times"]["avg"] == 20.0
        assert metrics["response_times"]["fastest"] == 10.0
        assert metrics["response_times"]["status"] == "normal"
        assert metrics["engagement"]["response_rate"] == 100.0
        assert metrics["engagement"]["level"] == "high"
        assert metrics["status"]["has_unresponded"] is False
        assert metrics["stats"]["total_messages"] == 4
        assert metrics["timing"]["most_active_day"] == "Quarta"

    def test_unanswered_customer_is_waiting(self):
        messages = [_msg(1, "Alguém aí?", minutes=0)]
        metrics = conversation_metrics(messages, now=datetime(2024, 5, 1, 10, 30))
        assert metrics["status"]["has_unresponded"] is True
        assert metrics["status"]["waiting_minutes"] == 30.0
        assert metrics["engagement"]["response_rate"] == 0.0

    def test_waiting_time_across_utc_offsets(self):
        brt = timezone(timedelta(hours=-3))
        messages = [Message(id="m1", content="Alguém aí?", direction=RECEIVED,
                            timestamp=datetime(2024, 5, 1, 10, 0, tzinfo=brt))]

        metrics = conversation_metrics(messages, now=datetime(2024, 5, 1, 13, 45, tzinfo=timezone.utc))
        assert metrics["status"]["waiting_minutes"] == 45.0

        # A naive clock is local time; it must not blow up on offset timestamps
        metrics = conversation_metrics(messages, now=datetime.now())
        assert metrics["status"]["has_unresponded"] is True

    def test_compression(self):
        compression = compression_metrics("a b c d e f g h i j", "a b")
        assert compression == {
            "original_words": 10,
            "summary_words": 2,
            "rate": 80.0,
            "time_saved_seconds": 2.0,
        }

    def test_compression_of_empty_conversation(self):
        assert compression_metrics("", "resumo")["rate"] == 0.0


class TestTimestamps:
    def test_trailing_z_is_utc(self):
        parsed = parse_timestamp("2024-05-01T13:00:00Z")
        assert parsed == datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)

    def test_offsets_and_naive_values(self):
        assert parse_timestamp("2024-05-01T10:00:00-03:00").utcoffset() == timedelta(hours=-3)
        assert parse_timestamp("2024-05-01T10:00:00").tzinfo is None

    def test_align_to_aware_reference(self):
        brt = timezone(timedelta(hours=-3))
        aligned = align_timezone(datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc), datetime(2024, 1, 1, tzinfo=brt))
        assert aligned == datetime(2024, 5, 1, 10, 0, tzinfo=brt)
        assert aligned.hour == 10

    def test_align_aware_to_naive_reference(self):
        aligned = align_timezone(datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc), datetime(2024, 1, 1))
        assert aligned.tzinfo is None
