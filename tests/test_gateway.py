"""Inference gateway: remote-first selection, local fallback and availability caching."""

import asyncio

import pytest

from config_manager import AnalysisSettings
from exceptions.analysis_exceptions import ProviderUnavailable
from models import LOCAL, REMOTE, SUMMARY, CONVERSATION_KPIS, SENTIMENTS
from providers.base import AnalysisProvider, ProviderResponse
from providers.gateway import InferenceGateway
from providers.local_provider import LocalProvider
from utils.error.error_handler import APIError

from conftest import make_message


class StubProvider(AnalysisProvider):
    """Answers every kind with a fixed dict, or raises a fixed error"""

    def __init__(self, name, data=None, error=None, alive=True):
        self.name = name
        self.data = data or {}
        self.error = error
        self.alive = alive
        self.calls = 0
        self.pings = 0

    async def _answer(self, kind):
        self.calls += 1
        if self.error:
            raise self.error
        return ProviderResponse(self.name, kind, self.data)

    async def summarize(self, messages, context):
        return await self._answer(SUMMARY)

    async def extract_lead_info(self, messages, context):
        raise NotImplementedError

    async def analyze_for_kpis(self, messages):
        return await self._answer(CONVERSATION_KPIS)

    async def analyze_message(self, text):
        return await self._answer("message")

    async def ping(self):
        self.pings += 1
        if isinstance(self.alive, Exception):
            raise self.alive
        return self.alive


class SlowPingProvider(StubProvider):
    async def ping(self):
        await asyncio.sleep(0.01)
        return await super().ping()


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


REMOTE_SUMMARY = {"summary": "Resumo remoto", "sentiment": "positivo", "urgency": 3}
LOCAL_SUMMARY = {"summary": "Resumo local", "sentiment": "neutral", "urgency": 1}


@pytest.fixture
def messages():
    return [make_message(i) for i in range(3)]


async def test_remote_answers_when_available(messages):
    remote = StubProvider(REMOTE, REMOTE_SUMMARY)
    local = StubProvider(LOCAL, LOCAL_SUMMARY)
    gateway = InferenceGateway(local=local, remote=remote)

    payload, provider = await gateway.summarize(messages, {})

    assert provider == REMOTE
    assert payload.summary == "Resumo remoto"
    assert payload.sentiment == "positive"
    assert local.calls == 0


async def test_remote_failure_falls_back_to_local_and_marks_unavailable(messages):
    remote = StubProvider(REMOTE, error=APIError("boom", status_code=503))
    local = StubProvider(LOCAL, LOCAL_SUMMARY)
    clock = FakeClock()
    gateway = InferenceGateway(local=local, remote=remote, clock=clock)

    payload, provider = await gateway.summarize(messages, {})
    assert provider == LOCAL
    assert payload.summary == "Resumo local"

    # Within the TTL the remote provider is neither probed nor called again
    await gateway.summarize(messages, {})
    assert remote.calls == 1
    assert remote.pings == 1
    assert local.calls == 2


async def test_malformed_remote_answer_falls_back(messages):
    remote = StubProvider(REMOTE, {"sentiment": "positivo"})
    local = StubProvider(LOCAL, LOCAL_SUMMARY)
    gateway = InferenceGateway(local=local, remote=remote)

    payload, provider = await gateway.summarize(messages, {})

    assert provider == LOCAL
    assert payload.sentiment in SENTIMENTS


async def test_availability_is_cached_for_ttl():
    remote = StubProvider(REMOTE, REMOTE_SUMMARY)
    clock = FakeClock()
    gateway = InferenceGateway(local=StubProvider(LOCAL), remote=remote,
                               settings=AnalysisSettings(availability_ttl=60.0), clock=clock)

    assert await gateway.available()
    assert await gateway.available()
    assert remote.pings == 1

    clock.now += 61
    assert await gateway.available()
    assert remote.pings == 2


async def test_concurrent_callers_share_one_probe():
    remote = SlowPingProvider(REMOTE, REMOTE_SUMMARY)
    clock = FakeClock()
    gateway = InferenceGateway(local=StubProvider(LOCAL), remote=remote,
                               settings=AnalysisSettings(availability_ttl=60.0), clock=clock)

    answers = await asyncio.gather(*(gateway.available() for _ in range(5)))

    assert answers == [True] * 5
    assert remote.pings == 1

    clock.now += 61
    await asyncio.gather(gateway.available(), gateway.available())
    assert remote.pings == 2


async def test_probe_error_counts_as_unavailable():
    remote = StubProvider(REMOTE, alive=APIError("dns"))
    gateway = InferenceGateway(local=StubProvider(LOCAL), remote=remote)
    assert await gateway.available() is False


async def test_no_remote_configured():
    gateway = InferenceGateway(local=StubProvider(LOCAL, LOCAL_SUMMARY))
    assert await gateway.available() is False
    _, provider = await gateway.summarize([make_message(1)], {})
    assert provider == LOCAL


async def test_every_provider_failing_raises_provider_unavailable(messages):
    remote = StubProvider(REMOTE, error=APIError("down"))
    local = StubProvider(LOCAL, {"sentiment": "neutral"})
    gateway = InferenceGateway(local=local, remote=remote)

    with pytest.raises(ProviderUnavailable):
        await gateway.summarize(messages, {})


async def test_local_provider_output_is_canonical_without_models():
    gateway = InferenceGateway(local=LocalProvider())
    messages = [
        make_message(1, "Urgente! O motor não funciona, preciso de ajuda hoje"),
        make_message(2, "Vamos verificar", direction="sent"),
        make_message(3, "Quanto fica o conserto? R$ 800,00 à vista?"),
    ]

    summary, provider = await gateway.summarize(messages, {"contact_name": "Maria"})
    kpis, _ = await gateway.analyze_for_kpis(messages)
    lead, _ = await gateway.extract_lead_info(messages, {})
    analysis, _ = await gateway.analyze_message(messages[0].content)

    assert provider == LOCAL
    assert summary.summary.startswith("Conversa com 3 mensagens")
    assert summary.sentiment in SENTIMENTS
    assert 0 <= kpis.urgency <= 10
    assert kpis.extracted_values == ["800.00"]
    assert "à vista" in kpis.extracted_conditions
    assert lead.stage == "negotiation"
    assert analysis.is_urgent
    assert analysis.category == "suporte"
