"""DeepSeek client and remote provider tests with the SDK call mocked out."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from api.clients.deepseek_client import DeepSeekClient
from exceptions.analysis_exceptions import MalformedProviderResponse
from models import REMOTE, SUMMARY, CONVERSATION_KPIS
from providers.remote_provider import RemoteProvider
from utils.error.error_handler import APIError

from conftest import make_message

REQUEST = httpx.Request("POST", "https://api.deepseek.com/chat/completions")


def _completion(content, prompt_tokens=10, completion_tokens=5):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens,
                              total_tokens=prompt_tokens + completion_tokens),
    )


@pytest.fixture
def client():
    client = DeepSeekClient(api_key="test-key", max_retries=2, rate_limit_rpm=60000)
    client.client = MagicMock()
    client.client.chat.completions.create = AsyncMock()
    client.client.close = AsyncMock()
    return client


class TestParseJsonResponse:
    def test_code_fences_and_prose_are_tolerated(self):
        text = 'Claro! Segue:\n```json\n{"summary": "ok", "urgency": 3}\n```'
        assert DeepSeekClient.parse_json_response(text) == {"summary": "ok", "urgency": 3}

    def test_no_json_object(self):
        with pytest.raises(MalformedProviderResponse):
            DeepSeekClient.parse_json_response("Não consegui analisar")

    def test_broken_json(self):
        with pytest.raises(MalformedProviderResponse):
            DeepSeekClient.parse_json_response('{"summary": "ok",}')


class TestCompleteJson:
    async def test_returns_parsed_object_and_records_usage(self, client):
        client.client.chat.completions.create.return_value = _completion('{"sentiment": "positivo"}')

        data = await client.complete_json("system", "user", timeout=5)

        assert data == {"sentiment": "positivo"}
        assert client.token_usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
        kwargs = client.client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "deepseek-chat"
        assert kwargs["timeout"] == 5
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}

    async def test_connection_error_becomes_api_error(self, client):
        client.client.chat.completions.create.side_effect = openai.APIConnectionError(request=REQUEST)

        with pytest.raises(APIError):
            await client.complete_json("system", "user")

    async def test_server_error_keeps_status_code(self, client):
        response = httpx.Response(500, request=REQUEST)
        client.client.chat.completions.create.side_effect = openai.InternalServerError(
            "upstream failure", response=response, body=None
        )

        with pytest.raises(APIError) as excinfo:
            await client.complete_json("system", "user")
        assert excinfo.value.status_code == 500

    async def test_rate_limit_is_retried(self, client):
        response = httpx.Response(429, request=REQUEST)
        client.client.chat.completions.create.side_effect = [
            openai.RateLimitError("slow down", response=response, body=None),
            _completion('{"category": "vendas"}'),
        ]

        data = await client.complete_json("system", "user")

        assert data == {"category": "vendas"}
        assert client.client.chat.completions.create.await_count == 2

    async def test_empty_completion_is_malformed(self, client):
        client.client.chat.completions.create.return_value = _completion("")

        with pytest.raises(MalformedProviderResponse):
            await client.complete_json("system", "user")

    async def test_ping(self, client):
        client.client.chat.completions.create.return_value = _completion("p")
        assert await client.ping() is True

        client.client.chat.completions.create.side_effect = openai.APIConnectionError(request=REQUEST)
        assert await client.ping() is False


class TestRemoteProvider:
    async def test_summary_prompt_carries_context_and_audio_placeholder(self):
        deepseek = MagicMock()
        deepseek.complete_json = AsyncMock(return_value={"summary": "Resumo"})
        provider = RemoteProvider(deepseek)
        messages = [
            make_message(1, "Quero um orçamento"),
            make_message(2, content="", type="audio", media_url="a.ogg"),
        ]

        response = await provider.summarize(messages, {
            "contact_name": "Maria",
            "period_start": messages[0].timestamp,
            "period_end": messages[-1].timestamp,
        })

        assert response.provider == REMOTE
        assert response.kind == SUMMARY
        prompt = deepseek.complete_json.await_args[0][1]
        assert "Contato: Maria" in prompt
        assert "01/05/2024 10:01 a 01/05/2024 10:02" in prompt
        assert "Cliente: Quero um orçamento" in prompt
        assert "[Áudio sem transcrição]" in prompt

    async def test_kpi_prompt_uses_recent_messages(self):
        deepseek = MagicMock()
        deepseek.complete_json = AsyncMock(return_value={"sentiment": "neutral"})
        provider = RemoteProvider(deepseek)
        messages = [make_message(i, content=f"texto {i}") for i in range(60)]

        response = await provider.analyze_for_kpis(messages)

        prompt = deepseek.complete_json.await_args[0][1]
        assert response.kind == CONVERSATION_KPIS
        assert "texto 59" in prompt
        assert "texto 9\n" not in prompt
        assert "texto 10" in prompt
