"""Tests for provider construction and the two provider implementations."""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from deep_research.errors import ConfigurationError, ProviderHttpError
from deep_research.models import Generation, ProviderKind, ProviderSettings, Source
from deep_research.providers import LLMProvider, get_provider, list_providers
from deep_research.providers.gemini_provider import GeminiProvider
from deep_research.providers.openai_provider import OpenAIProvider


def chat_completion(content, total_tokens=42):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-4o",
        "choices": [
            {"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": content}}
        ],
        "usage": {"prompt_tokens": 30, "completion_tokens": 12, "total_tokens": total_tokens},
    }


class TestRegistry:
    def test_empty_key_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            get_provider(ProviderSettings(provider=ProviderKind.OPENAI, api_key=""))

    def test_builds_openai_provider(self):
        provider = get_provider(ProviderSettings(provider=ProviderKind.OPENAI, api_key="sk-test"))
        assert isinstance(provider, OpenAIProvider)
        assert provider.supports_native_search is False

    def test_lists_supported_providers(self):
        assert list_providers() == ["gemini", "openai"]


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_request_shape_and_usage(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=chat_completion('{"ok": true}'))

        provider = OpenAIProvider(
            api_key="sk-test",
            base_url="https://gateway.example/v1/",
            temperature=0.2,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        generation = await provider.generate("prompt", "gpt-4o", system_instruction="sys", json_mode=True)

        assert generation == Generation(text='{"ok": true}', usage=42)
        assert seen["url"] == "https://gateway.example/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "prompt"},
        ]
        assert seen["body"]["temperature"] == 0.2
        assert seen["body"]["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_non_success_raises_provider_http_error_once(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, json={"error": {"message": "quota exceeded"}})

        provider = OpenAIProvider(
            api_key="sk-test",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        with pytest.raises(ProviderHttpError) as info:
            await provider.generate("prompt", "gpt-4o")

        assert info.value.status_code == 429
        assert "quota exceeded" in info.value.body
        assert len(calls) == 1

    def test_requires_key(self):
        with pytest.raises(ConfigurationError):
            OpenAIProvider(api_key="")


def gemini_response(text="hello", tokens=15, chunks=None):
    metadata = SimpleNamespace(grounding_chunks=chunks) if chunks is not None else None
    return SimpleNamespace(
        text=text,
        usage_metadata=SimpleNamespace(total_token_count=tokens),
        candidates=[SimpleNamespace(grounding_metadata=metadata)],
    )


def fake_genai_client(response):
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=response)
    return client


class TestGeminiProvider:
    @pytest.mark.asyncio
    async def test_generate_json_mode(self):
        client = fake_genai_client(gemini_response(text='{"a": 1}', tokens=21))
        provider = GeminiProvider(api_key="g-key", client=client)

        generation = await provider.generate("p", "gemini-2.5-flash", system_instruction="sys", json_mode=True)

        assert generation == Generation(text='{"a": 1}', usage=21)
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert kwargs["contents"] == "p"
        assert kwargs["config"].response_mime_type == "application/json"
        assert kwargs["config"].system_instruction == "sys"

    @pytest.mark.asyncio
    async def test_grounded_generation_keeps_complete_chunks(self):
        chunks = [
            SimpleNamespace(web=SimpleNamespace(uri="https://a", title="A")),
            SimpleNamespace(web=SimpleNamespace(uri="https://b", title=None)),
            SimpleNamespace(web=None),
        ]
        client = fake_genai_client(gemini_response(text="found", chunks=chunks))
        provider = GeminiProvider(api_key="g-key", client=client)

        generation, sources = await provider.generate_with_search("p", "gemini-2.5-flash")

        assert generation.text == "found"
        assert sources == [Source(title="A", uri="https://a")]
        config = client.aio.models.generate_content.call_args.kwargs["config"]
        assert config.tools[0].google_search is not None

    @pytest.mark.asyncio
    async def test_missing_usage_counts_as_zero(self):
        response = SimpleNamespace(text=None, usage_metadata=None, candidates=[])
        provider = GeminiProvider(api_key="g-key", client=fake_genai_client(response))

        generation = await provider.generate("p", "m")

        assert generation == Generation(text="", usage=0)

    def test_requires_key(self):
        with pytest.raises(ConfigurationError):
            GeminiProvider(api_key="")


class SlowProvider(LLMProvider):
    async def _generate(self, prompt, model, system_instruction=None, json_mode=False):
        await asyncio.sleep(1)
        return Generation(text="late")


class TestTimeout:
    @pytest.mark.asyncio
    async def test_call_is_bounded(self):
        with pytest.raises(asyncio.TimeoutError):
            await SlowProvider(timeout=0.01).generate("p", "m")

    def test_non_positive_timeout_disables_bound(self):
        assert SlowProvider(timeout=0).timeout is None
