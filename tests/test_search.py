"""Tests for the search strategies and their selection."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from deep_research.models import Generation, ProviderKind, ProviderSettings, Source
from deep_research.search import (
    KNOWLEDGE_SOURCE,
    TAVILY_SEARCH_URL,
    GroundedSearch,
    KnowledgeSearch,
    TavilySearch,
    select_search_client,
)


def tavily_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestTavilySearch:
    @pytest.mark.asyncio
    async def test_answer_and_sources(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "answer": "Lithium prices fell.",
                "results": [
                    {"title": "Report", "url": "https://a.org", "content": "..."},
                    {"title": "", "url": "https://b.org", "content": "..."},
                    {"title": "Dup", "url": "https://a.org"},
                    {"title": "No url"},
                ],
            })

        search = TavilySearch("tv-key", http_client=tavily_client(handler))
        result = await search.search("lithium prices", "any-model")

        assert seen["url"] == TAVILY_SEARCH_URL
        assert seen["body"]["api_key"] == "tv-key"
        assert seen["body"]["query"] == "lithium prices"
        assert seen["body"]["include_answer"] is True
        assert result.summary == "Lithium prices fell."
        assert result.sources == [
            Source(title="Report", uri="https://a.org"),
            Source(title="https://b.org", uri="https://b.org"),
        ]
        assert result.usage == 0

    @pytest.mark.asyncio
    async def test_summary_from_contents_without_answer(self):
        def handler(request):
            return httpx.Response(200, json={"results": [
                {"title": "A", "url": "https://a", "content": "first"},
                {"title": "B", "url": "https://b", "content": "second"},
            ]})

        result = await TavilySearch("k", http_client=tavily_client(handler)).search("q", "m")

        assert result.summary == "first\n\nsecond"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 429, 500])
    async def test_http_error_degrades_to_empty(self, status):
        def handler(request):
            return httpx.Response(status, text="nope")

        result = await TavilySearch("k", http_client=tavily_client(handler)).search("q", "m")

        assert result.summary == ""
        assert result.sources == []

    @pytest.mark.asyncio
    async def test_network_error_degrades_to_empty(self):
        def handler(request):
            raise httpx.ConnectError("offline")

        result = await TavilySearch("k", http_client=tavily_client(handler)).search("q", "m")

        assert result.sources == []


class FakeGroundedProvider:
    supports_native_search = True

    def __init__(self, sources=None, error=None):
        self.generate_with_search = AsyncMock()
        if error is not None:
            self.generate_with_search.side_effect = error
        else:
            self.generate_with_search.return_value = (Generation(text="grounded", usage=12), sources or [])


class TestGroundedSearch:
    @pytest.mark.asyncio
    async def test_returns_grounding_citations(self):
        sources = [Source(title="A", uri="https://a"), Source(title="A2", uri="https://a")]
        search = GroundedSearch(FakeGroundedProvider(sources=sources), language="French")

        result = await search.search("q", "gemini-2.5-flash")

        assert result.summary == "grounded"
        assert result.sources == [Source(title="A", uri="https://a")]
        assert result.usage == 12
        prompt = search.provider.generate_with_search.call_args.args[0]
        assert "in French" in prompt

    @pytest.mark.asyncio
    async def test_failure_degrades_to_empty(self):
        search = GroundedSearch(FakeGroundedProvider(error=RuntimeError("blocked")))

        result = await search.search("q", "m")

        assert result.summary == ""
        assert result.sources == []

    def test_requires_native_search(self):
        provider = AsyncMock()
        provider.supports_native_search = False
        with pytest.raises(ValueError):
            GroundedSearch(provider)


class TestKnowledgeSearch:
    @pytest.mark.asyncio
    async def test_cites_synthetic_source(self):
        provider = AsyncMock()
        provider.generate.return_value = Generation(text="what I know", usage=9)

        result = await KnowledgeSearch(provider).search("q", "m")

        assert result.summary == "what I know"
        assert result.sources == [KNOWLEDGE_SOURCE]
        assert KNOWLEDGE_SOURCE.uri == "#ai-generated"
        assert result.usage == 9

    @pytest.mark.asyncio
    async def test_failure_degrades_to_empty(self):
        provider = AsyncMock()
        provider.generate.side_effect = RuntimeError("down")

        result = await KnowledgeSearch(provider).search("q", "m")

        assert result.sources == []


class TestSelection:
    def _provider(self, native):
        provider = AsyncMock()
        provider.supports_native_search = native
        return provider

    def test_tavily_for_openai_with_search_key(self):
        settings = ProviderSettings(provider=ProviderKind.OPENAI, api_key="k", search_api_key="tv")
        assert isinstance(select_search_client(settings, self._provider(False)), TavilySearch)

    def test_gemini_prefers_native_grounding(self):
        settings = ProviderSettings(provider=ProviderKind.GEMINI, api_key="k", search_api_key="tv")
        assert isinstance(select_search_client(settings, self._provider(True)), GroundedSearch)

    def test_knowledge_fallback_without_key(self):
        settings = ProviderSettings(provider=ProviderKind.OPENAI, api_key="k")
        assert isinstance(select_search_client(settings, self._provider(False)), KnowledgeSearch)
