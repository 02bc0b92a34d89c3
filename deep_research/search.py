"""Search strategies.

Primary: Tavily (managed search API, used when a search key is configured
and the provider has no native search).
Native: Gemini's Google Search grounding tool.
Fallback: the model's own knowledge, cited as a single synthetic source.

Every strategy returns a ``SearchResult``. Failures degrade to an empty
result so one bad query never stops a report.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from .errors import ProviderHttpError
from .models import ProviderKind, ProviderSettings, SearchResult, Source
from .prompts import GROUNDED_SEARCH_PROMPT, KNOWLEDGE_SEARCH_PROMPT, KNOWLEDGE_SEARCH_SYSTEM
from .providers import LLMProvider

logger = logging.getLogger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
TAVILY_MAX_RESULTS = 5

KNOWLEDGE_SOURCE = Source(title="AI internal knowledge", uri="#ai-generated")


class SearchClient(ABC):
    name: str = "base"

    @abstractmethod
    async def search(self, query: str, model: str) -> SearchResult:
        """Return a summary of what is known about *query* and the sources behind it."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


# ── response normalisers ────────────────────────────────────────────

def _dedupe(sources: List[Source]) -> List[Source]:
    seen = set()
    unique: List[Source] = []
    for s in sources:
        if s.uri not in seen:
            seen.add(s.uri)
            unique.append(s)
    return unique


def _normalise_tavily_response(data: Dict[str, Any]) -> SearchResult:
    results = [r for r in (data.get("results") or []) if isinstance(r, dict)]

    summary = (data.get("answer") or "").strip()
    if not summary:
        summary = "\n\n".join(
            str(r.get("content") or "").strip() for r in results if r.get("content")
        )

    sources: List[Source] = []
    for r in results:
        url = str(r.get("url") or "").strip()
        if not url:
            continue
        title = str(r.get("title") or "").strip() or url
        sources.append(Source(title=title, uri=url))

    return SearchResult(summary=summary, sources=_dedupe(sources))


# ── strategies ──────────────────────────────────────────────────────

class TavilySearch(SearchClient):
    name = "tavily"

    def __init__(
        self,
        api_key: str,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout if timeout and timeout > 0 else None
        self._client = http_client

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(TAVILY_SEARCH_URL, json=payload)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(TAVILY_SEARCH_URL, json=payload)

    async def search(self, query: str, model: str) -> SearchResult:
        payload = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": "basic",
            "include_answer": True,
            "max_results": TAVILY_MAX_RESULTS,
        }
        try:
            response = await self._post(payload)
            if not response.is_success:
                raise ProviderHttpError(response.status_code, response.text)
            result = _normalise_tavily_response(response.json())
        except Exception as exc:
            logger.warning("Tavily search failed for '%s': %s", query[:60], exc)
            return SearchResult()

        logger.info("Tavily → %d sources for '%s'", len(result.sources), query[:60])
        return result


class GroundedSearch(SearchClient):
    """Search through the provider's own grounded-search tool."""

    name = "grounded"

    def __init__(self, provider: LLMProvider, language: str = "English"):
        if not provider.supports_native_search:
            raise ValueError(f"{provider!r} has no native search tool")
        self.provider = provider
        self.language = language

    async def search(self, query: str, model: str) -> SearchResult:
        prompt = GROUNDED_SEARCH_PROMPT.format(query=query, language=self.language)
        try:
            generation, sources = await self.provider.generate_with_search(prompt, model)
        except Exception as exc:
            logger.warning("Grounded search failed for '%s': %s", query[:60], exc)
            return SearchResult()

        logger.info("Grounded search → %d sources for '%s'", len(sources), query[:60])
        return SearchResult(summary=generation.text, sources=_dedupe(sources), usage=generation.usage)


class KnowledgeSearch(SearchClient):
    """No search capability: ask the model what it already knows."""

    name = "knowledge"

    def __init__(self, provider: LLMProvider, language: str = "English"):
        self.provider = provider
        self.language = language

    async def search(self, query: str, model: str) -> SearchResult:
        prompt = KNOWLEDGE_SEARCH_PROMPT.format(query=query, language=self.language)
        try:
            generation = await self.provider.generate(prompt, model, system_instruction=KNOWLEDGE_SEARCH_SYSTEM)
        except Exception as exc:
            logger.warning("Knowledge fallback failed for '%s': %s", query[:60], exc)
            return SearchResult()

        return SearchResult(summary=generation.text, sources=[KNOWLEDGE_SOURCE], usage=generation.usage)


def select_search_client(
    settings: ProviderSettings,
    provider: LLMProvider,
    language: str = "English",
    timeout: Optional[float] = None,
) -> SearchClient:
    """Pick the search strategy once per run.

    Tavily when a search key is set and the provider cannot search natively;
    native grounding for Gemini; model knowledge otherwise.
    """
    if settings.search_api_key and settings.provider != ProviderKind.GEMINI:
        return TavilySearch(settings.search_api_key, timeout=timeout)
    if settings.provider == ProviderKind.GEMINI and provider.supports_native_search:
        return GroundedSearch(provider, language=language)
    return KnowledgeSearch(provider, language=language)
