"""Google Gemini provider via the google-genai SDK.

This is the only provider with a native grounded-search tool, so the
search layer uses it directly when Gemini is the configured provider.
"""

import logging
from typing import List, Optional, Tuple

from google import genai
from google.genai import types

from ..errors import ConfigurationError
from ..models import Generation, Source
from .base import LLMProvider

logger = logging.getLogger(__name__)


def _usage(response) -> int:
    metadata = getattr(response, "usage_metadata", None)
    return getattr(metadata, "total_token_count", None) or 0


def _grounding_sources(response) -> List[Source]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    sources: List[Source] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        title = getattr(web, "title", None)
        if uri and title:
            sources.append(Source(title=title, uri=uri))
    return sources


class GeminiProvider(LLMProvider):
    name = "gemini"
    supports_native_search = True

    def __init__(self, api_key: str, base_url: str = "", timeout: Optional[float] = None, client=None):
        super().__init__(timeout=timeout)
        if not api_key:
            raise ConfigurationError(
                "An API key is required for the Gemini provider. "
                "Get one at https://aistudio.google.com/apikey"
            )
        if client is None:
            http_options = types.HttpOptions(base_url=base_url) if base_url else None
            client = genai.Client(api_key=api_key, http_options=http_options)
        self.client = client

    async def _generate(
        self,
        prompt: str,
        model: str,
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
    ) -> Generation:
        config = types.GenerateContentConfig(
            system_instruction=system_instruction or None,
            response_mime_type="application/json" if json_mode else None,
        )
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=config,
        )
        return Generation(text=response.text or "", usage=_usage(response))

    async def generate_with_search(self, prompt: str, model: str) -> Tuple[Generation, List[Source]]:
        """Generate with the Google Search tool enabled; returns text and grounding citations."""
        config = types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())],
        )
        response = await self._bounded(
            self.client.aio.models.generate_content(model=model, contents=prompt, config=config)
        )
        sources = _grounding_sources(response)
        logger.debug("Grounded generation returned %d citations", len(sources))
        return Generation(text=response.text or "", usage=_usage(response)), sources
