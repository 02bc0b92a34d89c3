"""LLM provider registry.

Supported providers:
  - gemini  (Google Gemini via google-genai, with native grounded search)
  - openai  (any OpenAI-compatible chat-completions endpoint)

A fresh provider is built for every run from that run's settings, so no
client state carries over between runs.
"""

from typing import Optional

from ..errors import ConfigurationError
from ..models import ProviderKind, ProviderSettings
from .base import LLMProvider


def get_provider(
    settings: ProviderSettings,
    temperature: float = 0.7,
    timeout: Optional[float] = None,
) -> LLMProvider:
    """Build the provider selected by *settings*."""
    if not settings.api_key:
        raise ConfigurationError("Configure an API key in the provider settings first.")

    if settings.provider == ProviderKind.GEMINI:
        from .gemini_provider import GeminiProvider
        return GeminiProvider(api_key=settings.api_key, base_url=settings.base_url, timeout=timeout)
    if settings.provider == ProviderKind.OPENAI:
        from .openai_provider import OpenAIProvider
        return OpenAIProvider(
            api_key=settings.api_key,
            base_url=settings.base_url,
            temperature=temperature,
            timeout=timeout,
        )
    raise ConfigurationError(
        f"Unknown provider: '{settings.provider}'. Supported: gemini, openai"
    )


def list_providers() -> list:
    return [kind.value for kind in ProviderKind]


__all__ = ["LLMProvider", "get_provider", "list_providers"]
