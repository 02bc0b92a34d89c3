"""Centralised configuration.

Provider, model and pacing are driven by environment variables. The
resulting ``ProviderSettings`` value is passed explicitly into every
pipeline call; nothing below is consulted once a run has started.

Env vars
--------
LLM_PROVIDER             gemini (hosted API with native search) / openai (any OpenAI-compatible endpoint)
LLM_MODEL                Model id (auto-selected per provider if empty)
LLM_API_KEY              Key for the selected provider (falls back to GEMINI_API_KEY / OPENAI_API_KEY)
LLM_BASE_URL             Custom endpoint (OpenAI-compatible gateways, Gemini proxies)
LLM_TEMPERATURE          Sampling temperature for the OpenAI-compatible provider

TAVILY_API_KEY           Managed web search (used unless the provider searches natively)

REPORT_LANGUAGE          Language every prompt asks the model to write in
SEARCH_DELAY_SECONDS     Pause before each search call
REQUEST_TIMEOUT_SECONDS  Per-call timeout for provider and search calls (0 disables)
HISTORY_PATH             Local history file
HISTORY_LIMIT            Number of results kept in history
CITATION_REPAIR          Strip citation markers that point outside a chapter's sources
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .errors import ConfigurationError
from .models import DEFAULT_MODELS, Depth, ProviderKind, ProviderSettings

load_dotenv()

AVAILABLE_MODELS: Dict[str, list] = {
    "gemini": ["gemini-2.5-flash", "gemini-2.5-pro", "gemini-3-pro-preview"],
    "openai": ["gpt-4o", "gpt-4o-mini", "gpt-4.1", "o3-mini"],
}
API_KEY_VARS: Dict[str, str] = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
}

# depth -> target chapter count
CHAPTER_COUNTS: Dict[int, int] = {
    Depth.BRIEF: 4,
    Depth.STANDARD: 6,
    Depth.DEEP: 10,
}
QUERIES_PER_CHAPTER = 3
FINDINGS_WINDOW = 3
FINDINGS_TRUNCATE = 1000

DEFAULT_HISTORY_PATH = Path.home() / ".deep_research" / "history.json"


def chapter_count(depth: int) -> int:
    """Target chapter count for *depth*, clamped to the defined depths."""
    depth = max(min(int(depth), max(CHAPTER_COUNTS)), min(CHAPTER_COUNTS))
    return CHAPTER_COUNTS[depth]


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    provider: str = "gemini"
    model: str = ""
    api_key: str = ""
    base_url: str = ""
    search_api_key: str = ""
    language: str = "English"
    temperature: float = 0.7
    search_delay: float = 0.3
    request_timeout: float = 120.0
    history_path: Path = DEFAULT_HISTORY_PATH
    history_limit: int = 50
    repair_citations: bool = False

    def provider_settings(self, overrides: Optional[Dict[str, Any]] = None) -> ProviderSettings:
        """Settings from the environment, with any non-empty *overrides* applied.

        Switching provider without naming a model or key picks that
        provider's default model and its own key variable.
        """
        try:
            kind = ProviderKind(self.provider)
        except ValueError:
            raise ConfigurationError(
                f"Unknown provider: '{self.provider}'. Supported: gemini, openai"
            ) from None
        base = ProviderSettings(
            provider=kind,
            api_key=self.api_key,
            base_url=self.base_url,
            model=self.model or DEFAULT_MODELS.get(self.provider, ""),
            search_api_key=self.search_api_key,
        )

        overrides = {k: v for k, v in (overrides or {}).items() if v not in (None, "")}
        if not overrides:
            return base
        try:
            requested = ProviderSettings.model_validate(overrides)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid provider settings: {exc.errors()[0]['msg']}") from None

        update = {field: getattr(requested, field) for field in requested.model_fields_set}
        if "provider" in update and requested.provider != base.provider:
            update.setdefault("model", "")
            update.setdefault("api_key", os.getenv(API_KEY_VARS[requested.provider.value], ""))
        return base.model_copy(update=update)


def load_config() -> AppConfig:
    provider = os.getenv("LLM_PROVIDER", "gemini").strip().lower()
    api_key = os.getenv("LLM_API_KEY") or os.getenv(API_KEY_VARS.get(provider, ""), "")

    return AppConfig(
        provider=provider,
        model=os.getenv("LLM_MODEL", DEFAULT_MODELS.get(provider, "")),
        api_key=api_key,
        base_url=os.getenv("LLM_BASE_URL", ""),
        search_api_key=os.getenv("TAVILY_API_KEY", ""),
        language=os.getenv("REPORT_LANGUAGE", "English"),
        temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
        search_delay=float(os.getenv("SEARCH_DELAY_SECONDS", "0.3")),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "120")),
        history_path=Path(os.getenv("HISTORY_PATH", str(DEFAULT_HISTORY_PATH))).expanduser(),
        history_limit=int(os.getenv("HISTORY_LIMIT", "50")),
        repair_citations=_flag(os.getenv("CITATION_REPAIR")),
    )


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> AppConfig:
    global _config
    _config = load_config()
    return _config
