"""OpenAI-compatible provider.

Talks to ``{base_url}/chat/completions`` with a bearer token, so it works
against OpenAI itself and any gateway that speaks the same protocol.
The SDK's automatic retries are disabled: a failed call fails once.
"""

from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from ..errors import ConfigurationError, ProviderHttpError
from ..models import Generation
from .base import LLMProvider

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: str = "",
        temperature: float = 0.7,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout)
        if not api_key:
            raise ConfigurationError(
                "An API key is required for the OpenAI-compatible provider. "
                "Get one at https://platform.openai.com/api-keys"
            )
        self.temperature = temperature
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=(base_url or DEFAULT_BASE_URL).rstrip("/"),
            max_retries=0,
            http_client=http_client,
        )

    async def _generate(
        self,
        prompt: str,
        model: str,
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
    ) -> Generation:
        messages: List[Dict[str, str]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIStatusError as exc:
            raise ProviderHttpError(exc.status_code, exc.response.text) from exc

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        usage = response.usage.total_tokens if response.usage else 0
        return Generation(text=content, usage=usage or 0)
