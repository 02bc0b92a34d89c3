"""Abstract base class for LLM providers."""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Optional, TypeVar

from ..models import Generation

T = TypeVar("T")


class LLMProvider(ABC):
    """Base class for all LLM providers.

    Every provider takes a single user prompt plus an optional system
    instruction and returns a ``Generation`` (text + total token usage).
    Failures propagate; callers decide whether to fall back.
    """

    name: str = "base"
    supports_native_search: bool = False

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout and timeout > 0 else None

    async def generate(
        self,
        prompt: str,
        model: str,
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
    ) -> Generation:
        """Run one generation call, bounded by the configured timeout."""
        return await self._bounded(
            self._generate(prompt, model, system_instruction=system_instruction, json_mode=json_mode)
        )

    async def _bounded(self, call: Awaitable[T]) -> T:
        if self.timeout is None:
            return await call
        return await asyncio.wait_for(call, self.timeout)

    @abstractmethod
    async def _generate(
        self,
        prompt: str,
        model: str,
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
    ) -> Generation:
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
