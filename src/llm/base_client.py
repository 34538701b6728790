# src/llm/base_client.py — v2
"""Abstract LLM client interface: one-shot completion and delta streaming."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from storyloom.llm.models import LLMResponse, LLMStreamChunk, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Text completion."""

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> AsyncIterator[LLMStreamChunk]:
        """Streamed completion.

        Yields content chunks in order, then exactly one ``done`` chunk
        carrying usage. Closing the iterator early aborts the upstream call.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (google, anthropic, openai, ollama)."""

    @property
    def model_name(self) -> str:
        return getattr(self, "_model", "")
