# src/llm/adapters/openai_adapter.py — v2
"""OpenAI GPT adapter implementing BaseLLMClient.

Uses the official openai SDK. Streaming requests usage in the last chunk
via ``stream_options``.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Any

from storyloom.llm.base_client import BaseLLMClient
from storyloom.llm.models import LLMResponse, LLMStreamChunk, Message


class OpenAIAdapter(BaseLLMClient):
    """OpenAI GPT adapter."""

    def __init__(self, model: str = "gpt-4o", api_key: str = "", **kwargs: Any):
        self._model = model
        self._api_key = api_key

    def _request(
        self, messages: list[Message], system: str | None, max_tokens: int, temperature: float,
    ) -> tuple[Any, dict[str, Any]]:
        import openai

        client = openai.AsyncOpenAI(api_key=self._api_key)
        oai_messages: list[dict[str, Any]] = []
        if system:
            oai_messages.append({"role": "system", "content": system})
        for m in messages:
            oai_messages.append({"role": m.role, "content": m.content})

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": oai_messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        return client, kwargs

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> LLMResponse:
        client, kwargs = self._request(messages, system, max_tokens, temperature)

        t0 = time.monotonic()
        resp = await client.chat.completions.create(**kwargs)
        latency = int((time.monotonic() - t0) * 1000)

        choice = resp.choices[0]
        usage = resp.usage
        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
            provider="openai",
            latency_ms=latency,
            raw_response=resp,
        )

    async def stream(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> AsyncIterator[LLMStreamChunk]:
        client, kwargs = self._request(messages, system, max_tokens, temperature)
        resp = await client.chat.completions.create(
            **kwargs, stream=True, stream_options={"include_usage": True},
        )

        input_tokens = output_tokens = 0
        async for chunk in resp:
            if chunk.usage:
                input_tokens = chunk.usage.prompt_tokens
                output_tokens = chunk.usage.completion_tokens
            if chunk.choices:
                delta = chunk.choices[0].delta.content
                if delta:
                    yield LLMStreamChunk(delta=delta)

        yield LLMStreamChunk(done=True, input_tokens=input_tokens, output_tokens=output_tokens)

    @property
    def provider_name(self) -> str:
        return "openai"
