# src/llm/adapters/ollama_adapter.py — v2
"""Ollama local LLM adapter implementing BaseLLMClient.

Uses the ollama Python SDK.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Any

from storyloom.llm.base_client import BaseLLMClient
from storyloom.llm.models import LLMResponse, LLMStreamChunk, Message


class OllamaAdapter(BaseLLMClient):
    """Ollama local inference adapter."""

    def __init__(
        self, model: str = "qwen2.5", base_url: str = "http://localhost:11434", **kwargs: Any,
    ):
        self._model = model
        self._host = base_url

    def _request(
        self, messages: list[Message], system: str | None, max_tokens: int, temperature: float,
    ) -> tuple[Any, dict[str, Any]]:
        import ollama

        client = ollama.AsyncClient(host=self._host)
        msgs: list[dict[str, str]] = []
        if system:
            msgs.append({"role": "system", "content": system})
        for m in messages:
            msgs.append({"role": m.role, "content": m.content})

        options: dict[str, Any] = {
            "num_predict": max_tokens,
            "temperature": temperature,
        }
        return client, {"model": self._model, "messages": msgs, "options": options}

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> LLMResponse:
        client, kwargs = self._request(messages, system, max_tokens, temperature)

        t0 = time.monotonic()
        resp = await client.chat(**kwargs)
        latency = int((time.monotonic() - t0) * 1000)

        return LLMResponse(
            content=resp["message"]["content"],
            input_tokens=resp.get("prompt_eval_count", 0) or 0,
            output_tokens=resp.get("eval_count", 0) or 0,
            model=self._model,
            provider="ollama",
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

        input_tokens = output_tokens = 0
        async for part in await client.chat(**kwargs, stream=True):
            delta = part["message"]["content"]
            if delta:
                yield LLMStreamChunk(delta=delta)
            if part.get("done"):
                input_tokens = part.get("prompt_eval_count", 0) or 0
                output_tokens = part.get("eval_count", 0) or 0

        yield LLMStreamChunk(done=True, input_tokens=input_tokens, output_tokens=output_tokens)

    @property
    def provider_name(self) -> str:
        return "ollama"
