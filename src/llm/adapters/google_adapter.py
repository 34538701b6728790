# src/llm/adapters/google_adapter.py — v3
"""Google Gemini adapter implementing BaseLLMClient.

Uses the google-generativeai SDK, imported on first call.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Any

from storyloom.llm.base_client import BaseLLMClient
from storyloom.llm.models import LLMResponse, LLMStreamChunk, Message


class GoogleAdapter(BaseLLMClient):
    """Google Gemini adapter."""

    def __init__(self, model: str = "gemini-1.5-flash", api_key: str = "", **kwargs: Any):
        self._model = model
        self._api_key = api_key

    def _model_for(self, system: str | None) -> Any:
        import google.generativeai as genai

        genai.configure(api_key=self._api_key)
        return genai.GenerativeModel(self._model, system_instruction=system)

    @staticmethod
    def _contents(messages: list[Message]) -> list[dict[str, Any]]:
        # Gemini names the assistant role "model"
        return [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages
        ]

    @staticmethod
    def _text(resp: Any) -> str:
        # ``.text`` raises ValueError when a response carries no parts
        # (safety block, or a usage-only trailing chunk)
        if not getattr(resp, "parts", None):
            return ""
        return resp.text or ""

    @staticmethod
    def _usage(resp: Any) -> tuple[int, int]:
        usage = getattr(resp, "usage_metadata", None)
        if not usage:
            return 0, 0
        return (
            getattr(usage, "prompt_token_count", 0) or 0,
            getattr(usage, "candidates_token_count", 0) or 0,
        )

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> LLMResponse:
        model = self._model_for(system)
        gen_config = {"max_output_tokens": max_tokens, "temperature": temperature}

        t0 = time.monotonic()
        resp = await model.generate_content_async(
            self._contents(messages), generation_config=gen_config,
        )
        latency = int((time.monotonic() - t0) * 1000)

        input_tokens, output_tokens = self._usage(resp)
        return LLMResponse(
            content=self._text(resp),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=self._model,
            provider="google",
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
        model = self._model_for(system)
        gen_config = {"max_output_tokens": max_tokens, "temperature": temperature}

        resp = await model.generate_content_async(
            self._contents(messages), generation_config=gen_config, stream=True,
        )
        last: Any = None
        async for chunk in resp:
            last = chunk
            text = self._text(chunk)
            if text:
                yield LLMStreamChunk(delta=text)

        input_tokens, output_tokens = self._usage(last)
        yield LLMStreamChunk(done=True, input_tokens=input_tokens, output_tokens=output_tokens)

    @property
    def provider_name(self) -> str:
        return "google"
