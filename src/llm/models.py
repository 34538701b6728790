# src/llm/models.py — v2
"""LLM-specific types: Message, LLMResponse, LLMStreamChunk."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class Message(BaseModel):
    """Single message in a conversation."""

    role: Literal["user", "assistant", "system"]
    content: str


class LLMResponse(BaseModel):
    """Normalized response from any LLM provider."""

    content: str
    input_tokens: int
    output_tokens: int
    model: str
    provider: str
    latency_ms: int
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMStreamChunk(BaseModel):
    """One increment of a streamed completion.

    Content chunks carry ``delta``; the final chunk has ``done=True`` and the
    token usage (zero when the provider does not report it).
    """

    delta: str = ""
    done: bool = False
    input_tokens: int = 0
    output_tokens: int = 0
