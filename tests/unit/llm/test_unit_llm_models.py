# tests/unit/llm/test_unit_llm_models.py — v2
"""Tests for llm/models.py and llm/base_client.py — interface types."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from storyloom.llm.base_client import BaseLLMClient
from storyloom.llm.models import LLMResponse, LLMStreamChunk, Message


class TestMessage:
    def test_all_roles(self):
        for role in ["user", "assistant", "system"]:
            m = Message(role=role, content="test")
            assert m.role == role

    def test_invalid_role(self):
        with pytest.raises(ValidationError):
            Message(role="narrator", content="x")


class TestLLMResponse:
    def test_total_tokens(self):
        r = LLMResponse(
            content="output", input_tokens=100, output_tokens=50,
            model="test", provider="test", latency_ms=100,
        )
        assert r.total_tokens == 150
        assert r.raw_response is None


class TestLLMStreamChunk:
    def test_defaults_are_content_chunk(self):
        chunk = LLMStreamChunk(delta="字")
        assert not chunk.done
        assert chunk.input_tokens == chunk.output_tokens == 0

    def test_done_chunk_carries_usage(self):
        chunk = LLMStreamChunk(done=True, input_tokens=3, output_tokens=7)
        assert chunk.delta == ""
        assert chunk.output_tokens == 7


class TestBaseLLMClient:
    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            BaseLLMClient()  # type: ignore[abstract]

    def test_has_required_methods(self):
        assert hasattr(BaseLLMClient, "complete")
        assert hasattr(BaseLLMClient, "stream")
        assert hasattr(BaseLLMClient, "provider_name")

    def test_model_name_from_private_attribute(self, scripted_llm):
        assert scripted_llm.model_name == ""
        scripted_llm._model = "gemini-1.5-flash"
        assert scripted_llm.model_name == "gemini-1.5-flash"
