# tests/unit/api/test_unit_facade.py — v2
"""Tests for api/facade.py — component wiring."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from storyloom.api.facade import create_studio
from storyloom.personas.models import PersonaId
from storyloom.storage.memory_store import MemoryBlobStore
from storyloom.streaming.channel import QueueEventChannel
from storyloom.streaming.dispatcher import ChatSession
from storyloom.streaming.events import StreamEventType


@pytest.fixture
def studio(test_settings, scripted_llm, memory_store):
    clients = {pid: scripted_llm for pid in PersonaId}
    return create_studio(test_settings, clients=clients, store=memory_store)


class TestCreateStudio:
    def test_components_share_settings(self, studio, test_settings, memory_store):
        assert studio.settings is test_settings
        assert studio.store is memory_store
        assert studio.repository.store is memory_store
        assert studio.orchestrator.repository is studio.repository

    def test_store_from_settings(self, test_settings, scripted_llm):
        studio = create_studio(test_settings, clients={PersonaId.WRITER: scripted_llm})
        assert isinstance(studio.store, MemoryBlobStore)

    def test_clients_from_settings(self, test_settings, scripted_llm):
        clients = {pid: scripted_llm for pid in PersonaId}
        with patch(
            "storyloom.llm.client_factory.create_persona_clients", return_value=clients,
        ) as factory:
            studio = create_studio(test_settings)
        factory.assert_called_once_with(test_settings)
        assert studio.conversation.client_for(PersonaId.WRITER) is scripted_llm

    @pytest.mark.asyncio
    async def test_end_to_end_chat(self, studio, scripted_llm):
        scripted_llm.set_responses("开篇：夜雨。")
        result = await studio.conversation.converse("writer", "写个开头")
        assert result.response_text == "开篇：夜雨。"

    @pytest.mark.asyncio
    async def test_workflow_persisted_in_store(self, studio, memory_store):
        started = await studio.orchestrator.start("u1", "雨夜", "写一个悬疑故事")
        assert await memory_store.list_keys("u1_") == [started.workflow_id]


class TestStreamResponse:
    @pytest.mark.asyncio
    async def test_dispatches_onto_response_channel(self, studio):
        channel = QueueEventChannel()
        channel.response = object()
        with patch(
            "storyloom.streaming.channel.ResponseEventChannel.open",
            new=AsyncMock(return_value=channel),
        ) as open_channel:
            response = await studio.stream_response("request", ChatSession("writer", "写"))

        open_channel.assert_awaited_once_with("request")
        assert response is channel.response
        assert channel.sent[-1].type == StreamEventType.CHAT_COMPLETE
        assert channel.closed


class TestAclose:
    @pytest.mark.asyncio
    async def test_closes_store(self, test_settings, scripted_llm):
        store = MemoryBlobStore()
        store.close = AsyncMock()
        studio = create_studio(test_settings, clients={PersonaId.WRITER: scripted_llm}, store=store)
        await studio.aclose()
        store.close.assert_awaited_once()
