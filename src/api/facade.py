# src/api/facade.py — v2
"""Public API facade — wires the persona, conversation, workflow and streaming layers.

Usage:
    from storyloom.api.facade import create_studio
    studio = create_studio()
    reply = await studio.conversation.converse("writer", "写一段开头")
    await studio.aclose()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from storyloom.config.settings import Settings
from storyloom.conversation.history import ConversationHistory
from storyloom.conversation.service import PersonaConversationService
from storyloom.personas.models import PersonaId
from storyloom.personas.registry import PersonaRegistry
from storyloom.prompts.library import PromptLibrary
from storyloom.storage.store_factory import create_blob_store
from storyloom.streaming.dispatcher import StreamDispatcher, StreamSession
from storyloom.workflow.repository import WorkflowRepository
from storyloom.workflow.orchestrator import WorkflowOrchestrator

if TYPE_CHECKING:
    from aiohttp import web

    from storyloom.llm.base_client import BaseLLMClient
    from storyloom.storage.base_store import BaseBlobStore

logger = logging.getLogger(__name__)


@dataclass
class Studio:
    """Fully wired component graph sharing one settings object."""

    settings: Settings
    registry: PersonaRegistry
    library: PromptLibrary
    conversation: PersonaConversationService
    store: BaseBlobStore
    repository: WorkflowRepository
    orchestrator: WorkflowOrchestrator
    dispatcher: StreamDispatcher

    async def stream_response(
        self, request: web.Request, session: StreamSession
    ) -> web.StreamResponse:
        """Serve one stream session as server-sent events on an aiohttp request."""
        from storyloom.streaming.channel import ResponseEventChannel

        channel = await ResponseEventChannel.open(request)
        await self.dispatcher.dispatch(session, channel)
        return channel.response

    async def aclose(self) -> None:
        await self.store.close()


def create_studio(
    settings: Settings | None = None,
    clients: dict[PersonaId, BaseLLMClient] | None = None,
    store: BaseBlobStore | None = None,
) -> Studio:
    """Build every component from settings.

    Args:
        settings: Global settings. Loaded from .env if None.
        clients: Per-persona generation clients. Built from the
            per-persona model cascade if None.
        store: Workflow blob store. Built from STORAGE_BACKEND if None.

    Returns:
        Studio with all components wired.
    """
    settings = settings or Settings()

    if clients is None:
        from storyloom.llm.client_factory import create_persona_clients

        clients = create_persona_clients(settings)

    registry = PersonaRegistry()
    library = PromptLibrary(settings.prompts_root, settings.persona_modules_root)
    history = ConversationHistory(
        limit=settings.history_limit, preview_chars=settings.history_preview_chars,
    )
    default_client = clients.get(PersonaId.DIRECTOR) or next(iter(clients.values()))
    conversation = PersonaConversationService(
        registry, library, default_client,
        settings=settings, history=history, clients=clients,
    )

    store = store or create_blob_store(settings)
    repository = WorkflowRepository(store)
    orchestrator = WorkflowOrchestrator(
        conversation, repository, quality_threshold=settings.quality_threshold,
    )

    logger.info(
        "Studio ready: %d personas, storage=%s, prompts=%s",
        len(registry.persona_ids), settings.storage_backend, settings.prompts_root,
    )
    return Studio(
        settings=settings,
        registry=registry,
        library=library,
        conversation=conversation,
        store=store,
        repository=repository,
        orchestrator=orchestrator,
        dispatcher=StreamDispatcher(conversation, orchestrator),
    )
