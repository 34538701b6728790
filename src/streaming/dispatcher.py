# src/streaming/dispatcher.py — v1
"""Stream dispatcher — runs one chat or workflow step and pushes its events.

A session emits ``start`` first, then one ``content-chunk`` per generation
delta, then exactly one terminal event. Generation runs in a producer task
raced against the channel's disconnect signal; a disconnect cancels the
producer, which closes the upstream stream. The channel is always closed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Union

from storyloom.conversation.models import ConversationOptions
from storyloom.conversation.service import PersonaConversationService
from storyloom.core.errors import StoryloomError
from storyloom.personas.models import PersonaId
from storyloom.streaming.channel import BaseEventChannel, ChannelClosedError
from storyloom.streaming.events import StreamEvent, StreamEventType
from storyloom.workflow.orchestrator import WorkflowOrchestrator

logger = logging.getLogger(__name__)

INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


@dataclass(frozen=True)
class ChatSession:
    persona_id: PersonaId | str
    message: str
    options: ConversationOptions | None = None


@dataclass(frozen=True)
class WorkflowPhaseSession:
    workflow_id: str
    message: str


StreamSession = Union[ChatSession, WorkflowPhaseSession]


class StreamDispatcher:
    """Pushes the events of stream sessions onto channels.

    Args:
        conversation: Service running chat sessions.
        orchestrator: Orchestrator running workflow phase sessions.
    """

    def __init__(
        self,
        conversation: PersonaConversationService,
        orchestrator: WorkflowOrchestrator,
    ) -> None:
        self._conversation = conversation
        self._orchestrator = orchestrator

    async def dispatch(self, session: StreamSession, channel: BaseEventChannel) -> None:
        """Run a session to its terminal event, or until the consumer leaves."""
        producer = asyncio.ensure_future(self._produce(session, channel))
        watcher = asyncio.ensure_future(channel.wait_disconnected())
        try:
            await asyncio.wait({producer, watcher}, return_when=asyncio.FIRST_COMPLETED)
            if producer.done():
                try:
                    producer.result()
                except ChannelClosedError:
                    logger.info("Consumer left before the session finished")
                return

            logger.info("Consumer disconnected, cancelling generation")
            producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)
        finally:
            watcher.cancel()
            if not producer.done():
                producer.cancel()
            await channel.close()

    async def _produce(self, session: StreamSession, channel: BaseEventChannel) -> None:
        async def on_chunk(delta: str) -> None:
            await channel.send(StreamEvent.chunk(delta))

        await channel.send(StreamEvent.start(**_describe(session)))
        try:
            if isinstance(session, ChatSession):
                terminal = await self._run_chat(session, on_chunk)
            else:
                terminal = await self._run_phase(session, on_chunk)
        except ChannelClosedError:
            raise
        except StoryloomError as exc:
            logger.warning("Stream session failed (%s): %s", exc.code, exc)
            terminal = StreamEvent.error(str(exc), exc.code)
        except Exception as exc:
            logger.exception("Unexpected failure in stream session")
            terminal = StreamEvent.error(f"Internal error: {exc}", INTERNAL_ERROR_CODE)

        await channel.send(terminal)

    async def _run_chat(self, session: ChatSession, on_chunk) -> StreamEvent:
        result = await self._conversation.converse(
            session.persona_id, session.message, session.options, on_chunk=on_chunk,
        )
        return StreamEvent(
            type=StreamEventType.CHAT_COMPLETE,
            data={
                "persona_id": result.persona_id,
                "persona_name": result.persona_name,
                "scenario": result.scenario.value,
                "response": result.response_text,
                "usage": result.usage.model_dump(mode="json"),
            },
        )

    async def _run_phase(self, session: WorkflowPhaseSession, on_chunk) -> StreamEvent:
        result = await self._orchestrator.execute_current_phase(
            session.workflow_id, session.message, on_chunk,
        )
        event_type = (
            StreamEventType.WORKFLOW_COMPLETE if result.completed
            else StreamEventType.PHASE_COMPLETE
        )
        return StreamEvent(type=event_type, data=result.model_dump(mode="json"))


def _describe(session: StreamSession) -> dict[str, str]:
    if isinstance(session, ChatSession):
        persona = session.persona_id
        return {
            "session": "chat",
            "persona_id": persona.value if isinstance(persona, PersonaId) else str(persona),
        }
    return {"session": "workflow", "workflow_id": session.workflow_id}
