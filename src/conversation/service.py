# src/conversation/service.py — v1
"""Persona conversation service.

One call = validate input → compose the persona's instructions for the
scenario → attach context (project, current file, recent history, notes)
→ generate (one-shot or streamed) → record the exchange.

Input and persona validation happen before any side effect: a rejected
call neither touches history nor reaches the generation backend.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from storyloom.config.personas import PERSONA_TEMPERATURES, SCENARIO_LABELS
from storyloom.config.settings import Settings
from storyloom.conversation.history import ConversationHistory
from storyloom.conversation.models import (
    ContextFlags,
    ConversationOptions,
    ConversationResult,
    HistoryExport,
    HistoryStats,
    MultiPersonaReply,
    PersonaDetail,
    PersonaSummary,
    TokenUsage,
)
from storyloom.core.errors import (
    GenerationError,
    InputValidationError,
    PromptLoadError,
    StoryloomError,
)
from storyloom.llm.base_client import BaseLLMClient
from storyloom.llm.models import LLMStreamChunk, Message
from storyloom.llm.retry import DEFAULT_RETRY_CONFIGS, LLMRetryExhausted, cap_retries, with_retry
from storyloom.logging.context import log_context
from storyloom.personas.models import Persona, PersonaId, Scenario
from storyloom.personas.registry import PersonaRegistry
from storyloom.prompts import parser
from storyloom.prompts.library import PromptLibrary

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Awaitable[None]]

ANSWER_REQUIREMENT = "请以你的专业身份，提供详细且有帮助的回答。"


def build_options(**fields: Any) -> ConversationOptions:
    """Validate raw option fields (e.g. from a request body or the CLI).

    Raises:
        InputValidationError: On an unknown scenario or malformed field.
    """
    try:
        return ConversationOptions(**fields)
    except ValidationError as exc:
        raise InputValidationError(f"Invalid conversation options: {exc}") from exc


def generation_error_from(exc: BaseException) -> GenerationError:
    """Wrap a backend exception, keeping its HTTP-like status when it has one."""
    if isinstance(exc, LLMRetryExhausted):
        exc = exc.last_error
    if isinstance(exc, asyncio.TimeoutError):
        return GenerationError("generation timed out")
    status = getattr(exc, "status_code", None)
    if not isinstance(status, int):
        status = None
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    return GenerationError(str(message), status=status)


class PersonaConversationService:
    """Persona-scoped conversations over a generation backend.

    Args:
        registry: Persona catalog.
        library: Prompt library (owned cache of composed instructions).
        llm: Default generation client.
        settings: Limits and defaults. Defaults to ``Settings()``.
        history: Rolling history repository. A fresh one is created if omitted.
        clients: Per-persona client overrides (see llm/config.py).
        clock: Returns "now"; injectable for deterministic prompts.
    """

    def __init__(
        self,
        registry: PersonaRegistry,
        library: PromptLibrary,
        llm: BaseLLMClient,
        settings: Settings | None = None,
        history: ConversationHistory | None = None,
        clients: dict[PersonaId, BaseLLMClient] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._registry = registry
        self._library = library
        self._llm = llm
        self._settings = settings or Settings()
        self._history = history or ConversationHistory(
            limit=self._settings.history_limit,
            preview_chars=self._settings.history_preview_chars,
        )
        self._clients = dict(clients or {})
        self._clock = clock or datetime.now
        self._retry_configs = cap_retries(DEFAULT_RETRY_CONFIGS, self._settings.llm_max_retries)

    @property
    def registry(self) -> PersonaRegistry:
        return self._registry

    @property
    def library(self) -> PromptLibrary:
        return self._library

    @property
    def history(self) -> ConversationHistory:
        return self._history

    def client_for(self, persona_id: PersonaId) -> BaseLLMClient:
        return self._clients.get(persona_id, self._llm)

    # ------------------------------------------------------------------
    # Prompt assembly
    # ------------------------------------------------------------------

    def temperature_for(
        self,
        persona_id: PersonaId | str,
        scenario: Scenario | str = Scenario.DEFAULT,
        override: float | None = None,
    ) -> float:
        """Scenario value → persona default → global default; an override wins."""
        if override is not None:
            return override
        table = PERSONA_TEMPERATURES.get(PersonaId(persona_id), {})
        value = table.get(Scenario(scenario))
        if value is None:
            value = table.get(Scenario.DEFAULT)
        return value if value is not None else self._settings.default_temperature

    def build_context(self, persona_id: str, options: ConversationOptions) -> dict[str, str]:
        """Context blocks keyed by their label, in prompt order."""
        context: dict[str, str] = {}

        if options.project_path:
            context["【项目信息】"] = f"项目路径: {options.project_path}"

        if options.current_file is not None:
            current = options.current_file
            context["【当前工作文件】"] = (
                f"文件: {current.path}\n类型: {current.type}\n内容预览: {current.preview or '无'}"
            )

        recent = self._history.recent(persona_id, self._settings.history_context_entries)
        if recent:
            context["【最近对话】"] = "\n---\n".join(
                f"用户: {h.user}\nAI: {h.assistant}" for h in recent
            )

        if options.cross_project_note:
            context["【跨项目参考】"] = options.cross_project_note

        if options.related_files:
            context["【相关文件】"] = "\n".join(
                f"- {f.name}: {f.description}" if f.description else f"- {f.name}"
                for f in options.related_files
            )

        return context

    def build_prompt(
        self, instructions: str, message: str, context: dict[str, str], now: datetime,
    ) -> str:
        """Full prompt text sent to the backend as a single user message."""
        parts = [instructions] if instructions else []
        parts.extend(f"{label}\n{body}" for label, body in context.items())
        parts.append(f"【当前时间】{now:%Y/%m/%d %H:%M:%S}")
        parts.append(f"【用户问题】\n{message}")
        parts.append(ANSWER_REQUIREMENT)
        return "\n\n".join(parts)

    def validate_message(self, message: str, check_length: bool = True) -> None:
        """Reject an empty message, or one longer than MAX_MESSAGE_CHARS.

        Raises:
            InputValidationError: If the message is unacceptable.
        """
        if not message or not message.strip():
            raise InputValidationError("message must not be empty")
        if check_length and len(message) > self._settings.max_message_chars:
            raise InputValidationError(
                f"message exceeds {self._settings.max_message_chars} characters"
            )

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def converse(
        self,
        persona_id: PersonaId | str,
        message: str,
        options: ConversationOptions | None = None,
        on_chunk: ChunkCallback | None = None,
        check_length: bool = True,
    ) -> ConversationResult:
        """Run one persona conversation.

        Args:
            persona_id: Registered persona id.
            message: User message.
            options: Scenario, context and sampling options.
            on_chunk: When given, the response is streamed and every text
                delta is awaited through this callback, in order.
            check_length: Enforce MAX_MESSAGE_CHARS. Callers that wrap an
                already validated message in extra context disable it.

        Raises:
            InputValidationError: Empty or oversized message.
            PersonaNotFoundError: Unregistered persona.
            PromptLoadError: The persona's instructions could not be loaded.
            GenerationError: The backend call failed or timed out.
        """
        self.validate_message(message, check_length)
        persona = self._registry.get_or_raise(persona_id)
        options = options or ConversationOptions()
        scenario = options.scenario

        with log_context(persona=persona.id.value):
            instructions = await self._library.compose_for(persona, scenario)
            context = self.build_context(persona.id.value, options)
            now = self._clock()
            prompt = self.build_prompt(instructions, message, context, now)

            temperature = self.temperature_for(persona.id, scenario, options.temperature)
            max_tokens = options.max_tokens or self._settings.default_max_tokens

            logger.info(
                "Conversation request (scenario=%s, temperature=%.2f): %s",
                scenario.value, temperature, message[:100],
            )
            text, usage = await self._generate(
                self.client_for(persona.id), prompt, temperature, max_tokens, on_chunk,
            )

            self._history.add(persona.id.value, message, text, scenario=scenario, timestamp=now)

        return ConversationResult(
            persona_id=persona.id.value,
            persona_name=persona.name,
            persona_icon=persona.icon,
            scenario=scenario,
            scenario_label=SCENARIO_LABELS.get(scenario, scenario.value),
            user_message=message,
            response_text=text,
            usage=usage,
            temperature=temperature,
            max_tokens=max_tokens,
            context=ContextFlags(
                has_history="【最近对话】" in context,
                has_project_info="【项目信息】" in context,
                has_current_file="【当前工作文件】" in context,
                has_cross_project="【跨项目参考】" in context,
                related_files=len(options.related_files),
            ),
            timestamp=now,
        )

    async def _generate(
        self,
        client: BaseLLMClient,
        prompt: str,
        temperature: float,
        max_tokens: int,
        on_chunk: ChunkCallback | None,
    ) -> tuple[str, TokenUsage]:
        messages = [Message(role="user", content=prompt)]
        try:
            if on_chunk is None:
                response = await with_retry(
                    client.complete,
                    messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    label=client.provider_name,
                    retry_configs=self._retry_configs,
                    timeout_s=self._settings.llm_timeout_s,
                )
                return response.content, TokenUsage(
                    input_tokens=response.input_tokens, output_tokens=response.output_tokens,
                )
            return await self._consume_stream(
                client.stream(messages, max_tokens=max_tokens, temperature=temperature),
                on_chunk,
            )
        except StoryloomError:
            raise
        except Exception as exc:
            error = generation_error_from(exc)
            logger.error("Generation failed: %s", error)
            raise error from exc

    async def _consume_stream(
        self, stream: AsyncIterator[LLMStreamChunk], on_chunk: ChunkCallback,
    ) -> tuple[str, TokenUsage]:
        """Forward deltas in order; each delta must arrive within the timeout."""
        pieces: list[str] = []
        usage = TokenUsage()
        iterator = stream.__aiter__()
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(
                        iterator.__anext__(), timeout=self._settings.llm_timeout_s,
                    )
                except StopAsyncIteration:
                    break
                if chunk.delta:
                    pieces.append(chunk.delta)
                    await on_chunk(chunk.delta)
                if chunk.done:
                    usage = TokenUsage(
                        input_tokens=chunk.input_tokens, output_tokens=chunk.output_tokens,
                    )
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
        return "".join(pieces), usage

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def history_stats(self, persona_id: str | None = None) -> dict[str, HistoryStats]:
        """Stats of one persona, or of every persona with history."""
        ids = [persona_id] if persona_id is not None else self._history.persona_ids()
        return {pid: self._history.stats(pid) for pid in ids}

    def export_history(self, persona_id: PersonaId | str) -> HistoryExport:
        persona = self._registry.get_or_raise(persona_id)
        return HistoryExport(
            persona_id=persona.id.value,
            persona_name=persona.name,
            conversations=self._history.entries(persona.id.value),
            statistics=self._history.stats(persona.id.value),
            export_time=self._clock(),
        )

    def clear_history(self, persona_id: PersonaId | str | None = None) -> None:
        """Clear one persona's history, or everything including the prompt cache."""
        if persona_id is None:
            self._history.clear()
            self._library.clear()
            return
        persona = self._registry.get_or_raise(persona_id)
        self._history.clear(persona.id.value)

    # ------------------------------------------------------------------
    # Multi-persona and catalog helpers
    # ------------------------------------------------------------------

    async def multi_persona_chat(
        self,
        message: str,
        persona_ids: list[PersonaId | str],
        options: ConversationOptions | None = None,
    ) -> list[MultiPersonaReply]:
        """Ask several personas the same question, one after another.

        A failing persona is reported in its reply and does not stop the others.
        """
        self.validate_message(message)
        replies: list[MultiPersonaReply] = []
        for pid in persona_ids:
            raw_id = pid.value if isinstance(pid, PersonaId) else str(pid)
            try:
                result = await self.converse(pid, message, options)
            except StoryloomError as exc:
                logger.warning("Persona %s failed in multi-persona chat: %s", raw_id, exc)
                replies.append(
                    MultiPersonaReply(
                        persona_id=raw_id, success=False, error=str(exc), error_code=exc.code,
                    )
                )
            else:
                replies.append(MultiPersonaReply(persona_id=raw_id, success=True, result=result))
        return replies

    def suggest_persona(self, file_path: str | None) -> Persona:
        """Persona responsible for a project file (director when unknown)."""
        if not file_path:
            return self._registry.get_or_raise(PersonaId.DIRECTOR)
        return self._registry.suggest_for_path(file_path)

    async def list_personas(self) -> list[PersonaSummary]:
        """Catalog with prompt availability; load failures are reported, not raised."""
        summaries: list[PersonaSummary] = []
        for persona in self._registry.personas:
            summary = _summary(persona)
            try:
                prompt = await self._library.load(persona)
            except PromptLoadError as exc:
                summary.error = str(exc)
            else:
                summary.available = True
                summary.strategy = prompt.strategy
            summaries.append(summary)
        return summaries

    async def persona_detail(self, persona_id: PersonaId | str) -> PersonaDetail:
        """Card, capabilities and examples of one persona.

        Raises:
            PersonaNotFoundError: Unregistered persona.
            PromptLoadError: The persona's prompt could not be loaded.
        """
        persona = self._registry.get_or_raise(persona_id)
        prompt = await self._library.load(persona)
        summary = _summary(persona)
        summary.available = True
        summary.strategy = prompt.strategy
        examples = parser.extract_examples(prompt.document) if prompt.document else []
        return PersonaDetail(
            persona=summary,
            card=await self._library.card_for(persona),
            capabilities=await self._library.capabilities_for(persona),
            examples=examples,
        )


def _summary(persona: Persona) -> PersonaSummary:
    return PersonaSummary(
        id=persona.id.value,
        name=persona.name,
        icon=persona.icon,
        color=persona.color,
        description=persona.description,
        content_areas=sorted(persona.content_areas),
    )
