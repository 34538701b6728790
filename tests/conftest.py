# tests/conftest.py — v2
"""Shared test fixtures for unit tests.

Provides a scripted LLM client, a miniature prompt tree (legacy documents
plus a modular role), and wired conversation/workflow components over an
in-memory store. No external services: all generation is scripted.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from storyloom.config.settings import Settings
from storyloom.conversation.history import ConversationHistory
from storyloom.conversation.service import PersonaConversationService
from storyloom.llm.base_client import BaseLLMClient
from storyloom.llm.models import LLMResponse, LLMStreamChunk, Message
from storyloom.personas.registry import PersonaRegistry
from storyloom.prompts.library import PromptLibrary
from storyloom.storage.memory_store import MemoryBlobStore
from storyloom.workflow.orchestrator import WorkflowOrchestrator
from storyloom.workflow.repository import WorkflowRepository


# === SCRIPTED LLM CLIENT ===


class ScriptedLLMClient(BaseLLMClient):
    """LLM client returning queued responses, recording every call.

    ``stream`` splits the response into ``chunk_size`` pieces. Setting
    ``error`` makes the next call raise it; ``chunk_delay_s`` slows the
    stream down so a consumer can disconnect mid-generation.
    """

    def __init__(self, default_response: str = "好的。", chunk_size: int = 4) -> None:
        self._default_response = default_response
        self._queue: list[str] = []
        self.chunk_size = chunk_size
        self.chunk_delay_s = 0.0
        self.error: BaseException | None = None
        self.calls: list[dict[str, Any]] = []
        self.stream_closed = False

    def set_responses(self, *responses: str) -> None:
        self._queue = list(responses)

    def _next(self) -> str:
        if self.error is not None:
            raise self.error
        return self._queue.pop(0) if self._queue else self._default_response

    @property
    def last_prompt(self) -> str:
        return self.calls[-1]["messages"][0].content

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> LLMResponse:
        self.calls.append({
            "mode": "complete", "messages": messages,
            "max_tokens": max_tokens, "temperature": temperature,
        })
        text = self._next()
        return LLMResponse(
            content=text,
            input_tokens=len(messages[0].content),
            output_tokens=len(text),
            model="scripted",
            provider="scripted",
            latency_ms=1,
        )

    async def stream(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> AsyncIterator[LLMStreamChunk]:
        self.calls.append({
            "mode": "stream", "messages": messages,
            "max_tokens": max_tokens, "temperature": temperature,
        })
        text = self._next()
        try:
            for i in range(0, len(text), self.chunk_size):
                if self.chunk_delay_s:
                    await asyncio.sleep(self.chunk_delay_s)
                yield LLMStreamChunk(delta=text[i:i + self.chunk_size])
            yield LLMStreamChunk(done=True, input_tokens=10, output_tokens=len(text))
        finally:
            self.stream_closed = True

    @property
    def provider_name(self) -> str:
        return "scripted"


# === PROMPT TREE ===

ARCHITECT_DOC = """# 世界观架构师 - 世界构建专家

<persona>
你是世界观架构师。
负责设计小说世界。
</persona>

<expertise>
- 力量体系：规则与代价
- 地理设计：大陆与气候
</expertise>

<thinking>
先定规则，再推现象
</thinking>

<inspiration>
神话与传说
</inspiration>

<examples>
### 当用户问："设计魔法体系"
给出三个方案。
</examples>
"""

PLANNER_DOC = """# 故事规划师 - 结构专家

<persona>
你是故事规划师。
</persona>

<expertise>
- 三幕结构
</expertise>
"""

WRITER_DOC = """# 文学写手

<persona>
你是文学写手。
</persona>

<style>
- 文风：细腻
</style>
"""

NOVEL_ARCHITECT_DOC = """# 小说架构师 - 桥梁

## 角色定位

你是项目专属的小说架构师。

## OES工作流程

- Objective：明确目标

## 交互模式

- 先复述需求

## 输出格式

- Markdown

## 工作原则

- 尊重设定
"""

DIRECTOR_ROLE = """<role>
<identity>
<name>创作总监</name>
<title>质量把控</title>
<description>统筹创作流程。</description>
</identity>
<personality>
@!thought://quality-review
@thought://missing-optional
</personality>
<principle>
@!execution://review-workflow
</principle>
<knowledge>
@knowledge://genre-conventions
</knowledge>
</role>
"""


def write_prompt_tree(root: Path) -> tuple[Path, Path]:
    """Write a miniature prompt tree; returns (roles_root, modules_root)."""
    roles = root / "roles"
    modules = root / "modules"
    roles.mkdir(parents=True)
    (roles / "architect.prompt.md").write_text(ARCHITECT_DOC, encoding="utf-8")
    (roles / "planner.prompt.md").write_text(PLANNER_DOC, encoding="utf-8")
    (roles / "writer.prompt.md").write_text(WRITER_DOC, encoding="utf-8")
    (roles / "novel-architect.oes.md").write_text(NOVEL_ARCHITECT_DOC, encoding="utf-8")

    director = modules / "system-director"
    (director / "thought").mkdir(parents=True)
    (director / "execution").mkdir()
    (modules / "shared").mkdir()
    (director / "system-director.role.md").write_text(DIRECTOR_ROLE, encoding="utf-8")
    (director / "thought" / "quality-review.thought.md").write_text(
        "## 审核思维\n- 整体优先：先结构后细节\n", encoding="utf-8",
    )
    (director / "execution" / "review-workflow.md").write_text(
        "<execution>\n1. 检查完成度\n2. 给出评分\n</execution>\n", encoding="utf-8",
    )
    (modules / "shared" / "genre-conventions.md").write_text(
        "- 奇幻：力量需要代价\n", encoding="utf-8",
    )
    return roles, modules


@pytest.fixture
def prompt_roots(tmp_path: Path) -> tuple[Path, Path]:
    return write_prompt_tree(tmp_path / "prompts")


# === WIRED COMPONENTS ===


FIXED_NOW = datetime(2026, 3, 1, 9, 30, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self._now = start

    def __call__(self) -> datetime:
        now = self._now
        self._now += timedelta(seconds=1)
        return now


@pytest.fixture
def test_settings(prompt_roots: tuple[Path, Path], tmp_path: Path) -> Settings:
    roles, modules = prompt_roots
    return Settings(
        _env_file=None,
        prompts_root=roles,
        persona_modules_root=modules,
        storage_backend="memory",
        storage_root=tmp_path / "workflows",
        llm_timeout_s=5.0,
        llm_max_retries=1,
    )


@pytest.fixture
def scripted_llm() -> ScriptedLLMClient:
    return ScriptedLLMClient()


@pytest.fixture
def library(prompt_roots: tuple[Path, Path]) -> PromptLibrary:
    roles, modules = prompt_roots
    return PromptLibrary(roles, modules)


@pytest.fixture
def conversation(
    library: PromptLibrary, scripted_llm: ScriptedLLMClient, test_settings: Settings,
) -> PersonaConversationService:
    return PersonaConversationService(
        PersonaRegistry(),
        library,
        scripted_llm,
        settings=test_settings,
        history=ConversationHistory(),
        clock=StepClock(),
    )


@pytest.fixture
def memory_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def orchestrator(
    conversation: PersonaConversationService, memory_store: MemoryBlobStore,
) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(
        conversation, WorkflowRepository(memory_store), clock=StepClock(),
    )
