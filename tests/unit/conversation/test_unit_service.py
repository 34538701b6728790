# tests/unit/conversation/test_unit_service.py — v1
"""Tests for conversation/service.py — prompt assembly, generation, history."""

from __future__ import annotations

import asyncio

import pytest

from storyloom.conversation.models import ConversationOptions, CurrentFile, RelatedFile
from storyloom.conversation.service import (
    ANSWER_REQUIREMENT,
    build_options,
    generation_error_from,
)
from storyloom.core.errors import (
    GenerationError,
    InputValidationError,
    PersonaNotFoundError,
    PromptLoadError,
)
from storyloom.llm.retry import LLMRetryExhausted
from storyloom.personas.models import PersonaId, Scenario


class _UpstreamError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class TestValidation:
    @pytest.mark.asyncio
    async def test_unknown_persona_has_no_side_effects(self, conversation, scripted_llm):
        with pytest.raises(PersonaNotFoundError):
            await conversation.converse("ghost", "你好")
        assert scripted_llm.calls == []
        assert conversation.history.persona_ids() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   "])
    async def test_empty_message(self, conversation, scripted_llm, message):
        with pytest.raises(InputValidationError):
            await conversation.converse("writer", message)
        assert scripted_llm.calls == []

    @pytest.mark.asyncio
    async def test_message_too_long(self, conversation, scripted_llm):
        with pytest.raises(InputValidationError, match="4000"):
            await conversation.converse("writer", "字" * 4001)
        assert scripted_llm.calls == []

    @pytest.mark.asyncio
    async def test_length_check_can_be_disabled(self, conversation):
        result = await conversation.converse("writer", "字" * 4001, check_length=False)
        assert result.response_text == "好的。"

    def test_build_options_rejects_unknown_scenario(self):
        with pytest.raises(InputValidationError):
            build_options(scenario="daydreaming")

    def test_build_options(self):
        options = build_options(scenario="review", project_path="/p")
        assert options.scenario == Scenario.REVIEW


class TestPromptAssembly:
    @pytest.mark.asyncio
    async def test_prompt_layout(self, conversation, scripted_llm):
        await conversation.converse(
            "architect", "设计一个魔法体系",
            ConversationOptions(
                scenario=Scenario.BRAINSTORMING,
                project_path="/novels/demo",
                current_file=CurrentFile(path="0-小说设定/魔法.md", preview="魔法需要代价"),
                cross_project_note="参考另一部作品的体系",
                related_files=[RelatedFile(name="地图.md", description="大陆地图")],
            ),
        )
        prompt = scripted_llm.last_prompt
        order = [
            "【角色设定】", "【重点关注】", "【项目信息】", "【当前工作文件】",
            "【跨项目参考】", "【相关文件】", "【当前时间】", "【用户问题】",
        ]
        positions = [prompt.index(label) for label in order]
        assert positions == sorted(positions)
        assert "项目路径: /novels/demo" in prompt
        assert "- 地图.md: 大陆地图" in prompt
        assert "【当前时间】2026/03/01 09:30:00" in prompt
        assert prompt.endswith(ANSWER_REQUIREMENT)

    @pytest.mark.asyncio
    async def test_recent_history_in_context(self, conversation, scripted_llm):
        scripted_llm.set_responses("回答一", "回答二")
        await conversation.converse("writer", "第一个问题")
        result = await conversation.converse("writer", "第二个问题")
        assert "【最近对话】\n用户: 第一个问题\nAI: 回答一" in scripted_llm.last_prompt
        assert result.context.has_history is True

    @pytest.mark.asyncio
    async def test_history_limited_to_three_entries(self, conversation, scripted_llm):
        for i in range(5):
            await conversation.converse("writer", f"问题{i}")
        await conversation.converse("writer", "最后")
        context = scripted_llm.last_prompt
        assert "问题1" not in context
        assert context.count("\n---\n") == 2

    @pytest.mark.parametrize("persona, scenario, override, expected", [
        ("writer", Scenario.CREATION, None, 0.9),
        ("writer", Scenario.BRAINSTORMING, None, 0.8),
        ("director", Scenario.REVIEW, None, 0.3),
        ("writer", Scenario.CREATION, 0.2, 0.2),
    ])
    def test_temperature_for(self, conversation, persona, scenario, override, expected):
        assert conversation.temperature_for(persona, scenario, override) == expected

    @pytest.mark.asyncio
    async def test_temperature_and_tokens_reach_backend(self, conversation, scripted_llm):
        await conversation.converse(
            "writer", "写", ConversationOptions(scenario=Scenario.CREATION, max_tokens=512),
        )
        call = scripted_llm.calls[-1]
        assert call["temperature"] == 0.9
        assert call["max_tokens"] == 512


class TestGeneration:
    @pytest.mark.asyncio
    async def test_result_and_history(self, conversation):
        result = await conversation.converse("planner", "列一个大纲")
        assert result.persona_id == "planner"
        assert result.persona_name == "故事规划师"
        assert result.scenario_label == "常规对话"
        assert result.usage.output_tokens == len("好的。")
        assert conversation.history.stats("planner").count == 1

    @pytest.mark.asyncio
    async def test_streaming_forwards_deltas_in_order(self, conversation, scripted_llm):
        scripted_llm.set_responses("从前有座山，山里有座庙。")
        deltas: list[str] = []

        async def on_chunk(delta: str) -> None:
            deltas.append(delta)

        result = await conversation.converse("writer", "讲故事", on_chunk=on_chunk)
        assert "".join(deltas) == "从前有座山，山里有座庙。"
        assert len(deltas) == 3
        assert result.response_text == "从前有座山，山里有座庙。"
        assert result.usage.input_tokens == 10
        assert scripted_llm.stream_closed is True
        assert conversation.history.entries("writer")[0].assistant == result.response_text

    @pytest.mark.asyncio
    async def test_backend_error_maps_to_generation_error(self, conversation, scripted_llm):
        scripted_llm.error = _UpstreamError("bad request", status_code=400)
        with pytest.raises(GenerationError) as exc_info:
            await conversation.converse("writer", "写")
        assert exc_info.value.status == 400
        assert str(exc_info.value) == "API Error: 400 - bad request"
        assert conversation.history.persona_ids() == []

    @pytest.mark.asyncio
    async def test_stream_error_maps_to_generation_error(self, conversation, scripted_llm):
        scripted_llm.error = _UpstreamError("overloaded", status_code=503)

        async def on_chunk(delta: str) -> None:
            pass

        with pytest.raises(GenerationError) as exc_info:
            await conversation.converse("writer", "写", on_chunk=on_chunk)
        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_prompt_load_error_propagates(self, conversation, prompt_roots):
        roles, _ = prompt_roots
        (roles / "writer.prompt.md").unlink()
        with pytest.raises(PromptLoadError):
            await conversation.converse("writer", "写")

    def test_generation_error_unwraps_retry_exhaustion(self):
        inner = _UpstreamError("rate limited", status_code=429)
        error = generation_error_from(LLMRetryExhausted("scripted", "rate_limit", 2, inner))
        assert error.status == 429
        assert error.upstream_message == "rate limited"

    def test_generation_error_for_timeout(self):
        assert str(generation_error_from(asyncio.TimeoutError())) == "generation timed out"


class TestHistoryAndCatalog:
    @pytest.mark.asyncio
    async def test_export_and_stats(self, conversation):
        await conversation.converse("writer", "写")
        export = conversation.export_history("writer")
        assert export.persona_name == "文学写手"
        assert len(export.conversations) == 1
        assert set(conversation.history_stats()) == {"writer"}

    @pytest.mark.asyncio
    async def test_clear_all_also_clears_prompt_cache(self, conversation):
        await conversation.converse("writer", "写")
        conversation.clear_history()
        assert conversation.history.persona_ids() == []
        assert conversation.library.cached_ids() == []

    def test_clear_unknown_persona(self, conversation):
        with pytest.raises(PersonaNotFoundError):
            conversation.clear_history("ghost")

    @pytest.mark.asyncio
    async def test_multi_persona_chat_captures_errors(self, conversation):
        replies = await conversation.multi_persona_chat("大家好", ["writer", "ghost", "planner"])
        assert [r.success for r in replies] == [True, False, True]
        assert replies[1].error_code == "PERSONA_NOT_FOUND"

    def test_suggest_persona(self, conversation):
        assert conversation.suggest_persona("p/3-小说内容/1.md").id == PersonaId.WRITER
        assert conversation.suggest_persona(None).id == PersonaId.DIRECTOR

    @pytest.mark.asyncio
    async def test_list_personas_reports_availability(self, conversation):
        summaries = {s.id: s for s in await conversation.list_personas()}
        assert summaries["director"].strategy == "modular"
        assert summaries["architect"].strategy == "legacy"
        assert all(s.available for s in summaries.values())

    @pytest.mark.asyncio
    async def test_persona_detail(self, conversation):
        detail = await conversation.persona_detail("architect")
        assert detail.card.name == "世界观架构师"
        assert detail.examples[0].question == "设计魔法体系"
        assert "力量体系" in detail.capabilities
