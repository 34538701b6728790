# src/workflow/orchestrator.py — v1
"""Workflow orchestrator — multi-phase authoring state machine.

Each step runs the current phase's persona through the conversation
service, scores the output, appends a WorkflowStep, merges the output into
the workflow context, decides the transition and persists the workflow
before returning.

Steps of one workflow are serialized by a per-workflow lock; different
workflows never contend.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
import string
import time
from collections import Counter
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from storyloom.conversation.models import ConversationOptions
from storyloom.conversation.service import ChunkCallback, PersonaConversationService
from storyloom.core.errors import (
    GenerationError,
    InputValidationError,
    PromptLoadError,
    WorkflowStateError,
)
from storyloom.logging.context import log_context
from storyloom.personas.models import Scenario
from storyloom.workflow.models import (
    ChapterArtifact,
    ContextArtifact,
    NextAction,
    NextActionType,
    Phase,
    PhaseOutput,
    PhaseResult,
    StartResult,
    Workflow,
    WorkflowContext,
    WorkflowInfo,
    WorkflowStatus,
    WorkflowStatusView,
    WorkflowStep,
    WorkflowSummary,
)
from storyloom.workflow.phases import (
    PHASES,
    RETRY_SUGGESTIONS,
    choices_for,
    needs_worldbuilding,
    phase_suggestions,
    progress_increment,
)
from storyloom.workflow.repository import WorkflowRepository
from storyloom.workflow.scoring import HeuristicQualityScorer, QualityScorer

logger = logging.getLogger(__name__)

_NAME_CLEAN_RE = re.compile(r"[^a-zA-Z0-9\u4e00-\u9fa5]")
_STEP_ALPHABET = string.ascii_lowercase + string.digits

DIGEST_STEPS = 2
DIGEST_PREVIEW_CHARS = 200


def _epoch_ms(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def make_workflow_id(user_id: str, project_name: str, epoch_ms: int) -> str:
    """``{user}_{cleaned project name, 20 chars max}_{epoch ms}``."""
    clean = _NAME_CLEAN_RE.sub("", project_name)[:20]
    return f"{user_id}_{clean}_{epoch_ms}"


def make_step_id(now: datetime) -> str:
    suffix = "".join(random.choices(_STEP_ALPHABET, k=9))  # noqa: S311
    return f"step_{_epoch_ms(now)}_{suffix}"


class WorkflowOrchestrator:
    """Drives workflows through the phase table.

    Args:
        conversation: Service used to run each phase's persona.
        repository: Workflow persistence.
        scorer: Output quality policy. Defaults to HeuristicQualityScorer.
        quality_threshold: Steps scoring below it are retried.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        conversation: PersonaConversationService,
        repository: WorkflowRepository,
        scorer: QualityScorer | None = None,
        quality_threshold: int = 70,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._conversation = conversation
        self._repository = repository
        self._scorer = scorer or HeuristicQualityScorer()
        self._quality_threshold = quality_threshold
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    @asynccontextmanager
    async def _workflow_lock(self, workflow_id: str) -> AsyncIterator[None]:
        """Hold the workflow's lock; it is dropped once no caller holds or awaits it."""
        lock = self._locks.setdefault(workflow_id, asyncio.Lock())
        self._lock_users[workflow_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[workflow_id] -= 1
            if not self._lock_users[workflow_id]:
                del self._lock_users[workflow_id]
                del self._locks[workflow_id]

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(
        self,
        user_id: str,
        project_name: str,
        initial_prompt: str,
        on_chunk: ChunkCallback | None = None,
    ) -> StartResult:
        """Create a workflow and run its analysis phase on the initial prompt.

        Raises:
            InputValidationError: Blank user, project name or prompt.
            GenerationError, PromptLoadError: The first step failed; the
                workflow is persisted as failed.
        """
        if not user_id or not user_id.strip():
            raise InputValidationError("user_id must not be blank")
        if not project_name or not project_name.strip():
            raise InputValidationError("project_name must not be blank")
        self._conversation.validate_message(initial_prompt)

        now = self._clock()
        stamp = _epoch_ms(now)
        workflow_id = make_workflow_id(user_id, project_name, stamp)
        while await self._repository.exists(workflow_id):
            stamp += 1
            workflow_id = make_workflow_id(user_id, project_name, stamp)

        workflow = Workflow(
            id=workflow_id,
            user_id=user_id,
            project_name=project_name,
            current_phase=Phase.ANALYSIS,
            current_persona=PHASES[Phase.ANALYSIS].persona,
            context=WorkflowContext(original_prompt=initial_prompt),
            created_at=now,
            updated_at=now,
            last_activity_at=now,
        )
        await self._repository.save(workflow)
        logger.info("Workflow started [%s]: %s", workflow_id, project_name)

        result = await self.execute_current_phase(workflow_id, initial_prompt, on_chunk)
        return StartResult(
            workflow_id=workflow_id,
            project_name=project_name,
            current_phase=result.workflow_status.current_phase,
            current_persona=result.workflow_status.current_persona,
            result=result,
            progress=result.workflow_status.progress,
        )

    async def execute_current_phase(
        self,
        workflow_id: str,
        message: str,
        on_chunk: ChunkCallback | None = None,
    ) -> PhaseResult:
        """Run one step of the workflow's current phase.

        Raises:
            WorkflowNotFoundError: Unknown workflow id.
            WorkflowStateError: The workflow is not active.
            InputValidationError: Empty or oversized message.
            GenerationError, PromptLoadError: The step failed; the workflow
                is persisted as failed before the error propagates.
        """
        self._conversation.validate_message(message)

        async with self._workflow_lock(workflow_id):
            workflow = await self._repository.load(workflow_id)
            self._ensure_active(workflow)

            phase = workflow.current_phase
            definition = PHASES[phase]
            persona = definition.persona
            if persona is None:
                raise WorkflowStateError(f"Workflow '{workflow_id}' has no phase left to run")

            with log_context(workflow_id=workflow_id, phase=phase.value):
                logger.info("Executing phase %s with %s", phase.value, persona.value)
                enhanced = self.build_enhanced_message(workflow, message)
                started = time.monotonic()
                try:
                    reply = await self._conversation.converse(
                        persona,
                        enhanced,
                        ConversationOptions(
                            scenario=Scenario.CREATION,
                            temperature=definition.temperature,
                            max_tokens=definition.max_tokens,
                        ),
                        on_chunk=on_chunk,
                        check_length=False,
                    )
                except (GenerationError, PromptLoadError) as exc:
                    await self._mark_failed(workflow, exc)
                    raise
                duration_ms = int((time.monotonic() - started) * 1000)

                output = reply.response_text
                quality = self._scorer.score(output, phase)
                now = self._clock()

                next_action = self._decide_next_action(workflow, phase, quality, message, output)
                step = WorkflowStep(
                    step_id=make_step_id(now),
                    phase=phase,
                    persona=persona,
                    input=message,
                    output=output,
                    quality=quality,
                    duration_ms=duration_ms,
                    timestamp=now,
                    next_actions=(next_action,),
                )
                workflow.history.append(step)
                self._merge_context(workflow, step)
                self._update_progress(workflow, step)
                workflow.touch(now)

                await self._repository.save(workflow)
                logger.info(
                    "Phase %s done: quality=%d, next=%s",
                    phase.value, quality, next_action.action.value,
                )

            return PhaseResult(
                workflow_id=workflow_id,
                step=step,
                next_action=next_action,
                workflow_status=WorkflowStatusView(
                    status=workflow.status,
                    current_phase=workflow.current_phase,
                    current_persona=workflow.current_persona,
                    progress=workflow.progress.model_copy(),
                    can_proceed=next_action.can_proceed,
                ),
                suggestions=phase_suggestions(phase, quality),
            )

    async def choose_next_phase(self, workflow_id: str, phase: Phase | str) -> Workflow:
        """Apply the caller's selection after a step that ended in a choice.

        Raises:
            WorkflowStateError: The workflow is not active or not waiting for a choice.
            InputValidationError: ``phase`` is not a successor of the current phase.
        """
        try:
            target = Phase(phase)
        except ValueError as exc:
            raise InputValidationError(f"Unknown phase: {phase!r}") from exc

        async with self._workflow_lock(workflow_id):
            workflow = await self._repository.load(workflow_id)
            self._ensure_active(workflow)
            current = workflow.current_phase
            last = workflow.history[-1] if workflow.history else None
            if (
                last is None
                or last.phase != current
                or last.next_actions[-1].action != NextActionType.CHOOSE
            ):
                raise WorkflowStateError(
                    f"Workflow '{workflow_id}' is not waiting for a choice in '{current.value}'"
                )
            if target not in PHASES[current].next_phases:
                raise InputValidationError(
                    f"Phase '{target.value}' cannot follow '{current.value}'"
                )

            self._move_to(workflow, target)
            workflow.touch(self._clock())
            await self._repository.save(workflow)
            logger.info("Workflow %s: %s chosen after %s", workflow_id, target.value, current.value)
            return workflow

    async def get_workflow_info(self, workflow_id: str) -> WorkflowInfo:
        workflow = await self._repository.load(workflow_id)
        return WorkflowInfo(
            workflow=workflow,
            phase=PHASES[workflow.current_phase],
            previous_outputs=self.previous_outputs(workflow),
        )

    async def list_user_workflows(self, user_id: str) -> list[WorkflowSummary]:
        """Summaries of a user's workflows, most recently updated first."""
        return [
            WorkflowSummary(
                id=w.id,
                project_name=w.project_name,
                status=w.status,
                current_phase=w.current_phase,
                current_persona=w.current_persona,
                progress=w.progress,
                created_at=w.created_at,
                updated_at=w.updated_at,
            )
            for w in await self._repository.list_for_user(user_id)
        ]

    # ------------------------------------------------------------------
    # Step internals
    # ------------------------------------------------------------------

    @staticmethod
    def build_enhanced_message(workflow: Workflow, message: str) -> str:
        """Message plus project info, a digest of recent steps and phase requirements."""
        definition = PHASES[workflow.current_phase]
        lines = [
            message,
            "",
            "【项目信息】",
            f"项目名称: {workflow.project_name}",
            f"当前阶段: {definition.name}",
            f"原始需求: {workflow.context.original_prompt}",
        ]

        if workflow.history:
            lines += ["", "【前序工作成果】"]
            for step in workflow.history[-DIGEST_STEPS:]:
                lines.append(
                    f"{step.persona.value}({step.phase.value}): "
                    f"{step.output[:DIGEST_PREVIEW_CHARS]}..."
                )

        lines += [
            "",
            "【当前阶段要求】",
            f"阶段目标: {definition.description}",
            f"预期交付: 请提供{definition.name}的具体内容",
        ]
        return "\n".join(lines)

    @staticmethod
    def previous_outputs(workflow: Workflow) -> dict[Phase, list[PhaseOutput]]:
        """Outputs of past steps grouped by phase, in execution order."""
        outputs: dict[Phase, list[PhaseOutput]] = {}
        for step in workflow.history:
            outputs.setdefault(step.phase, []).append(
                PhaseOutput(persona=step.persona, output=step.output, quality=step.quality)
            )
        return outputs

    def _decide_next_action(
        self, workflow: Workflow, phase: Phase, quality: int, step_input: str, output: str,
    ) -> NextAction:
        """Pick the transition for a finished step and apply it to ``workflow``."""
        definition = PHASES[phase]

        if quality < self._quality_threshold:
            return NextAction(
                action=NextActionType.RETRY,
                target_phase=phase,
                target_persona=definition.persona,
                reason=f"当前输出质量不达标({quality}%)，建议重新执行",
                can_proceed=False,
                suggestions=list(RETRY_SUGGESTIONS),
            )

        if phase == Phase.ANALYSIS:
            branch = needs_worldbuilding(step_input, output)
            target = Phase.WORLDBUILDING if branch else Phase.PLANNING
            self._move_to(workflow, target)
            return NextAction(
                action=NextActionType.PROCEED,
                target_phase=target,
                target_persona=PHASES[target].persona,
                reason="需要先构建世界观设定" if branch else "可以直接开始故事规划",
                can_proceed=True,
                auto_generate=True,
            )

        if len(definition.next_phases) == 1:
            target = definition.next_phases[0]
            self._move_to(workflow, target)
            if PHASES[target].is_terminal:
                return NextAction(
                    action=NextActionType.COMPLETE,
                    target_phase=target,
                    reason="项目创作完成",
                    can_proceed=False,
                )
            return NextAction(
                action=NextActionType.PROCEED,
                target_phase=target,
                target_persona=PHASES[target].persona,
                reason=f"{definition.name}完成，进入{PHASES[target].name}阶段",
                can_proceed=True,
                auto_generate=True,
            )

        return NextAction(
            action=NextActionType.CHOOSE,
            reason="请选择下一步操作",
            can_proceed=True,
            choices=choices_for(phase),
        )

    @staticmethod
    def _move_to(workflow: Workflow, target: Phase) -> None:
        workflow.current_phase = target
        workflow.current_persona = PHASES[target].persona
        if PHASES[target].is_terminal:
            workflow.status = WorkflowStatus.COMPLETED
            workflow.progress.completion_percent = 100

    @staticmethod
    def _merge_context(workflow: Workflow, step: WorkflowStep) -> None:
        artifact = ContextArtifact(
            content=step.output, timestamp=step.timestamp, quality=step.quality,
        )
        if step.phase == Phase.WORLDBUILDING:
            workflow.context.worldview = artifact
        elif step.phase == Phase.PLANNING:
            workflow.context.storyline = artifact
        elif step.phase == Phase.WRITING:
            workflow.context.chapters.append(
                ChapterArtifact(**artifact.model_dump(), word_count=len(step.output))
            )
        elif step.phase == Phase.REVIEW:
            workflow.context.revisions.append(artifact)

    @staticmethod
    def _update_progress(workflow: Workflow, step: WorkflowStep) -> None:
        progress = workflow.progress
        progress.completion_percent = min(
            progress.completion_percent + progress_increment(step.phase, step.quality), 100,
        )
        progress.current_step = len(workflow.history)
        # Half-up rounding
        progress.quality_average = int(
            sum(s.quality for s in workflow.history) / len(workflow.history) + 0.5
        )

    @staticmethod
    def _ensure_active(workflow: Workflow) -> None:
        if workflow.status != WorkflowStatus.ACTIVE:
            raise WorkflowStateError(
                f"Workflow '{workflow.id}' is {workflow.status.value}, not active"
            )

    async def _mark_failed(self, workflow: Workflow, exc: Exception) -> None:
        logger.error("Workflow %s failed in %s: %s", workflow.id, workflow.current_phase.value, exc)
        workflow.status = WorkflowStatus.FAILED
        workflow.touch(self._clock())
        await self._repository.save(workflow)
