# src/workflow/models.py — v1
"""Workflow state types: Phase, Workflow, WorkflowStep, NextAction and results.

A Workflow is mutated only by the orchestrator and persisted as one JSON
document after every mutation. WorkflowStep is frozen once appended.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from storyloom.personas.models import PersonaId


class Phase(str, Enum):
    """Workflow phase. COMPLETED is the terminal entry of the phase table."""

    ANALYSIS = "analysis"
    WORLDBUILDING = "worldbuilding"
    PLANNING = "planning"
    WRITING = "writing"
    REVIEW = "review"
    COMPLETED = "completed"


class WorkflowStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class NextActionType(str, Enum):
    PROCEED = "proceed"
    RETRY = "retry"
    CHOOSE = "choose"
    COMPLETE = "complete"


class PhaseDefinition(BaseModel):
    """Static description of one phase (never persisted)."""

    model_config = ConfigDict(frozen=True)

    persona: PersonaId | None
    name: str
    description: str
    next_phases: tuple[Phase, ...] = ()
    temperature: float = 0.7
    max_tokens: int = 2048
    weight: int = 0

    @property
    def is_terminal(self) -> bool:
        return not self.next_phases


class PhaseChoice(BaseModel):
    """A candidate successor offered after review."""

    phase: Phase
    persona: PersonaId | None = None
    name: str
    description: str


class NextAction(BaseModel):
    """Transition decided after a step."""

    action: NextActionType
    target_phase: Phase | None = None
    target_persona: PersonaId | None = None
    reason: str = ""
    can_proceed: bool = True
    auto_generate: bool = False
    choices: list[PhaseChoice] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class WorkflowStep(BaseModel):
    """One executed phase. Immutable once appended to the history."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    phase: Phase
    persona: PersonaId
    input: str
    output: str
    quality: int = Field(ge=0, le=100)
    duration_ms: int = 0
    timestamp: datetime
    next_actions: tuple[NextAction, ...] = ()


class ContextArtifact(BaseModel):
    """Output of a phase merged into the workflow context."""

    content: str
    timestamp: datetime
    quality: int = Field(default=0, ge=0, le=100)


class ChapterArtifact(ContextArtifact):
    word_count: int = 0


class WorkflowContext(BaseModel):
    """Accumulated project material handed from phase to phase."""

    original_prompt: str
    worldview: ContextArtifact | None = None
    storyline: ContextArtifact | None = None
    chapters: list[ChapterArtifact] = Field(default_factory=list)
    revisions: list[ContextArtifact] = Field(default_factory=list)


class WorkflowProgress(BaseModel):
    completion_percent: int = Field(default=0, ge=0, le=100)
    quality_average: int = Field(default=0, ge=0, le=100)
    current_step: int = 0
    total_steps: int = 5


class Workflow(BaseModel):
    """One end-to-end project run through the phase machine."""

    id: str
    user_id: str
    project_name: str
    status: WorkflowStatus = WorkflowStatus.ACTIVE
    current_phase: Phase = Phase.ANALYSIS
    current_persona: PersonaId | None = PersonaId.DIRECTOR
    context: WorkflowContext
    history: list[WorkflowStep] = Field(default_factory=list)
    progress: WorkflowProgress = Field(default_factory=WorkflowProgress)
    created_at: datetime
    updated_at: datetime
    last_activity_at: datetime

    def touch(self, now: datetime) -> None:
        """Mark the workflow as modified at ``now``."""
        self.updated_at = now
        self.last_activity_at = now


class WorkflowStatusView(BaseModel):
    status: WorkflowStatus
    current_phase: Phase
    current_persona: PersonaId | None
    progress: WorkflowProgress
    can_proceed: bool


class PhaseResult(BaseModel):
    """Outcome of executing the current phase."""

    workflow_id: str
    step: WorkflowStep
    next_action: NextAction
    workflow_status: WorkflowStatusView
    suggestions: list[str] = Field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.workflow_status.status == WorkflowStatus.COMPLETED


class StartResult(BaseModel):
    workflow_id: str
    project_name: str
    current_phase: Phase
    current_persona: PersonaId | None
    result: PhaseResult
    progress: WorkflowProgress


class PhaseOutput(BaseModel):
    persona: PersonaId
    output: str
    quality: int


class WorkflowInfo(BaseModel):
    """A workflow with its current phase definition and outputs by phase."""

    workflow: Workflow
    phase: PhaseDefinition
    previous_outputs: dict[Phase, list[PhaseOutput]] = Field(default_factory=dict)


class WorkflowSummary(BaseModel):
    """Listing entry of a user's workflows."""

    id: str
    project_name: str
    status: WorkflowStatus
    current_phase: Phase
    current_persona: PersonaId | None
    progress: WorkflowProgress
    created_at: datetime
    updated_at: datetime
