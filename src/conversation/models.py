# src/conversation/models.py — v1
"""Conversation types: options, current-file context, usage, results, history."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from storyloom.personas.models import Scenario
from storyloom.prompts.models import ExampleExchange, PersonaCard


class CurrentFile(BaseModel):
    """Excerpt of the file the user is working on."""

    path: str
    type: str = "markdown"
    preview: str = ""


class RelatedFile(BaseModel):
    """Another project file worth mentioning to the persona."""

    name: str
    description: str = ""


class ConversationOptions(BaseModel):
    """Per-call options of a persona conversation."""

    scenario: Scenario = Scenario.DEFAULT
    current_file: CurrentFile | None = None
    project_path: str | None = None
    cross_project_note: str | None = None
    related_files: list[RelatedFile] = Field(default_factory=list)
    max_tokens: int | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)


class TokenUsage(BaseModel):
    """Token accounting of one generation call."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ContextFlags(BaseModel):
    """Which context blocks were attached to the prompt."""

    has_history: bool = False
    has_project_info: bool = False
    has_current_file: bool = False
    has_cross_project: bool = False
    related_files: int = 0


class ConversationResult(BaseModel):
    """Outcome of one persona conversation."""

    persona_id: str
    persona_name: str
    persona_icon: str = ""
    scenario: Scenario
    scenario_label: str = ""
    user_message: str
    response_text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    temperature: float
    max_tokens: int
    context: ContextFlags = Field(default_factory=ContextFlags)
    timestamp: datetime


class HistoryEntry(BaseModel):
    """One recorded exchange, both sides truncated to the preview length."""

    user: str
    assistant: str
    scenario: Scenario = Scenario.DEFAULT
    timestamp: datetime
    tokens: int = 0


class HistoryStats(BaseModel):
    """Aggregate figures of one persona's rolling history."""

    persona_id: str
    count: int = 0
    total_tokens: int = 0
    last_chat: datetime | None = None


class HistoryExport(BaseModel):
    """Full history dump of one persona."""

    persona_id: str
    persona_name: str
    conversations: list[HistoryEntry] = Field(default_factory=list)
    statistics: HistoryStats
    export_time: datetime


class PersonaSummary(BaseModel):
    """Catalog entry of a persona with its prompt availability."""

    id: str
    name: str
    icon: str
    color: str
    description: str = ""
    content_areas: list[str] = Field(default_factory=list)
    available: bool = False
    strategy: str | None = None
    error: str | None = None


class MultiPersonaReply(BaseModel):
    """Per-persona outcome of a multi-persona conversation."""

    persona_id: str
    success: bool
    result: ConversationResult | None = None
    error: str | None = None
    error_code: str | None = None


class PersonaDetail(BaseModel):
    """Persona summary plus the card, capabilities and examples of its prompt."""

    persona: PersonaSummary
    card: PersonaCard
    capabilities: list[str] = Field(default_factory=list)
    examples: list[ExampleExchange] = Field(default_factory=list)
