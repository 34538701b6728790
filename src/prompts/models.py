# src/prompts/models.py — v1
"""Prompt-document types: PromptDocument, ModuleReference, ResolvedModule,
RoleDefinition, PersonaPrompt and the card views built from them.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DocumentFormat(str, Enum):
    """Shape of a legacy persona document."""

    TAGGED = "tagged"
    STRUCTURED = "structured"
    RAW = "raw"


class ModuleKind(str, Enum):
    """Kind of fragment a module reference points at."""

    BEHAVIORAL_PATTERN = "behavioral-pattern"
    PROCEDURE = "procedure"
    DOMAIN_KNOWLEDGE = "domain-knowledge"
    FILE = "file"
    UNKNOWN = "unknown"


class PromptDocument(BaseModel):
    """A parsed legacy persona document."""

    title: str = ""
    subtitle: str = ""
    sections: dict[str, str] = Field(default_factory=dict)
    additional_sections: dict[str, str] = Field(default_factory=dict)
    raw: str = ""
    format: DocumentFormat = DocumentFormat.TAGGED


class ModuleReference(BaseModel):
    """Pointer from a role definition to an external module."""

    model_config = ConfigDict(frozen=True)

    kind: ModuleKind
    target: str
    required: bool = False

    @property
    def module_name(self) -> str:
        """Module name: last path segment of the reference, markers removed."""
        name = self.target.split("//")[-1]
        return name.replace("@!", "").replace("@", "").strip()


class ResolvedModule(BaseModel):
    """A module reference resolved to file content."""

    name: str
    kind: ModuleKind
    content: str
    location: str


class RoleIdentity(BaseModel):
    """Identity block of a modular role definition."""

    name: str = ""
    title: str = ""
    description: str = ""


class RoleDefinition(BaseModel):
    """A parsed modular role definition document."""

    identity: RoleIdentity = Field(default_factory=RoleIdentity)
    personality: list[ModuleReference] = Field(default_factory=list)
    principle: list[ModuleReference] = Field(default_factory=list)
    knowledge: list[ModuleReference] = Field(default_factory=list)
    raw: str = ""


class PersonaPrompt(BaseModel):
    """Cached, fully loaded prompt material for one persona."""

    persona_id: str
    strategy: Literal["legacy", "modular"]
    document: PromptDocument | None = None
    role: RoleDefinition | None = None
    modules: list[ResolvedModule] = Field(default_factory=list)
    source: str = ""

    def modules_of(self, kind: ModuleKind) -> list[ResolvedModule]:
        """Resolved modules of one kind, in reference order."""
        return [m for m in self.modules if m.kind == kind]


class ExampleExchange(BaseModel):
    """Example question/answer pair extracted from a persona document."""

    question: str
    answer: str


class PersonaCard(BaseModel):
    """Display summary of a persona's prompt material."""

    name: str = ""
    subtitle: str = ""
    description: str = ""
    expertise: list[str] = Field(default_factory=list)
    style: dict[str, str] = Field(default_factory=dict)
    capabilities: int = 0
    module_counts: dict[str, int] = Field(default_factory=dict)
