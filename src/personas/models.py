# src/personas/models.py — v1
"""Persona identity types: PersonaId, Scenario, Persona."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PersonaId(str, Enum):
    """Closed set of personas known to the system."""

    ARCHITECT = "architect"
    PLANNER = "planner"
    WRITER = "writer"
    DIRECTOR = "director"
    NOVEL_ARCHITECT = "novel-architect"


class Scenario(str, Enum):
    """Interaction scenario selecting which prompt sections get emphasis."""

    DEFAULT = "default"
    BRAINSTORMING = "brainstorming"
    REVIEW = "review"
    PROBLEM_SOLVING = "problem_solving"
    CREATION = "creation"


class Persona(BaseModel):
    """A registered persona. Frozen after registry load."""

    model_config = ConfigDict(frozen=True)

    id: PersonaId
    name: str
    icon: str
    color: str
    content_areas: frozenset[str] = Field(default_factory=frozenset)
    modular: bool = False
    module_dir: str | None = None
    description: str = ""

    @property
    def covers_all_areas(self) -> bool:
        """Whether the persona is responsible for every content area."""
        return "all" in self.content_areas
