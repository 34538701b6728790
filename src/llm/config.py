# src/llm/config.py — v2
"""Per-persona LLM routing with cascade resolution.

Resolution order:
  1. Per-persona setting (LLM_PERSONA_WRITER=openai:gpt-4o)
  2. Default provider + model (LLM_PROVIDER + LLM_MODEL)
  3. Hardcoded fallback (google:gemini-1.5-flash)
"""

from __future__ import annotations

from dataclasses import dataclass

from storyloom.config.settings import Settings
from storyloom.personas.models import PersonaId

_FALLBACK_PROVIDER = "google"
_FALLBACK_MODEL = "gemini-1.5-flash"


@dataclass(frozen=True)
class LLMAssignment:
    """Resolved LLM provider:model for a persona."""

    provider: str
    model: str
    source: str  # "persona", "default", or "fallback"

    @property
    def key(self) -> str:
        """Return 'provider:model' string."""
        return f"{self.provider}:{self.model}"


def _parse_assignment(value: str) -> tuple[str, str] | None:
    """Parse 'provider:model' string. Returns None if empty."""
    if not value or ":" not in value:
        return None
    provider, model = value.split(":", 1)
    return (provider.strip(), model.strip())


def resolve_llm(persona_id: PersonaId | str, settings: Settings) -> LLMAssignment:
    """Resolve the LLM assignment of a persona."""
    key = PersonaId(persona_id).value.replace("-", "_")
    parsed = _parse_assignment(getattr(settings, f"llm_persona_{key}", ""))
    if parsed:
        return LLMAssignment(provider=parsed[0], model=parsed[1], source="persona")

    if settings.llm_provider and settings.llm_model:
        return LLMAssignment(
            provider=settings.llm_provider, model=settings.llm_model, source="default",
        )

    return LLMAssignment(provider=_FALLBACK_PROVIDER, model=_FALLBACK_MODEL, source="fallback")


def resolve_all(settings: Settings) -> dict[PersonaId, LLMAssignment]:
    """Resolve LLM assignments for every persona."""
    return {pid: resolve_llm(pid, settings) for pid in PersonaId}
