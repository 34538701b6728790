# src/personas/registry.py — v1
"""Persona registry — static catalog lookup and content-area routing.

Personas are loaded from the PERSONA_CATALOG config list. Every persona id
used by the conversation and workflow layers is validated here.
"""

from __future__ import annotations

import logging
from pathlib import PurePath

from storyloom.config.personas import FILENAME_PERSONA_HINTS, PERSONA_CATALOG
from storyloom.core.errors import PersonaNotFoundError
from storyloom.personas.models import Persona, PersonaId

logger = logging.getLogger(__name__)


class PersonaRegistry:
    """Registry of all available personas.

    Args:
        personas: Catalog to load. Defaults to PERSONA_CATALOG.
    """

    def __init__(self, personas: list[Persona] | None = None) -> None:
        self._personas: dict[PersonaId, Persona] = {}
        for persona in personas if personas is not None else PERSONA_CATALOG:
            if persona.id in self._personas:
                logger.warning("Overwriting existing persona: %s", persona.id.value)
            self._personas[persona.id] = persona
        logger.debug("Registry loaded %d personas", len(self._personas))

    @property
    def personas(self) -> list[Persona]:
        """Return personas in catalog order."""
        return list(self._personas.values())

    @property
    def persona_ids(self) -> list[str]:
        """Return registered persona id strings."""
        return [p.value for p in self._personas]

    def __contains__(self, persona_id: object) -> bool:
        return self.find(persona_id) is not None  # type: ignore[arg-type]

    def find(self, persona_id: str | PersonaId) -> Persona | None:
        """Get a persona by id, or None if unknown."""
        try:
            key = PersonaId(persona_id)
        except ValueError:
            return None
        return self._personas.get(key)

    def get_or_raise(self, persona_id: str | PersonaId) -> Persona:
        """Get a persona by id.

        Raises:
            PersonaNotFoundError: If the id is not registered.
        """
        persona = self.find(persona_id)
        if persona is None:
            raw = persona_id.value if isinstance(persona_id, PersonaId) else str(persona_id)
            raise PersonaNotFoundError(raw)
        return persona

    def suggest_for_path(self, file_path: str) -> Persona:
        """Pick the persona responsible for a project file.

        Matches content-area directories first (personas covering every area
        are skipped), then filename keywords, falling back to the director.
        """
        for persona in self._personas.values():
            if persona.covers_all_areas:
                continue
            if any(area in file_path for area in persona.content_areas):
                return persona

        filename = PurePath(file_path).name.lower()
        for keywords, persona_id in FILENAME_PERSONA_HINTS:
            if any(k in filename for k in keywords) and persona_id in self._personas:
                return self._personas[persona_id]

        return self.get_or_raise(PersonaId.DIRECTOR)

    def content_area_of(self, file_path: str) -> str | None:
        """Return the content-area directory a path belongs to, if any."""
        for persona in self._personas.values():
            for area in sorted(persona.content_areas):
                if area != "all" and area in file_path:
                    return area
        return None
