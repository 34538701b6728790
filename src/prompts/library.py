# src/prompts/library.py — v1
"""Prompt library — loads, caches and composes persona instructions.

Legacy personas read ``{roles_root}/{id}.oes.md`` (structured) or
``{roles_root}/{id}.prompt.md`` (tagged). Modular personas read their role
definition from the module tree and resolve its references; a missing or
unusable role definition falls back to the legacy document.

Loaded prompts are cached per persona id until ``clear``. Concurrent first
loads of the same persona share one in-flight resolution.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from storyloom.core.errors import ParseError, PromptLoadError
from storyloom.personas.models import Persona, Scenario
from storyloom.prompts import parser
from storyloom.prompts.models import PersonaCard, PersonaPrompt
from storyloom.prompts.modules import (
    ModuleResolver,
    compose_modular,
    extract_capabilities,
    generate_modular_card,
    parse_role_definition,
)

logger = logging.getLogger(__name__)

LEGACY_SUFFIXES: tuple[str, ...] = (".oes.md", ".prompt.md")


class PromptLibrary:
    """Cache-backed loader of persona prompt material.

    Args:
        roles_root: Directory of legacy persona documents.
        modules_root: Root of the modular role tree. None disables modular loading.
    """

    def __init__(self, roles_root: Path | str, modules_root: Path | str | None = None) -> None:
        self._roles_root = Path(roles_root).expanduser()
        self._resolver = ModuleResolver(modules_root) if modules_root is not None else None
        self._cache: dict[str, PersonaPrompt] = {}
        self._inflight: dict[str, asyncio.Task[PersonaPrompt]] = {}
        self._loads = 0

    @property
    def load_count(self) -> int:
        """Number of uncached resolutions performed so far."""
        return self._loads

    def cached_ids(self) -> list[str]:
        return sorted(self._cache)

    def legacy_candidates(self, persona_id: str) -> list[Path]:
        return [self._roles_root / f"{persona_id}{suffix}" for suffix in LEGACY_SUFFIXES]

    async def load(self, persona: Persona) -> PersonaPrompt:
        """Return the prompt material of a persona, loading it once.

        Raises:
            PromptLoadError: If no usable document exists, or a required
                module cannot be resolved.
        """
        key = persona.id.value
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load_uncached(persona))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        else:
            logger.debug("Joining in-flight prompt load for %s", key)

        # Shielded so one cancelled waiter does not abort the shared load.
        return await asyncio.shield(task)

    async def _load_uncached(self, persona: Persona) -> PersonaPrompt:
        self._loads += 1
        prompt: PersonaPrompt | None = None
        if persona.modular and self._resolver is not None and persona.module_dir:
            prompt = await self._load_modular(persona)
        if prompt is None:
            prompt = await self._load_legacy(persona)
        self._cache[persona.id.value] = prompt
        logger.info(
            "Loaded %s prompt for %s from %s", prompt.strategy, persona.id.value, prompt.source
        )
        return prompt

    async def _load_modular(self, persona: Persona) -> PersonaPrompt | None:
        assert self._resolver is not None
        role_file = self._resolver.role_file(persona.module_dir)
        if not role_file.is_file():
            logger.warning(
                "Role definition missing for %s (%s), falling back to legacy document",
                persona.id.value, role_file,
            )
            return None

        raw = await asyncio.to_thread(role_file.read_text, encoding="utf-8")
        try:
            role = parse_role_definition(raw)
        except ParseError as exc:
            logger.warning(
                "Unusable role definition for %s: %s; falling back to legacy document",
                persona.id.value, exc,
            )
            return None

        modules = await self._resolver.resolve(persona.module_dir, role)
        return PersonaPrompt(
            persona_id=persona.id.value,
            strategy="modular",
            role=role,
            modules=modules,
            source=str(role_file),
        )

    async def _load_legacy(self, persona: Persona) -> PersonaPrompt:
        for path in self.legacy_candidates(persona.id.value):
            if not path.is_file():
                continue
            try:
                raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            except OSError as exc:
                raise PromptLoadError(f"Cannot read {path}: {exc}") from exc
            return PersonaPrompt(
                persona_id=persona.id.value,
                strategy="legacy",
                document=parser.parse(raw),
                source=str(path),
            )
        raise PromptLoadError(f"No prompt document found for persona '{persona.id.value}'")

    async def compose_for(self, persona: Persona, scenario: Scenario | str | None = None) -> str:
        """Composed instruction text for a persona and scenario."""
        prompt = await self.load(persona)
        return compose_prompt(prompt, scenario)

    async def card_for(self, persona: Persona) -> PersonaCard:
        prompt = await self.load(persona)
        if prompt.strategy == "modular" and prompt.role is not None:
            return generate_modular_card(prompt.role, prompt.modules)
        assert prompt.document is not None
        return parser.generate_card(prompt.document)

    async def capabilities_for(self, persona: Persona) -> list[str]:
        prompt = await self.load(persona)
        if prompt.strategy == "modular":
            return extract_capabilities(prompt.modules)
        assert prompt.document is not None
        return parser.extract_list(prompt.document.sections.get("expertise"))

    def clear(self, persona_id: str | None = None) -> None:
        """Invalidate one cached persona, or all of them."""
        if persona_id is None:
            self._cache.clear()
            logger.info("Prompt cache cleared")
        else:
            self._cache.pop(persona_id, None)
            logger.info("Prompt cache cleared for %s", persona_id)


def compose_prompt(prompt: PersonaPrompt, scenario: Scenario | str | None = None) -> str:
    """Compose loaded prompt material.

    Scenario emphasis applies to legacy documents only; modular prompts
    compose identically for every scenario.
    """
    if prompt.strategy == "legacy":
        assert prompt.document is not None
        return parser.compose(prompt.document, scenario)

    assert prompt.role is not None
    return compose_modular(prompt.role, prompt.modules)
