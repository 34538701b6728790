# tests/unit/personas/test_unit_registry.py — v1
"""Tests for personas/registry.py — catalog lookup and file routing."""

from __future__ import annotations

import pytest

from storyloom.core.errors import PersonaNotFoundError
from storyloom.personas.models import Persona, PersonaId
from storyloom.personas.registry import PersonaRegistry


class TestPersonaRegistry:
    def test_default_catalog(self):
        registry = PersonaRegistry()
        assert registry.persona_ids == [
            "architect", "planner", "writer", "director", "novel-architect",
        ]

    def test_find_by_string(self):
        registry = PersonaRegistry()
        persona = registry.find("writer")
        assert persona is not None
        assert persona.id == PersonaId.WRITER

    def test_find_unknown_returns_none(self):
        assert PersonaRegistry().find("ghost") is None

    def test_get_or_raise_unknown(self):
        with pytest.raises(PersonaNotFoundError) as exc_info:
            PersonaRegistry().get_or_raise("ghost")
        assert exc_info.value.persona_id == "ghost"
        assert exc_info.value.code == "PERSONA_NOT_FOUND"

    def test_contains(self):
        registry = PersonaRegistry()
        assert "planner" in registry
        assert "ghost" not in registry

    def test_persona_is_frozen(self):
        persona = PersonaRegistry().get_or_raise("architect")
        with pytest.raises(Exception):
            persona.name = "changed"  # type: ignore[misc]

    def test_custom_catalog(self):
        only = Persona(id=PersonaId.WRITER, name="W", icon="w", color="#000")
        registry = PersonaRegistry([only])
        assert registry.persona_ids == ["writer"]
        assert registry.find("director") is None


class TestSuggestForPath:
    @pytest.mark.parametrize("path, expected", [
        ("project/0-小说设定/魔法体系.md", PersonaId.ARCHITECT),
        ("project/1-故事大纲/第一卷.md", PersonaId.PLANNER),
        ("project/2-故事概要/总览.md", PersonaId.PLANNER),
        ("project/3-小说内容/001.md", PersonaId.WRITER),
    ])
    def test_content_area_match(self, path, expected):
        assert PersonaRegistry().suggest_for_path(path).id == expected

    @pytest.mark.parametrize("path, expected", [
        ("notes/world_setting.md", PersonaId.ARCHITECT),
        ("notes/outline.md", PersonaId.PLANNER),
        ("notes/第三章.md", PersonaId.WRITER),
    ])
    def test_filename_hints(self, path, expected):
        assert PersonaRegistry().suggest_for_path(path).id == expected

    def test_fallback_director(self):
        assert PersonaRegistry().suggest_for_path("misc/readme.md").id == PersonaId.DIRECTOR

    def test_content_area_of(self):
        registry = PersonaRegistry()
        assert registry.content_area_of("p/3-小说内容/a.md") == "3-小说内容"
        assert registry.content_area_of("p/other/a.md") is None
