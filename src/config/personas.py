# src/config/personas.py — v1
"""Declarative persona catalog and per-persona tuning tables.

Loaded once by personas/registry.py. Content areas are the project
directories each persona is responsible for.
"""

from __future__ import annotations

from storyloom.personas.models import Persona, PersonaId, Scenario

PERSONA_CATALOG: list[Persona] = [
    Persona(
        id=PersonaId.ARCHITECT,
        name="世界观架构师",
        icon="🏛️",
        color="#4A90E2",
        content_areas=frozenset({"0-小说设定"}),
        modular=True,
        module_dir="worldview-designer",
        description="世界观构建专家",
    ),
    Persona(
        id=PersonaId.PLANNER,
        name="故事规划师",
        icon="📐",
        color="#7B68EE",
        content_areas=frozenset({"1-故事大纲", "2-故事概要"}),
        modular=True,
        module_dir="novel-planner",
        description="故事结构规划师",
    ),
    Persona(
        id=PersonaId.WRITER,
        name="文学写手",
        icon="✍️",
        color="#FF6B6B",
        content_areas=frozenset({"3-小说内容"}),
        modular=True,
        module_dir="text-creator",
        description="内容创作专家",
    ),
    Persona(
        id=PersonaId.DIRECTOR,
        name="创作总监",
        icon="🎬",
        color="#4ECDC4",
        content_areas=frozenset({"all"}),
        modular=True,
        module_dir="system-director",
        description="质量把控专家",
    ),
    Persona(
        id=PersonaId.NOVEL_ARCHITECT,
        name="小说架构师",
        icon="🏗️",
        color="#9B59B6",
        content_areas=frozenset({"all"}),
        modular=False,
        description="项目专属AI角色，融合技术与创作的桥梁",
    ),
]

# Display names for scenarios.
SCENARIO_LABELS: dict[Scenario, str] = {
    Scenario.DEFAULT: "常规对话",
    Scenario.BRAINSTORMING: "头脑风暴",
    Scenario.REVIEW: "作品审核",
    Scenario.PROBLEM_SOLVING: "问题解决",
    Scenario.CREATION: "内容创作",
}

# Creativity per persona and scenario; "default" is the persona fallback.
PERSONA_TEMPERATURES: dict[PersonaId, dict[Scenario, float]] = {
    PersonaId.ARCHITECT: {
        Scenario.DEFAULT: 0.7, Scenario.BRAINSTORMING: 0.9, Scenario.REVIEW: 0.5,
    },
    PersonaId.PLANNER: {
        Scenario.DEFAULT: 0.6, Scenario.BRAINSTORMING: 0.8, Scenario.REVIEW: 0.4,
    },
    PersonaId.WRITER: {
        Scenario.DEFAULT: 0.8, Scenario.CREATION: 0.9, Scenario.REVIEW: 0.5,
    },
    PersonaId.DIRECTOR: {
        Scenario.DEFAULT: 0.5, Scenario.PROBLEM_SOLVING: 0.6, Scenario.REVIEW: 0.3,
    },
    PersonaId.NOVEL_ARCHITECT: {
        Scenario.DEFAULT: 0.6,
        Scenario.BRAINSTORMING: 0.8,
        Scenario.PROBLEM_SOLVING: 0.7,
        Scenario.REVIEW: 0.4,
    },
}

# Filename keywords used when a path matches no content area.
FILENAME_PERSONA_HINTS: list[tuple[tuple[str, ...], PersonaId]] = [
    (("设定", "setting"), PersonaId.ARCHITECT),
    (("大纲", "outline"), PersonaId.PLANNER),
    (("概要", "summary"), PersonaId.PLANNER),
    (("章", "chapter"), PersonaId.WRITER),
]
