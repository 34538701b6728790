# src/workflow/phases.py — v1
"""Static phase table and phase-level policies.

analysis → {worldbuilding | planning} → planning → writing → review →
{worldbuilding | planning | writing | completed}
"""

from __future__ import annotations

from storyloom.personas.models import PersonaId
from storyloom.workflow.models import Phase, PhaseChoice, PhaseDefinition

PHASES: dict[Phase, PhaseDefinition] = {
    Phase.ANALYSIS: PhaseDefinition(
        persona=PersonaId.DIRECTOR,
        name="需求分析",
        description="理解创作需求，制定创作计划",
        next_phases=(Phase.WORLDBUILDING, Phase.PLANNING),
        temperature=0.3,
        max_tokens=1024,
        weight=10,
    ),
    Phase.WORLDBUILDING: PhaseDefinition(
        persona=PersonaId.ARCHITECT,
        name="世界观构建",
        description="设计故事世界的背景设定",
        next_phases=(Phase.PLANNING,),
        temperature=0.8,
        max_tokens=2048,
        weight=25,
    ),
    Phase.PLANNING: PhaseDefinition(
        persona=PersonaId.PLANNER,
        name="故事规划",
        description="制定故事大纲和结构",
        next_phases=(Phase.WRITING,),
        temperature=0.6,
        max_tokens=2048,
        weight=30,
    ),
    Phase.WRITING: PhaseDefinition(
        persona=PersonaId.WRITER,
        name="内容创作",
        description="根据大纲进行具体写作",
        next_phases=(Phase.REVIEW,),
        temperature=0.9,
        max_tokens=3072,
        weight=30,
    ),
    Phase.REVIEW: PhaseDefinition(
        persona=PersonaId.DIRECTOR,
        name="质量审查",
        description="检查作品质量，提出改进建议",
        next_phases=(Phase.WORLDBUILDING, Phase.PLANNING, Phase.WRITING, Phase.COMPLETED),
        temperature=0.4,
        max_tokens=1024,
        weight=5,
    ),
    Phase.COMPLETED: PhaseDefinition(
        persona=None,
        name="完成",
        description="项目完成",
    ),
}

# Any of these in the analysis input or output routes to worldbuilding.
WORLDBUILDING_KEYWORDS: tuple[str, ...] = (
    "科幻", "奇幻", "魔法", "异世界", "未来", "古代", "历史",
    "世界观", "设定", "背景", "架空", "虚构世界",
)

QUALITY_BONUS_THRESHOLD = 80
QUALITY_BONUS = 5

RETRY_SUGGESTIONS: tuple[str, ...] = (
    "请提供更详细的需求描述",
    "可以参考其他优秀作品的结构",
    "考虑增加更多创意元素",
)

_PHASE_TIPS: dict[Phase, str] = {
    Phase.ANALYSIS: "可以补充更详细的创作目标和读者定位",
    Phase.WORLDBUILDING: "考虑添加更多独特的世界观元素",
    Phase.PLANNING: "确保故事结构完整，有清晰的起承转合",
    Phase.WRITING: "注意保持文风一致性和人物性格连贯性",
}


def needs_worldbuilding(*texts: str) -> bool:
    """Whether any text mentions a setting keyword."""
    return any(keyword in text for text in texts for keyword in WORLDBUILDING_KEYWORDS)


def choices_for(phase: Phase) -> list[PhaseChoice]:
    """Successors of a phase as selectable choices."""
    return [
        PhaseChoice(
            phase=successor,
            persona=PHASES[successor].persona,
            name=PHASES[successor].name,
            description=PHASES[successor].description,
        )
        for successor in PHASES[phase].next_phases
    ]


def progress_increment(phase: Phase, quality: int) -> int:
    """Completion points earned by one step of ``phase``."""
    bonus = QUALITY_BONUS if quality > QUALITY_BONUS_THRESHOLD else 0
    return PHASES[phase].weight + bonus


def phase_suggestions(phase: Phase, quality: int) -> list[str]:
    suggestions: list[str] = []
    if quality < QUALITY_BONUS_THRESHOLD:
        suggestions.append(f"当前{PHASES[phase].name}质量为{quality}%，可以考虑优化")
    tip = _PHASE_TIPS.get(phase)
    if tip:
        suggestions.append(tip)
    return suggestions
