# src/prompts/parser.py — v1
"""Legacy persona document parser and instruction composer.

Two document shapes are auto-detected:
  - tagged: named regions ``<persona>…</persona>`` from a fixed vocabulary
  - structured: ``##`` headings (角色定位 / OES工作流程 / 交互模式 / 输出格式 / 工作原则),
    detected by the ``## OES工作流程`` marker

A document in which nothing can be recognized is passed through as raw text.
Composition walks sections in a fixed priority order, so the same document
always yields byte-identical instructions.
"""

from __future__ import annotations

import logging
import re

from storyloom.core.errors import ParseError
from storyloom.personas.models import Scenario
from storyloom.prompts.models import (
    DocumentFormat,
    ExampleExchange,
    PersonaCard,
    PromptDocument,
)

logger = logging.getLogger(__name__)

STRUCTURED_MARKER = "## OES工作流程"

# Section vocabulary of the tagged format → composition label.
SECTION_LABELS: dict[str, str] = {
    "persona": "【角色设定】",
    "expertise": "【专业能力】",
    "methodology": "【工作方法】",
    "thinking": "【思维方式】",
    "constraints": "【约束条件】",
    "interaction": "【交互风格】",
    "knowledge": "【知识储备】",
    "tools": "【工具和框架】",
    "memory": "【记忆策略】",
    "evolution": "【持续优化机制】",
    "examples": "【示例回答】",
    "framework": "【分析框架】",
    "style": "【风格特征】",
    "techniques": "【技巧库】",
    "patterns": "【模式库】",
    "revision": "【修改原则】",
    "inspiration": "【灵感源泉】",
    "perspective": "【多维视角】",
    "strategy": "【战略工具】",
    "guidance": "【指导原则】",
    "metrics": "【成功指标】",
}

TAGGED_ORDER: tuple[str, ...] = (
    "persona",
    "expertise",
    "thinking",
    "methodology",
    "constraints",
    "interaction",
    "memory",
)

# Structured format: section name → (heading, lookahead terminating the section).
_STRUCTURED_SECTIONS: dict[str, tuple[str, str]] = {
    "role": ("角色定位", r"##"),
    "workflow": ("OES工作流程", r"## 交互模式"),
    "interaction": ("交互模式", r"## 输出格式"),
    "output": ("输出格式", r"## 工作原则|## 工作技法库|## 管理工具"),
    "principle": ("工作原则", r"##"),
}

# Unlabelled sections are emitted verbatim.
STRUCTURED_LABELS: dict[str, str] = {
    "role": "",
    "workflow": "",
    "interaction": "【交互指南】",
    "output": "【输出格式】",
    "principle": "【工作原则】",
}

STRUCTURED_ORDER: tuple[str, ...] = ("role", "workflow", "interaction", "output", "principle")

SCENARIO_EMPHASIS: dict[Scenario, tuple[str, ...]] = {
    Scenario.BRAINSTORMING: ("inspiration", "examples", "patterns"),
    Scenario.REVIEW: ("constraints", "metrics", "revision"),
    Scenario.PROBLEM_SOLVING: ("methodology", "framework", "strategy"),
    Scenario.CREATION: ("techniques", "style", "examples"),
    Scenario.DEFAULT: ("expertise", "thinking", "interaction"),
}

_TITLE_RE = re.compile(r"^#\s+(.+?)(?:\s+-\s+(.+))?$", re.MULTILINE)
_TAG_RE = re.compile(r"<(\w+)>([\s\S]*?)</\1>")
_HEADING_RE = re.compile(r"^##\s+(.+)$", re.MULTILINE)
_LIST_ITEM_RE = re.compile(r"^[-•]\s+")
_KEY_POINT_RE = re.compile(r"^[-•]\s*(\w+)[：:]\s*(.+)")
_EXAMPLE_RE = re.compile(
    r"###\s*当用户.*?[问说要求].*?[：:]\s*[\"“](.+?)[\"”]\s*([\s\S]*?)(?=###\s*当用户|\Z)"
)


def clean_content(content: str) -> str:
    """Trim every line and drop blank lines."""
    lines = (line.strip() for line in content.split("\n"))
    return "\n".join(line for line in lines if line).strip()


def parse(raw_text: str) -> PromptDocument:
    """Parse a persona document, auto-detecting its format.

    Never raises: unparseable input degrades to a raw-text document.
    """
    try:
        if STRUCTURED_MARKER in raw_text:
            return _parse_structured(raw_text)
        return _parse_tagged(raw_text)
    except ParseError as exc:
        logger.warning("Prompt document degraded to raw text: %s", exc)
        title, subtitle = _extract_title(raw_text)
        return PromptDocument(
            title=title,
            subtitle=subtitle,
            raw=raw_text,
            format=DocumentFormat.RAW,
        )


def _extract_title(content: str) -> tuple[str, str]:
    match = _TITLE_RE.search(content)
    if not match:
        return "", ""
    return match.group(1), match.group(2) or ""


def _parse_tagged(content: str) -> PromptDocument:
    title, subtitle = _extract_title(content)

    sections: dict[str, str] = {}
    for match in _TAG_RE.finditer(content):
        tag_name, tag_content = match.group(1), match.group(2)
        if tag_name in SECTION_LABELS:
            sections[tag_name] = clean_content(tag_content)

    if not sections:
        raise ParseError("no known section tags found")

    return PromptDocument(
        title=title,
        subtitle=subtitle,
        sections=sections,
        additional_sections=_parse_headings(_TAG_RE.sub("", content)),
        raw=content,
        format=DocumentFormat.TAGGED,
    )


def _parse_headings(content: str) -> dict[str, str]:
    """Collect ``##`` sections (outside tags) keyed by normalized title."""
    headings = list(_HEADING_RE.finditer(content))
    result: dict[str, str] = {}
    for i, match in enumerate(headings):
        end = headings[i + 1].start() if i + 1 < len(headings) else len(content)
        key = re.sub(r"\s+", "_", match.group(1).strip().lower())
        result[key] = clean_content(content[match.end():end])
    return result


def _parse_structured(content: str) -> PromptDocument:
    sections: dict[str, str] = {}
    for name, (heading, terminator) in _STRUCTURED_SECTIONS.items():
        pattern = rf"## {heading}\s*([\s\S]*?)(?={terminator}|\Z)"
        match = re.search(pattern, content)
        if match:
            sections[name] = match.group(1).strip()

    title, subtitle = _extract_title(content)
    return PromptDocument(
        title=title,
        subtitle=subtitle,
        sections=sections,
        raw=content,
        format=DocumentFormat.STRUCTURED,
    )


def emphasis_for(scenario: Scenario | str | None) -> tuple[str, ...]:
    """Sections emphasized for a scenario (empty when no scenario)."""
    if scenario is None:
        return ()
    return SCENARIO_EMPHASIS.get(Scenario(scenario), SCENARIO_EMPHASIS[Scenario.DEFAULT])


def compose(document: PromptDocument, scenario: Scenario | str | None = None) -> str:
    """Compose the instruction payload for a parsed document.

    Args:
        document: Parsed legacy document.
        scenario: Optional scenario; adds a trailing 【重点关注】 block naming
            the emphasized sections and inlining those not already composed.

    Returns:
        Instruction text. Deterministic for a given document and scenario.
    """
    if document.format == DocumentFormat.RAW:
        return clean_content(document.raw)

    if document.format == DocumentFormat.STRUCTURED:
        order, labels = STRUCTURED_ORDER, STRUCTURED_LABELS
    else:
        order, labels = TAGGED_ORDER, SECTION_LABELS

    parts: list[str] = []
    for name in order:
        text = document.sections.get(name)
        if not text:
            continue
        label = labels.get(name, "")
        parts.append(f"{label}\n{text}" if label else text)

    emphasized = [s for s in emphasis_for(scenario) if document.sections.get(s)]
    if emphasized:
        names = "、".join(_label_text(s, labels) for s in emphasized)
        block = [f"【重点关注】\n{names}"]
        for name in emphasized:
            if name not in order:
                block.append(f"{_bracketed(name, labels)}\n{document.sections[name]}")
        parts.append("\n\n".join(block))

    return "\n\n".join(parts)


def _bracketed(name: str, labels: dict[str, str]) -> str:
    return labels.get(name) or SECTION_LABELS.get(name) or f"【{name}】"


def _label_text(name: str, labels: dict[str, str]) -> str:
    return _bracketed(name, labels).strip("【】")


# ---------------------------------------------------------------------------
# Card helpers
# ---------------------------------------------------------------------------


def extract_list(content: str | None) -> list[str]:
    """Bulleted items of a section, keeping the text before a full-width colon."""
    if not content:
        return []
    return [
        _LIST_ITEM_RE.sub("", line).split("：")[0]
        for line in content.split("\n")
        if _LIST_ITEM_RE.match(line)
    ]


def extract_key_points(content: str | None) -> dict[str, str]:
    """``- key：value`` bullets of a section as a mapping."""
    if not content:
        return {}
    points: dict[str, str] = {}
    for line in content.split("\n"):
        match = _KEY_POINT_RE.match(line)
        if match:
            points[match.group(1)] = match.group(2)
    return points


def extract_examples(document: PromptDocument) -> list[ExampleExchange]:
    """Example exchanges (``### 当用户问："…"`` blocks) of the examples section."""
    examples_text = document.sections.get("examples")
    if not examples_text:
        return []
    return [
        ExampleExchange(question=m.group(1), answer=clean_content(m.group(2)))
        for m in _EXAMPLE_RE.finditer(examples_text)
    ]


def generate_card(document: PromptDocument) -> PersonaCard:
    """Build the display card of a legacy document."""
    persona_text = document.sections.get("persona") or ""
    return PersonaCard(
        name=document.title,
        subtitle=document.subtitle,
        description=persona_text.split("\n")[0] if persona_text else "",
        expertise=extract_list(document.sections.get("expertise")),
        style=extract_key_points(document.sections.get("interaction")),
        capabilities=len(document.sections),
    )
