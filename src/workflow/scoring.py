# src/workflow/scoring.py — v1
"""Pluggable output quality scoring.

The heuristic scorer is a placeholder policy: length, line structure and a
phase keyword. Replace it by passing another QualityScorer to the orchestrator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from storyloom.workflow.models import Phase


class QualityScorer(ABC):
    """Scores a phase output on a 0–100 scale."""

    @abstractmethod
    def score(self, output: str, phase: Phase) -> int:
        """Quality of ``output`` for ``phase``, within [0, 100]."""


def _default_keywords() -> dict[Phase, tuple[str, ...]]:
    return {
        Phase.ANALYSIS: ("目标", "需求"),
        Phase.WORLDBUILDING: ("世界", "设定"),
        Phase.PLANNING: ("大纲", "结构"),
        Phase.WRITING: ("章节", "内容"),
    }


@dataclass
class HeuristicQualityScorer(QualityScorer):
    """Base score plus bonuses for length, structure and phase keywords."""

    base: int = 50
    long_threshold: int = 500
    long_bonus: int = 20
    medium_threshold: int = 200
    medium_bonus: int = 10
    structure_min_lines: int = 3
    structure_bonus: int = 15
    keyword_bonus: int = 10
    keywords: dict[Phase, tuple[str, ...]] = field(default_factory=_default_keywords)

    def score(self, output: str, phase: Phase) -> int:
        quality = self.base

        length = len(output)
        if length > self.long_threshold:
            quality += self.long_bonus
        elif length > self.medium_threshold:
            quality += self.medium_bonus

        lines = [line for line in output.split("\n") if line.strip()]
        if len(lines) >= self.structure_min_lines:
            quality += self.structure_bonus

        if any(k in output for k in self.keywords.get(phase, ())):
            quality += self.keyword_bonus

        return max(0, min(quality, 100))
