# src/prompts/modules.py — v1
"""Modular role definitions: reference extraction, module resolution, composition.

A role definition (``<module_dir>/<module_dir>.role.md``) declares an
``<identity>`` block and three reference groups::

    <personality>
    @!thought://story-thinking
    </personality>
    <principle>
    @execution://chapter-workflow
    </principle>
    <knowledge>
    @knowledge://genre-conventions
    </knowledge>

``@!`` marks a required reference. Each module kind lives in its own
sub-directory of the role; lookup order is role-specific exact name,
role-specific generic name, then the shared directory.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from storyloom.core.errors import ParseError, PromptLoadError
from storyloom.prompts.models import (
    ModuleKind,
    ModuleReference,
    PersonaCard,
    ResolvedModule,
    RoleDefinition,
    RoleIdentity,
)

logger = logging.getLogger(__name__)

# Module kind → sub-directory (and exact-match file suffix) inside a role.
KIND_DIRS: dict[ModuleKind, str] = {
    ModuleKind.BEHAVIORAL_PATTERN: "thought",
    ModuleKind.PROCEDURE: "execution",
    ModuleKind.DOMAIN_KNOWLEDGE: "knowledge",
}

SHARED_DIR = "shared"

# Composition order and labels of resolved modules.
KIND_LABELS: dict[ModuleKind, str] = {
    ModuleKind.BEHAVIORAL_PATTERN: "【思维模式】",
    ModuleKind.PROCEDURE: "【执行原则】",
    ModuleKind.DOMAIN_KNOWLEDGE: "【专业知识】",
    ModuleKind.FILE: "【参考资料】",
}

_SCHEMES: list[tuple[str, ModuleKind]] = [
    ("thought://", ModuleKind.BEHAVIORAL_PATTERN),
    ("execution://", ModuleKind.PROCEDURE),
    ("knowledge://", ModuleKind.DOMAIN_KNOWLEDGE),
    ("file://", ModuleKind.FILE),
    ("domain/", ModuleKind.DOMAIN_KNOWLEDGE),
]

_GROUPS = ("personality", "principle", "knowledge")
_XML_TAG_RE = re.compile(r"<[^>]+>")
_NUMBERED_RE = re.compile(r"^\d+\.")


def reference_kind(token: str) -> ModuleKind:
    """Classify a reference token by its scheme."""
    for scheme, kind in _SCHEMES:
        if scheme in token:
            return kind
    return ModuleKind.UNKNOWN


def extract_references(content: str) -> list[ModuleReference]:
    """Collect ``@``-prefixed reference lines of a group."""
    refs: list[ModuleReference] = []
    for line in content.split("\n"):
        token = line.strip()
        if token.startswith("@"):
            refs.append(
                ModuleReference(
                    kind=reference_kind(token),
                    target=token,
                    required="@!" in token,
                )
            )
    return refs


def _inner(tag: str, content: str) -> str | None:
    match = re.search(rf"<{tag}>([\s\S]*?)</{tag}>", content)
    return match.group(1) if match else None


def parse_role_definition(content: str) -> RoleDefinition:
    """Parse a modular role definition.

    Raises:
        ParseError: If the document declares neither an identity nor references.
    """
    identity = RoleIdentity()
    identity_block = _inner("identity", content)
    if identity_block is not None:
        identity = RoleIdentity(
            name=(_inner("name", identity_block) or "").strip(),
            title=(_inner("title", identity_block) or "").strip(),
            description=(_inner("description", identity_block) or "").strip(),
        )

    groups = {
        group: extract_references(block)
        for group in _GROUPS
        if (block := _inner(group, content)) is not None
    }

    if identity_block is None and not any(groups.values()):
        raise ParseError("role definition has no identity and no references")

    return RoleDefinition(identity=identity, raw=content, **groups)


# Reference group → module kind it may hold. File references fit every group.
GROUP_KINDS: dict[str, ModuleKind] = {
    "personality": ModuleKind.BEHAVIORAL_PATTERN,
    "principle": ModuleKind.PROCEDURE,
    "knowledge": ModuleKind.DOMAIN_KNOWLEDGE,
}


def iter_references(role: RoleDefinition) -> list[ModuleReference]:
    """References of a role that fit their group, in group order.

    Mismatched references (e.g. a procedure under <personality>) are logged
    and skipped.
    """
    refs: list[ModuleReference] = []
    for group, kind in GROUP_KINDS.items():
        for ref in getattr(role, group):
            if ref.kind in (kind, ModuleKind.FILE):
                refs.append(ref)
            else:
                logger.warning(
                    "Skipping %s reference in <%s>: %s", ref.kind.value, group, ref.target
                )
    return refs


class ModuleResolver:
    """Resolves module references of a role against candidate locations.

    Args:
        modules_root: Directory holding one sub-directory per role plus
            the shared fallback directory.
    """

    def __init__(self, modules_root: Path | str) -> None:
        self._root = Path(modules_root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def role_path(self, role_dir: str) -> Path:
        return self._root / role_dir

    def role_file(self, role_dir: str) -> Path:
        return self.role_path(role_dir) / f"{role_dir}.role.md"

    def candidates(self, role_dir: str, ref: ModuleReference) -> list[Path]:
        """Ordered candidate locations for a reference (first hit wins)."""
        name = ref.module_name
        if ref.kind == ModuleKind.FILE:
            return [self.role_path(role_dir) / name, self._root / name]
        kind_dir = KIND_DIRS.get(ref.kind)
        if kind_dir is None:
            return []
        base = self.role_path(role_dir) / kind_dir
        return [
            base / f"{name}.{kind_dir}.md",
            base / f"{name}.md",
            self._root / SHARED_DIR / f"{name}.md",
        ]

    async def resolve_one(
        self, role_dir: str, ref: ModuleReference
    ) -> ResolvedModule | None:
        """Resolve a single reference.

        Returns:
            The resolved module, or None for an optional miss (logged).

        Raises:
            PromptLoadError: If a required reference cannot be resolved.
        """
        for path in self.candidates(role_dir, ref):
            if not path.is_file():
                continue
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return ResolvedModule(
                name=ref.module_name,
                kind=ref.kind,
                content=content,
                location=str(path),
            )

        if ref.required:
            raise PromptLoadError(
                f"Required module not found for role '{role_dir}': {ref.target}"
            )
        logger.warning("Optional module not found, skipping: %s", ref.target)
        return None

    async def resolve(self, role_dir: str, role: RoleDefinition) -> list[ResolvedModule]:
        """Resolve every reference of a role, in declaration order."""
        refs = iter_references(role)
        resolved: list[ResolvedModule] = []
        for ref in refs:
            module = await self.resolve_one(role_dir, ref)
            if module is not None:
                resolved.append(module)
        logger.debug(
            "Resolved %d/%d modules for role %s", len(resolved), len(refs), role_dir
        )
        return resolved


def condense_module(content: str, max_length: int = 500) -> str:
    """Keep the key points of a module: list items, numbered items, ``：`` lines."""
    cleaned = _XML_TAG_RE.sub("", content)
    points: list[str] = []
    length = 0
    for line in cleaned.split("\n"):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        if (
            trimmed.startswith(("-", "*"))
            or _NUMBERED_RE.match(trimmed)
            or "：" in trimmed
        ):
            points.append(trimmed)
            length += len(trimmed)
            if length > max_length:
                break
    return "\n".join(points)


def compose_modular(role: RoleDefinition, modules: list[ResolvedModule]) -> str:
    """Compose instructions from a role identity and its resolved modules."""
    parts: list[str] = []

    identity = role.identity
    if identity.name:
        head = [f"【角色身份】{identity.name}"]
        if identity.title:
            head.append(f"【专业头衔】{identity.title}")
        if identity.description:
            head.append(f"【角色描述】\n{identity.description}")
        parts.append("\n".join(head))

    for kind, label in KIND_LABELS.items():
        of_kind = [m for m in modules if m.kind == kind]
        if not of_kind:
            continue
        body = [label]
        for module in of_kind:
            body.append(f"## {module.name}\n{condense_module(module.content)}")
        parts.append("\n\n".join(body))

    return "\n\n".join(parts)


def extract_capabilities(modules: list[ResolvedModule]) -> list[str]:
    """Display names of module capabilities, de-duplicated and sorted."""
    return sorted({re.sub(r"[-_]", " ", m.name) for m in modules})


def generate_modular_card(
    role: RoleDefinition, modules: list[ResolvedModule]
) -> PersonaCard:
    """Build the display card of a modular role."""
    return PersonaCard(
        name=role.identity.name or "未命名角色",
        subtitle=role.identity.title,
        description=role.identity.description,
        capabilities=len(extract_capabilities(modules)),
        module_counts={
            kind.value: sum(1 for m in modules if m.kind == kind)
            for kind in KIND_LABELS
        },
    )
