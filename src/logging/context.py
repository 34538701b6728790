# src/logging/context.py — v2
"""Contextual logging support — attach workflow_id, persona, phase to log records.

Context variables are copied into every asyncio task, so values set inside
a stream session or workflow step stay local to it.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

_workflow_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "workflow_id", default=None
)
_persona: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "persona", default=None
)
_phase: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "phase", default=None
)

_VARS: dict[str, contextvars.ContextVar[str | None]] = {
    "workflow_id": _workflow_id,
    "persona": _persona,
    "phase": _phase,
}


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    workflow_id: str | None = None
    persona: str | None = None
    phase: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        workflow_id=_workflow_id.get(),
        persona=_persona.get(),
        phase=_phase.get(),
    )


@contextmanager
def log_context(**fields: str | None) -> Iterator[None]:
    """Bind context fields for the duration of a block, then restore them."""
    tokens = [(_VARS[name], _VARS[name].set(value)) for name, value in fields.items()]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def clear_context() -> None:
    """Reset all context variables."""
    for var in _VARS.values():
        var.set(None)
