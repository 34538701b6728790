# src/streaming/events.py — v1
"""Stream events and their wire framing.

One session produces a ``start`` event, any number of ``content-chunk``
events, then exactly one terminal event. A frame on the wire is::

    data: {"type": "...", "data": {...}, "timestamp": "..."}\\n\\n
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StreamEventType(str, Enum):
    START = "start"
    CONTENT_CHUNK = "content-chunk"
    PHASE_COMPLETE = "phase-complete"
    WORKFLOW_COMPLETE = "workflow-complete"
    CHAT_COMPLETE = "chat-complete"
    ERROR = "error"


TERMINAL_EVENT_TYPES: frozenset[StreamEventType] = frozenset({
    StreamEventType.PHASE_COMPLETE,
    StreamEventType.WORKFLOW_COMPLETE,
    StreamEventType.CHAT_COMPLETE,
    StreamEventType.ERROR,
})


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StreamEvent(BaseModel):
    """One ordered unit of a stream session."""

    model_config = ConfigDict(frozen=True)

    type: StreamEventType
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_now)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    def to_frame(self) -> str:
        payload = self.model_dump(mode="json")
        return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"

    @classmethod
    def start(cls, **data: Any) -> StreamEvent:
        return cls(type=StreamEventType.START, data=data)

    @classmethod
    def chunk(cls, content: str) -> StreamEvent:
        return cls(type=StreamEventType.CONTENT_CHUNK, data={"content": content})

    @classmethod
    def error(cls, message: str, code: str) -> StreamEvent:
        return cls(type=StreamEventType.ERROR, data={"message": message, "code": code})
