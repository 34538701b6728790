# src/conversation/history.py — v1
"""Rolling per-persona conversation history.

Owned by one PersonaConversationService instance. Each persona keeps at
most ``limit`` entries; the oldest entries are evicted first.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone

from storyloom.conversation.models import HistoryEntry, HistoryStats
from storyloom.personas.models import Scenario

logger = logging.getLogger(__name__)


class ConversationHistory:
    """Bounded history repository keyed by persona id.

    Args:
        limit: Maximum entries kept per persona.
        preview_chars: Length each side of an exchange is truncated to.
    """

    def __init__(self, limit: int = 20, preview_chars: int = 200) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self._limit = limit
        self._preview_chars = preview_chars
        self._entries: dict[str, deque[HistoryEntry]] = {}

    @property
    def limit(self) -> int:
        return self._limit

    def add(
        self,
        persona_id: str,
        user_message: str,
        assistant_message: str,
        scenario: Scenario = Scenario.DEFAULT,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        """Record one exchange and return the stored entry."""
        entry = HistoryEntry(
            user=user_message[: self._preview_chars],
            assistant=assistant_message[: self._preview_chars],
            scenario=scenario,
            timestamp=timestamp or datetime.now(timezone.utc),
            # Rough estimate: one token per character
            tokens=len(user_message) + len(assistant_message),
        )
        bucket = self._entries.setdefault(persona_id, deque(maxlen=self._limit))
        bucket.append(entry)
        return entry

    def recent(self, persona_id: str, count: int = 3) -> list[HistoryEntry]:
        """Last ``count`` entries of a persona, oldest first."""
        if count <= 0:
            return []
        bucket = self._entries.get(persona_id)
        if not bucket:
            return []
        return list(bucket)[-count:]

    def entries(self, persona_id: str) -> list[HistoryEntry]:
        return list(self._entries.get(persona_id, ()))

    def persona_ids(self) -> list[str]:
        return sorted(self._entries)

    def stats(self, persona_id: str) -> HistoryStats:
        bucket = self._entries.get(persona_id, ())
        return HistoryStats(
            persona_id=persona_id,
            count=len(bucket),
            total_tokens=sum(e.tokens for e in bucket),
            last_chat=bucket[-1].timestamp if bucket else None,
        )

    def clear(self, persona_id: str | None = None) -> None:
        """Drop one persona's history, or every persona's."""
        if persona_id is None:
            self._entries.clear()
            logger.info("All conversation history cleared")
        else:
            self._entries.pop(persona_id, None)
            logger.info("Conversation history cleared for %s", persona_id)
