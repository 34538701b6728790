# src/storage/base_store.py — v1
"""Abstract key → blob store used for workflow persistence.

Values are opaque text (JSON documents); every write replaces the whole
record.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseBlobStore(ABC):
    """Unified interface for persistence backends."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Retrieve a blob by key, or None if absent."""

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Store a blob, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a blob. Deleting an absent key is a no-op."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """Sorted keys starting with ``prefix``."""

    async def close(self) -> None:
        """Release backend resources."""
