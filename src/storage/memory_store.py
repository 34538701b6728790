# src/storage/memory_store.py — v1
"""In-memory blob store (STORAGE_BACKEND=memory).

Useful for tests or one-off CLI sessions. Data is not persisted across
process restarts.
"""

from __future__ import annotations

from storyloom.storage.base_store import BaseBlobStore


class MemoryBlobStore(BaseBlobStore):
    """Store blobs in a local dict."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))
