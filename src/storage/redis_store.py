# src/storage/redis_store.py — v1
"""Redis-based blob store (STORAGE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Suitable for multi-instance deployments.
"""

from __future__ import annotations

import logging

from storyloom.storage.base_store import BaseBlobStore

logger = logging.getLogger(__name__)

_KEY_PREFIX = "storyloom:workflow:"
_INDEX_KEY = "storyloom:workflow:__index__"


class RedisBlobStore(BaseBlobStore):
    """Redis-backed store with a key index set for prefix listing."""

    def __init__(self, redis_url: str, client: object | None = None) -> None:
        if client is None:
            import redis.asyncio as aioredis

            client = aioredis.Redis.from_url(redis_url, decode_responses=True)
        self._client = client

    async def get(self, key: str) -> str | None:
        return await self._client.get(f"{_KEY_PREFIX}{key}")

    async def put(self, key: str, value: str) -> None:
        await self._client.set(f"{_KEY_PREFIX}{key}", value)
        # Index set backs list_keys without a KEYS scan
        await self._client.sadd(_INDEX_KEY, key)

    async def delete(self, key: str) -> None:
        await self._client.delete(f"{_KEY_PREFIX}{key}")
        await self._client.srem(_INDEX_KEY, key)

    async def list_keys(self, prefix: str = "") -> list[str]:
        keys = await self._client.smembers(_INDEX_KEY)
        return sorted(k for k in keys if k.startswith(prefix))

    async def close(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()
