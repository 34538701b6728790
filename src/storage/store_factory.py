# src/storage/store_factory.py — v1
"""Factory for blob store instantiation from STORAGE_BACKEND."""

from __future__ import annotations

from storyloom.config.settings import Settings
from storyloom.storage.base_store import BaseBlobStore


def create_blob_store(settings: Settings | None = None) -> BaseBlobStore:
    """Instantiate the configured storage backend.

    Args:
        settings: Application settings. Defaults to the in-memory backend.

    Returns:
        Configured BaseBlobStore implementation.
    """
    backend = "memory" if settings is None else settings.storage_backend

    if backend == "memory":
        from storyloom.storage.memory_store import MemoryBlobStore
        return MemoryBlobStore()

    assert settings is not None
    if backend == "json":
        from storyloom.storage.json_store import JsonBlobStore
        return JsonBlobStore(root=settings.storage_root)

    if backend == "sqlite":
        from storyloom.storage.sqlite_store import SqliteBlobStore
        return SqliteBlobStore(db_path=settings.storage_root.expanduser() / "storyloom.db")

    if backend == "redis":
        from storyloom.storage.redis_store import RedisBlobStore
        if not settings.storage_redis_url:
            raise ValueError("STORAGE_REDIS_URL must be set when STORAGE_BACKEND=redis")
        return RedisBlobStore(redis_url=settings.storage_redis_url)

    raise ValueError(f"Unsupported storage backend: {backend!r}")
