# src/storage/json_store.py — v1
"""JSON file-based blob store (default STORAGE_BACKEND=json).

Stores each record as an individual ``<key>.json`` file under STORAGE_ROOT.
Path separators in keys and in listing prefixes are replaced by ``_``;
``list_keys`` returns the stored form, which ``get`` accepts.
"""

from __future__ import annotations

import logging
from pathlib import Path

from storyloom.storage.base_store import BaseBlobStore

logger = logging.getLogger(__name__)


class JsonBlobStore(BaseBlobStore):
    """File-based store, one JSON file per key."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    async def get(self, key: str) -> str | None:
        path = self._entry_path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    async def put(self, key: str, value: str) -> None:
        path = self._entry_path(key)
        # Write-then-rename so readers never see a partial record
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    async def delete(self, key: str) -> None:
        path = self._entry_path(key)
        if path.exists():
            path.unlink()

    async def list_keys(self, prefix: str = "") -> list[str]:
        if not self._root.is_dir():
            return []
        prefix = _safe_key(prefix)
        return sorted(
            path.stem for path in self._root.glob("*.json") if path.stem.startswith(prefix)
        )

    def _entry_path(self, key: str) -> Path:
        """Return file path for a key."""
        return self._root / f"{_safe_key(key)}.json"


def _safe_key(key: str) -> str:
    return key.replace("/", "_").replace("\\", "_")
