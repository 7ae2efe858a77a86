"""Key-value storage for the weekly summaries.

Two backends share the KVStore protocol:
- InMemoryKVStore: process-local, used by tests and when KV_PATH is unset
- JSONFileKVStore: a single JSON object on disk, rewritten on every change;
  file I/O runs in a worker thread so the event loop keeps serving requests

Values are arbitrary JSON-serializable data. Nothing here expires on its
own; the weekly summary deletes its old keys itself.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol

from release_digest.logging_config import get_logger

logger = get_logger(__name__)


class KVStore(Protocol):
    """Minimal async key-value interface."""

    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if the key is absent."""
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def delete(self, key: str) -> None:
        """Remove the key; absent keys are ignored."""
        ...


class InMemoryKVStore:
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    async def get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JSONFileKVStore:
    """Stores all keys in one JSON file.

    Usage:
        store = JSONFileKVStore(".data/kv.json")
        await store.set("weekly-summary-2024-19", {...})
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize with the backing file path (created on first write).

        Args:
            path: JSON file holding every key
        """
        self._path = Path(path)
        # serializes read-modify-write cycles within this process
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text() or "{}")
        except json.JSONDecodeError as exc:
            logger.warning("kv_file_corrupt", path=str(self._path), error=str(exc))
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, default=str))
        tmp.replace(self._path)

    async def get(self, key: str) -> Any | None:
        data = await asyncio.to_thread(self._load)
        return data.get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            data[key] = value
            await asyncio.to_thread(self._save, data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            if key in data:
                del data[key]
                await asyncio.to_thread(self._save, data)


def create_kv_store(path: str | None) -> KVStore:
    return JSONFileKVStore(path) if path else InMemoryKVStore()
