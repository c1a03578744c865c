"""
Key/Value Storage Backends

Persistence for small string values addressed by a namespaced key, the
same shape as browser localStorage:
- JsonFileStorage: all keys kept in one JSON file on disk
- MemoryStorage: process-local dict (tests, ephemeral deployments)

Backends raise on I/O problems; callers decide whether a failure matters.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    """Minimal string key/value store."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


class MemoryStorage:
    """In-memory storage backend."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """
    File-backed storage backend.

    File structure:
    {
        "secure-image-filename-cache-v1": "{...serialized cache...}",
        "ng-auth-token": "eyJ..."
    }

    The whole file is rewritten on every change.
    """

    def __init__(self, path: str = "./secure_image_cache.json"):
        self.path = Path(path)

    def _read_all(self, strict: bool = True) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"Storage file {self.path} does not hold an object")
        except ValueError as e:
            if strict:
                raise
            # Corrupt file: the next write starts over
            logger.warning(f"[Storage] Discarding unreadable storage file {self.path}: {e}")
            return {}
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all(strict=False)
        data[key] = value
        self._write_all(data)
        logger.debug(f"[Storage] Wrote key {key} ({len(value)} chars) to {self.path}")

    def remove_item(self, key: str) -> None:
        data = self._read_all(strict=False)
        if key in data:
            del data[key]
            self._write_all(data)
