"""
Filename Cache Manager

Two-layer cache mapping an original image reference to the stored filename
discovered for it:
- In-memory dict, authoritative for the process lifetime, checked first
- Persisted dict (JSON under one storage key), loaded at most once and
  rewritten in full on every change

Entries expire 7 days after they were stored; expired entries are purged
lazily when looked up. Storage problems never surface to callers.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .classifier import is_stored_filename, sanitize_filename
from .storage import StorageBackend

logger = logging.getLogger(__name__)

FILENAME_CACHE_KEY = "secure-image-filename-cache-v1"
CACHE_MAX_AGE_SECONDS = 7 * 24 * 60 * 60  # 7 days


@dataclass
class CacheEntry:
    """Persisted cache record."""
    filename: str
    stored_at: int  # epoch milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {"filename": self.filename, "storedAt": self.stored_at}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["CacheEntry"]:
        """Parse a persisted record; None when malformed."""
        if not isinstance(data, dict):
            return None
        filename = data.get("filename")
        stored_at = data.get("storedAt")
        if not isinstance(filename, str) or isinstance(stored_at, bool):
            return None
        if not isinstance(stored_at, (int, float)):
            return None
        return cls(filename=filename, stored_at=int(stored_at))


class FilenameCache:
    """
    Reference -> filename cache.

    Usage:
        cache = FilenameCache(JsonFileStorage("./cache.json"))
        cache.remember("item/img/photo.jpg", "photo.jpg")
        cache.lookup("item/img/photo.jpg")  # "photo.jpg"
    """

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        storage_key: str = FILENAME_CACHE_KEY,
        max_age_seconds: float = CACHE_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.storage_key = storage_key
        self.max_age_seconds = max_age_seconds
        self._clock = clock

        self._memory: Dict[str, str] = {}
        self._persisted: Optional[Dict[str, Any]] = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _load(self) -> Dict[str, Any]:
        """Load the persisted map on first use; empty on any failure."""
        if self._persisted is not None:
            return self._persisted

        self._persisted = {}
        if self.storage is None:
            return self._persisted
        try:
            raw = self.storage.get_item(self.storage_key)
            data = json.loads(raw) if raw else {}
            if isinstance(data, dict):
                self._persisted = data
                logger.info(f"[FilenameCache] Loaded {len(data)} cached filenames")
            else:
                logger.warning("[FilenameCache] Ignoring persisted cache that is not an object")
        except Exception as e:
            logger.warning(f"[FilenameCache] Failed to load persisted cache: {e}")
        return self._persisted

    def _flush(self) -> None:
        """Rewrite the persisted map. Best effort."""
        if self.storage is None or self._persisted is None:
            return
        try:
            self.storage.set_item(self.storage_key, json.dumps(self._persisted))
        except Exception as e:
            logger.debug(f"[FilenameCache] Failed to persist cache: {e}")

    def remember(self, reference: str, filename: str) -> None:
        """Record the filename a reference resolved to."""
        source = (reference or "").strip()
        name = (filename or "").strip()
        if not source or not name:
            return
        if not is_stored_filename(sanitize_filename(name)):
            return

        self._memory[source] = name
        store = self._load()
        store[source] = CacheEntry(filename=name, stored_at=self._now_ms()).to_dict()
        self._flush()
        logger.debug(f"[FilenameCache] Remembered {source[:50]} -> {name}")

    def lookup(self, reference: str) -> Optional[str]:
        """Cached filename for a reference, or None."""
        source = (reference or "").strip()
        if not source:
            return None
        if source in self._memory:
            return self._memory[source]

        store = self._load()
        if source not in store:
            return None

        entry = CacheEntry.from_dict(store[source])
        if entry is None:
            del store[source]
            self._flush()
            return None

        if self._now_ms() - entry.stored_at > self.max_age_seconds * 1000:
            logger.debug(f"[FilenameCache] Expired: {source[:50]}")
            del store[source]
            self._flush()
            return None

        self._memory[source] = entry.filename
        return entry.filename

    def forget(self, reference: str) -> bool:
        """
        Drop a reference from both layers.

        Returns:
            True if anything was removed.
        """
        source = (reference or "").strip()
        if not source:
            return False

        removed = self._memory.pop(source, None) is not None
        store = self._load()
        if source in store:
            del store[source]
            self._flush()
            removed = True
        if removed:
            logger.debug(f"[FilenameCache] Forgot {source[:50]}")
        return removed

    def clear(self) -> int:
        """
        Drop every entry.

        Returns:
            Number of distinct references removed.
        """
        store = self._load()
        count = len(set(self._memory) | set(store))
        self._memory.clear()
        store.clear()
        self._flush()
        logger.info(f"[FilenameCache] Cleared {count} entries")
        return count

    def get_stats(self) -> dict:
        """Get cache statistics."""
        store = self._load()
        return {
            "memory_entries": len(self._memory),
            "persisted_entries": len(store),
            "storage_key": self.storage_key,
            "max_age_days": round(self.max_age_seconds / 86400, 2),
            "persistent": self.storage is not None,
        }
