"""
Object URL Store

Process-local registry of ephemeral ``blob:`` URLs backed by in-memory
image bytes. Every URL handed out must be released with ``revoke``; when
the store is full the oldest entries are evicted.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from io import BytesIO
from typing import Dict, Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

OBJECT_URL_PREFIX = "blob:secure-image/"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class ObjectEntry:
    """Bytes behind an object URL."""
    data: bytes
    content_type: str
    created_at: float = field(default_factory=time.time)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def _is_svg(data: bytes) -> bool:
    header = data[:500].strip()
    if header.startswith(b"<svg") or header.startswith(b"<?xml"):
        return True
    return b"<svg" in header


def sniff_content_type(data: bytes, declared: Optional[str] = None) -> str:
    """
    Work out the MIME type of image bytes.

    A declared ``image/*`` type is trusted; otherwise check for SVG, then ask
    Pillow which format it recognises.
    """
    declared_type = (declared or "").split(";")[0].strip().lower()
    if declared_type.startswith("image/"):
        return declared_type

    if not data:
        return declared_type or DEFAULT_CONTENT_TYPE
    if _is_svg(data):
        return "image/svg+xml"

    try:
        with Image.open(BytesIO(data)) as img:
            mime = Image.MIME.get(img.format or "")
        if mime:
            return mime
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.debug(f"[ObjectUrls] Unrecognised image data: {e}")

    return declared_type or DEFAULT_CONTENT_TYPE


def blob_id_from_url(url: str) -> Optional[str]:
    if url.startswith(OBJECT_URL_PREFIX):
        return url[len(OBJECT_URL_PREFIX):] or None
    return None


class ObjectUrlStore:
    """
    Manages object URLs for fetched image bytes.

    Usage:
        store = ObjectUrlStore()
        url = store.create(data, "image/png")
        ...
        store.revoke(url)
    """

    def __init__(self, max_entries: int = 200):
        self._entries: Dict[str, ObjectEntry] = {}
        self._max_entries = max_entries

    def create(self, data: bytes, content_type: Optional[str] = None) -> str:
        """Register bytes and return their object URL."""
        while self._entries and len(self._entries) >= self._max_entries:
            # dicts keep insertion order
            oldest_id = next(iter(self._entries))
            del self._entries[oldest_id]
            logger.info(f"[ObjectUrls] Evicted oldest object URL: {oldest_id}")

        blob_id = uuid.uuid4().hex
        self._entries[blob_id] = ObjectEntry(
            data=data,
            content_type=sniff_content_type(data, content_type),
        )
        return f"{OBJECT_URL_PREFIX}{blob_id}"

    def get(self, url_or_id: str) -> Optional[ObjectEntry]:
        blob_id = blob_id_from_url(url_or_id) or url_or_id
        return self._entries.get(blob_id)

    def revoke(self, url_or_id: str) -> bool:
        """Release an object URL. Returns False if it was already gone."""
        blob_id = blob_id_from_url(url_or_id) or url_or_id
        return self._entries.pop(blob_id, None) is not None

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url_or_id: str) -> bool:
        return self.get(url_or_id) is not None

    def get_stats(self) -> dict:
        total_size = sum(entry.size_bytes for entry in self._entries.values())
        return {
            "total_entries": len(self._entries),
            "max_entries": self._max_entries,
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
        }
