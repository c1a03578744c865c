"""
Direct Image URL Builder

Turns a stored filename into an absolute (or root-relative) URL on the
backend's image endpoint. Pure and synchronous.
"""

import logging
from typing import Optional
from urllib.parse import quote, urljoin

from .classifier import is_direct_url, sanitize_filename

logger = logging.getLogger(__name__)

IMAGE_ENDPOINT = "item/img"

# Characters encodeURIComponent leaves alone
_SEGMENT_SAFE_CHARS = "-_.!~*'()"


def encode_path_segments(raw: str) -> str:
    """Percent-encode each ``/``-separated segment on its own."""
    return "/".join(quote(segment, safe=_SEGMENT_SAFE_CHARS) for segment in raw.split("/"))


def build_image_path(filename: str) -> str:
    """Endpoint path for a sanitized filename, relative to the API base."""
    return f"{IMAGE_ENDPOINT}/{encode_path_segments(filename)}"


def build_direct_image_url(filename: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """
    Build the display URL for a filename.

    Args:
        filename: Stored filename (legacy prefix tolerated)
        base_url: API base URL; root-relative output when missing

    Returns:
        URL string, or None when nothing is left after sanitizing.
    """
    trimmed = (filename or "").strip()
    if not trimmed:
        return None
    if is_direct_url(trimmed):
        return trimmed

    sanitized = sanitize_filename(trimmed)
    if not sanitized:
        return None

    relative_path = build_image_path(sanitized)
    root_relative = f"/{relative_path}"
    if not base_url:
        return root_relative

    normalized_base = base_url if base_url.endswith("/") else f"{base_url}/"
    try:
        return urljoin(normalized_base, relative_path)
    except ValueError as e:
        logger.debug(f"[SecureImage] Could not join {relative_path} onto {normalized_base}: {e}")
        return root_relative
