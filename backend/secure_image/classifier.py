"""
Image Reference Classifier

Decides how an opaque image reference should be handled, without I/O:
- ABSENT: nothing to show
- DIRECT: already a full or root-relative URL, used verbatim
- CANDIDATE: looks like a stored filename, resolvable through the backend
- UNRESOLVABLE: anything else, fails immediately
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# http:, https:, data:, blob: (case-insensitive)
DIRECT_URL_PATTERN = re.compile(r"^(?:https?:|data:|blob:)", re.IGNORECASE)

# name + extension of at least two characters
STORED_FILENAME_PATTERN = re.compile(r"^[\w.-]+\.[A-Za-z0-9]{2,}$", re.ASCII)

# Historical references were stored with the endpoint path in front
LEGACY_PREFIX_PATTERN = re.compile(r"^item/img/", re.IGNORECASE)


class ReferenceKind(str, Enum):
    """Handling path for an image reference."""
    ABSENT = "absent"
    DIRECT = "direct"
    CANDIDATE = "candidate"
    UNRESOLVABLE = "unresolvable"


@dataclass(frozen=True)
class Classification:
    """Result of classifying a raw reference."""
    kind: ReferenceKind
    reference: str                   # trimmed input
    candidate: Optional[str] = None  # derived filename, CANDIDATE only


def is_direct_url(value: str) -> bool:
    """True for scheme-prefixed or root-relative URLs."""
    return bool(DIRECT_URL_PATTERN.match(value)) or value.startswith("/")


def is_stored_filename(value: str) -> bool:
    return bool(STORED_FILENAME_PATTERN.match(value))


def sanitize_filename(raw: str) -> str:
    """Strip the legacy ``item/img/`` prefix, then any leading slashes."""
    return LEGACY_PREFIX_PATTERN.sub("", raw, count=1).lstrip("/")


def extract_filename_candidate(raw: Optional[str]) -> Optional[str]:
    """
    Derive the filename a reference points at.

    ``item/img/photo.jpg?v=2`` -> ``photo.jpg``. Direct URLs and anything
    whose last path segment is not a plausible filename yield None.
    """
    if not raw:
        return None
    trimmed = raw.strip()
    if not trimmed or is_direct_url(trimmed):
        return None

    sanitized = re.sub(r"[#?].*$", "", sanitize_filename(trimmed), flags=re.DOTALL)
    if not sanitized:
        return None

    candidate = re.split(r"[\\/]", sanitized)[-1].strip()
    if candidate and is_stored_filename(candidate):
        return candidate
    return None


def classify_reference(raw: Optional[str]) -> Classification:
    """Classify a raw reference string."""
    trimmed = (raw or "").strip()
    if not trimmed:
        return Classification(ReferenceKind.ABSENT, trimmed)

    if is_direct_url(trimmed):
        return Classification(ReferenceKind.DIRECT, trimmed)

    candidate = extract_filename_candidate(trimmed)
    if candidate:
        return Classification(ReferenceKind.CANDIDATE, trimmed, candidate)
    return Classification(ReferenceKind.UNRESOLVABLE, trimmed)
