"""
Content-Disposition Parsing

Reads the server-confirmed filename out of a Content-Disposition header and
recovers stored image paths from upload responses.
"""

import json
import re
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import unquote

_EXTENDED_FILENAME = re.compile(r"filename\*=(?:UTF-8'')?([^;]+)", re.IGNORECASE)
_BASIC_FILENAME = re.compile(r"filename=\"?([^\";]+)\"?", re.IGNORECASE)
_LIKELY_FILENAME = re.compile(r"\.[a-z0-9]{2,}$", re.IGNORECASE)
_EMBEDDED_FILENAME = re.compile(r"[\w./-]+\.[A-Za-z0-9]{2,}", re.ASCII)

# Body keys that may hold the stored path, checked in order
RESPONSE_CANDIDATE_KEYS = (
    "fileName",
    "filename",
    "path",
    "url",
    "imageUrl",
    "imageURL",
    "imagem",
    "imagemUrl",
    "caminho",
    "img",
    "location",
    "storedPath",
    "storedFilename",
)

# Containers the path may be nested under
RESPONSE_NESTED_KEYS = (
    "data",
    "payload",
    "result",
    "response",
    "body",
    "content",
    "file",
    "image",
    "imagem",
    "img",
    "meta",
    "metadata",
    "details",
)

HEADER_FALLBACKS = ("x-file-name", "x-filename", "content-location", "location")

MAX_SEARCH_DEPTH = 5


def _decode(raw: str) -> str:
    try:
        return unquote(raw, errors="strict")
    except UnicodeDecodeError:
        return raw


def extract_filename_from_content_disposition(value: Optional[str]) -> Optional[str]:
    """
    Extract the filename parameter of a Content-Disposition header.

    ``filename*=`` (RFC 5987) wins over plain ``filename=``; both are
    percent-decoded when possible.
    """
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None

    extended = _EXTENDED_FILENAME.search(trimmed)
    if extended and extended.group(1):
        raw = re.sub(r'(^"|"$)', "", extended.group(1))
        return _decode(raw)

    basic = _BASIC_FILENAME.search(trimmed)
    if basic and basic.group(1):
        return _decode(basic.group(1))

    return None


def get_header_value(headers: Optional[Mapping[str, Any]], name: str) -> Optional[str]:
    """Case-insensitive header lookup; first non-blank value wins for lists."""
    if not headers:
        return None
    target = name.lower()
    for key, value in headers.items():
        if str(key).lower() != target:
            continue
        if isinstance(value, str) and value.strip():
            return value
        if isinstance(value, (list, tuple)):
            for entry in value:
                if isinstance(entry, str) and entry.strip():
                    return entry
    return None


def _is_likely_filename(raw: str) -> bool:
    return bool(_LIKELY_FILENAME.search(raw.strip()))


def ensure_candidate(raw: Optional[str]) -> Optional[str]:
    """Pick the most plausible stored path out of a free-form string."""
    if not raw:
        return None
    trimmed = re.sub(r"^['\"]|['\"]$", "", raw.strip())
    if not trimmed:
        return None
    sanitized = re.sub(r"[?#].*$", "", trimmed, flags=re.DOTALL).replace("\\", "/")

    parts = [sanitized]
    parts.extend(part.strip() for part in re.split(r"[;,]", sanitized))
    parts.extend(part.strip() for part in re.split(r"[:=]", sanitized))
    for part in parts:
        if part and _is_likely_filename(part):
            return part

    for candidate in reversed(_EMBEDDED_FILENAME.findall(sanitized)):
        if _is_likely_filename(candidate):
            return candidate
    return None


def _iter_values(values: Iterable[Any], depth: int) -> Optional[str]:
    for value in values:
        found = extract_candidate_from_unknown(value, depth + 1)
        if found:
            return found
    return None


def extract_candidate_from_unknown(value: Any, depth: int = 0) -> Optional[str]:
    """Search a decoded response body for a stored path."""
    if value is None or depth > MAX_SEARCH_DEPTH:
        return None

    if isinstance(value, str):
        found = ensure_candidate(value)
        if found:
            return found
        trimmed = value.strip()
        is_json_like = (trimmed.startswith("{") and trimmed.endswith("}")) or (
            trimmed.startswith("[") and trimmed.endswith("]")
        )
        if depth < 4 and is_json_like:
            try:
                return extract_candidate_from_unknown(json.loads(trimmed), depth + 1)
            except ValueError:
                return None
        return None

    if isinstance(value, list):
        return _iter_values(value, depth)

    if isinstance(value, dict):
        for key in RESPONSE_CANDIDATE_KEYS:
            candidate = value.get(key)
            if isinstance(candidate, str):
                found = ensure_candidate(candidate)
                if found:
                    return found

        found = _iter_values((value.get(key) for key in RESPONSE_NESTED_KEYS), depth)
        if found:
            return found

        if depth < 2:
            return _iter_values(value.values(), depth)

    return None


def extract_uploaded_path(payload: Any, headers: Optional[Mapping[str, Any]] = None) -> Optional[str]:
    """
    Recover the stored path from an upload response.

    Order: Content-Disposition, fallback headers, then the body.
    """
    disposition = get_header_value(headers, "content-disposition")
    from_disposition = ensure_candidate(
        extract_filename_from_content_disposition(disposition) or disposition
    )
    if from_disposition:
        return from_disposition

    for header in HEADER_FALLBACKS:
        found = ensure_candidate(get_header_value(headers, header))
        if found:
            return found

    return extract_candidate_from_unknown(payload)
