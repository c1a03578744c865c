"""
Secure Image Module

Resolves raffle item image references into displayable URLs, fetching
protected images through the authenticated backend only when needed.

Features:
- Reference classification (direct URL, stored filename, unresolvable)
- Persistent filename cache with 7-day expiry
- Content-Disposition filename hints
- Object URLs with explicit release
- Out-of-order result protection for changing references
- Item image upload through the authenticated client
"""

from .routes_fastapi import router
from .api_client import ApiClient, TokenStore
from .cache_manager import FilenameCache
from .object_urls import ObjectUrlStore
from .resolver import ResolvedResource, SecureImageBinding, SecureImageResolver

__all__ = [
    "router",
    "ApiClient",
    "TokenStore",
    "FilenameCache",
    "ObjectUrlStore",
    "ResolvedResource",
    "SecureImageBinding",
    "SecureImageResolver",
]
