"""
Secure Image Configuration

Settings are read from environment variables; every one has a default.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class SecureImageConfig:
    """Configuration for the secure image service."""
    # Backend
    api_url: str = "http://localhost:8080"   # "/api" is appended when missing
    http_timeout: float = 30.0               # Request timeout in seconds
    auth_token: Optional[str] = None         # Initial bearer token

    # Filename cache
    cache_file: str = "./secure_image_cache.json"
    cache_ttl_days: float = 7

    # Object URLs
    max_object_urls: int = 200

    log_level: str = "INFO"

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_days * 24 * 60 * 60

    @classmethod
    def from_env(cls) -> "SecureImageConfig":
        return cls(
            api_url=os.getenv("SECURE_IMAGE_API_URL", "http://localhost:8080"),
            http_timeout=float(os.getenv("SECURE_IMAGE_HTTP_TIMEOUT", "30")),
            auth_token=os.getenv("SECURE_IMAGE_AUTH_TOKEN") or None,
            cache_file=os.getenv("SECURE_IMAGE_CACHE_FILE", "./secure_image_cache.json"),
            cache_ttl_days=float(os.getenv("SECURE_IMAGE_CACHE_TTL_DAYS", "7")),
            max_object_urls=int(os.getenv("SECURE_IMAGE_MAX_OBJECT_URLS", "200")),
            log_level=os.getenv("SECURE_IMAGE_LOG_LEVEL", "INFO").upper(),
        )
