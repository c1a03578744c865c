"""
Authenticated API Client

httpx-based client for the raffle backend:
- Base URL normalized to end in ``/api``
- Bearer token attached to every request
- 401 responses drop the stored token
- Binary image fetch and image upload helpers
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .content_disposition import extract_filename_from_content_disposition, extract_uploaded_path
from .storage import StorageBackend
from .url_builder import build_image_path

logger = logging.getLogger(__name__)

AUTH_TOKEN_STORAGE_KEY = "ng-auth-token"
UPLOAD_ENDPOINT = "/item/upload/img"
UPLOAD_FIELD = "img"


def normalize_base_url(raw: Optional[str]) -> str:
    """``http://host:8080/`` -> ``http://host:8080/api``"""
    normalized = (raw or "").strip().rstrip("/")
    if normalized.endswith("/api"):
        return normalized
    return f"{normalized}/api"


class ImageUploadError(Exception):
    """Upload rejected by the backend or not reachable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MissingUploadPathError(ImageUploadError):
    """Upload succeeded but no stored path could be recovered."""


class TokenStore:
    """
    Holds the bearer token in memory, mirrored to persistent storage.

    Storage errors are ignored; the in-memory token still works.
    """

    def __init__(self, storage: Optional[StorageBackend] = None, storage_key: str = AUTH_TOKEN_STORAGE_KEY):
        self.storage = storage
        self.storage_key = storage_key
        self._token: Optional[str] = None

    def get(self) -> Optional[str]:
        if self._token:
            return self._token
        if self.storage is None:
            return None
        try:
            return self.storage.get_item(self.storage_key)
        except Exception as e:
            logger.debug(f"[ApiClient] Could not read stored token: {e}")
            return None

    def set(self, token: Optional[str], persist: bool = True) -> None:
        self._token = token
        if not persist or self.storage is None:
            return
        try:
            if token:
                self.storage.set_item(self.storage_key, token)
            else:
                self.storage.remove_item(self.storage_key)
        except Exception as e:
            logger.debug(f"[ApiClient] Could not persist token: {e}")

    def clear(self) -> None:
        self.set(None)


@dataclass
class FetchedImage:
    """Binary response from the image endpoint."""
    content: bytes
    headers: httpx.Headers

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @property
    def filename_hint(self) -> Optional[str]:
        """Server-confirmed filename from Content-Disposition."""
        return extract_filename_from_content_disposition(self.headers.get("content-disposition"))


class ApiClient:
    """
    Client for the authenticated REST backend.

    Usage:
        client = ApiClient("http://localhost:8080")
        client.tokens.set(token)
        image = await client.get_image("photo.jpg")
        await client.close()
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        token_store: Optional[TokenStore] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = normalize_base_url(base_url)
        self.tokens = token_store or TokenStore()

        self.http_client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            headers={"Accept": "application/json, image/*;q=0.9, */*;q=0.8"},
            event_hooks={
                "request": [self._attach_token],
                "response": [self._handle_unauthorized],
            },
        )

    async def close(self):
        """Close HTTP client."""
        await self.http_client.aclose()

    async def _attach_token(self, request: httpx.Request) -> None:
        token = self.tokens.get()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"

    async def _handle_unauthorized(self, response: httpx.Response) -> None:
        if response.status_code == 401:
            logger.warning(f"[ApiClient] 401 from {response.request.url.path}, clearing token")
            self.tokens.clear()

    async def get_image(self, filename: str) -> FetchedImage:
        """
        Fetch protected image bytes.

        Args:
            filename: Sanitized filename (encoded here)

        Raises:
            httpx.HTTPError: transport failure or non-2xx status
        """
        response = await self.http_client.get(f"/{build_image_path(filename)}")
        response.raise_for_status()
        return FetchedImage(content=response.content, headers=response.headers)

    async def upload_image(
        self,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Upload an item image and return the stored path.

        Raises:
            ImageUploadError: HTTP or transport failure
            MissingUploadPathError: response carried no usable path
        """
        files = {UPLOAD_FIELD: (filename, data, content_type or "application/octet-stream")}
        try:
            response = await self.http_client.post(UPLOAD_ENDPOINT, files=files)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"[ApiClient] Upload failed with HTTP {status}: {filename}")
            if status == 413:
                raise ImageUploadError("Image too large, send a file of at most 2 MB", status_code=413) from e
            raise ImageUploadError(f"Image upload failed: HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.error(f"[ApiClient] Upload error: {e}")
            raise ImageUploadError(f"Image upload failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        stored_path = extract_uploaded_path(payload, response.headers)
        if not stored_path:
            logger.warning(f"[ApiClient] Upload returned no filename: headers={dict(response.headers)}")
            raise MissingUploadPathError(
                "Server did not return the image identifier; check the Content-Disposition header"
            )

        logger.info(f"[ApiClient] Uploaded {filename} as {stored_path}")
        return stored_path
