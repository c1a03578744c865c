"""
Secure image test configuration

Fixtures for the secure image tests:
- fake_clock: controllable time source for cache expiry
- storage / filename_cache: in-memory persistence
- backend: scripted image endpoint behind httpx.MockTransport
- api_client / resolver: wired against the fake backend
"""

import asyncio
import struct
import sys
import zlib
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from PIL import Image

# Put the backend directory on the Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from secure_image.api_client import ApiClient, TokenStore
from secure_image.cache_manager import FilenameCache
from secure_image.object_urls import ObjectUrlStore
from secure_image.resolver import SecureImageResolver
from secure_image.storage import MemoryStorage

BASE_URL = "http://backend.test"
API_BASE = f"{BASE_URL}/api"


def _make_png() -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (2, 2), (200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


PNG_BYTES = _make_png()


# ============================================
# Fake Backend
# ============================================

class FakeBackend:
    """
    Scripted stand-in for the raffle backend.

    Responses are keyed by request path; unknown paths answer 404.
    A path can be held open with ``hold(path)`` until ``release(path)``.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], httpx.Response] = {}
        self.gates: Dict[str, asyncio.Event] = {}

    def add_image(
        self,
        path: str,
        content: bytes = PNG_BYTES,
        filename: Optional[str] = None,
        content_type: str = "image/png",
    ) -> None:
        headers = {"content-type": content_type}
        if filename:
            headers["content-disposition"] = f'inline; filename="{filename}"'
        self.routes[("GET", path)] = httpx.Response(200, content=content, headers=headers)

    def add_response(self, method: str, path: str, response: httpx.Response) -> None:
        self.routes[(method, path)] = response

    def remove(self, method: str, path: str) -> None:
        self.routes.pop((method, path), None)

    def hold(self, path: str) -> None:
        self.gates[path] = asyncio.Event()

    def release(self, path: str) -> None:
        self.gates[path].set()

    def calls(self, path: Optional[str] = None) -> List[httpx.Request]:
        if path is None:
            return list(self.requests)
        return [r for r in self.requests if r.url.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()
        response = self.routes.get((request.method, path))
        if response is None:
            return httpx.Response(404, json={"detail": "not found"})
        return httpx.Response(
            response.status_code,
            content=response.content,
            headers=response.headers,
        )


# ============================================
# Fixtures
# ============================================

class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def filename_cache(storage, fake_clock):
    return FilenameCache(storage, clock=fake_clock)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def api_client(backend, storage):
    client = ApiClient(
        base_url=BASE_URL,
        token_store=TokenStore(storage),
        transport=httpx.MockTransport(backend.handler),
    )
    client.tokens.set("test-token", persist=False)
    yield client
    await client.close()


@pytest.fixture
def object_urls():
    return ObjectUrlStore(max_entries=10)


@pytest.fixture
def resolver(api_client, filename_cache, object_urls):
    return SecureImageResolver(api_client, filename_cache, object_urls)


# ============================================
# Helper Functions
# ============================================

def image_path(filename: str) -> str:
    """Request path of the image endpoint for a filename."""
    return f"/api/item/img/{filename}"


def png_header(width: int, height: int) -> bytes:
    """PNG signature and chunks declaring a size, with no pixel data."""
    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")
