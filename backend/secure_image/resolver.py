"""
Secure Image Resolver

Turns an image reference into a displayable URL:
1. Direct URLs pass through untouched
2. Cached (or derivable) filenames become direct endpoint URLs, no fetch
3. Everything else plausible is fetched once from the authenticated
   image endpoint; the Content-Disposition filename is cached when present,
   otherwise the confirmed candidate is cached and this first display is
   served from the fetched bytes through an object URL

SecureImageBinding wraps the resolver for a consumer whose reference keeps
changing: only the latest reference may publish a result, and object URLs
are released when superseded or closed.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .api_client import ApiClient
from .cache_manager import FilenameCache
from .classifier import ReferenceKind, classify_reference
from .object_urls import ObjectUrlStore
from .url_builder import build_direct_image_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedResource:
    """Display URL for a reference, or the error flag."""
    url: Optional[str] = None
    error: bool = False


ABSENT = ResolvedResource()
FAILED = ResolvedResource(error=True)


def _always_current() -> bool:
    return True


class SecureImageResolver:
    """
    Resolves image references against the backend.

    Usage:
        resolver = SecureImageResolver(client, FilenameCache(storage), ObjectUrlStore())
        resource = await resolver.resolve("item/img/photo.jpg")
    """

    def __init__(
        self,
        client: ApiClient,
        cache: FilenameCache,
        object_urls: Optional[ObjectUrlStore] = None,
    ):
        self.client = client
        self.cache = cache
        self.object_urls = object_urls or ObjectUrlStore()

    @property
    def base_url(self) -> str:
        return self.client.base_url

    def plan(self, reference: Optional[str], revalidate: bool = False) -> Tuple[Optional[ResolvedResource], Optional[str]]:
        """
        Synchronous part of resolution.

        Returns:
            (result, None) when no fetch is needed, or (None, candidate) when
            the candidate filename must be fetched.
        """
        classification = classify_reference(reference)
        source = classification.reference

        if classification.kind == ReferenceKind.ABSENT:
            return ABSENT, None
        if classification.kind == ReferenceKind.DIRECT:
            return ResolvedResource(url=source), None

        if not revalidate:
            cached = self.cache.lookup(source)
            filename = cached
            # A bare filename is confirmed by the backend before it is cached
            if filename is None and classification.candidate != source:
                filename = classification.candidate

            url = build_direct_image_url(filename, self.base_url) if filename else None
            if url:
                if cached is None and filename != source:
                    self.cache.remember(source, filename)
                return ResolvedResource(url=url), None

        if classification.kind == ReferenceKind.UNRESOLVABLE:
            return FAILED, None

        return None, classification.candidate

    async def fetch(
        self,
        reference: str,
        candidate: str,
        is_current: Callable[[], bool] = _always_current,
    ) -> Tuple[Optional[ResolvedResource], Optional[str]]:
        """
        Fetch a candidate from the image endpoint.

        Nothing is cached, forgotten or allocated once ``is_current`` turns
        False; the result is then (None, None).

        Returns:
            (result, object_url). The caller owns object_url and must
            release it.
        """
        source = reference.strip()
        try:
            image = await self.client.get_image(candidate)
        except Exception as e:
            if not is_current():
                return None, None
            logger.warning(f"[SecureImage] Failed to load protected image {source[:60]}: {e}")
            self.cache.forget(source)
            return FAILED, None

        if not is_current():
            logger.debug(f"[SecureImage] Discarding stale result for {source[:60]}")
            return None, None

        hinted_name = image.filename_hint
        if hinted_name:
            self.cache.remember(source, hinted_name)
            hinted_url = build_direct_image_url(hinted_name, self.base_url)
            if hinted_url:
                logger.debug(f"[SecureImage] Resolved {source[:60]} -> {hinted_name}")
                return ResolvedResource(url=hinted_url), None

        # A 2xx without a usable hint confirms the candidate itself
        self.cache.remember(source, candidate)

        try:
            object_url = self.object_urls.create(image.content, image.content_type)
        except Exception as e:
            logger.warning(f"[SecureImage] Could not hold image bytes for {source[:60]}: {e}")
            return FAILED, None
        logger.debug(f"[SecureImage] Serving {source[:60]} from {object_url}")
        return ResolvedResource(url=object_url), object_url

    async def resolve(self, reference: Optional[str], revalidate: bool = False) -> ResolvedResource:
        """
        One-shot resolution.

        An object URL in the result stays registered until ``release``.
        """
        result, candidate = self.plan(reference, revalidate=revalidate)
        if result is not None:
            return result
        result, _ = await self.fetch(reference or "", candidate)
        return result or FAILED

    def release(self, object_url: Optional[str]) -> None:
        if object_url and self.object_urls.revoke(object_url):
            logger.debug(f"[SecureImage] Released {object_url}")


class SecureImageBinding:
    """
    Keeps one consumer's display URL in sync with a changing reference.

    ``update`` must be called from a running event loop when a fetch may be
    needed. Results of superseded fetches are dropped.

    Usage:
        with SecureImageBinding(resolver, on_change=render) as image:
            image.update(item.image_url)
            await image.wait()
    """

    def __init__(
        self,
        resolver: SecureImageResolver,
        on_change: Optional[Callable[[ResolvedResource], None]] = None,
    ):
        self.resolver = resolver
        self.on_change = on_change

        self.reference: Optional[str] = None
        self.result: ResolvedResource = ABSENT
        self.pending = False

        self._generation = 0
        self._object_url: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def url(self) -> Optional[str]:
        return self.result.url

    @property
    def error(self) -> bool:
        return self.result.error

    def _emit(self, result: ResolvedResource) -> None:
        self.pending = False
        self.result = result
        if self.on_change is not None:
            self.on_change(result)

    def _invalidate(self) -> None:
        """Supersede the current invocation and release what it owns."""
        self._generation += 1
        object_url, self._object_url = self._object_url, None
        self.resolver.release(object_url)

    def update(self, reference: Optional[str], revalidate: bool = False) -> None:
        """Resolve a new reference, superseding any work in flight."""
        if self._closed:
            raise RuntimeError("SecureImageBinding is closed")

        self._invalidate()
        self.reference = reference
        result, candidate = self.resolver.plan(reference, revalidate=revalidate)
        if result is not None:
            self._task = None
            self._emit(result)
            return

        self.pending = True
        self.result = ABSENT
        generation = self._generation
        self._task = asyncio.get_running_loop().create_task(
            self._run_fetch(generation, reference or "", candidate)
        )

    async def _run_fetch(self, generation: int, reference: str, candidate: str) -> None:
        def is_current() -> bool:
            return generation == self._generation

        object_url = None
        try:
            result, object_url = await self.resolver.fetch(reference, candidate, is_current)
            if result is None or not is_current():
                return
            self._object_url, object_url = object_url, None
            self._emit(result)
        finally:
            # Anything not handed to the binding is released here
            self.resolver.release(object_url)

    def refresh(self) -> None:
        """Re-run the current reference, bypassing cached filenames."""
        self.update(self.reference, revalidate=True)

    async def wait(self) -> ResolvedResource:
        """Wait for the in-flight fetch, if any, and return the current result."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)
        return self.result

    def close(self) -> None:
        """Release owned object URLs and drop any in-flight result."""
        if self._closed:
            return
        self._closed = True
        self._invalidate()

    def __enter__(self) -> "SecureImageBinding":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
