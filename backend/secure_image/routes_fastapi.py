"""
Secure Image API Routes

Provides endpoints for:
- Resolving image references to display URLs
- Serving and releasing object URL bytes
- Uploading item images to the backend
- Filename cache statistics and management
- Bearer token management for the backend client
"""

import logging
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .api_client import ApiClient, ImageUploadError, TokenStore
from .cache_manager import FilenameCache
from .config import SecureImageConfig
from .object_urls import ObjectUrlStore, blob_id_from_url
from .resolver import SecureImageResolver
from .storage import JsonFileStorage
from .url_builder import build_direct_image_url

logger = logging.getLogger(__name__)

# ============================================
# Configuration
# ============================================

config = SecureImageConfig.from_env()

storage = JsonFileStorage(config.cache_file)

filename_cache = FilenameCache(storage, max_age_seconds=config.cache_ttl_seconds)

object_urls = ObjectUrlStore(max_entries=config.max_object_urls)

api_client = ApiClient(
    base_url=config.api_url,
    token_store=TokenStore(storage),
    timeout=config.http_timeout,
)
if config.auth_token:
    api_client.tokens.set(config.auth_token, persist=False)

resolver = SecureImageResolver(api_client, filename_cache, object_urls)

# ============================================
# Request/Response Models
# ============================================


class ResolveResponse(BaseModel):
    """Resolution result for one reference."""
    success: bool
    source: Optional[str] = None
    url: Optional[str] = None
    error: bool = False
    blob_path: Optional[str] = Field(None, description="Where object URL bytes can be fetched")


class UploadResponse(BaseModel):
    """Stored path of an uploaded image."""
    success: bool
    filename: str = Field(..., description="Path the backend stored the image under")
    url: Optional[str] = Field(None, description="Direct endpoint URL for the stored image")


class ForgetRequest(BaseModel):
    source: str = Field(..., description="Original image reference")


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Bearer token for the backend")


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api/secure-image", tags=["Secure Image"])


# ============================================
# Endpoints
# ============================================

@router.get("", response_model=ResolveResponse)
@router.get("/", response_model=ResolveResponse)
async def resolve_image(
    source: Optional[str] = Query(None, description="Image reference to resolve"),
    revalidate: bool = Query(False, description="Skip cached filenames and ask the backend"),
):
    """
    Resolve an image reference.

    Example:
        GET /api/secure-image?source=item/img/photo.jpg
    """
    resource = await resolver.resolve(source, revalidate=revalidate)

    blob_path = None
    blob_id = blob_id_from_url(resource.url) if resource.url else None
    if blob_id:
        blob_path = f"{router.prefix}/blob/{blob_id}"

    return ResolveResponse(
        success=not resource.error,
        source=source,
        url=resource.url,
        error=resource.error,
        blob_path=blob_path,
    )


@router.get("/blob/{blob_id}")
async def get_blob(blob_id: str):
    """Serve the bytes behind an object URL."""
    entry = object_urls.get(blob_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Object URL '{blob_id}' not found or released")
    return Response(
        content=entry.data,
        media_type=entry.content_type,
        headers={"Cache-Control": "no-store"},
    )


@router.delete("/blob/{blob_id}")
async def release_blob(blob_id: str):
    """Release an object URL."""
    if not object_urls.revoke(blob_id):
        raise HTTPException(status_code=404, detail=f"Object URL '{blob_id}' not found")
    return {"success": True, "message": f"Released object URL: {blob_id}"}


@router.post("/upload", response_model=UploadResponse)
async def upload_image(
    file: UploadFile = File(..., description="Item image to upload"),
):
    """
    Upload an item image through the authenticated client.

    Backend rejections keep their status code; a response without a
    recoverable stored path answers 502.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    data = await file.read()
    try:
        stored = await api_client.upload_image(file.filename, data, file.content_type)
    except ImageUploadError as e:
        raise HTTPException(status_code=e.status_code or 502, detail=str(e))

    logger.info(f"[SecureImage] Uploaded {file.filename} -> {stored}")
    return UploadResponse(
        success=True,
        filename=stored,
        url=build_direct_image_url(stored, api_client.base_url),
    )


@router.post("/forget")
async def forget_source(request: ForgetRequest):
    """Drop the cached filename for a reference."""
    if not request.source.strip():
        raise HTTPException(status_code=400, detail="source must not be blank")
    removed = filename_cache.forget(request.source)
    return {"success": True, "removed": removed}


@router.get("/stats")
async def get_stats():
    """Filename cache and object URL statistics."""
    return JSONResponse(content={
        "success": True,
        "filename_cache": filename_cache.get_stats(),
        "object_urls": object_urls.get_stats(),
    })


@router.delete("/clear")
async def clear_cache():
    """
    Clear all cached filenames and object URLs.

    Use with caution - every reference will be fetched again.
    """
    removed = filename_cache.clear()
    released = object_urls.clear()
    return JSONResponse(content={
        "success": True,
        "removed_entries": removed,
        "released_object_urls": released,
    })


@router.put("/token")
async def set_token(request: TokenRequest):
    """Set the bearer token used for backend requests."""
    api_client.tokens.set(request.token)
    return {"success": True}


@router.delete("/token")
async def clear_token():
    """Forget the bearer token."""
    api_client.tokens.clear()
    return {"success": True}


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return JSONResponse(content={
        "status": "healthy",
        "service": "secure-image",
        "api_url": api_client.base_url,
        "authenticated": api_client.tokens.get() is not None,
    })
