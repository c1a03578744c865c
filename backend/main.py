"""
Secure Image Service

FastAPI application serving the secure image routes.

Run:
    cd backend
    uvicorn main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from secure_image import router as secure_image_router
from secure_image.routes_fastapi import api_client, config

logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(f"[SecureImage] Backend API: {api_client.base_url}")
    yield
    await api_client.close()


app = FastAPI(title="Secure Image Service", lifespan=lifespan)
app.include_router(secure_image_router)
