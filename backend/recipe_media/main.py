from __future__ import annotations
"""Recipe media — FastAPI application entry point.

Mounts the media routes, configures CORS and logging, and manages the
database pool lifecycle.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recipe_media.api.errors import register_exception_handlers
from recipe_media.api.router import api_router
from recipe_media.config import get_settings
from recipe_media.database import close_db, init_db

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: create tables in debug mode, close pool on shutdown."""
    logger.info("%s starting up...", settings.APP_NAME)
    logger.info("Database: %s@%s/%s", settings.DB_USER, settings.DB_HOST, settings.DB_NAME)
    if not settings.CF_ACCOUNT_ID or not settings.CF_API_TOKEN:
        logger.warning("Cloudflare credentials missing; upload requests will fail")

    if settings.DEBUG:
        await init_db()
    else:
        logger.info("Skipping init_db (tables assumed to exist)")

    yield

    await close_db()
    logger.info("%s shut down", settings.APP_NAME)


app = FastAPI(
    title="Recipe Media API",
    description="Direct-to-provider image and video uploads for recipes, steps and profiles",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

# CORS: frontend dev servers by default, override with CORS_ORIGINS
_cors_origins = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173,http://127.0.0.1:3000",
).split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "service": settings.APP_NAME,
        "status": "healthy",
        "provider_configured": bool(settings.CF_ACCOUNT_ID and settings.CF_API_TOKEN),
    }
