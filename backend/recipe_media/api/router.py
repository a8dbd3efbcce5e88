from __future__ import annotations
"""Master API router — mounts all sub-routers."""

from fastapi import APIRouter

from recipe_media.api.media import router as media_router
from recipe_media.config import get_settings

api_router = APIRouter(prefix=get_settings().API_PREFIX, redirect_slashes=False)

api_router.include_router(media_router, prefix="/media", tags=["Media"])
