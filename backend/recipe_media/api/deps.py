from __future__ import annotations
"""Shared FastAPI dependencies: bearer authentication and service wiring."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_media.config import get_settings
from recipe_media.database import get_db
from recipe_media.services.asset_store import SqlAssetStore
from recipe_media.services.media_service import MediaService

http_bearer = HTTPBearer(auto_error=False)


def _decode_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")


async def get_current_user_id(
    creds: HTTPAuthorizationCredentials | None = Depends(http_bearer),
) -> str:
    """Resolve the caller's user id from the ``sub`` claim of the bearer token."""
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    user_id = _decode_token(creds.credentials).get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no subject")
    return str(user_id)


def get_media_service(db: AsyncSession = Depends(get_db)) -> MediaService:
    return MediaService(SqlAssetStore(db))
