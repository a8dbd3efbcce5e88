from __future__ import annotations
"""Media API endpoints — upload targets, confirmation, polling, deletion.

The client uploads bytes directly to the provider; these endpoints only
broker targets and track the asset record.
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from pydantic import ValidationError

from recipe_media.api.deps import get_current_user_id, get_media_service
from recipe_media.config import get_settings
from recipe_media.schemas.media import (
    ImageUploadRequest,
    MediaAssetEnvelope,
    MediaAssetRead,
    StreamVideoDetails,
    UploadTarget,
    VideoUploadRequest,
)
from recipe_media.services.media_service import MediaNotFoundError, MediaService
from recipe_media.services.providers.cloudflare import verify_webhook_signature

router = APIRouter()
logger = logging.getLogger(__name__)


# ──────── Upload targets ────────

@router.post("/upload/image", response_model=UploadTarget, status_code=201)
async def request_image_upload(
    req: ImageUploadRequest,
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service),
):
    """Issue a one-time direct upload URL for an image."""
    return await service.create_image_upload(user_id, req)


@router.post("/upload/video", response_model=UploadTarget, status_code=201)
async def request_video_upload(
    req: VideoUploadRequest,
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service),
):
    """Issue a direct upload target for a video (form or tus, see uploadProtocol)."""
    return await service.create_video_upload(user_id, req)


# ──────── Webhooks (no auth, verified by signature) ────────

@router.post("/webhook/stream")
async def stream_webhook(
    request: Request,
    webhook_signature: str | None = Header(default=None),
    service: MediaService = Depends(get_media_service),
):
    """Provider callback when video processing completes or fails."""
    body = await request.body()
    if get_settings().CF_STREAM_WEBHOOK_SECRET:
        if not webhook_signature or not verify_webhook_signature(body, webhook_signature):
            logger.warning("Rejected Stream webhook: missing or invalid signature")
            raise HTTPException(status_code=401, detail="Invalid signature")
    elif webhook_signature:
        # Signed callback but nothing to check it against
        logger.warning("Stream webhook signed but CF_STREAM_WEBHOOK_SECRET is not set")
        raise HTTPException(status_code=401, detail="Invalid signature")
    else:
        logger.warning("Accepting unsigned Stream webhook: no secret configured")

    try:
        details = StreamVideoDetails.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid webhook payload: {e.error_count()} errors")

    await service.handle_stream_webhook(details)
    return {"received": True}


# ──────── Asset management ────────

@router.get("", response_model=list[MediaAssetRead])
async def list_my_media(
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service),
):
    """All assets uploaded by the caller, newest first."""
    return await service.list_for_user(user_id)


@router.get("/{asset_id}", response_model=MediaAssetEnvelope)
async def get_media(
    asset_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service),
):
    asset = await service.get_by_id(asset_id)
    if asset is None:
        raise MediaNotFoundError()
    if asset.uploaded_by != user_id:
        raise HTTPException(status_code=403, detail="You can only view your own media")
    return {"asset": asset}


@router.post("/{asset_id}/confirm", response_model=MediaAssetEnvelope)
async def confirm_image_upload(
    asset_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service),
):
    """Finalize an image after the client transferred it (generates CDN URLs)."""
    return {"asset": await service.confirm_image_upload(asset_id, user_id)}


@router.post("/{asset_id}/poll", response_model=MediaAssetEnvelope)
async def poll_video_status(
    asset_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service),
):
    """One status refresh of a video; the caller owns the retry cadence."""
    return {"asset": await service.poll_video_status(asset_id, user_id)}


@router.delete("/{asset_id}", status_code=204)
async def delete_media(
    asset_id: str,
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service),
):
    await service.delete(asset_id, user_id)
    return Response(status_code=204)
