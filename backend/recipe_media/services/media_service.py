from __future__ import annotations
"""Media service — business logic behind the upload endpoints.

Flow per asset:
  1. create_*_upload   → provider issues a direct-upload target, record is
                         created as ``pending``
  2. (client transfers bytes straight to the provider)
  3. confirm_image_upload (images) or poll_video_status / stream webhook
     (videos) → record becomes ``ready`` or ``error``

The provider is called before the record is written, so a failed target
request never leaves a record behind.
"""

import logging
from types import ModuleType
from typing import Any

from recipe_media.config import get_settings
from recipe_media.models.media_asset import (
    InvalidAssetTransitionError,
    MediaAsset,
    MediaStatus,
    MediaType,
)
from recipe_media.schemas.media import (
    ImageUploadRequest,
    StreamVideoDetails,
    UploadTarget,
    VideoUploadRequest,
)
from recipe_media.services.asset_store import AssetRecordStore, NewAsset, ReadyDetails
from recipe_media.services.providers import cloudflare

logger = logging.getLogger(__name__)


class MediaServiceError(Exception):
    """Base class for errors the API layer maps to HTTP responses."""


class MediaNotFoundError(MediaServiceError):
    def __init__(self) -> None:
        super().__init__("Media asset not found")


class MediaPermissionError(MediaServiceError):
    def __init__(self, action: str = "manage") -> None:
        super().__init__(f"You can only {action} your own media")


class InvalidMediaTypeError(MediaServiceError):
    pass


class MediaService:
    """Server-side counterpart of the upload pipeline.

    ``provider`` defaults to the Cloudflare module; anything exposing the same
    coroutine functions can stand in for it. ``video_protocol`` picks the kind
    of video target issued: ``form`` (single POST) or ``tus`` (resumable,
    needs the file size up front).
    """

    def __init__(
        self,
        store: AssetRecordStore,
        provider: ModuleType | Any = cloudflare,
        *,
        video_protocol: str | None = None,
    ):
        self.store = store
        self.provider = provider
        self.video_protocol = video_protocol or get_settings().VIDEO_TRANSFER_MODE

    # ──────── Upload targets (broker) ────────

    async def create_image_upload(self, user_id: str, req: ImageUploadRequest) -> UploadTarget:
        logger.debug("Creating image upload for user %s", user_id)
        result = await self.provider.create_image_direct_upload(
            meta=self._meta(user_id, req.context.value, req.entity_id),
        )
        asset = await self.store.create_pending(NewAsset(
            type=MediaType.IMAGE,
            provider=cloudflare.PROVIDER_NAME,
            provider_asset_id=result["id"],
            uploaded_by=user_id,
            original_name=req.original_name,
            mime_type=req.mime_type,
            file_size=req.file_size,
        ))
        logger.info("Image upload created: asset=%s provider=%s", asset.id, result["id"])
        return UploadTarget(
            asset_id=asset.id,
            upload_url=result["uploadURL"],
            provider_asset_id=result["id"],
        )

    async def create_video_upload(self, user_id: str, req: VideoUploadRequest) -> UploadTarget:
        protocol = "tus" if self.video_protocol == "tus" and req.file_size else "form"
        logger.debug("Creating %s video upload for user %s", protocol, user_id)
        if protocol == "tus":
            result = await self.provider.create_video_tus_upload(
                upload_length=req.file_size,
                max_duration_seconds=req.max_duration_seconds,
                name=req.original_name,
            )
        else:
            result = await self.provider.create_video_direct_upload(
                max_duration_seconds=req.max_duration_seconds,
                meta=self._meta(user_id, req.context.value, req.entity_id),
            )
        asset = await self.store.create_pending(NewAsset(
            type=MediaType.VIDEO,
            provider=cloudflare.PROVIDER_NAME,
            provider_asset_id=result["uid"],
            uploaded_by=user_id,
            original_name=req.original_name,
            mime_type=req.mime_type,
            file_size=req.file_size,
        ))
        logger.info("Video upload created: asset=%s provider=%s", asset.id, result["uid"])
        return UploadTarget(
            asset_id=asset.id,
            upload_url=result["uploadURL"],
            provider_asset_id=result["uid"],
            upload_protocol=protocol,
        )

    # ──────── Lookup ────────

    async def get_by_id(self, asset_id: str) -> MediaAsset | None:
        return await self.store.get(asset_id)

    async def get_owned(self, asset_id: str, user_id: str, action: str = "manage") -> MediaAsset:
        asset = await self.store.get(asset_id)
        if asset is None:
            raise MediaNotFoundError()
        if asset.uploaded_by != user_id:
            raise MediaPermissionError(action)
        return asset

    async def list_for_user(self, user_id: str) -> list[MediaAsset]:
        return await self.store.list_for_user(user_id)

    # ──────── Finalization ────────

    async def confirm_image_upload(self, asset_id: str, user_id: str) -> MediaAsset:
        """Mark an image ready once the client reports the transfer finished."""
        asset = await self.get_owned(asset_id, user_id)
        if asset.type != MediaType.IMAGE.value:
            raise InvalidMediaTypeError("Asset is not an image")
        if not asset.provider_asset_id:
            raise InvalidMediaTypeError("Asset has no provider ID")
        if asset.status == MediaStatus.READY.value:
            return asset

        details = ReadyDetails(
            url=self.provider.image_delivery_url(asset.provider_asset_id),
            thumbnail_url=self.provider.image_delivery_url(asset.provider_asset_id, "thumbnail"),
        )
        updated = await self.store.mark_ready(asset_id, details)
        logger.info("Image confirmed ready: %s", asset_id)
        return updated

    async def poll_video_status(self, asset_id: str, user_id: str) -> MediaAsset:
        """Refresh a video's status from the provider (fallback for late webhooks)."""
        asset = await self.get_owned(asset_id, user_id)
        if asset.type != MediaType.VIDEO.value or not asset.provider_asset_id:
            raise InvalidMediaTypeError("Asset is not a valid video")
        if asset.status in (MediaStatus.READY.value, MediaStatus.ERROR.value):
            return asset

        details = await self.provider.get_video_details(asset.provider_asset_id)
        return await self._apply_stream_details(asset, details)

    async def handle_stream_webhook(self, details: StreamVideoDetails) -> MediaAsset | None:
        """Apply a Stream webhook notification (video ready/error/progress)."""
        logger.debug(
            "Stream webhook received: uid=%s state=%s ready=%s",
            details.uid, details.status.state, details.ready_to_stream,
        )
        asset = await self.store.get_by_provider_id(details.uid)
        if asset is None:
            logger.warning("Stream webhook for unknown asset: %s", details.uid)
            return None

        try:
            return await self._apply_stream_details(asset, details)
        except InvalidAssetTransitionError as e:
            # Late or duplicate notification for an asset already finalized
            logger.warning("Ignoring stream webhook: %s", e)
            return asset

    async def _apply_stream_details(
        self, asset: MediaAsset, details: StreamVideoDetails
    ) -> MediaAsset:
        if details.ready_to_stream and details.playback:
            updated = await self.store.mark_ready(asset.id, ReadyDetails(
                url=details.playback.hls,
                thumbnail_url=details.thumbnail,
                duration_seconds=details.duration,
                width=details.input.width if details.input else None,
                height=details.input.height if details.input else None,
            ))
            logger.info("Video ready: asset=%s", asset.id)
            return updated

        if details.status.state == "error":
            reason = (
                details.status.error_reason_text
                or details.status.error_reason_code
                or "Processing failed"
            )
            logger.error("Video processing error: asset=%s reason=%s", asset.id, reason)
            return await self.store.mark_error(asset.id, reason)

        logger.debug("Video still processing: asset=%s state=%s", asset.id, details.status.state)
        return await self.store.mark_processing(asset.id)

    # ──────── Deletion ────────

    async def delete(self, asset_id: str, user_id: str) -> None:
        """Delete an asset from the provider (best-effort) and the record store."""
        asset = await self.get_owned(asset_id, user_id, action="delete")

        if asset.provider_asset_id:
            try:
                if asset.type == MediaType.VIDEO.value:
                    await self.provider.delete_video(asset.provider_asset_id)
                else:
                    await self.provider.delete_image(asset.provider_asset_id)
            except cloudflare.ProviderError as e:
                logger.warning(
                    "Failed to delete %s from provider (continuing with record delete): %s",
                    asset_id, e,
                )

        await self.store.delete(asset_id)
        logger.info("Media asset deleted: %s", asset_id)

    @staticmethod
    def _meta(user_id: str, context: str, entity_id: str | None) -> dict[str, str]:
        meta = {"userId": user_id, "context": context}
        if entity_id:
            meta["entityId"] = entity_id
        return meta
