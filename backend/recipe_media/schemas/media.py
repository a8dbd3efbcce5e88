from __future__ import annotations
"""Pydantic v2 schemas for media upload requests and assets.

The JSON wire format is camelCase (``assetId``, ``uploadURL``,
``thumbnailUrl``); Python attributes stay snake_case. Both the HTTP router
and the client pipeline use these models.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from recipe_media.models.media_asset import (
    IMAGE_CONTEXTS,
    VIDEO_CONTEXTS,
    MediaContext,
    MediaStatus,
    MediaType,
)


class CamelModel(BaseModel):
    """Base schema serialising to camelCase and accepting either spelling."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ImageUploadRequest(CamelModel):
    """Body of ``POST /media/upload/image``."""

    context: MediaContext
    entity_id: str | None = None
    original_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = Field(default=None, ge=0)

    @field_validator("context")
    @classmethod
    def _image_context(cls, v: MediaContext) -> MediaContext:
        if v not in IMAGE_CONTEXTS:
            raise ValueError(f"context '{v.value}' is not valid for images")
        return v


class VideoUploadRequest(CamelModel):
    """Body of ``POST /media/upload/video``."""

    context: MediaContext
    entity_id: str | None = None
    original_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    max_duration_seconds: int = Field(default=600, gt=0, le=3600)

    @field_validator("context")
    @classmethod
    def _video_context(cls, v: MediaContext) -> MediaContext:
        if v not in VIDEO_CONTEXTS:
            raise ValueError(f"context '{v.value}' is not valid for videos")
        return v


class UploadTarget(CamelModel):
    """One-time upload destination issued by the broker.

    ``upload_protocol`` tells the client how to send the bytes: one multipart
    POST (``form``) or resumable tus PATCHes (``tus``).
    """

    asset_id: str
    upload_url: str = Field(alias="uploadURL")
    provider_asset_id: str
    upload_protocol: Literal["form", "tus"] = "form"


class MediaAssetRead(CamelModel):
    """Schema for reading a media asset."""

    id: str
    type: MediaType
    provider: str | None = None
    provider_asset_id: str | None = None
    status: MediaStatus
    url: str | None = None
    thumbnail_url: str | None = None
    original_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None
    duration_seconds: float | None = None
    width: int | None = None
    height: int | None = None
    error_message: str | None = None
    uploaded_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MediaAssetEnvelope(CamelModel):
    """``{"asset": MediaAsset}`` response wrapper."""

    asset: MediaAssetRead


class StreamStatus(CamelModel):
    state: str = ""
    pct_complete: str | None = None
    error_reason_code: str | None = None
    error_reason_text: str | None = None


class StreamPlayback(CamelModel):
    hls: str
    dash: str | None = None


class StreamDimensions(CamelModel):
    width: int | None = None
    height: int | None = None


class StreamVideoDetails(CamelModel):
    """Video details as reported by the stream provider (poll or webhook)."""

    uid: str
    ready_to_stream: bool = False
    status: StreamStatus = Field(default_factory=StreamStatus)
    thumbnail: str | None = None
    playback: StreamPlayback | None = None
    duration: float | None = None
    input: StreamDimensions | None = None
    meta: dict[str, str] | None = None
