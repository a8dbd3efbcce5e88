"""Pydantic v2 schemas package."""

from recipe_media.schemas.media import (
    ImageUploadRequest,
    MediaAssetEnvelope,
    MediaAssetRead,
    StreamVideoDetails,
    UploadTarget,
    VideoUploadRequest,
)

__all__ = [
    "ImageUploadRequest",
    "MediaAssetEnvelope",
    "MediaAssetRead",
    "StreamVideoDetails",
    "UploadTarget",
    "VideoUploadRequest",
]
