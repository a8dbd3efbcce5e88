"""ORM model package — registers all models with Base.metadata."""

from recipe_media.models.media_asset import (
    ASSET_TRANSITIONS,
    IMAGE_CONTEXTS,
    VIDEO_CONTEXTS,
    InvalidAssetTransitionError,
    MediaAsset,
    MediaContext,
    MediaStatus,
    MediaType,
    ensure_asset_transition,
)

__all__ = [
    "ASSET_TRANSITIONS",
    "IMAGE_CONTEXTS",
    "VIDEO_CONTEXTS",
    "InvalidAssetTransitionError",
    "MediaAsset",
    "MediaContext",
    "MediaStatus",
    "MediaType",
    "ensure_asset_transition",
]
