from __future__ import annotations
"""MediaAsset ORM model — one row per uploaded image or video."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from recipe_media.database import Base


class MediaType(str, enum.Enum):
    """Kinds of media handled by the upload pipeline."""

    IMAGE = "image"
    VIDEO = "video"


class MediaStatus(str, enum.Enum):
    """Media asset lifecycle statuses."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class MediaContext(str, enum.Enum):
    """Where an uploaded asset is going to be shown."""

    RECIPE = "recipe"
    STEP = "step"
    PROFILE = "profile"


IMAGE_CONTEXTS: frozenset[MediaContext] = frozenset(
    {MediaContext.RECIPE, MediaContext.STEP, MediaContext.PROFILE}
)
VIDEO_CONTEXTS: frozenset[MediaContext] = frozenset(
    {MediaContext.RECIPE, MediaContext.STEP}
)

# Explicit valid transitions: status -> set of reachable statuses.
# ready and error are terminal; a retry mints a new asset.
ASSET_TRANSITIONS: dict[MediaStatus, set[MediaStatus]] = {
    MediaStatus.PENDING: {MediaStatus.PROCESSING, MediaStatus.READY, MediaStatus.ERROR},
    MediaStatus.PROCESSING: {MediaStatus.PROCESSING, MediaStatus.READY, MediaStatus.ERROR},
    MediaStatus.READY: set(),
    MediaStatus.ERROR: set(),
}


class InvalidAssetTransitionError(ValueError):
    """Raised when an asset status change would break monotonicity."""

    def __init__(self, asset_id: str, current: MediaStatus, target: MediaStatus):
        self.asset_id = asset_id
        self.current = current
        self.target = target
        super().__init__(
            f"Asset {asset_id}: cannot move from {current.value} to {target.value}"
        )


def ensure_asset_transition(asset_id: str, current: str, target: MediaStatus) -> None:
    """Raise InvalidAssetTransitionError unless current -> target is allowed."""
    current_status = MediaStatus(current)
    if target not in ASSET_TRANSITIONS[current_status]:
        raise InvalidAssetTransitionError(asset_id, current_status, target)


class MediaAsset(Base):
    """A media file hosted by the external provider (image CDN or video stream)."""

    __tablename__ = "media_assets"
    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="cloudflare")
    provider_asset_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MediaStatus.PENDING.value
    )
    url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    original_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uploaded_by: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
