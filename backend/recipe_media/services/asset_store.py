from __future__ import annotations
"""Asset record store — persistence of MediaAsset rows.

The upload pipeline only needs a handful of operations (create a pending
record, move it to processing/ready/error, look it up). They are expressed as
the ``AssetRecordStore`` protocol so the service layer can run against the
SQLAlchemy implementation below or any other backing store.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_media.models.media_asset import (
    MediaAsset,
    MediaStatus,
    MediaType,
    ensure_asset_transition,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewAsset:
    """Fields captured when the broker issues an upload target."""

    type: MediaType
    provider: str
    provider_asset_id: str
    uploaded_by: str
    original_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


@dataclass(frozen=True)
class ReadyDetails:
    """Provider-reported data stored when an asset becomes ready."""

    url: str
    thumbnail_url: str | None = None
    duration_seconds: float | None = None
    width: int | None = None
    height: int | None = None


class AssetRecordStore(Protocol):
    async def create_pending(self, new: NewAsset) -> MediaAsset: ...

    async def mark_processing(self, asset_id: str) -> MediaAsset: ...

    async def mark_ready(self, asset_id: str, details: ReadyDetails) -> MediaAsset: ...

    async def mark_error(self, asset_id: str, message: str) -> MediaAsset: ...

    async def get(self, asset_id: str) -> MediaAsset | None: ...

    async def get_by_provider_id(self, provider_asset_id: str) -> MediaAsset | None: ...

    async def list_for_user(self, user_id: str) -> list[MediaAsset]: ...

    async def delete(self, asset_id: str) -> None: ...


class AssetNotFoundError(LookupError):
    pass


class SqlAssetStore:
    """AssetRecordStore backed by an async SQLAlchemy session.

    Writes are flushed, not committed; the request-scoped session from
    ``get_db`` owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_pending(self, new: NewAsset) -> MediaAsset:
        obj = MediaAsset(
            type=new.type.value,
            provider=new.provider,
            provider_asset_id=new.provider_asset_id,
            status=MediaStatus.PENDING.value,
            original_name=new.original_name,
            mime_type=new.mime_type,
            file_size=new.file_size,
            uploaded_by=new.uploaded_by,
        )
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def mark_processing(self, asset_id: str) -> MediaAsset:
        obj = await self._require(asset_id)
        ensure_asset_transition(obj.id, obj.status, MediaStatus.PROCESSING)
        obj.status = MediaStatus.PROCESSING.value
        return await self._save(obj)

    async def mark_ready(self, asset_id: str, details: ReadyDetails) -> MediaAsset:
        obj = await self._require(asset_id)
        ensure_asset_transition(obj.id, obj.status, MediaStatus.READY)
        obj.status = MediaStatus.READY.value
        obj.url = details.url
        obj.thumbnail_url = details.thumbnail_url
        obj.duration_seconds = details.duration_seconds
        obj.width = details.width
        obj.height = details.height
        return await self._save(obj)

    async def mark_error(self, asset_id: str, message: str) -> MediaAsset:
        obj = await self._require(asset_id)
        ensure_asset_transition(obj.id, obj.status, MediaStatus.ERROR)
        obj.status = MediaStatus.ERROR.value
        obj.error_message = message
        return await self._save(obj)

    async def get(self, asset_id: str) -> MediaAsset | None:
        return await self.session.get(MediaAsset, asset_id)

    async def get_by_provider_id(self, provider_asset_id: str) -> MediaAsset | None:
        result = await self.session.execute(
            select(MediaAsset).where(MediaAsset.provider_asset_id == provider_asset_id)
        )
        return result.scalars().first()

    async def list_for_user(self, user_id: str) -> list[MediaAsset]:
        result = await self.session.execute(
            select(MediaAsset)
            .where(MediaAsset.uploaded_by == user_id)
            .order_by(MediaAsset.created_at.desc())
        )
        return list(result.scalars().all())

    async def delete(self, asset_id: str) -> None:
        obj = await self._require(asset_id)
        await self.session.delete(obj)
        await self.session.flush()

    async def _require(self, asset_id: str) -> MediaAsset:
        obj = await self.get(asset_id)
        if obj is None:
            raise AssetNotFoundError(asset_id)
        return obj

    async def _save(self, obj: MediaAsset) -> MediaAsset:
        # onupdate=func.now() stamps updated_at on flush
        await self.session.flush()
        await self.session.refresh(obj)
        logger.debug("Asset %s -> %s", obj.id, obj.status)
        return obj
