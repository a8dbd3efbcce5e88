"""Pytest configuration helpers.

Puts ``backend/`` on ``sys.path`` so tests can import ``recipe_media``
without an editable install, and provides the fakes shared by the suites.
"""
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

import itertools
from datetime import datetime

import pytest

from recipe_media.models.media_asset import (
    MediaAsset,
    MediaStatus,
    MediaType,
    ensure_asset_transition,
)
from recipe_media.schemas.media import MediaAssetRead

_ids = itertools.count(1)


def make_asset(
    status: MediaStatus = MediaStatus.READY,
    type: MediaType = MediaType.IMAGE,
    **fields,
) -> MediaAssetRead:
    """Client-side view of an asset, as the API would return it."""
    data = {
        "id": fields.pop("id", f"asset-{next(_ids)}"),
        "type": type,
        "status": status,
        "provider": "cloudflare",
    }
    if status is MediaStatus.READY:
        data.setdefault("url", f"https://cdn.example.com/{data['id']}")
    data.update(fields)
    return MediaAssetRead(**data)


class FakeAssetStore:
    """In-memory AssetRecordStore with the same transition rules as the SQL one."""

    def __init__(self):
        self.rows: dict[str, MediaAsset] = {}

    def add(self, **fields) -> MediaAsset:
        fields.setdefault("id", f"asset-{next(_ids)}")
        fields.setdefault("provider", "cloudflare")
        fields.setdefault("status", MediaStatus.PENDING.value)
        fields.setdefault("created_at", datetime(2026, 1, 1))
        obj = MediaAsset(**fields)
        self.rows[obj.id] = obj
        return obj

    async def create_pending(self, new):
        return self.add(
            type=new.type.value,
            provider=new.provider,
            provider_asset_id=new.provider_asset_id,
            uploaded_by=new.uploaded_by,
            original_name=new.original_name,
            mime_type=new.mime_type,
            file_size=new.file_size,
        )

    async def mark_processing(self, asset_id):
        obj = self.rows[asset_id]
        ensure_asset_transition(obj.id, obj.status, MediaStatus.PROCESSING)
        obj.status = MediaStatus.PROCESSING.value
        return obj

    async def mark_ready(self, asset_id, details):
        obj = self.rows[asset_id]
        ensure_asset_transition(obj.id, obj.status, MediaStatus.READY)
        obj.status = MediaStatus.READY.value
        obj.url = details.url
        obj.thumbnail_url = details.thumbnail_url
        obj.duration_seconds = details.duration_seconds
        obj.width = details.width
        obj.height = details.height
        return obj

    async def mark_error(self, asset_id, message):
        obj = self.rows[asset_id]
        ensure_asset_transition(obj.id, obj.status, MediaStatus.ERROR)
        obj.status = MediaStatus.ERROR.value
        obj.error_message = message
        return obj

    async def get(self, asset_id):
        return self.rows.get(asset_id)

    async def get_by_provider_id(self, provider_asset_id):
        for obj in self.rows.values():
            if obj.provider_asset_id == provider_asset_id:
                return obj
        return None

    async def list_for_user(self, user_id):
        return [obj for obj in self.rows.values() if obj.uploaded_by == user_id]

    async def delete(self, asset_id):
        del self.rows[asset_id]


class FakeProvider:
    """Stands in for the Cloudflare provider module."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None
        self.video_details = None
        self._n = itertools.count(1)

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def create_image_direct_upload(self, *, meta=None, http_client=None):
        self.calls.append(("create_image", meta))
        self._maybe_fail()
        n = next(self._n)
        return {"id": f"cf-img-{n}", "uploadURL": f"https://upload.example.com/img/{n}"}

    async def create_video_direct_upload(self, *, max_duration_seconds=3600, meta=None, http_client=None):
        self.calls.append(("create_video", max_duration_seconds, meta))
        self._maybe_fail()
        n = next(self._n)
        return {"uid": f"cf-vid-{n}", "uploadURL": f"https://upload.example.com/video/{n}"}

    async def create_video_tus_upload(
        self, *, upload_length, max_duration_seconds=3600, name=None, http_client=None
    ):
        self.calls.append(("create_video_tus", upload_length, max_duration_seconds))
        self._maybe_fail()
        n = next(self._n)
        return {"uid": f"cf-vid-{n}", "uploadURL": f"https://upload.example.com/tus/{n}"}

    async def get_video_details(self, uid, *, http_client=None):
        self.calls.append(("get_video", uid))
        self._maybe_fail()
        return self.video_details

    async def delete_video(self, uid, *, http_client=None):
        self.calls.append(("delete_video", uid))
        self._maybe_fail()

    async def delete_image(self, image_id, *, http_client=None):
        self.calls.append(("delete_image", image_id))
        self._maybe_fail()

    def image_delivery_url(self, image_id, variant="public"):
        return f"https://imagedelivery.net/hash/{image_id}/{variant}"


@pytest.fixture
def store():
    return FakeAssetStore()


@pytest.fixture
def provider():
    return FakeProvider()
