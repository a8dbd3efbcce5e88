"""Media API client — the broker, confirmation and poll endpoints.

An explicit client value holding its base URL and bearer token; build one
per authenticated caller and hand it to the pipeline components.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from recipe_media.config import get_settings
from recipe_media.models.media_asset import MediaContext
from recipe_media.pipeline.errors import (
    ConfirmationError,
    MediaPipelineError,
    ProcessingError,
    UploadRequestError,
)
from recipe_media.schemas.media import MediaAssetEnvelope, MediaAssetRead, UploadTarget

logger = logging.getLogger(__name__)


class MediaApiClient:
    """Async client for the ``/media`` endpoints.

    Args:
        base_url: API root, e.g. ``https://recipes.example.com/api``.
        token: Bearer token sent with every request, if any.
        http_client: Optional shared ``httpx.AsyncClient``; not closed by
            :meth:`aclose` when supplied.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._own_client = http_client is None

    @classmethod
    def from_settings(cls, token: str | None = None, **kwargs) -> "MediaApiClient":
        """Build a client against ``MEDIA_API_BASE_URL``."""
        settings = get_settings()
        kwargs.setdefault("timeout", settings.HTTP_TIMEOUT)
        return cls(settings.MEDIA_API_BASE_URL, token, **kwargs)

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()

    async def __aenter__(self) -> "MediaApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _call(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[MediaPipelineError],
        fallback: str,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(
                method, f"{self.base_url}{path}", headers=self._headers(), json=body,
            )
        except httpx.TransportError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise error_cls(f"{fallback}: network error ({e})") from e
        except httpx.RequestError as e:
            # Decoding, redirect and other non-transport request failures
            logger.error("%s %s failed: %s", method, path, e)
            raise error_cls(f"{fallback}: request failed ({e})") from e

        if resp.is_error:
            message = _error_message(resp) or fallback
            logger.error("%s %s -> HTTP %d: %s", method, path, resp.status_code, message)
            if error_cls is MediaPipelineError:
                raise MediaPipelineError(message)
            raise error_cls(message, status_code=resp.status_code)
        return resp

    # ──────── Broker ────────

    async def request_image_upload(
        self,
        context: MediaContext | str,
        entity_id: str | None = None,
        original_name: str | None = None,
        *,
        mime_type: str | None = None,
        file_size: int | None = None,
    ) -> UploadTarget:
        """Ask the server for a one-time image upload target."""
        body = _upload_body(context, entity_id, original_name, mime_type, file_size)
        logger.debug("Requesting image upload URL for %s", body["context"])
        resp = await self._call(
            "POST", "/media/upload/image", body=body,
            error_cls=UploadRequestError, fallback="Failed to request image upload",
        )
        return _parse(UploadTarget, resp, UploadRequestError)

    async def request_video_upload(
        self,
        context: MediaContext | str,
        entity_id: str | None = None,
        original_name: str | None = None,
        *,
        mime_type: str | None = None,
        file_size: int | None = None,
        max_duration_seconds: int | None = None,
    ) -> UploadTarget:
        """Ask the server for a resumable video upload target."""
        body = _upload_body(context, entity_id, original_name, mime_type, file_size)
        if max_duration_seconds is not None:
            body["maxDurationSeconds"] = max_duration_seconds
        logger.debug("Requesting video upload URL for %s", body["context"])
        resp = await self._call(
            "POST", "/media/upload/video", body=body,
            error_cls=UploadRequestError, fallback="Failed to request video upload",
        )
        return _parse(UploadTarget, resp, UploadRequestError)

    # ──────── Finalization ────────

    async def confirm_image_upload(self, asset_id: str) -> MediaAssetRead:
        """Finalize an image; the server generates its CDN URLs."""
        resp = await self._call(
            "POST", f"/media/{asset_id}/confirm",
            error_cls=ConfirmationError, fallback="Failed to confirm upload",
        )
        return _parse(MediaAssetEnvelope, resp, ConfirmationError).asset

    async def poll_video_status(self, asset_id: str) -> MediaAssetRead:
        """One status refresh of a video being processed."""
        resp = await self._call(
            "POST", f"/media/{asset_id}/poll",
            error_cls=ProcessingError, fallback="Failed to poll status",
        )
        return _parse(MediaAssetEnvelope, resp, ProcessingError).asset

    # ──────── Management ────────

    async def get_asset(self, asset_id: str) -> MediaAssetRead:
        resp = await self._call(
            "GET", f"/media/{asset_id}",
            error_cls=MediaPipelineError, fallback="Failed to get asset",
        )
        return _parse(MediaAssetEnvelope, resp, MediaPipelineError).asset

    async def delete_asset(self, asset_id: str) -> None:
        await self._call(
            "DELETE", f"/media/{asset_id}",
            error_cls=MediaPipelineError, fallback="Failed to delete asset",
        )


def _upload_body(
    context: MediaContext | str,
    entity_id: str | None,
    original_name: str | None,
    mime_type: str | None,
    file_size: int | None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "context": context.value if isinstance(context, MediaContext) else context,
    }
    if entity_id is not None:
        body["entityId"] = entity_id
    if original_name is not None:
        body["originalName"] = original_name
    if mime_type is not None:
        body["mimeType"] = mime_type
    if file_size is not None:
        body["fileSize"] = file_size
    return body


def _error_message(resp: httpx.Response) -> str | None:
    try:
        data = resp.json()
    except json.JSONDecodeError:
        return None
    if isinstance(data, dict):
        message = data.get("error") or data.get("detail")
        return str(message) if message else None
    return None


def _parse(model, resp: httpx.Response, error_cls: type[MediaPipelineError]):
    try:
        return model.model_validate(resp.json())
    except ValueError as e:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        raise error_cls(f"Unexpected response from {resp.request.url.path}: {e}") from e
