import json

import httpx
import pytest

from recipe_media.config import get_settings
from recipe_media.models.media_asset import MediaContext, MediaStatus
from recipe_media.pipeline.api_client import MediaApiClient
from recipe_media.pipeline.errors import (
    ConfirmationError,
    MediaPipelineError,
    ProcessingError,
    UploadRequestError,
)

BASE = "https://recipes.example.com/api"


def _api(handler, token="tok-123") -> MediaApiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MediaApiClient(BASE, token, http_client=http)


async def test_request_image_upload_sends_camel_case_body():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={
            "assetId": "a1",
            "uploadURL": "https://upload.example.com/1",
            "providerAssetId": "cf-1",
        })

    target = await _api(handler).request_image_upload(
        MediaContext.STEP, "step-9", "dough.jpg", mime_type="image/jpeg", file_size=1234,
    )

    assert captured["url"] == f"{BASE}/media/upload/image"
    assert captured["auth"] == "Bearer tok-123"
    assert captured["body"] == {
        "context": "step",
        "entityId": "step-9",
        "originalName": "dough.jpg",
        "mimeType": "image/jpeg",
        "fileSize": 1234,
    }
    assert target.asset_id == "a1"
    assert target.upload_url == "https://upload.example.com/1"


async def test_request_video_upload_includes_duration_limit():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={
            "assetId": "v1", "uploadURL": "https://upload.example.com/tus/1", "providerAssetId": "cf-v1",
        })

    await _api(handler).request_video_upload("recipe", max_duration_seconds=300)

    assert captured["body"] == {"context": "recipe", "maxDurationSeconds": 300}


async def test_request_upload_uses_server_error_message():
    api = _api(lambda request: httpx.Response(400, json={"error": "Invalid context for video"}))

    with pytest.raises(UploadRequestError) as exc_info:
        await api.request_video_upload("profile")

    assert str(exc_info.value) == "Invalid context for video"
    assert exc_info.value.status_code == 400


async def test_request_upload_falls_back_when_body_is_not_json():
    api = _api(lambda request: httpx.Response(502, text="<html>bad gateway</html>"))

    with pytest.raises(UploadRequestError, match="Failed to request image upload"):
        await api.request_image_upload("recipe")


async def test_request_upload_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UploadRequestError, match="network error"):
        await _api(handler).request_image_upload("recipe")


async def test_poll_non_transport_request_error_is_typed():
    def handler(request):
        raise httpx.DecodingError("corrupt gzip body", request=request)

    with pytest.raises(ProcessingError, match="Failed to poll status: request failed"):
        await _api(handler).poll_video_status("v1")


async def test_confirm_returns_asset_from_envelope():
    def handler(request):
        assert request.url.path == "/api/media/a1/confirm"
        return httpx.Response(200, json={"asset": {
            "id": "a1", "type": "image", "status": "ready",
            "url": "https://imagedelivery.net/h/cf-1/public",
            "thumbnailUrl": "https://imagedelivery.net/h/cf-1/thumbnail",
        }})

    asset = await _api(handler).confirm_image_upload("a1")

    assert asset.status is MediaStatus.READY
    assert asset.thumbnail_url.endswith("/thumbnail")


async def test_confirm_failure_is_confirmation_error():
    api = _api(lambda request: httpx.Response(403, json={"error": "You can only manage your own media"}))

    with pytest.raises(ConfirmationError) as exc_info:
        await api.confirm_image_upload("a1")
    assert exc_info.value.status_code == 403


async def test_poll_failure_is_processing_error():
    api = _api(lambda request: httpx.Response(500, json={"detail": "boom"}))

    with pytest.raises(ProcessingError, match="boom"):
        await api.poll_video_status("v1")


async def test_malformed_success_body_is_reported():
    api = _api(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(ConfirmationError, match="Unexpected response"):
        await api.confirm_image_upload("a1")


async def test_get_and_delete_asset():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path))
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(200, json={"asset": {"id": "a1", "type": "video", "status": "processing"}})

    api = _api(handler)
    asset = await api.get_asset("a1")
    await api.delete_asset("a1")

    assert asset.status is MediaStatus.PROCESSING
    assert seen == [("GET", "/api/media/a1"), ("DELETE", "/api/media/a1")]


async def test_get_missing_asset_raises():
    api = _api(lambda request: httpx.Response(404, json={"error": "Media asset not found"}))

    with pytest.raises(MediaPipelineError, match="Media asset not found"):
        await api.get_asset("nope")


async def test_from_settings_uses_configured_base_url(monkeypatch):
    monkeypatch.setenv("MEDIA_API_BASE_URL", "https://media.example.com/api/")
    get_settings.cache_clear()
    try:
        async with MediaApiClient.from_settings("tok") as api:
            assert api.base_url == "https://media.example.com/api"
            assert api.token == "tok"
    finally:
        get_settings.cache_clear()
