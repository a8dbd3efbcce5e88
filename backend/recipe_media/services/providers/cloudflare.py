"""Cloudflare Images + Stream provider.

Issues direct-upload targets for the browser/client, reports video
processing state, builds CDN delivery URLs and verifies Stream webhooks.

Every function takes an optional ``http_client``; when omitted a short-lived
``httpx.AsyncClient`` is created and closed around the call.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from typing import Any

import httpx

from recipe_media.config import get_settings
from recipe_media.schemas.media import StreamVideoDetails

logger = logging.getLogger(__name__)

PROVIDER_NAME = "cloudflare"
_DEFAULT_TIMEOUT = 30.0
TUS_VERSION = "1.0.0"


class ProviderError(RuntimeError):
    """The provider rejected a request or returned an unusable answer."""


class ProviderConfigError(ProviderError):
    """Provider credentials are missing from settings."""


def _headers() -> dict[str, str]:
    settings = get_settings()
    if not settings.CF_API_TOKEN:
        raise ProviderConfigError("CF_API_TOKEN is not configured")
    return {"Authorization": f"Bearer {settings.CF_API_TOKEN}"}


def _account_url() -> str:
    settings = get_settings()
    if not settings.CF_ACCOUNT_ID:
        raise ProviderConfigError("CF_ACCOUNT_ID is not configured")
    return f"{settings.CF_API_BASE}/accounts/{settings.CF_ACCOUNT_ID}"


def _unwrap(resp: httpx.Response, label: str) -> Any:
    """Return ``result`` from a ``{success, errors, result}`` envelope."""
    try:
        data = resp.json()
    except json.JSONDecodeError:
        raise ProviderError(f"{label} error: HTTP {resp.status_code} with non-JSON body") from None

    if not data.get("success"):
        errors = data.get("errors") or []
        logger.error("%s request failed: %s", label, errors)
        message = errors[0].get("message") if errors else None
        raise ProviderError(f"{label} error: {message or 'Unknown error'}")
    return data.get("result")


async def _request(
    method: str,
    url: str,
    *,
    http_client: httpx.AsyncClient | None,
    **kwargs: Any,
) -> httpx.Response:
    client = http_client or httpx.AsyncClient(timeout=_DEFAULT_TIMEOUT)
    own_client = http_client is None
    try:
        return await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise ProviderError(f"Cloudflare request failed: {e}") from e
    finally:
        if own_client:
            await client.aclose()


# ──────── Stream (video) ────────

async def create_video_direct_upload(
    *,
    max_duration_seconds: int = 3600,
    meta: dict[str, str] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, str]:
    """Create a basic (single POST, multipart) direct upload target for a video.

    Returns dict with 'uid' and 'uploadURL'.
    """
    logger.debug("Creating video direct upload URL")
    resp = await _request(
        "POST",
        f"{_account_url()}/stream/direct_upload",
        http_client=http_client,
        headers={**_headers(), "Content-Type": "application/json"},
        json={"maxDurationSeconds": max_duration_seconds, "meta": meta or {}},
    )
    result = _unwrap(resp, "Cloudflare Stream")
    if not result or not result.get("uid") or not result.get("uploadURL"):
        raise ProviderError("Cloudflare Stream error: no upload target returned")

    logger.info("Video upload target created: %s", result["uid"])
    return {"uid": result["uid"], "uploadURL": result["uploadURL"]}


async def create_video_tus_upload(
    *,
    upload_length: int,
    max_duration_seconds: int = 3600,
    name: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, str]:
    """Create a resumable (tus) upload on behalf of the end user.

    The upload URL comes back in the ``Location`` header and the video uid in
    ``stream-media-id``. Returns dict with 'uid' and 'uploadURL'.
    """
    metadata = {"maxDurationSeconds": str(max_duration_seconds)}
    if name:
        metadata["name"] = name

    logger.debug("Creating video tus upload (%d bytes)", upload_length)
    resp = await _request(
        "POST",
        f"{_account_url()}/stream?direct_user=true",
        http_client=http_client,
        headers={
            **_headers(),
            "Tus-Resumable": TUS_VERSION,
            "Upload-Length": str(upload_length),
            "Upload-Metadata": _tus_metadata(metadata),
        },
    )
    if resp.is_error:
        logger.error("Stream tus creation failed: HTTP %d %s", resp.status_code, resp.text)
        raise ProviderError(f"Cloudflare Stream error: HTTP {resp.status_code}")

    location = resp.headers.get("Location")
    uid = resp.headers.get("stream-media-id")
    if not location or not uid:
        raise ProviderError("Cloudflare Stream error: no upload target returned")

    logger.info("Video tus upload created: %s", uid)
    return {"uid": uid, "uploadURL": location}


def _tus_metadata(metadata: dict[str, str]) -> str:
    return ",".join(
        f"{key} {base64.b64encode(value.encode('utf-8')).decode('ascii')}"
        for key, value in metadata.items()
    )


async def get_video_details(
    uid: str, *, http_client: httpx.AsyncClient | None = None
) -> StreamVideoDetails:
    """Fetch processing state and playback info for a Stream video."""
    resp = await _request(
        "GET", f"{_account_url()}/stream/{uid}",
        http_client=http_client, headers=_headers(),
    )
    return StreamVideoDetails.model_validate(_unwrap(resp, "Cloudflare Stream"))


async def delete_video(uid: str, *, http_client: httpx.AsyncClient | None = None) -> None:
    logger.debug("Deleting video: %s", uid)
    resp = await _request(
        "DELETE", f"{_account_url()}/stream/{uid}",
        http_client=http_client, headers=_headers(),
    )
    if resp.is_error:
        logger.error("Failed to delete video %s: %d", uid, resp.status_code)
        raise ProviderError(f"Failed to delete video: HTTP {resp.status_code}")


# ──────── Images ────────

async def create_image_direct_upload(
    *,
    meta: dict[str, str] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, str]:
    """Create a one-time direct upload target for an image.

    Returns dict with 'id' and 'uploadURL'.
    """
    logger.debug("Creating image direct upload URL")
    form = {"requireSignedURLs": "false"}
    if meta:
        form["metadata"] = json.dumps(meta)

    # Cloudflare expects multipart/form-data here, not JSON
    resp = await _request(
        "POST",
        f"{_account_url()}/images/v2/direct_upload",
        http_client=http_client,
        headers=_headers(),
        files={k: (None, v) for k, v in form.items()},
    )
    result = _unwrap(resp, "Cloudflare Images")
    if not result or not result.get("id") or not result.get("uploadURL"):
        raise ProviderError("Cloudflare Images error: no upload target returned")

    logger.info("Image upload target created: %s", result["id"])
    return {"id": result["id"], "uploadURL": result["uploadURL"]}


async def delete_image(image_id: str, *, http_client: httpx.AsyncClient | None = None) -> None:
    logger.debug("Deleting image: %s", image_id)
    resp = await _request(
        "DELETE", f"{_account_url()}/images/v1/{image_id}",
        http_client=http_client, headers=_headers(),
    )
    if resp.is_error:
        logger.error("Failed to delete image %s: %d", image_id, resp.status_code)
        raise ProviderError(f"Failed to delete image: HTTP {resp.status_code}")


def image_delivery_url(image_id: str, variant: str = "public") -> str:
    """Public CDN URL for an uploaded image variant."""
    account_hash = get_settings().CF_IMAGES_ACCOUNT_HASH
    if not account_hash:
        raise ProviderConfigError("CF_IMAGES_ACCOUNT_HASH is not configured")
    return f"https://imagedelivery.net/{account_hash}/{image_id}/{variant}"


# ──────── Webhooks ────────

def verify_webhook_signature(body: bytes | str, signature: str) -> bool:
    """Check a Stream webhook HMAC-SHA256 hex signature."""
    secret = get_settings().CF_STREAM_WEBHOOK_SECRET
    if not secret:
        logger.error("CF_STREAM_WEBHOOK_SECRET is not configured")
        return False

    if isinstance(body, str):
        body = body.encode("utf-8")
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)
