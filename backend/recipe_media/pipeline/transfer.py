"""Transfer client — moves file bytes straight to the provider's upload target.

Images go up in one multipart POST, and so do videos unless their upload
target asks for tus. Over tus the current offset is read with HEAD and the
file is sent in PATCH chunks, so a dropped connection resumes from the last
acknowledged byte instead of byte zero.

Progress is reported to a ProgressSink as a 0-100 percentage that never
decreases within one transfer call.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

import httpx

from recipe_media.pipeline.config import PipelineConfig
from recipe_media.pipeline.errors import (
    FileTooLargeError,
    TransferError,
    TransferNetworkError,
    TransferRejectedError,
)
from recipe_media.pipeline.progress import MonotonicProgress, ProgressSink
from recipe_media.pipeline.source import UploadSource

logger = logging.getLogger(__name__)

TUS_VERSION = "1.0.0"
_FORM_CHUNK_SIZE = 64 * 1024


class TransferClient:
    """Uploads a file to a provider-issued URL.

    The upload target is pre-authorized, so no credentials are sent.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or PipelineConfig()
        self._client = http_client

    async def upload_image(
        self, upload_url: str, source: UploadSource, sink: ProgressSink | None = None
    ) -> None:
        """Single-shot multipart upload of an image."""
        _check_size(source, self.config.max_image_bytes)
        logger.debug("Uploading image %s (%d bytes)", source.name, source.size)
        await self._post_form(upload_url, source, MonotonicProgress(sink), label="Upload")

    async def upload_video(
        self,
        upload_url: str,
        source: UploadSource,
        sink: ProgressSink | None = None,
        *,
        protocol: str | None = None,
    ) -> None:
        """Upload a video as a single form POST or as resumable tus chunks.

        ``protocol`` comes from the upload target; the configured transfer mode
        is only the fallback for targets that do not say.
        """
        _check_size(source, self.config.max_video_bytes)
        mode = protocol or self.config.video_transfer_mode
        logger.debug("Uploading video %s (%d bytes, mode=%s)", source.name, source.size, mode)
        progress = MonotonicProgress(sink)
        if mode == "form":
            await self._post_form(upload_url, source, progress, label="Video upload")
        else:
            await self._upload_tus(upload_url, source, progress)

    # ──────── Single-shot multipart ────────

    async def _post_form(
        self, url: str, source: UploadSource, progress: MonotonicProgress, *, label: str
    ) -> None:
        boundary = uuid.uuid4().hex
        head = (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{_quote(source.name)}"\r\n'
            f"Content-Type: {source.mime_type}\r\n\r\n"
        ).encode("utf-8")
        tail = f"\r\n--{boundary}--\r\n".encode("ascii")

        async def body():
            yield head
            sent = 0
            progress.report_bytes(0, source.size)
            for chunk in source.iter_chunks(_FORM_CHUNK_SIZE):
                yield chunk
                sent += len(chunk)
                progress.report_bytes(sent, source.size)
            yield tail

        headers = {
            "Content-Type": f"multipart/form-data; boundary={boundary}",
            "Content-Length": str(len(head) + source.size + len(tail)),
        }
        with source.reading():
            async with self._session() as client:
                try:
                    resp = await client.post(url, content=body(), headers=headers)
                except httpx.TransportError as e:
                    raise TransferNetworkError(f"{label} failed: network error ({e})") from e

        if resp.is_error:
            logger.error("%s rejected: HTTP %d", label, resp.status_code)
            raise TransferRejectedError(resp.status_code, resp.text)
        progress.update(100)
        logger.info("%s complete: %s", label, source.name)

    # ──────── Resumable (tus) ────────

    async def _upload_tus(
        self, url: str, source: UploadSource, progress: MonotonicProgress
    ) -> None:
        with source.reading():
            await self._send_tus_chunks(url, source, progress)
        progress.update(100)
        logger.info("Video upload complete: %s", source.name)

    async def _send_tus_chunks(
        self, url: str, source: UploadSource, progress: MonotonicProgress
    ) -> None:
        total = source.size
        offset: int | None = None
        failures = 0

        async with self._session() as client:
            while True:
                try:
                    if offset is None:
                        offset = await self._tus_offset(client, url)
                        progress.report_bytes(offset, total)
                    if offset >= total:
                        break

                    chunk = source.read_range(offset, self.config.chunk_size)
                    resp = await client.patch(
                        url,
                        content=chunk,
                        headers={
                            "Tus-Resumable": TUS_VERSION,
                            "Upload-Offset": str(offset),
                            "Content-Type": "application/offset+octet-stream",
                        },
                    )
                except httpx.TransportError as e:
                    failures += 1
                    if failures > self.config.max_resume_attempts:
                        raise TransferNetworkError(
                            f"Video upload failed: network error ({e})"
                        ) from e
                    logger.warning(
                        "Video chunk failed at offset %s (%s), resuming (%d/%d)",
                        offset, e, failures, self.config.max_resume_attempts,
                    )
                    await asyncio.sleep(self.config.resume_delay * failures)
                    offset = None
                    continue

                if resp.status_code == 409:
                    # Offset conflict: the server holds a different offset
                    failures += 1
                    if failures > self.config.max_resume_attempts:
                        raise TransferRejectedError(resp.status_code, resp.text)
                    offset = None
                    continue

                if resp.is_error:
                    logger.error("Video chunk rejected: HTTP %d", resp.status_code)
                    raise TransferRejectedError(resp.status_code, resp.text)

                new_offset = _parse_offset(resp, default=offset + len(chunk))
                if new_offset <= offset:
                    raise TransferError(f"Upload offset did not advance past {offset}")
                failures = 0
                offset = new_offset
                logger.debug("Video chunk accepted: %d/%d bytes", offset, total)
                progress.report_bytes(offset, total)

    async def _tus_offset(self, client: httpx.AsyncClient, url: str) -> int:
        resp = await client.head(url, headers={"Tus-Resumable": TUS_VERSION})
        if resp.is_error:
            raise TransferRejectedError(resp.status_code, resp.text)
        return _parse_offset(resp, default=0)

    def _session(self) -> _ClientSession:
        return _ClientSession(self._client, self.config.http_timeout)


class _ClientSession:
    """Use the injected client as-is, or own a fresh one for one transfer."""

    def __init__(self, client: httpx.AsyncClient | None, timeout: float):
        self._client = client
        self._timeout = timeout
        self._owned: httpx.AsyncClient | None = None

    async def __aenter__(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        self._owned = httpx.AsyncClient(timeout=self._timeout)
        return self._owned

    async def __aexit__(self, *exc) -> None:
        if self._owned is not None:
            await self._owned.aclose()


def _check_size(source: UploadSource, limit: int) -> None:
    if source.size == 0:
        raise TransferError("File is empty")
    if source.size > limit:
        raise FileTooLargeError(source.size, limit)


def _parse_offset(resp: httpx.Response, default: int) -> int:
    raw = resp.headers.get("Upload-Offset")
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise TransferError(f"Invalid Upload-Offset header: {raw!r}") from None


def _quote(name: str) -> str:
    return name.replace("\\", "\\\\").replace('"', '\\"')
