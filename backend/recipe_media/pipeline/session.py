"""Upload state machine — one logical upload's lifecycle.

    idle → requesting → uploading → confirming (image) → ready
                                   → processing (video) → ready
    any non-idle state → error, and reset() → idle from anywhere

The machine owns the sequencing Broker → Transfer → Confirm | Poll, exposes
``status``/``progress``/``asset``/``error`` to the caller, and never lets a
pipeline exception escape: failures land in ``error``.

Cancellation is generation based. ``reset()`` bumps the generation and fires
the current cancel token; any coroutine still running for an older
generation drops its results instead of touching the session.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

from recipe_media.models.media_asset import MediaContext, MediaStatus, MediaType
from recipe_media.pipeline.api_client import MediaApiClient
from recipe_media.pipeline.config import PipelineConfig
from recipe_media.pipeline.errors import (
    ConfirmationError,
    InvalidTransitionError,
    MediaPipelineError,
    UploadCancelled,
)
from recipe_media.pipeline.poller import CancelToken, ProcessingPoller
from recipe_media.pipeline.source import SourceData, UploadSource
from recipe_media.pipeline.transfer import TransferClient
from recipe_media.schemas.media import MediaAssetRead

logger = logging.getLogger(__name__)


class UploadStatus(str, enum.Enum):
    """Client-observable phases of one upload."""

    IDLE = "idle"
    REQUESTING = "requesting"
    UPLOADING = "uploading"
    CONFIRMING = "confirming"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


# Explicit valid transitions: status -> set of reachable statuses.
# idle may jump straight to ready/processing/error when adopting an existing asset.
VALID_TRANSITIONS: dict[UploadStatus, set[UploadStatus]] = {
    UploadStatus.IDLE: {
        UploadStatus.REQUESTING,
        UploadStatus.READY,
        UploadStatus.PROCESSING,
        UploadStatus.ERROR,
    },
    UploadStatus.REQUESTING: {UploadStatus.UPLOADING, UploadStatus.ERROR, UploadStatus.IDLE},
    UploadStatus.UPLOADING: {
        UploadStatus.CONFIRMING,
        UploadStatus.PROCESSING,
        UploadStatus.ERROR,
        UploadStatus.IDLE,
    },
    UploadStatus.CONFIRMING: {UploadStatus.READY, UploadStatus.ERROR, UploadStatus.IDLE},
    UploadStatus.PROCESSING: {UploadStatus.READY, UploadStatus.ERROR, UploadStatus.IDLE},
    UploadStatus.READY: {UploadStatus.IDLE},
    UploadStatus.ERROR: {UploadStatus.IDLE},
}


@dataclass(frozen=True)
class UploadSnapshot:
    """Immutable view of the session observables."""

    status: UploadStatus
    progress: int
    asset: MediaAssetRead | None
    error: str | None


Listener = Callable[[UploadSnapshot], None]


class _SessionProgress:
    """Progress sink bound to one generation of the machine."""

    def __init__(self, machine: "UploadStateMachine", generation: int):
        self._machine = machine
        self._generation = generation

    def update(self, percent: int) -> None:
        self._machine._set_progress(self._generation, percent)


class UploadStateMachine:
    """Tracks exactly one logical upload at a time.

    Args:
        api: Client for the broker/confirm/poll endpoints.
        transfer: Client moving bytes to the provider; built from ``config``
            when omitted.
        config: Poll cadence, transfer mode and size limits.
    """

    def __init__(
        self,
        api: MediaApiClient,
        transfer: TransferClient | None = None,
        config: PipelineConfig | None = None,
    ):
        self.api = api
        self.config = config or PipelineConfig()
        self.transfer = transfer or TransferClient(self.config)

        self._status = UploadStatus.IDLE
        self._progress = 0
        self._asset: MediaAssetRead | None = None
        self._error: str | None = None
        self._processing_asset_id: str | None = None
        self._generation = 0
        self._cancel = CancelToken()
        self._poll_task: asyncio.Task | None = None
        self._listeners: list[Listener] = []

    # ──────── Observables ────────

    @property
    def status(self) -> UploadStatus:
        return self._status

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def asset(self) -> MediaAssetRead | None:
        return self._asset

    @property
    def error(self) -> str | None:
        return self._error

    def snapshot(self) -> UploadSnapshot:
        return UploadSnapshot(self._status, self._progress, self._asset, self._error)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(snapshot)`` after every change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ──────── Commands ────────

    def reset(self) -> None:
        """Return to idle immediately, abandoning whatever is in flight."""
        self._generation += 1
        self._cancel.cancel()
        self._cancel = CancelToken()
        self._poll_task = None
        if self._status is not UploadStatus.IDLE:
            self._transition(UploadStatus.IDLE, notify=False)
        self._progress = 0
        self._asset = None
        self._error = None
        self._processing_asset_id = None
        self._notify()

    def adopt_existing(self, asset: MediaAssetRead | None) -> None:
        """Seed the session from an already persisted asset, without network calls."""
        if self._status is not UploadStatus.IDLE or asset is None:
            self.reset()
        if asset is None:
            return

        if asset.status is MediaStatus.READY:
            self._asset = asset
            self._progress = 100
            self._transition(UploadStatus.READY)
        elif asset.status is MediaStatus.ERROR:
            self._error = asset.error_message or "Upload failed"
            self._transition(UploadStatus.ERROR)
        else:
            self._processing_asset_id = asset.id
            self._progress = 100
            self._transition(UploadStatus.PROCESSING)

    def start(self, *args, **kwargs) -> asyncio.Task:
        """Run :meth:`upload` as a background task."""
        return asyncio.ensure_future(self.upload(*args, **kwargs))

    async def upload(
        self,
        source: UploadSource | SourceData,
        context: MediaContext | str,
        entity_id: str | None = None,
        *,
        media_type: MediaType | None = None,
        name: str | None = None,
    ) -> MediaAssetRead | None:
        """Upload one file end to end.

        Returns the ready asset, or None when the upload failed (see
        ``error``) or was superseded by ``reset()``/another upload.
        """
        if self._status is not UploadStatus.IDLE:
            self.reset()
        generation = self._generation
        cancel = self._cancel
        self._transition(UploadStatus.REQUESTING)

        try:
            if not isinstance(source, UploadSource):
                source = UploadSource.open(source, name=name)
            media_type = media_type or source.media_type
            if media_type is None:
                raise MediaPipelineError(f"Unsupported file type: {source.mime_type}")

            if media_type is MediaType.IMAGE:
                return await self._run_image(generation, source, context, entity_id)
            return await self._run_video(generation, cancel, source, context, entity_id)
        except UploadCancelled:
            logger.debug("Upload superseded (generation %d)", generation)
            return None
        except MediaPipelineError as e:
            self._fail(generation, str(e))
            return None
        except Exception as e:
            logger.exception("Unexpected upload failure")
            self._fail(generation, str(e) or "Upload failed")
            return None

    async def upload_image(
        self, source: UploadSource | SourceData, context: MediaContext | str,
        entity_id: str | None = None, **kwargs,
    ) -> MediaAssetRead | None:
        return await self.upload(source, context, entity_id, media_type=MediaType.IMAGE, **kwargs)

    async def upload_video(
        self, source: UploadSource | SourceData, context: MediaContext | str,
        entity_id: str | None = None, **kwargs,
    ) -> MediaAssetRead | None:
        return await self.upload(source, context, entity_id, media_type=MediaType.VIDEO, **kwargs)

    async def resume_processing(self) -> MediaAssetRead | None:
        """Keep polling an adopted asset that was still processing.

        Concurrent calls share one poll; failures land in ``error``.
        """
        if self._status is not UploadStatus.PROCESSING or not self._processing_asset_id:
            return None
        generation = self._generation
        try:
            return await self._await_processing(generation, self._cancel, self._processing_asset_id)
        except UploadCancelled:
            return None
        except MediaPipelineError as e:
            self._fail(generation, str(e))
            return None
        except Exception as e:
            logger.exception("Unexpected failure while resuming processing")
            self._fail(generation, str(e) or "Upload failed")
            return None

    # ──────── Phases ────────

    async def _run_image(
        self, generation: int, source: UploadSource, context, entity_id
    ) -> MediaAssetRead:
        target = await self.api.request_image_upload(
            context, entity_id, source.name,
            mime_type=source.mime_type, file_size=source.size,
        )
        self._check(generation)
        self._transition(UploadStatus.UPLOADING)

        await self.transfer.upload_image(
            target.upload_url, source, _SessionProgress(self, generation)
        )
        self._check(generation)
        self._set_progress(generation, 100)
        self._transition(UploadStatus.CONFIRMING)

        asset = await self.api.confirm_image_upload(target.asset_id)
        self._check(generation)
        if asset.status is MediaStatus.ERROR:
            raise ConfirmationError(asset.error_message or "Image confirmation failed")
        if asset.status is not MediaStatus.READY:
            raise ConfirmationError(f"Image not ready after confirmation ({asset.status.value})")

        self._complete(asset)
        logger.info("Image upload complete: %s", asset.id)
        return asset

    async def _run_video(
        self, generation: int, cancel: CancelToken, source: UploadSource, context, entity_id
    ) -> MediaAssetRead:
        target = await self.api.request_video_upload(
            context, entity_id, source.name,
            mime_type=source.mime_type, file_size=source.size,
            max_duration_seconds=self.config.video_max_duration_seconds,
        )
        self._check(generation)
        self._transition(UploadStatus.UPLOADING)

        await self.transfer.upload_video(
            target.upload_url, source, _SessionProgress(self, generation),
            protocol=target.upload_protocol,
        )
        self._check(generation)
        self._set_progress(generation, 100)
        self._processing_asset_id = target.asset_id
        self._transition(UploadStatus.PROCESSING)

        return await self._await_processing(generation, cancel, target.asset_id)

    async def _await_processing(
        self, generation: int, cancel: CancelToken, asset_id: str
    ) -> MediaAssetRead:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.ensure_future(
                self._poll_until_ready(generation, cancel, asset_id)
            )
        # Shielded so one caller going away does not cancel the shared poll
        return await asyncio.shield(self._poll_task)

    async def _poll_until_ready(
        self, generation: int, cancel: CancelToken, asset_id: str
    ) -> MediaAssetRead:
        poller = ProcessingPoller(
            self.api.poll_video_status,
            interval=self.config.poll_interval,
            max_attempts=self.config.poll_max_attempts,
        )
        asset = await poller.wait_until_ready(asset_id, cancel)
        self._check(generation)
        self._complete(asset)
        logger.info("Video upload complete: %s", asset.id)
        return asset

    # ──────── State plumbing ────────

    def _transition(self, target: UploadStatus, *, notify: bool = True) -> None:
        if target not in VALID_TRANSITIONS[self._status]:
            raise InvalidTransitionError(
                f"Cannot move upload from {self._status.value} to {target.value}"
            )
        logger.debug("Upload %s -> %s", self._status.value, target.value)
        self._status = target
        if notify:
            self._notify()

    def _check(self, generation: int) -> None:
        if generation != self._generation:
            raise UploadCancelled("Upload was reset")

    def _set_progress(self, generation: int, percent: int) -> None:
        if generation != self._generation or self._status is not UploadStatus.UPLOADING:
            return
        percent = max(0, min(100, int(percent)))
        if percent <= self._progress:
            return
        self._progress = percent
        self._notify()

    def _complete(self, asset: MediaAssetRead) -> None:
        self._asset = asset
        self._processing_asset_id = None
        self._transition(UploadStatus.READY)

    def _fail(self, generation: int, message: str) -> None:
        if generation != self._generation or self._status is UploadStatus.ERROR:
            return
        logger.error("Upload failed during %s: %s", self._status.value, message)
        self._error = message
        self._transition(UploadStatus.ERROR)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                # Best-effort: a broken listener must not break the upload
                logger.warning("Upload listener failed", exc_info=True)
