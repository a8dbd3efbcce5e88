"""Processing poller — waits for the provider to finish transcoding a video.

A bounded, strictly sequential loop: sleep one interval, issue one poll,
inspect the answer, repeat. The next poll is only scheduled after the
previous response arrived, so a slow provider slows the cadence down.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from recipe_media.models.media_asset import MediaStatus
from recipe_media.pipeline.errors import (
    ProcessingError,
    ProcessingTimeoutError,
    UploadCancelled,
)
from recipe_media.schemas.media import MediaAssetRead

logger = logging.getLogger(__name__)

VIDEO_POLL_INTERVAL = 3.0
VIDEO_POLL_MAX_ATTEMPTS = 120  # 6 minutes at the default interval

FetchStatus = Callable[[str], Awaitable[MediaAssetRead]]


class CancelToken:
    """One-shot cancellation flag that also wakes sleepers."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds; return True if cancelled meanwhile."""
        if delay <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def run(self, coro: Awaitable[MediaAssetRead]) -> MediaAssetRead:
        """Await ``coro`` unless cancelled first; a cancelled call is abandoned."""
        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        raise UploadCancelled("Polling cancelled")


class ProcessingPoller:
    """Poll ``fetch_status(asset_id)`` until the asset is ready or failed."""

    def __init__(
        self,
        fetch_status: FetchStatus,
        *,
        interval: float = VIDEO_POLL_INTERVAL,
        max_attempts: int = VIDEO_POLL_MAX_ATTEMPTS,
    ):
        self.fetch_status = fetch_status
        self.interval = interval
        self.max_attempts = max_attempts

    async def wait_until_ready(
        self, asset_id: str, cancel: CancelToken | None = None
    ) -> MediaAssetRead:
        """Return the ready asset.

        Raises:
            ProcessingError: the provider reported a failure, or a poll
                request failed.
            ProcessingTimeoutError: no terminal status after ``max_attempts``.
            UploadCancelled: ``cancel`` fired.
        """
        cancel = cancel or CancelToken()

        for attempt in range(1, self.max_attempts + 1):
            if cancel.cancelled or await cancel.sleep(self.interval):
                raise UploadCancelled("Polling cancelled")

            asset = await cancel.run(self.fetch_status(asset_id))
            logger.debug(
                "Video poll %d/%d: asset=%s status=%s",
                attempt, self.max_attempts, asset_id, asset.status.value,
            )

            if asset.status is MediaStatus.READY:
                logger.info("Video ready after %d poll(s): %s", attempt, asset_id)
                return asset
            if asset.status is MediaStatus.ERROR:
                raise ProcessingError(asset.error_message or "Video processing failed")

        logger.warning("Video processing timed out after %d polls: %s", self.max_attempts, asset_id)
        raise ProcessingTimeoutError(self.max_attempts)
