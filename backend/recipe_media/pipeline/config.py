from __future__ import annotations
"""Tunables of the client-side upload pipeline."""

from dataclasses import dataclass

from recipe_media.config import Settings, get_settings

TUS_CHUNK_ALIGNMENT = 256 * 1024


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for one upload pipeline (poller, transfer, limits)."""

    poll_interval: float = 3.0
    poll_max_attempts: int = 120
    video_transfer_mode: str = "form"
    chunk_size: int = 5 * 1024 * 1024
    max_resume_attempts: int = 3
    resume_delay: float = 1.0
    max_image_bytes: int = 10 * 1024 * 1024
    max_video_bytes: int = 500 * 1024 * 1024
    video_max_duration_seconds: int = 600
    http_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.poll_max_attempts < 1:
            raise ValueError("poll_max_attempts must be at least 1")
        if self.poll_interval < 0:
            raise ValueError("poll_interval must not be negative")
        if self.video_transfer_mode not in ("tus", "form"):
            raise ValueError(f"Unknown video transfer mode: {self.video_transfer_mode}")
        if self.chunk_size <= 0 or self.chunk_size % TUS_CHUNK_ALIGNMENT:
            raise ValueError("chunk_size must be a positive multiple of 256 KiB")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PipelineConfig":
        settings = settings or get_settings()
        return cls(
            poll_interval=settings.VIDEO_POLL_INTERVAL,
            poll_max_attempts=settings.VIDEO_POLL_MAX_ATTEMPTS,
            video_transfer_mode=settings.VIDEO_TRANSFER_MODE,
            chunk_size=settings.VIDEO_CHUNK_SIZE,
            max_image_bytes=settings.MAX_IMAGE_BYTES,
            max_video_bytes=settings.MAX_VIDEO_BYTES,
            video_max_duration_seconds=settings.VIDEO_MAX_DURATION_SECONDS,
            http_timeout=settings.HTTP_TIMEOUT,
        )
