"""Client-side upload pipeline: broker request, transfer, confirm or poll."""

from recipe_media.pipeline.api_client import MediaApiClient
from recipe_media.pipeline.config import PipelineConfig
from recipe_media.pipeline.errors import (
    ConfirmationError,
    FileTooLargeError,
    InvalidTransitionError,
    MediaPipelineError,
    ProcessingError,
    ProcessingTimeoutError,
    TransferError,
    TransferNetworkError,
    TransferRejectedError,
    UploadCancelled,
    UploadRequestError,
)
from recipe_media.pipeline.poller import CancelToken, ProcessingPoller
from recipe_media.pipeline.progress import CallbackSink, MonotonicProgress, NullSink, QueueSink
from recipe_media.pipeline.session import UploadSnapshot, UploadStateMachine, UploadStatus
from recipe_media.pipeline.source import UploadSource
from recipe_media.pipeline.transfer import TransferClient

__all__ = [
    "CallbackSink",
    "CancelToken",
    "ConfirmationError",
    "FileTooLargeError",
    "InvalidTransitionError",
    "MediaApiClient",
    "MediaPipelineError",
    "MonotonicProgress",
    "NullSink",
    "PipelineConfig",
    "ProcessingError",
    "ProcessingPoller",
    "ProcessingTimeoutError",
    "QueueSink",
    "TransferClient",
    "TransferError",
    "TransferNetworkError",
    "TransferRejectedError",
    "UploadCancelled",
    "UploadRequestError",
    "UploadSnapshot",
    "UploadSource",
    "UploadStateMachine",
    "UploadStatus",
]
