from __future__ import annotations
"""Typed failures of the upload pipeline.

Each phase raises its own error type; the state machine converts all of them
into its ``error`` observable, so none of these cross the session boundary.
"""


class MediaPipelineError(Exception):
    """Base class for every upload pipeline failure."""

    phase = "upload"


class UploadRequestError(MediaPipelineError):
    """The broker could not obtain an upload target."""

    phase = "request"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransferError(MediaPipelineError):
    """The file did not reach the provider."""

    phase = "transfer"


class TransferNetworkError(TransferError):
    """Transport failure (connection drop, timeout) during transfer."""


class TransferRejectedError(TransferError):
    """The provider answered the transfer with a non-2xx status."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        detail = f": {body}" if body else ""
        super().__init__(f"Upload failed with status {status_code}{detail}")


class FileTooLargeError(TransferError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"File is too large ({size} bytes, limit {limit} bytes)")


class ConfirmationError(MediaPipelineError):
    """Image finalization was rejected after the transfer."""

    phase = "confirm"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProcessingError(MediaPipelineError):
    """The provider reported that video processing failed.

    Also raised when a poll request itself fails.
    """

    phase = "processing"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProcessingTimeoutError(MediaPipelineError):
    """Processing never reached a terminal status within the attempt budget.

    Unlike ProcessingError the outcome is unknown; the asset may still
    become ready later.
    """

    phase = "processing"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__("Video processing timed out")


class UploadCancelled(MediaPipelineError):
    """The session was reset while this operation was in flight."""

    phase = "cancelled"


class InvalidTransitionError(RuntimeError):
    """Programming error: the state machine was asked for an illegal move."""
