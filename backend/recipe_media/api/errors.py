from __future__ import annotations
"""Exception handlers — every error body is ``{"error": message}``."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from recipe_media.models.media_asset import InvalidAssetTransitionError
from recipe_media.services.media_service import (
    InvalidMediaTypeError,
    MediaNotFoundError,
    MediaPermissionError,
)
from recipe_media.services.providers.cloudflare import ProviderError

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[Exception], int]] = [
    (MediaNotFoundError, 404),
    (MediaPermissionError, 403),
    (InvalidMediaTypeError, 400),
    (InvalidAssetTransitionError, 409),
    (ProviderError, 502),
]


def _error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def register_exception_handlers(app: FastAPI) -> None:
    """Install JSON error handlers on the application."""

    async def handle_http(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    async def handle_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": list(err.get("loc", [])), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(400, "Validation failed", details=details)

    def make_handler(status_code: int):
        async def handler(request: Request, exc: Exception) -> JSONResponse:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
            return _error_response(status_code, str(exc))
        return handler

    app.add_exception_handler(HTTPException, handle_http)
    app.add_exception_handler(RequestValidationError, handle_validation)
    for exc_type, status_code in _STATUS_BY_ERROR:
        app.add_exception_handler(exc_type, make_handler(status_code))
