"""
Exception handlers — turn gateway errors into HTTP responses.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.responses import error_response
from config.settings import config
from provider.errors import ErrorKind, ProviderError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the app-wide exception handlers."""

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s → %s: %s", request.method, request.url.path, exc.kind.value, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message, exc.kind.value),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=error_response(
                "Request body is invalid",
                ErrorKind.INVALID_REQUEST.value,
                details=[err.get("msg") for err in exc.errors()],
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = str(exc) if config.debug else "Internal Server Error"
        return JSONResponse(status_code=500, content=error_response(message))
