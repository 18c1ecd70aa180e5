"""
API middleware stack.

- Request ID injection (X-Request-ID header), bound into the log context
- Structured request/response logging
- HooplogError and request-validation mapping to the JSON error envelope
- CORS configuration
"""
from __future__ import annotations

import math
import time
import uuid
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from shared.config import get_settings
from shared.errors import HooplogError, RateLimitError, ValidationError
from shared.utils.logging import bind_run_context, clear_run_context, get_logger

logger = get_logger(__name__)

_QUIET_PATHS = ("/health", "/metrics", "/ready")


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _envelope(request: Request, code: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"error": code, "message": message, "request_id": _request_id(request), **extra}


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Accepts or generates X-Request-ID and binds it to every log line emitted while handling the request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        bind_run_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            clear_run_context("request_id")
        response.headers["X-Request-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One line per request; health and metrics probes are not logged."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in _QUIET_PATHS:
            return await call_next(request)

        start = time.monotonic()
        moderator = "x-moderator-token" in request.headers
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "http_request_error",
                method=request.method,
                path=path,
                moderator=moderator,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
                error=str(exc),
                exc_info=True,
            )
            raise

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "http_request",
            method=request.method,
            path=path,
            status=response.status_code,
            moderator=moderator,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto HTTP status codes with one JSON shape."""

    @app.exception_handler(HooplogError)
    async def domain_error_handler(request: Request, exc: HooplogError) -> JSONResponse:
        headers: dict[str, str] = {}
        if isinstance(exc, RateLimitError):
            headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after_s)))
        if exc.http_status >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(
            status_code=exc.http_status,
            content=_envelope(request, exc.code, exc.message),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=ValidationError.http_status,
            content=_envelope(
                request,
                ValidationError.code,
                "Request failed validation",
                details=jsonable_encoder(exc.errors()),
            ),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            request_id=_request_id(request),
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=_envelope(request, "internal_server_error", "An unexpected error occurred"),
        )


def setup_cors(app: FastAPI) -> None:
    settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Moderator-Token", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )


def setup_middleware(app: FastAPI) -> None:
    """Apply all middleware to the FastAPI app. The last one added runs outermost."""
    setup_cors(app)
    # Logging reads the bound request id, so it must sit inside RequestIDMiddleware.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    setup_exception_handlers(app)
