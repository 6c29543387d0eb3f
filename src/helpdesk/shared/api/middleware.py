"""
Shared API Middleware
======================

Request tracing and the mapping from application exceptions to HTTP
responses.

Error responses share one body shape::

    {"detail": ..., "error": "<exception class>", "correlation_id": "..."}
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpdesk.core import (
    ApplicationException,
    ConflictException,
    ResourceNotFoundException,
    ValidationException,
)
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Checked in order, most specific first; anything else is a 500
EXCEPTION_STATUS_CODES = (
    (ResourceNotFoundException, 404),
    (ValidationException, 400),
    (ConflictException, 400),
)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Reuse the caller's correlation id or mint one, and echo it back.

    Handlers and exception handlers read it from ``request.state``.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, with owner scope, status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        context = {
            "correlation_id": _correlation_id(request),
            "method": request.method,
            "path": request.url.path,
            "owner_id": request.headers.get("X-Owner-Id"),
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={**context, "error": str(e), "response_time_ms": _elapsed_ms(start)}
            )
            raise

        logger.info(
            "Request completed",
            extra={
                **context,
                "status_code": response.status_code,
                "response_time_ms": _elapsed_ms(start),
            }
        )
        return response


def _error_body(request: Request, exc: Exception, detail: Any) -> dict:
    return {
        "detail": detail,
        "error": type(exc).__name__,
        "correlation_id": _correlation_id(request),
    }


async def application_exception_handler(
    request: Request,
    exc: ApplicationException
) -> JSONResponse:
    """Client errors get their mapped status; unmapped ones fall through to 500."""
    status_code = next(
        (code for exc_type, code in EXCEPTION_STATUS_CODES if isinstance(exc, exc_type)),
        None
    )
    if status_code is None:
        return await global_exception_handler(request, exc)

    logger.info(
        "Request rejected",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "status_code": status_code,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
        }
    )
    return JSONResponse(status_code=status_code, content=_error_body(request, exc, exc.message))


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies and query parameters are reported as 400."""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content=_error_body(request, exc, errors))


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    """Framework errors (401, unknown routes, bad methods) in the shared body shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc, exc.detail),
        headers=getattr(exc, "headers", None)
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last resort for anything the handlers above do not map.

    The exception text is only echoed back in development.
    """
    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc),
        }
    )

    settings = getattr(request.app.state, "settings", None)
    is_dev = getattr(settings, "environment", None) == "development"

    body = _error_body(request, exc, "Internal server error")
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    body["debug_info"] = str(exc) if is_dev else None
    return JSONResponse(status_code=500, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers above on an application."""
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
