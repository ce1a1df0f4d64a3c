"""API middleware: CORS, request logging, and error handling.

# ─── MIDDLEWARE EXECUTION ORDER ───────────────────────────────────────
#
# Starlette middleware is a stack (last added, first executed):
#
#   In main.py:
#     app.add_middleware(ErrorHandlingMiddleware)   # added 1st -> inner
#     app.add_middleware(RequestLoggingMiddleware)  # added 2nd -> outer
#
#   Request flow:   Client -> RequestLogging -> ErrorHandling -> route
#   Response flow:  Client <- RequestLogging <- ErrorHandling <- route
#
# RequestLoggingMiddleware therefore logs the final status code, even
# when ErrorHandling replaced an exception with a structured JSON error.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorBody, ErrorResponse
from src.models.document import utcnow
from src.utils.errors import (
    DocumentNotFoundError,
    LLMError,
    RAGError,
    RetrievalError,
    SalesBrainError,
)
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# First matching class wins; anything else maps to 500.
_STATUS_BY_ERROR: tuple[tuple[type[SalesBrainError], int], ...] = (
    (DocumentNotFoundError, 404),
    (RetrievalError, 502),
    (LLMError, 502),
    (RAGError, 502),
)


def status_for(exc: SalesBrainError) -> int:
    """Return the HTTP status code for an application error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_response(exc: SalesBrainError) -> JSONResponse:
    """Render *exc* as the standard JSON error body."""
    body = ErrorResponse(
        error=ErrorBody(code=type(exc).__name__, message=exc.message, timestamp=utcnow())
    )
    return JSONResponse(status_code=status_for(exc), content=body.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; ``["*"]`` unless origins are configured."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=response.status_code if response else 500,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert ``SalesBrainError`` subclasses into structured JSON errors.

    Details are logged server-side; the client only sees the error class
    name and message.  Non-application exceptions fall through to
    FastAPI's default 500 handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except SalesBrainError as exc:
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            return error_response(exc)
