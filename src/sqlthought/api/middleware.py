"""
Middleware and exception handlers for the SQL-of-Thought FastAPI application.

This module contains:
- HTTP middleware for trace IDs and request logging
- Centralized exception handlers that turn every error into one JSON shape

Exception Handling Strategy:
- SQLThoughtException subclasses carry their own HTTP status and error code
- Request validation errors become 422 with field-level details
- Anything unexpected becomes a generic 500 (details stay in the logs)

Errors raised while a progress stream is already open never reach these
handlers: the pipeline reports them as `error` events instead.

Usage in main.py:
    from .api.middleware import register_exception_handlers
    register_exception_handlers(app)
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..utils.logging import get_module_logger
from ..utils.tracing import generate_trace_id, set_trace_id, current_trace_id
from ..domain.responses import ErrorResponse
from ..domain.errors import SQLThoughtException

logger = get_module_logger()

TRACE_HEADER = "X-Trace-ID"

_HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


# =============================================================================
# Middleware Functions
# =============================================================================


async def trace_id_middleware(request: Request, call_next: Callable) -> Response:
    """
    Bind a trace ID to the request.

    Taken from the X-Trace-ID header when present, generated otherwise, and
    echoed back in the response headers. A pipeline task started by the
    request inherits it through the context.
    """
    trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()
    set_trace_id(trace_id)

    response = await call_next(request)
    response.headers[TRACE_HEADER] = trace_id
    return response


async def logging_middleware(request: Request, call_next: Callable) -> Response:
    """
    Log each request and its response status.

    For the streaming endpoint the logged duration covers the time until
    the stream starts, not until it ends.
    """
    start_time = datetime.now(timezone.utc)
    trace_id = current_trace_id()

    logger.info(
        "HTTP request started",
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
        trace_id=trace_id
    )

    response = await call_next(request)

    duration_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    response.headers["X-Process-Time"] = str(round(duration_ms, 2))

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
        event_stream=response.headers.get("content-type", "").startswith("text/event-stream"),
        trace_id=trace_id
    )

    return response


# =============================================================================
# Exception Handlers
# =============================================================================


def _create_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """
    Create a standardized JSON error response.

    {
        "error": "error_code",
        "message": "Human readable message",
        "details": {...},  // optional
        "trace_id": "uuid",
        "timestamp": "ISO8601"
    }
    """
    error_response = ErrorResponse(
        error=error_code.lower(),
        message=message,
        details=details,
        trace_id=current_trace_id(),
        timestamp=datetime.now(timezone.utc)
    )

    # mode="json" serializes the timestamp as an ISO string
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True)
    )


async def sqlthought_exception_handler(request: Request, exc: SQLThoughtException) -> JSONResponse:
    """Handler for all SQLThoughtException subclasses."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        f"{exc.__class__.__name__}: {exc.message}",
        error_code=exc.error_code,
        http_status=exc.http_status,
        details=exc.details,
        path=request.url.path,
        trace_id=current_trace_id()
    )

    return _create_error_response(
        status_code=exc.http_status,
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details or None
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for request body validation errors (HTTP 422)."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }
        for error in exc.errors()
    ]

    logger.warning(
        "Request validation failed",
        error_count=len(errors),
        errors=errors,
        path=request.url.path,
        trace_id=current_trace_id()
    )

    return _create_error_response(
        status_code=422,
        error_code="VALIDATION_ERROR",
        message="Request validation failed",
        details={"errors": errors}
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handler for framework HTTP exceptions (unknown routes, wrong methods)."""
    error_code = _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")

    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        error_code=error_code,
        path=request.url.path,
        trace_id=current_trace_id()
    )

    return _create_error_response(
        status_code=exc.status_code,
        error_code=error_code,
        message=str(exc.detail) if exc.detail else f"HTTP {exc.status_code} error"
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Fallback handler for unhandled exceptions.

    The client gets a generic message; the stack trace goes to the logs.
    """
    logger.error(
        "Unhandled exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        trace_id=current_trace_id(),
        exc_info=True
    )

    return _create_error_response(
        status_code=500,
        error_code="INTERNAL_ERROR",
        message="An internal server error occurred. Please try again later."
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Usage:
        app = FastAPI()
        register_exception_handlers(app)
    """
    # type: ignore needed because add_exception_handler is typed for the base Exception
    app.add_exception_handler(SQLThoughtException, sqlthought_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")


# =============================================================================
# OpenAPI Error Response Models (for documentation)
# =============================================================================


def _error_example(description: str, error: str, message: str) -> Dict[str, Any]:
    return {
        "description": description,
        "content": {
            "application/json": {
                "example": {
                    "error": error,
                    "message": message,
                    "trace_id": "550e8400-e29b-41d4-a716-446655440000",
                    "timestamp": "2025-01-15T10:30:00Z"
                }
            }
        }
    }


ERROR_RESPONSES = {
    400: _error_example("Bad Request - question or API key missing", "bad_request", "Question is required"),
    422: _error_example("Validation Error - request body is malformed", "validation_error", "Request validation failed"),
    500: _error_example("Internal Server Error", "schema_error", "Failed to load schema of catalog 'chinook'"),
    503: _error_example("Service Unavailable - database not attached", "service_unavailable", "Database is not available"),
}
