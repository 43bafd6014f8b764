"""
Global exception handlers for the FastAPI application.

Registration (in main.py):
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from release_sync.exceptions import AppException, RateLimitedError

logger = logging.getLogger(__name__)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle AppException and subclasses.

    Response format:
        {
            "detail": "Human-readable error message",
            "error_code": "MACHINE_READABLE_CODE",
            "retryable": false
        }
    """
    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"{exc.error_code}: {exc.message}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
        },
    )

    headers = None
    if isinstance(exc, RateLimitedError) and exc.reset_at:
        headers = {"X-RateLimit-Reset": str(int(exc.reset_at.timestamp()))}

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error_code": exc.error_code,
            "retryable": exc.retryable,
        },
        headers=headers,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log the stack trace, return a generic 500."""
    logger.exception(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_code": "INTERNAL_ERROR",
            "retryable": False,
        },
    )
