"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.core import (
    ApplicationException,
    ConcurrencyConflictException,
    DomainException,
    IllegalTransitionException,
    ResourceNotFoundException,
    UnauthorizedActorException,
    ValidationException,
)
from src.shared.infrastructure.logging import correlation_id_var, get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Most specific first; the first isinstance match wins
EXCEPTION_STATUS_CODES = (
    (ValidationException, status.HTTP_400_BAD_REQUEST, "validation_error"),
    (ResourceNotFoundException, status.HTTP_404_NOT_FOUND, "not_found"),
    (UnauthorizedActorException, status.HTTP_403_FORBIDDEN, "actor_not_permitted"),
    (IllegalTransitionException, status.HTTP_409_CONFLICT, "illegal_transition"),
    (ConcurrencyConflictException, status.HTTP_409_CONFLICT, "concurrency_conflict"),
    (DomainException, status.HTTP_409_CONFLICT, "domain_rule_violated"),
)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    The ID is exposed on request.state, in every log line emitted while
    the request is handled, and on the response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER, str(uuid.uuid4()))
        request.state.correlation_id = correlation_id
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with its status code and latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        response_time = time.perf_counter() - start_time
        response.headers["X-Response-Time"] = f"{response_time:.3f}s"
        logger.info(
            "Request completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int(response_time * 1000)
            }
        )
        return response


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or correlation_id_var.get() or "unknown"


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Map engine exceptions to distinct HTTP responses.

    Each error kind keeps its own status code and `error` tag so callers can
    tell a stale read (retry) from an illegal move (re-fetch and decide).
    """
    status_code, error = status.HTTP_500_INTERNAL_SERVER_ERROR, "application_error"
    for exc_type, code, tag in EXCEPTION_STATUS_CODES:
        if isinstance(exc, exc_type):
            status_code, error = code, tag
            break

    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request rejected",
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": status_code,
        }
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "detail": exc.message,
            "details": exc.details,
            "correlation_id": _correlation_id(request),
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Consistent 500 body for anything unhandled."""
    logger.error(
        "Unhandled exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    is_dev = getattr(request.app.state, "environment", None) == "development"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "detail": "Internal server error",
            "correlation_id": _correlation_id(request),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )


def install_middleware(app: FastAPI) -> None:
    """Register middleware and exception handlers on the app."""
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
