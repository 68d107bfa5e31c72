"""Exception handlers for the monitoring and health API.

Every error body is an :class:`ErrorResponse` carrying the request's trace id,
which :class:`MonitorMiddleware` also returns as ``x-trace-id`` and queues with
the request's log entry.
"""

import uuid

import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from ..models.errors import (
    ErrorDetail,
    ErrorResponse,
    ErrorType,
    TelemetryWorkerException,
)

logger = structlog.get_logger(__name__)

# Only the statuses routing produces; anything else is reported as internal
HTTP_ERROR_TYPES = {
    404: ErrorType.RESOURCE_NOT_FOUND,
    405: ErrorType.METHOD_NOT_ALLOWED,
}


def request_trace_id(request: Request) -> str:
    """Trace id set by the monitor middleware, or a fresh one when it is off."""
    trace_id = getattr(request.state, "trace_id", None)
    return trace_id or str(uuid.uuid4())


def _error_json(status_code: int, response: ErrorResponse, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=response.model_dump(), headers=headers)


async def telemetry_worker_exception_handler(
    request: Request, exc: TelemetryWorkerException
) -> JSONResponse:
    """Store or component not available: 503 so dashboards retry."""
    trace_id = request_trace_id(request)
    logger.warning(
        "Monitoring request failed",
        error_type=exc.error_type.value,
        error=exc.message,
        path=request.url.path,
        trace_id=trace_id,
    )
    return _error_json(
        exc.status_code,
        ErrorResponse(error=exc.message, error_type=exc.error_type, trace_id=trace_id),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Unknown route or method."""
    error_type = HTTP_ERROR_TYPES.get(exc.status_code, ErrorType.INTERNAL_SERVER)
    trace_id = request_trace_id(request)
    logger.info(
        "Route not served",
        status_code=exc.status_code,
        method=request.method,
        path=request.url.path,
    )
    return _error_json(
        exc.status_code,
        ErrorResponse(error=str(exc.detail), error_type=error_type, trace_id=trace_id),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Out-of-range query parameters (``hours``, ``page``, ``limit``)."""
    details = [
        ErrorDetail(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            code=error["type"],
        )
        for error in exc.errors()
    ]
    logger.info(
        "Rejected monitoring query",
        path=request.url.path,
        fields=[d.field for d in details],
    )
    return _error_json(
        422,
        ErrorResponse(
            error="Invalid query parameters",
            error_type=ErrorType.VALIDATION,
            details=details,
            trace_id=request_trace_id(request),
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected failure, usually a store query error. Details stay in the log."""
    trace_id = request_trace_id(request)
    logger.exception(
        "Unhandled error serving monitoring request",
        path=request.url.path,
        trace_id=trace_id,
    )
    return _error_json(
        500,
        ErrorResponse(
            error="An unexpected error occurred",
            error_type=ErrorType.INTERNAL_SERVER,
            trace_id=trace_id,
        ),
    )
