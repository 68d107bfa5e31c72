"""Error payloads and the exceptions the monitoring API turns into them."""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorType(str, Enum):
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    SERVICE_UNAVAILABLE = "service_unavailable"
    STORAGE = "storage"
    INTERNAL_SERVER = "internal_server"


class ErrorDetail(BaseModel):
    """One rejected query parameter."""

    field: str
    message: str
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    """JSON body of every non-2xx response.

    ``trace_id`` matches the ``x-trace-id`` response header and the
    ``traceId`` of the request's queued log entry, so a failed dashboard call
    can be found in the log store.
    """

    model_config = ConfigDict(use_enum_values=True)

    error: str
    error_type: ErrorType
    details: Optional[List[ErrorDetail]] = None
    trace_id: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)


class TelemetryWorkerException(Exception):
    """Base for errors that map to a fixed status and error type."""

    status_code = 500
    error_type = ErrorType.INTERNAL_SERVER

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class StorageError(TelemetryWorkerException):
    """Telemetry database missing or closed."""

    status_code = 503
    error_type = ErrorType.STORAGE

    def __init__(self, message: str = "Telemetry store is unavailable"):
        super().__init__(message)


class ServiceUnavailableError(TelemetryWorkerException):
    """A runtime component has not been wired yet, or is already torn down."""

    status_code = 503
    error_type = ErrorType.SERVICE_UNAVAILABLE

    def __init__(self, component: str, message: Optional[str] = None):
        self.component = component
        super().__init__(message or f"{component} is not available")
