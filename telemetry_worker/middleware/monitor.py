"""Request monitoring middleware: the producer side of the telemetry queues."""

# Standard library imports
import json
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

# Third-party imports
import structlog

# Local application imports
from ..config import settings
from ..core.pool import redis_pool
from ..models.metrics import ERROR_STATUS_THRESHOLD

logger = structlog.get_logger(__name__)

TRACE_HEADER = b"x-trace-id"


class MonitorMiddleware:
    """ASGI middleware that queues one log entry and one raw metric per request.

    Entries are pushed onto the Redis lists the drain job empties. Requests
    under the monitoring prefix are skipped so dashboard polling does not
    feed itself.
    """

    def __init__(
        self,
        app,
        service_name: Optional[str] = None,
        client_getter: Optional[Callable[[], Any]] = None,
    ):
        self.app = app
        self.service_name = service_name or settings.monitor_service_name
        self._client_getter = client_getter or redis_pool.get_client

    async def __call__(self, scope, receive, send):
        """Time the request and queue its telemetry after the response."""
        if scope["type"] != "http" or not settings.monitor_enabled:
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        status_code = 500  # Default in case of error
        trace_id = self._trace_id(scope)
        scope.setdefault("state", {})["trace_id"] = trace_id

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
                headers = list(message.get("headers", []))
                headers.append((TRACE_HEADER, trace_id.encode()))
                message = {**message, "headers": headers}

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            path = scope.get("path", "")
            if not path.startswith(settings.monitor_exclude_prefix):
                latency_ms = (time.time() - start_time) * 1000
                await self._record(
                    method=scope.get("method", "GET"),
                    path=path,
                    status_code=status_code,
                    latency_ms=latency_ms,
                    trace_id=trace_id,
                )

    @staticmethod
    def _trace_id(scope) -> str:
        for name, value in scope.get("headers", []):
            if name == TRACE_HEADER and value:
                return value.decode("latin-1")
        return str(uuid.uuid4())

    async def _record(
        self,
        method: str,
        path: str,
        status_code: int,
        latency_ms: float,
        trace_id: str,
    ) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        log_entry = {
            "service": self.service_name,
            "env": settings.environment,
            "method": method,
            "path": path,
            "statusCode": status_code,
            "latencyMs": round(latency_ms, 2),
            "traceId": trace_id,
            "level": "error" if status_code >= ERROR_STATUS_THRESHOLD else "info",
            "message": f"{method} {path} {status_code}",
            "timestamp": timestamp,
        }
        metric_entry = {
            "service": self.service_name,
            "path": path,
            "statusCode": status_code,
            "latencyMs": round(latency_ms, 2),
            "timestamp": timestamp,
        }

        # Fail silently to avoid impacting the request
        try:
            client = self._client_getter()
            await client.rpush(settings.queue_logs_key, json.dumps(log_entry))
            await client.rpush(settings.queue_metrics_key, json.dumps(metric_entry))
        except Exception as e:
            logger.error("Failed to queue request telemetry", error=str(e), path=path)
