"""Telemetry data models: raw metrics, metric groups and rollups."""

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

WINDOW_SIZE_1M = "1m"
ERROR_STATUS_THRESHOLD = 400

# Signed 64-bit, the range of a SQLite INTEGER
MAX_EPOCH_MS = 2**63 - 1
MIN_EPOCH_MS = -(2**63)


def now_ms() -> int:
    """Current UTC time in epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def to_epoch_ms(value: Union[str, int, float, datetime, None]) -> int:
    """Normalize a producer timestamp to epoch milliseconds.

    Accepts ISO-8601 strings (``Z`` suffix included), epoch milliseconds and
    timezone-aware or naive (assumed UTC) datetimes.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if value is None:
        raise ValueError("timestamp is required")
    if isinstance(value, bool):
        raise ValueError("timestamp must not be a boolean")
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            raise ValueError("timestamp must not be NaN")
        if not MIN_EPOCH_MS <= value <= MAX_EPOCH_MS:
            raise ValueError(f"timestamp out of range: {value!r}")
        return int(value)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    raise ValueError(f"unsupported timestamp type: {type(value).__name__}")


def ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass
class RawMetric:
    """One observed request, as pushed by the monitor middleware."""

    service: str
    path: str
    status_code: int
    latency_ms: float
    timestamp_ms: int

    @property
    def is_error(self) -> bool:
        return self.status_code >= ERROR_STATUS_THRESHOLD

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawMetric":
        """Create from a queue document.

        Accepts both the camelCase keys producers emit (``statusCode``,
        ``latencyMs``) and snake_case keys.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field has an unusable value
            OverflowError: If a number is infinite or too large to convert
        """
        service = data["service"]
        path = data["path"]
        if not isinstance(service, str) or not isinstance(path, str):
            raise ValueError("service and path must be strings")

        status_code = data["statusCode"] if "statusCode" in data else data["status_code"]
        latency_ms = data["latencyMs"] if "latencyMs" in data else data["latency_ms"]

        return cls(
            service=service,
            path=path,
            status_code=int(status_code),
            latency_ms=float(latency_ms),
            timestamp_ms=to_epoch_ms(data.get("timestamp")),
        )


@dataclass
class MetricGroup:
    """Raw metrics of one (service, path) pair inside one window."""

    service: str
    path: str
    count: int
    error_count: int
    total_latency: float
    latencies: List[float] = field(default_factory=list)


@dataclass
class AggregatedMetric:
    """Per-minute, per-(service, path) rollup row."""

    window_start_ms: int
    window_end_ms: int
    service: str
    path: str
    count: int
    error_count: int
    avg_latency_ms: float
    p95_latency_ms: float
    error_rate: float
    window_size: str = WINDOW_SIZE_1M
    created_at_ms: int = field(default_factory=now_ms)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        d = asdict(self)
        d["window_start"] = ms_to_datetime(self.window_start_ms).isoformat()
        d["window_end"] = ms_to_datetime(self.window_end_ms).isoformat()
        return d


def p95(latencies: List[float]) -> float:
    """95th percentile by nearest-rank on the sorted list.

    Uses index ``min(floor(n * 0.95), n - 1)``; an empty list yields 0.
    """
    if not latencies:
        return 0
    sorted_values = sorted(latencies)
    index = int(len(sorted_values) * 0.95)
    return sorted_values[min(index, len(sorted_values) - 1)]


def build_rollup(group: MetricGroup, window_start_ms: int, window_end_ms: int) -> AggregatedMetric:
    """Summarize one metric group into a rollup row."""
    count = group.count
    return AggregatedMetric(
        window_start_ms=window_start_ms,
        window_end_ms=window_end_ms,
        service=group.service,
        path=group.path,
        count=count,
        error_count=group.error_count,
        avg_latency_ms=group.total_latency / count if count else 0,
        p95_latency_ms=p95(group.latencies),
        error_rate=group.error_count / count * 100 if count else 0,
    )
