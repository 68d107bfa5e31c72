"""Telemetry worker configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings


class WorkerConfig(BaseSettings):
    """Batching, cadence and retention settings for the background jobs."""

    # Queue keys
    queue_logs_key: str = Field(default="monitoring:logs")
    queue_metrics_key: str = Field(default="monitoring:metrics")

    # Drain batching
    log_batch_size: int = Field(default=100, ge=1, le=10000)
    metric_batch_size: int = Field(default=100, ge=1, le=10000)
    insert_chunk_size: int = Field(default=50, ge=1, le=1000)
    build_yield_every: int = Field(default=20, ge=1, le=1000)

    # Cadence (milliseconds)
    drain_busy_delay_ms: int = Field(default=10, ge=0)
    drain_idle_delay_ms: int = Field(default=5000, ge=1)
    drain_warmup_delay_ms: int = Field(default=1000, ge=0)
    aggregation_jitter_ms: int = Field(default=2000, ge=0, le=30000)
    cleanup_jitter_ms: int = Field(default=5000, ge=0, le=600000)

    # Retention
    raw_metric_retention_hours: int = Field(default=24, ge=1, le=24 * 365)

    # Shutdown
    shutdown_timeout_seconds: float = Field(default=10.0, ge=0)

    # Distributed lease
    distributed_lease_enabled: bool = Field(default=False)
    lease_ttl_seconds: int = Field(default=120, ge=1, le=86400)
    lease_key_prefix: str = Field(default="telemetry:lease:")

    def get_retention_ms(self) -> int:
        """Get raw metric retention in milliseconds."""
        return self.raw_metric_retention_hours * 60 * 60 * 1000

    class Config:
        env_prefix = ""
        extra = "ignore"
