"""Configuration management for the telemetry worker.

This module provides a unified Settings class with flat environment-variable
fields and grouped read-only views over them.

Usage:
    from telemetry_worker.config import settings

    # Access grouped settings
    settings.worker.log_batch_size
    settings.redis.get_url()

    # Or use the flat fields
    settings.log_batch_size
    settings.get_redis_url()
"""

from typing import Optional

import structlog
from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Import grouped configurations
from .alerts import AlertsConfig
from .logging import LoggingConfig
from .redis import RedisConfig
from .worker import WorkerConfig


class Settings(BaseSettings):
    """Application settings with environment variable support.

    This class provides both:
    1. Grouped access via nested configs (settings.worker.log_batch_size)
    2. Flat access (settings.log_batch_size)
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # FLAT FIELDS
    # ========================================================================

    # API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000, ge=1, le=65535)
    api_debug: bool = Field(default=False)
    enable_docs: bool = Field(default=True)
    environment: str = Field(default="development")

    # Redis Configuration
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_password: Optional[str] = Field(default=None)
    redis_db: int = Field(default=0, ge=0, le=15)
    redis_url: Optional[str] = Field(default=None)
    redis_max_connections: int = Field(default=20, ge=1)
    redis_socket_timeout: int = Field(default=5, ge=1)
    redis_socket_connect_timeout: int = Field(default=5, ge=1)

    # Durable Storage Configuration
    telemetry_db_path: str = Field(
        default="data/telemetry.db",
        description="Path to the SQLite database holding raw metrics, logs and rollups",
    )

    # Queue Configuration
    queue_logs_key: str = Field(default="monitoring:logs")
    queue_metrics_key: str = Field(default="monitoring:metrics")
    queue_alerts_key: str = Field(default="monitoring:alerts")

    # Worker Configuration
    worker_enabled: bool = Field(
        default=True, description="Run the aggregation, drain and cleanup jobs"
    )
    log_batch_size: int = Field(
        default=100, ge=1, le=10000, description="Log entries popped per drain tick"
    )
    metric_batch_size: int = Field(
        default=100, ge=1, le=10000, description="Metric entries popped per drain tick"
    )
    insert_chunk_size: int = Field(
        default=50, ge=1, le=1000, description="Documents per bulk insert"
    )
    build_yield_every: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Yield to the event loop after this many rollups are built",
    )
    drain_busy_delay_ms: int = Field(
        default=10, ge=0, description="Next drain tick delay while a backlog exists"
    )
    drain_idle_delay_ms: int = Field(
        default=5000, ge=1, description="Next drain tick delay when the queue is quiet"
    )
    drain_warmup_delay_ms: int = Field(
        default=1000, ge=0, description="Delay before the first drain tick"
    )
    aggregation_jitter_ms: int = Field(
        default=2000,
        ge=0,
        le=30000,
        description="Delay past the minute boundary before aggregating",
    )
    cleanup_jitter_ms: int = Field(
        default=5000,
        ge=0,
        le=600000,
        description="Delay past the hour boundary before cleanup",
    )
    raw_metric_retention_hours: int = Field(
        default=24, ge=1, le=24 * 365, description="Raw metric retention window"
    )
    shutdown_timeout_seconds: float = Field(
        default=10.0, ge=0, description="How long stop() waits for running jobs"
    )

    # Distributed Lease Configuration
    distributed_lease_enabled: bool = Field(
        default=False,
        description="Guard each job with a Redis lease (required with multiple replicas)",
    )
    lease_ttl_seconds: int = Field(default=120, ge=1, le=86400)
    lease_key_prefix: str = Field(default="telemetry:lease:")

    # Alert Configuration
    alerts_enabled: bool = Field(default=True)
    alert_error_rate_threshold: float = Field(default=50.0, gt=0, le=100)
    alert_min_requests: int = Field(default=10, ge=1)
    alert_cooldown_seconds: int = Field(default=300, ge=1, le=86400)
    alert_key_prefix: str = Field(default="monitoring:alert-cooldown:")

    # Monitor Middleware Configuration
    monitor_enabled: bool = Field(default=True)
    monitor_service_name: str = Field(default="api")
    monitor_exclude_prefix: str = Field(default="/api/v1/monitoring")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)
    log_max_size_mb: int = Field(default=100, ge=1)
    log_backup_count: int = Field(default=5, ge=1)

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @validator("drain_idle_delay_ms")
    def idle_delay_exceeds_busy_delay(cls, v, values):
        """The idle cadence must be slower than the backlog cadence."""
        busy = values.get("drain_busy_delay_ms")
        if busy is not None and v <= busy:
            raise ValueError(
                "drain_idle_delay_ms must be greater than drain_busy_delay_ms"
            )
        return v

    @validator("log_format")
    def validate_log_format(cls, v):
        """Only json and console renderers are supported."""
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    @validator("lease_ttl_seconds")
    def warn_lease_shorter_than_tick(cls, v, values):
        """Log a warning if a window claim could expire before the minute ends."""
        if values.get("distributed_lease_enabled") and v < 60:
            structlog.get_logger("config").warning(
                "Lease TTL is under a minute; replicas may aggregate a window twice",
                lease_ttl_seconds=v,
            )
        return v

    # ========================================================================
    # GROUPED CONFIG ACCESS
    # ========================================================================

    @property
    def redis(self) -> RedisConfig:
        """Access Redis configuration group."""
        return RedisConfig(
            redis_host=self.redis_host,
            redis_port=self.redis_port,
            redis_password=self.redis_password,
            redis_db=self.redis_db,
            redis_url=self.redis_url,
            redis_max_connections=self.redis_max_connections,
            redis_socket_timeout=self.redis_socket_timeout,
            redis_socket_connect_timeout=self.redis_socket_connect_timeout,
        )

    @property
    def worker(self) -> WorkerConfig:
        """Access worker configuration group."""
        return WorkerConfig(
            queue_logs_key=self.queue_logs_key,
            queue_metrics_key=self.queue_metrics_key,
            log_batch_size=self.log_batch_size,
            metric_batch_size=self.metric_batch_size,
            insert_chunk_size=self.insert_chunk_size,
            build_yield_every=self.build_yield_every,
            drain_busy_delay_ms=self.drain_busy_delay_ms,
            drain_idle_delay_ms=self.drain_idle_delay_ms,
            drain_warmup_delay_ms=self.drain_warmup_delay_ms,
            aggregation_jitter_ms=self.aggregation_jitter_ms,
            cleanup_jitter_ms=self.cleanup_jitter_ms,
            raw_metric_retention_hours=self.raw_metric_retention_hours,
            shutdown_timeout_seconds=self.shutdown_timeout_seconds,
            distributed_lease_enabled=self.distributed_lease_enabled,
            lease_ttl_seconds=self.lease_ttl_seconds,
            lease_key_prefix=self.lease_key_prefix,
        )

    @property
    def alerts(self) -> AlertsConfig:
        """Access alert configuration group."""
        return AlertsConfig(
            alerts_enabled=self.alerts_enabled,
            alert_error_rate_threshold=self.alert_error_rate_threshold,
            alert_min_requests=self.alert_min_requests,
            alert_cooldown_seconds=self.alert_cooldown_seconds,
            alert_key_prefix=self.alert_key_prefix,
            queue_alerts_key=self.queue_alerts_key,
        )

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration group."""
        return LoggingConfig(
            log_level=self.log_level,
            log_format=self.log_format,
            log_file=self.log_file,
            log_max_size_mb=self.log_max_size_mb,
            log_backup_count=self.log_backup_count,
        )

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def get_redis_url(self) -> str:
        """Get Redis connection URL."""
        return self.redis.get_url()


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    # Grouped configs
    "AlertsConfig",
    "LoggingConfig",
    "RedisConfig",
    "WorkerConfig",
]
