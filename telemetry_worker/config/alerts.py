"""Error-rate alert configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings


class AlertsConfig(BaseSettings):
    """Thresholds for the error-rate alert check run on drained metrics."""

    alerts_enabled: bool = Field(default=True)
    alert_error_rate_threshold: float = Field(default=50.0, gt=0, le=100)
    alert_min_requests: int = Field(default=10, ge=1)
    alert_cooldown_seconds: int = Field(default=300, ge=1, le=86400)
    alert_key_prefix: str = Field(default="monitoring:alert-cooldown:")
    queue_alerts_key: str = Field(default="monitoring:alerts")

    class Config:
        env_prefix = ""
        extra = "ignore"
