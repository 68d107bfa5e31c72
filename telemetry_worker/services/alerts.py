"""Error-rate alert check run on every drained metric batch."""

import json
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List

import structlog

from ..config.alerts import AlertsConfig
from ..models.metrics import ERROR_STATUS_THRESHOLD

logger = structlog.get_logger(__name__)


class ErrorRateAlerter:
    """Raises an alert when a service's error rate in one batch is too high.

    Alerts are pushed onto a Redis list for whatever delivers notifications,
    with a per-service cooldown key so a sustained outage alerts once per
    cooldown period rather than once per batch.
    """

    def __init__(self, config: AlertsConfig):
        self._config = config

    @staticmethod
    def _status(doc: Dict[str, Any]) -> int:
        value = doc["statusCode"] if "statusCode" in doc else doc["status_code"]
        return int(value)

    def summarize(self, batch: List[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
        """Request and error counts per service; unusable documents are ignored."""
        counts: Dict[str, Dict[str, int]] = defaultdict(lambda: {"total": 0, "errors": 0})
        for doc in batch:
            service = doc.get("service")
            if not isinstance(service, str):
                continue
            try:
                status = self._status(doc)
            except (KeyError, TypeError, ValueError):
                continue
            counts[service]["total"] += 1
            if status >= ERROR_STATUS_THRESHOLD:
                counts[service]["errors"] += 1
        return dict(counts)

    async def __call__(self, batch: List[Dict[str, Any]], queue_client: Any) -> List[Dict[str, Any]]:
        """Check a parsed metric batch.

        Args:
            batch: Parsed metric documents
            queue_client: Redis client used for cooldown keys and the alert list

        Returns:
            Alerts raised by this call
        """
        if not self._config.alerts_enabled:
            return []

        raised = []
        for service, counts in self.summarize(batch).items():
            total = counts["total"]
            if total < self._config.alert_min_requests:
                continue

            error_rate = counts["errors"] / total * 100
            if error_rate < self._config.alert_error_rate_threshold:
                continue

            claimed = await queue_client.set(
                f"{self._config.alert_key_prefix}{service}",
                "1",
                nx=True,
                ex=self._config.alert_cooldown_seconds,
            )
            if not claimed:
                logger.debug("Error rate alert suppressed by cooldown", service=service)
                continue

            alert = {
                "type": "error_rate",
                "service": service,
                "error_rate": round(error_rate, 2),
                "error_count": counts["errors"],
                "total": total,
                "threshold": self._config.alert_error_rate_threshold,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            await queue_client.rpush(self._config.queue_alerts_key, json.dumps(alert))
            logger.warning("Error rate alert raised", **alert)
            raised.append(alert)

        return raised
