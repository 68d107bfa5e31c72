"""Redis-backed job leases.

The in-process running flag only prevents a job from overlapping itself
inside one worker process. When more than one replica runs the worker, each
job tick must also hold a lease: a TTL'd key per job name that only one
instance can set at a time.
"""

import uuid
from typing import Any, Dict

import structlog

logger = structlog.get_logger(__name__)

# Delete the key only if it still holds our token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class JobLease:
    """Per-job distributed lease over a shared Redis."""

    def __init__(
        self,
        redis_client: Any,
        ttl_seconds: int = 120,
        key_prefix: str = "telemetry:lease:",
    ):
        self._redis = redis_client
        self._ttl_ms = ttl_seconds * 1000
        self._key_prefix = key_prefix
        self._token = uuid.uuid4().hex
        self._held: Dict[str, bool] = {}

    @property
    def token(self) -> str:
        return self._token

    def _key(self, job_name: str) -> str:
        return f"{self._key_prefix}{job_name}"

    async def acquire(self, job_name: str) -> bool:
        """Try to take the lease for ``job_name``.

        Redis errors count as "not acquired": skipping one tick is safer than
        running a job that another replica may also be running.
        """
        try:
            acquired = await self._redis.set(
                self._key(job_name), self._token, nx=True, px=self._ttl_ms
            )
        except Exception as e:
            logger.error("Lease acquire failed", job=job_name, error=str(e))
            return False

        if acquired:
            self._held[job_name] = True
            return True

        logger.info("Lease held by another instance", job=job_name)
        return False

    async def release(self, job_name: str) -> None:
        """Release the lease if this instance still owns it."""
        if not self._held.pop(job_name, False):
            return

        try:
            await self._redis.eval(RELEASE_SCRIPT, 1, self._key(job_name), self._token)
        except Exception as e:
            # The TTL frees the key eventually
            logger.warning("Lease release failed", job=job_name, error=str(e))

    def retain(self, job_name: str) -> None:
        """Stop tracking a held lease without deleting it.

        The key stays in Redis until its TTL expires, so no other instance can
        take the same name in the meantime.
        """
        self._held.pop(job_name, None)
