"""Connection pool management.

This module provides the shared async Redis connection pool used by the
queue producers (monitor middleware) and the queue drain job.
"""

from typing import Optional

import redis.asyncio as redis
import structlog

from ..config import settings

logger = structlog.get_logger(__name__)


class RedisPool:
    """Centralized async Redis connection pool.

    Usage:
        client = redis_pool.get_client()
        await client.rpush("monitoring:logs", payload)
    """

    def __init__(self, url: Optional[str] = None):
        self._url = url
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._initialized = False

    def _initialize(self) -> None:
        """Initialize the connection pool lazily."""
        if self._initialized:
            return

        redis_url = self._url or settings.get_redis_url()
        self._pool = redis.ConnectionPool.from_url(
            redis_url,
            max_connections=settings.redis_max_connections,
            decode_responses=True,
            socket_timeout=float(settings.redis_socket_timeout),
            socket_connect_timeout=float(settings.redis_socket_connect_timeout),
            retry_on_timeout=True,
        )
        self._client = redis.Redis(connection_pool=self._pool)
        self._initialized = True
        # Don't log password - extract host part only
        safe_url = redis_url.split("@")[-1] if "@" in redis_url else redis_url
        logger.info(
            "Redis connection pool initialized",
            max_connections=settings.redis_max_connections,
            url=safe_url,
        )

    def get_client(self) -> redis.Redis:
        """Get an async Redis client from the shared pool.

        Returns:
            Async Redis client instance connected to the shared pool
        """
        if not self._initialized:
            self._initialize()
        assert self._client is not None, "Redis client not initialized"
        return self._client

    async def connect(self) -> redis.Redis:
        """Get the client and verify the server answers.

        Used as the queue factory of the worker's dependency resolver so a
        broken Redis surfaces at resolution time rather than on the first pop.
        """
        client = self.get_client()
        await client.ping()
        return client

    @property
    def pool_stats(self) -> dict:
        """Get connection pool statistics."""
        if not self._pool:
            return {"initialized": False}

        return {
            "initialized": True,
            "max_connections": self._pool.max_connections,
        }

    async def close(self) -> None:
        """Close the connection pool and release all connections."""
        if self._client:
            await self._client.aclose()
            logger.info("Redis connection pool closed")
        if self._pool:
            await self._pool.disconnect()
        self._pool = None
        self._client = None
        self._initialized = False


# Global Redis pool instance
redis_pool = RedisPool()
