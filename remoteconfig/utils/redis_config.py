"""Redis configuration and client management."""

import asyncio
from typing import Optional

import redis.asyncio as redis

from remoteconfig.utils.logging_config import get_logger
from remoteconfig.utils.settings import RedisSettings

logger = get_logger(__name__)

# Errors a Redis round trip can raise when the server is slow or unreachable.
REDIS_ERRORS = (redis.RedisError, OSError, asyncio.TimeoutError)


class RedisConfig:
    """Builds and owns the shared asyncio Redis client.

    Every command is bounded by the socket timeouts so an unreachable server
    surfaces as an error the calling component can fail open on.
    """

    def __init__(self, settings: RedisSettings):
        self.settings = settings
        self.client: Optional[redis.Redis] = None

    def create_client(self) -> redis.Redis:
        """Create the client. Connections are opened lazily on first use."""
        self.client = redis.Redis.from_url(
            self.settings.url,
            decode_responses=True,
            socket_timeout=self.settings.socket_timeout_seconds,
            socket_connect_timeout=self.settings.socket_connect_timeout_seconds,
        )
        logger.info("Redis client created", url=self.settings.url)
        return self.client

    async def close(self) -> None:
        """Close Redis client."""
        if self.client is not None:
            try:
                await self.client.aclose()
                logger.info("Redis client closed")
            except REDIS_ERRORS as e:
                logger.warning("Error closing Redis client", error=str(e))
            self.client = None

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            if self.client is None:
                return False
            await self.client.ping()
            return True
        except REDIS_ERRORS as e:
            logger.error("Redis health check failed", error=str(e))
            return False
