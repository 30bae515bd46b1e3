"""Remove Redis state left behind by a deleted environment."""

from typing import List, Optional

import redis.asyncio as redis

from remoteconfig.cache.template_cache import (
    DEFAULT_SCAN_BATCH_SIZE,
    delete_by_pattern,
    escape_glob,
)
from remoteconfig.clients.rate_limiter import (
    RATE_LIMIT_KEY_PREFIX,
    USAGE_DAILY_KEY_PREFIX,
    USAGE_MONTHLY_KEY_PREFIX,
    USAGE_PEAK_KEY_PREFIX,
    USAGE_REJECTED_KEY_PREFIX,
    USAGE_SECOND_KEY_PREFIX,
)
from remoteconfig.utils.logging_config import get_logger
from remoteconfig.utils.redis_config import REDIS_ERRORS

logger = get_logger(__name__)


def environment_key_patterns(environment_id: str) -> List[str]:
    """Rate-limit bucket and usage counter key patterns owned by an environment."""
    environment_id = escape_glob(environment_id)
    return [
        f"{RATE_LIMIT_KEY_PREFIX}{environment_id}",
        f"{USAGE_MONTHLY_KEY_PREFIX}{environment_id}:*",
        f"{USAGE_DAILY_KEY_PREFIX}{environment_id}:*",
        f"{USAGE_PEAK_KEY_PREFIX}{environment_id}:*",
        f"{USAGE_REJECTED_KEY_PREFIX}{environment_id}:*",
        f"{USAGE_SECOND_KEY_PREFIX}{environment_id}:*",
    ]


class RedisCleanupService:
    """Deletes rate-limit and usage keys of deleted environments.

    Cleanup never blocks the deletion that triggered it: Redis errors are
    logged and reported as zero keys deleted. Cached template responses are
    cleared separately through the invalidation bus.
    """

    def __init__(self, redis_client: Optional[redis.Redis], batch_size: int = DEFAULT_SCAN_BATCH_SIZE):
        self.redis = redis_client
        self.batch_size = batch_size

    async def cleanup_environment_keys(self, environment_id: str) -> int:
        if self.redis is None:
            return 0

        total = 0
        try:
            for pattern in environment_key_patterns(environment_id):
                total += await delete_by_pattern(self.redis, pattern, self.batch_size)
        except REDIS_ERRORS as e:
            logger.warning(
                "Failed to clean up Redis keys for environment",
                environment_id=environment_id,
                error=str(e),
            )
            return total

        logger.info(
            "Cleaned up Redis keys for deleted environment",
            environment_id=environment_id,
            deleted=total,
        )
        return total


class NoOpRedisCleanupService(RedisCleanupService):
    """Used when Redis is not configured."""

    def __init__(self):
        super().__init__(None)

    async def cleanup_environment_keys(self, environment_id: str) -> int:
        return 0
