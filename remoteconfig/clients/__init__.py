"""Rate limiting and usage tracking clients."""

from remoteconfig.clients.rate_limiter import (
    NoOpRateLimitService,
    RateLimitResult,
    RateLimitService,
    RedisRateLimitService,
    create_rate_limit_service,
)
from remoteconfig.clients.local_rate_limiter import (
    LocalBucketRegistry,
    LocalRateLimitService,
    LocalTokenBucket,
)

__all__ = [
    "LocalBucketRegistry",
    "LocalRateLimitService",
    "LocalTokenBucket",
    "NoOpRateLimitService",
    "RateLimitResult",
    "RateLimitService",
    "RedisRateLimitService",
    "create_rate_limit_service",
]
