"""
Rate limiting and usage tracking backed by Redis.

Each environment has one token bucket shared by every API instance, keyed
``rate-limit:env:{environment_id}``. The bucket holds ``requests_per_second``
tokens and refills continuously at the same rate. Monthly usage is a plain
INCR counter per environment and UTC calendar month that expires itself
45 days after its first increment.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import redis.asyncio as redis

from remoteconfig.utils.exceptions import ServiceUnavailableError
from remoteconfig.utils.logging_config import get_logger
from remoteconfig.utils.redis_config import REDIS_ERRORS
from remoteconfig.utils.settings import RateLimitSettings

logger = get_logger(__name__)

RATE_LIMIT_KEY_PREFIX = "rate-limit:env:"
USAGE_MONTHLY_KEY_PREFIX = "usage:monthly:"
USAGE_DAILY_KEY_PREFIX = "usage:daily:"
USAGE_PEAK_KEY_PREFIX = "usage:peak:"
USAGE_SECOND_KEY_PREFIX = "usage:second:"
USAGE_REJECTED_KEY_PREFIX = "usage:rejected:"

USAGE_KEY_TTL_SECONDS = 45 * 24 * 60 * 60
SECOND_KEY_TTL_SECONDS = 5
BUCKET_TTL_MILLIS = 3600 * 1000

# KEYS[1] bucket key
# ARGV: capacity, refill tokens per millisecond, now (ms), key ttl (ms)
# Returns {allowed, floor(remaining tokens), retry after (ms)}
TOKEN_BUCKET_SCRIPT = """
local key = KEYS[1]
local capacity = tonumber(ARGV[1])
local refill_per_ms = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local ttl = tonumber(ARGV[4])

local bucket = redis.call('HMGET', key, 'tokens', 'last_refill')
local tokens = tonumber(bucket[1]) or capacity
local last_refill = tonumber(bucket[2]) or now

if now > last_refill then
    tokens = math.min(capacity, tokens + (now - last_refill) * refill_per_ms)
    last_refill = now
end

local allowed = 0
local retry_after = 0
if tokens >= 1 then
    tokens = tokens - 1
    allowed = 1
else
    retry_after = math.ceil((1 - tokens) / refill_per_ms)
end

redis.call('HSET', key, 'tokens', tostring(tokens), 'last_refill', tostring(last_refill))
redis.call('PEXPIRE', key, ttl)
return {allowed, math.floor(tokens), retry_after}
"""


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one admission check."""
    allowed: bool
    remaining_tokens: int
    retry_after_millis: int

    @classmethod
    def allow(cls, remaining_tokens: int) -> "RateLimitResult":
        return cls(True, remaining_tokens, 0)

    @classmethod
    def deny(cls, retry_after_millis: int) -> "RateLimitResult":
        return cls(False, 0, max(1, retry_after_millis))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def monthly_usage_key(environment_id: str, now: datetime) -> str:
    return f"{USAGE_MONTHLY_KEY_PREFIX}{environment_id}:{now:%Y-%m}"


def daily_key(prefix: str, environment_id: str, now: datetime) -> str:
    return f"{prefix}{environment_id}:{now:%Y-%m-%d}"


class RateLimitService(ABC):
    """Admission control and usage counters per environment."""

    @abstractmethod
    async def try_consume(self, environment_id: str, requests_per_second: int) -> RateLimitResult:
        """Take one token from the environment's bucket."""

    @abstractmethod
    async def increment_monthly_usage(self, environment_id: str) -> int:
        """Count one request against the current month; returns the new count."""

    @abstractmethod
    async def get_monthly_usage(self, environment_id: str) -> int:
        """Requests counted so far this month."""

    async def get_remaining_monthly_quota(self, environment_id: str, monthly_limit: int) -> int:
        usage = await self.get_monthly_usage(environment_id)
        return max(0, monthly_limit - usage)

    async def increment_daily_usage(self, environment_id: str) -> None:
        return None

    async def track_peak_burst(self, environment_id: str) -> None:
        return None

    async def increment_rejected_requests(self, environment_id: str) -> None:
        return None


class RedisRateLimitService(RateLimitService):
    """Distributed token bucket and counters in Redis.

    With ``fail_open`` (the default) an unreachable Redis admits requests and
    reports zero usage; otherwise it raises ``ServiceUnavailableError``.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        settings: Optional[RateLimitSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.redis = redis_client
        self.settings = settings or RateLimitSettings()
        self.clock = clock
        logger.info("Initialized Redis rate limiting", fail_open=self.settings.fail_open)

    async def try_consume(self, environment_id: str, requests_per_second: int) -> RateLimitResult:
        key = f"{RATE_LIMIT_KEY_PREFIX}{environment_id}"
        capacity = max(1, int(requests_per_second))
        now_ms = int(self.clock().timestamp() * 1000)
        try:
            result = await self.redis.eval(
                TOKEN_BUCKET_SCRIPT,
                1,
                key,
                capacity,
                capacity / 1000.0,
                now_ms,
                BUCKET_TTL_MILLIS,
            )
        except REDIS_ERRORS as e:
            self._on_backend_error("Rate limit check failed", environment_id, e)
            logger.warning("Fail-open: allowing request despite Redis error")
            return RateLimitResult.allow(capacity)

        allowed, remaining, retry_after = (int(part) for part in result)
        if allowed:
            return RateLimitResult.allow(remaining)

        logger.debug(
            "Rate limit exceeded",
            environment_id=environment_id,
            retry_after_millis=retry_after,
        )
        return RateLimitResult.deny(retry_after)

    async def increment_monthly_usage(self, environment_id: str) -> int:
        key = monthly_usage_key(environment_id, self.clock())
        try:
            return await self._increment_with_expiry(key)
        except REDIS_ERRORS as e:
            self._on_backend_error("Failed to increment monthly usage", environment_id, e)
            return 0

    async def get_monthly_usage(self, environment_id: str) -> int:
        key = monthly_usage_key(environment_id, self.clock())
        try:
            value = await self.redis.get(key)
        except REDIS_ERRORS as e:
            self._on_backend_error("Failed to get monthly usage", environment_id, e)
            return 0
        return int(value) if value is not None else 0

    async def increment_daily_usage(self, environment_id: str) -> None:
        key = daily_key(USAGE_DAILY_KEY_PREFIX, environment_id, self.clock())
        try:
            await self._increment_with_expiry(key)
        except REDIS_ERRORS as e:
            logger.warning(
                "Failed to increment daily usage", environment_id=environment_id, error=str(e)
            )

    async def increment_rejected_requests(self, environment_id: str) -> None:
        key = daily_key(USAGE_REJECTED_KEY_PREFIX, environment_id, self.clock())
        try:
            await self._increment_with_expiry(key)
        except REDIS_ERRORS as e:
            logger.warning(
                "Failed to increment rejected requests",
                environment_id=environment_id,
                error=str(e),
            )

    async def track_peak_burst(self, environment_id: str) -> None:
        """Raise today's peak requests-per-second if this second beats it."""
        now = self.clock()
        second_key = f"{USAGE_SECOND_KEY_PREFIX}{environment_id}:{int(now.timestamp())}"
        peak_key = daily_key(USAGE_PEAK_KEY_PREFIX, environment_id, now)
        try:
            current = await self.redis.incr(second_key)
            await self.redis.expire(second_key, SECOND_KEY_TTL_SECONDS)
            peak = await self.redis.get(peak_key)
            if current > (int(peak) if peak is not None else 0):
                await self.redis.set(peak_key, current, ex=USAGE_KEY_TTL_SECONDS)
        except REDIS_ERRORS as e:
            logger.warning(
                "Failed to track peak burst", environment_id=environment_id, error=str(e)
            )

    async def _increment_with_expiry(self, key: str) -> int:
        value = int(await self.redis.incr(key))
        # Expiry is attached once, when the counter is created.
        if value == 1:
            await self.redis.expire(key, USAGE_KEY_TTL_SECONDS)
        return value

    def _on_backend_error(self, message: str, environment_id: str, error: Exception) -> None:
        logger.error(message, environment_id=environment_id, error=str(error))
        if not self.settings.fail_open:
            raise ServiceUnavailableError("Rate limiting service unavailable") from error


class NoOpRateLimitService(RateLimitService):
    """Used when rate limiting is disabled: admits everything, tracks nothing."""

    def __init__(self):
        logger.info("Rate limiting is disabled, using no-op implementation")

    async def try_consume(self, environment_id: str, requests_per_second: int) -> RateLimitResult:
        return RateLimitResult.allow(requests_per_second)

    async def increment_monthly_usage(self, environment_id: str) -> int:
        return 0

    async def get_monthly_usage(self, environment_id: str) -> int:
        return 0


def retry_after_seconds(retry_after_millis: int) -> int:
    """Whole seconds for a Retry-After header, rounded up."""
    return math.ceil(retry_after_millis / 1000)


def create_rate_limit_service(
    settings: RateLimitSettings,
    redis_client: Optional[redis.Redis],
) -> RateLimitService:
    """Pick the limiter the settings ask for.

    ``distributed`` selects the shared Redis bucket; otherwise each process
    enforces its own in-memory bucket.
    """
    if not settings.enabled:
        return NoOpRateLimitService()
    if settings.distributed and redis_client is not None:
        return RedisRateLimitService(redis_client, settings)

    from remoteconfig.clients.local_rate_limiter import LocalRateLimitService

    if settings.distributed:
        logger.warning("Distributed rate limiting requested without Redis, using local buckets")
    return LocalRateLimitService(settings=settings)
