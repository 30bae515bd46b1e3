"""Test the Redis rate limiter and usage counters."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import fakeredis
import pytest
import redis

from remoteconfig.clients.local_rate_limiter import LocalRateLimitService
from remoteconfig.clients.rate_limiter import (
    TOKEN_BUCKET_SCRIPT,
    USAGE_KEY_TTL_SECONDS,
    NoOpRateLimitService,
    RateLimitResult,
    RedisRateLimitService,
    create_rate_limit_service,
    retry_after_seconds,
)
from remoteconfig.utils.exceptions import ServiceUnavailableError
from remoteconfig.utils.settings import RateLimitSettings


@pytest.fixture
def failing_redis():
    """Create mock Redis client whose every call fails."""
    redis_client = Mock()
    for name in ("eval", "incr", "expire", "get", "set"):
        setattr(redis_client, name, AsyncMock(side_effect=redis.ConnectionError("down")))
    return redis_client


@pytest.fixture
def limiter(fake_redis, utc_clock):
    return RedisRateLimitService(fake_redis, RateLimitSettings(), clock=utc_clock)


class TestTryConsume:
    """Test token bucket admission through the Lua script."""

    @pytest.mark.asyncio
    async def test_script_arguments(self):
        redis_client = Mock()
        redis_client.eval = AsyncMock(return_value=[1, 9, 0])
        fixed = datetime(2026, 1, 1, tzinfo=timezone.utc)
        service = RedisRateLimitService(redis_client, clock=lambda: fixed)

        result = await service.try_consume("env-1", 10)

        assert result == RateLimitResult(True, 9, 0)
        redis_client.eval.assert_awaited_once_with(
            TOKEN_BUCKET_SCRIPT,
            1,
            "rate-limit:env:env-1",
            10,
            0.01,
            int(fixed.timestamp() * 1000),
            3600 * 1000,
        )

    @pytest.mark.asyncio
    async def test_denied_result(self):
        redis_client = Mock()
        redis_client.eval = AsyncMock(return_value=[0, 0, 100])
        service = RedisRateLimitService(redis_client)

        result = await service.try_consume("env-1", 10)

        assert not result.allowed
        assert result.remaining_tokens == 0
        assert result.retry_after_millis == 100

    @pytest.mark.asyncio
    async def test_fail_open_allows_with_full_capacity(self, failing_redis):
        service = RedisRateLimitService(failing_redis, RateLimitSettings(fail_open=True))

        result = await service.try_consume("env-1", 250)

        assert result == RateLimitResult(True, 250, 0)

    @pytest.mark.asyncio
    async def test_fail_closed_raises(self, failing_redis):
        service = RedisRateLimitService(failing_redis, RateLimitSettings(fail_open=False))

        with pytest.raises(ServiceUnavailableError):
            await service.try_consume("env-1", 250)

    def test_retry_after_rounds_up(self):
        assert retry_after_seconds(1) == 1
        assert retry_after_seconds(1000) == 1
        assert retry_after_seconds(1001) == 2


class SteppingClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class TestTokenBucketScript:
    """Run the token bucket script on an in-memory Redis server with Lua."""

    @pytest.fixture
    def bucket_clock(self):
        return SteppingClock(datetime(2026, 1, 1, tzinfo=timezone.utc))

    @pytest.fixture
    def script_redis(self):
        return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)

    @pytest.fixture
    def service(self, script_redis, bucket_clock):
        return RedisRateLimitService(script_redis, RateLimitSettings(), clock=bucket_clock)

    @pytest.mark.asyncio
    async def test_capacity_boundary(self, service):
        results = [await service.try_consume("env-1", 5) for _ in range(6)]

        assert [r.allowed for r in results] == [True] * 5 + [False]
        assert [r.remaining_tokens for r in results[:5]] == [4, 3, 2, 1, 0]
        assert results[5].retry_after_millis == 200

    @pytest.mark.asyncio
    async def test_refills_as_time_passes(self, service, bucket_clock):
        for _ in range(10):
            await service.try_consume("env-1", 10)
        assert not (await service.try_consume("env-1", 10)).allowed

        bucket_clock.advance(milliseconds=100)
        assert (await service.try_consume("env-1", 10)) == RateLimitResult(True, 0, 0)
        assert not (await service.try_consume("env-1", 10)).allowed

        bucket_clock.advance(seconds=5)
        assert (await service.try_consume("env-1", 10)).remaining_tokens == 9

    @pytest.mark.asyncio
    async def test_clock_going_backwards_does_not_refill(self, service, bucket_clock):
        for _ in range(5):
            await service.try_consume("env-1", 5)

        bucket_clock.advance(seconds=-10)
        denied = await service.try_consume("env-1", 5)
        assert not denied.allowed
        assert denied.retry_after_millis > 0

        # Refill is measured from the last forward refill, not the earlier time.
        bucket_clock.advance(seconds=10, milliseconds=200)
        assert (await service.try_consume("env-1", 5)) == RateLimitResult(True, 0, 0)

    @pytest.mark.asyncio
    async def test_buckets_are_per_environment_and_expire(self, service, script_redis):
        await service.try_consume("env-1", 1)

        assert (await service.try_consume("env-2", 1)).allowed
        ttl = await script_redis.pttl("rate-limit:env:env-1")
        assert 0 < ttl <= 3600 * 1000


class TestMonthlyUsage:
    """Test monthly usage counters."""

    @pytest.mark.asyncio
    async def test_increments_are_monotonic(self, limiter):
        counts = [await limiter.increment_monthly_usage("env-1") for _ in range(5)]
        assert counts == [1, 2, 3, 4, 5]
        assert await limiter.get_monthly_usage("env-1") == 5

    @pytest.mark.asyncio
    async def test_environments_are_independent(self, limiter):
        await limiter.increment_monthly_usage("env-1")
        await limiter.increment_monthly_usage("env-1")
        await limiter.increment_monthly_usage("env-2")

        assert await limiter.get_monthly_usage("env-1") == 2
        assert await limiter.get_monthly_usage("env-2") == 1
        assert await limiter.get_monthly_usage("env-3") == 0

    @pytest.mark.asyncio
    async def test_expiry_set_on_first_increment_only(self, limiter, fake_redis, clock, utc_clock):
        key = f"usage:monthly:env-1:{utc_clock():%Y-%m}"
        await limiter.increment_monthly_usage("env-1")
        assert await fake_redis.ttl(key) == USAGE_KEY_TTL_SECONDS

        clock.advance(60)
        await limiter.increment_monthly_usage("env-1")
        assert await fake_redis.ttl(key) == USAGE_KEY_TTL_SECONDS - 60

    @pytest.mark.asyncio
    async def test_new_month_starts_from_zero(self, fake_redis):
        now = {"value": datetime(2026, 1, 31, 23, 59, tzinfo=timezone.utc)}
        service = RedisRateLimitService(fake_redis, clock=lambda: now["value"])
        await service.increment_monthly_usage("env-1")

        now["value"] = datetime(2026, 2, 1, 0, 1, tzinfo=timezone.utc)

        assert await service.get_monthly_usage("env-1") == 0
        assert await fake_redis.get("usage:monthly:env-1:2026-01") == "1"

    @pytest.mark.asyncio
    async def test_remaining_quota_never_negative(self, limiter):
        for _ in range(3):
            await limiter.increment_monthly_usage("env-1")
        assert await limiter.get_remaining_monthly_quota("env-1", 10) == 7
        assert await limiter.get_remaining_monthly_quota("env-1", 2) == 0

    @pytest.mark.asyncio
    async def test_fail_open_reports_zero(self, failing_redis):
        service = RedisRateLimitService(failing_redis)
        assert await service.increment_monthly_usage("env-1") == 0
        assert await service.get_monthly_usage("env-1") == 0

    @pytest.mark.asyncio
    async def test_fail_closed_raises(self, failing_redis):
        service = RedisRateLimitService(failing_redis, RateLimitSettings(fail_open=False))
        with pytest.raises(ServiceUnavailableError):
            await service.get_monthly_usage("env-1")


class TestSecondaryCounters:
    """Test daily, rejected and peak counters."""

    @pytest.mark.asyncio
    async def test_daily_and_rejected(self, limiter, fake_redis, utc_clock):
        day = f"{utc_clock():%Y-%m-%d}"
        await limiter.increment_daily_usage("env-1")
        await limiter.increment_daily_usage("env-1")
        await limiter.increment_rejected_requests("env-1")

        assert await fake_redis.get(f"usage:daily:env-1:{day}") == "2"
        assert await fake_redis.get(f"usage:rejected:env-1:{day}") == "1"

    @pytest.mark.asyncio
    async def test_peak_tracks_busiest_second(self, limiter, fake_redis, clock, utc_clock):
        peak_key = f"usage:peak:env-1:{utc_clock():%Y-%m-%d}"
        for _ in range(3):
            await limiter.track_peak_burst("env-1")
        clock.advance(1)
        await limiter.track_peak_burst("env-1")

        assert await fake_redis.get(peak_key) == "3"
        assert await fake_redis.ttl(f"usage:second:env-1:{int(clock())}") == 5

    @pytest.mark.asyncio
    async def test_failures_never_raise(self, failing_redis):
        service = RedisRateLimitService(failing_redis, RateLimitSettings(fail_open=False))
        await service.increment_daily_usage("env-1")
        await service.increment_rejected_requests("env-1")
        await service.track_peak_burst("env-1")


class TestFactory:
    """Test limiter selection."""

    @pytest.mark.asyncio
    async def test_disabled_is_noop(self, fake_redis):
        service = create_rate_limit_service(RateLimitSettings(enabled=False), fake_redis)
        assert isinstance(service, NoOpRateLimitService)
        assert (await service.try_consume("env-1", 5)).allowed
        assert await service.get_monthly_usage("env-1") == 0
        assert await service.get_remaining_monthly_quota("env-1", 100) == 100

    def test_distributed_with_redis(self, fake_redis):
        service = create_rate_limit_service(RateLimitSettings(), fake_redis)
        assert isinstance(service, RedisRateLimitService)

    def test_local_when_not_distributed(self, fake_redis):
        service = create_rate_limit_service(RateLimitSettings(distributed=False), fake_redis)
        assert isinstance(service, LocalRateLimitService)

    def test_local_without_redis(self):
        assert isinstance(create_rate_limit_service(RateLimitSettings(), None), LocalRateLimitService)
