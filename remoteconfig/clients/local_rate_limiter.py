"""
In-process rate limiting.

Each process keeps its own bucket per environment, so the effective limit
across N instances is N times the configured rate. Used when Redis is not
available or distributed limiting is switched off.
"""

import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from remoteconfig.clients.rate_limiter import (
    USAGE_DAILY_KEY_PREFIX,
    USAGE_PEAK_KEY_PREFIX,
    USAGE_REJECTED_KEY_PREFIX,
    RateLimitResult,
    RateLimitService,
    daily_key,
    monthly_usage_key,
    utc_now,
)
from remoteconfig.utils.logging_config import get_logger
from remoteconfig.utils.settings import RateLimitSettings

logger = get_logger(__name__)


@dataclass
class TokenBucketState:
    tokens: float
    last_refill: float


class LocalTokenBucket:
    """Token bucket refilled continuously from a monotonic clock."""

    def __init__(
        self,
        capacity: int,
        refill_per_second: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if refill_per_second <= 0:
            raise ValueError("refill_per_second must be positive")
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self.clock = clock
        self.state = TokenBucketState(tokens=float(capacity), last_refill=clock())
        self._lock = threading.Lock()

    def try_consume(self) -> RateLimitResult:
        with self._lock:
            self._refill(self.clock())
            if self.state.tokens >= 1:
                self.state.tokens -= 1
                return RateLimitResult.allow(int(math.floor(self.state.tokens)))

            missing = 1 - self.state.tokens
            return RateLimitResult.deny(math.ceil(missing / self.refill_per_second * 1000))

    def available_tokens(self) -> float:
        with self._lock:
            self._refill(self.clock())
            return self.state.tokens

    def _refill(self, now: float) -> None:
        elapsed = now - self.state.last_refill
        if elapsed <= 0:
            return
        self.state.tokens = min(
            float(self.capacity), self.state.tokens + elapsed * self.refill_per_second
        )
        self.state.last_refill = now


class LocalBucketRegistry:
    """Buckets by key, created on first use."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._buckets: Dict[str, LocalTokenBucket] = {}
        self._lock = threading.Lock()

    def get_or_create(self, key: str, requests_per_second: int) -> LocalTokenBucket:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                rate = max(1, int(requests_per_second))
                bucket = LocalTokenBucket(rate, float(rate), clock=self.clock)
                self._buckets[key] = bucket
            return bucket

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)


@dataclass
class EnvironmentUsage:
    """Usage counters of one environment for the current month and day."""
    month: str = ""
    day: str = ""
    monthly: int = 0
    daily: int = 0
    rejected: int = 0
    peak: int = 0
    second: int = -1
    second_count: int = 0

    def roll(self, now: datetime) -> None:
        """Reset the counters whose period has ended."""
        month = f"{now:%Y-%m}"
        if month != self.month:
            self.month = month
            self.monthly = 0
        day = f"{now:%Y-%m-%d}"
        if day != self.day:
            self.day = day
            self.daily = 0
            self.rejected = 0
            self.peak = 0


class LocalRateLimitService(RateLimitService):
    """Per-process limiter with in-memory usage counters.

    Only the current month and day are kept per environment, so memory stays
    proportional to the number of environments seen.
    """

    def __init__(
        self,
        registry: Optional[LocalBucketRegistry] = None,
        settings: Optional[RateLimitSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry or LocalBucketRegistry()
        self.settings = settings or RateLimitSettings()
        self.clock = clock
        self._usage: Dict[str, EnvironmentUsage] = {}
        self._lock = threading.Lock()
        logger.info("Initialized local rate limiting")

    async def try_consume(self, environment_id: str, requests_per_second: int) -> RateLimitResult:
        return self.registry.get_or_create(environment_id, requests_per_second).try_consume()

    async def increment_monthly_usage(self, environment_id: str) -> int:
        with self._lock:
            usage = self._current(environment_id, self.clock())
            usage.monthly += 1
            return usage.monthly

    async def get_monthly_usage(self, environment_id: str) -> int:
        with self._lock:
            return self._current(environment_id, self.clock()).monthly

    async def increment_daily_usage(self, environment_id: str) -> None:
        with self._lock:
            self._current(environment_id, self.clock()).daily += 1

    async def increment_rejected_requests(self, environment_id: str) -> None:
        with self._lock:
            self._current(environment_id, self.clock()).rejected += 1

    async def track_peak_burst(self, environment_id: str) -> None:
        now = self.clock()
        second = int(now.timestamp())
        with self._lock:
            usage = self._current(environment_id, now)
            if second != usage.second:
                usage.second = second
                usage.second_count = 0
            usage.second_count += 1
            usage.peak = max(usage.peak, usage.second_count)

    def snapshot(self) -> Dict[str, int]:
        """Live counters keyed the way the Redis limiter stores them."""
        now = self.clock()
        counters = {}
        with self._lock:
            for environment_id in self._usage:
                usage = self._current(environment_id, now)
                counters[monthly_usage_key(environment_id, now)] = usage.monthly
                counters[daily_key(USAGE_DAILY_KEY_PREFIX, environment_id, now)] = usage.daily
                counters[daily_key(USAGE_REJECTED_KEY_PREFIX, environment_id, now)] = usage.rejected
                counters[daily_key(USAGE_PEAK_KEY_PREFIX, environment_id, now)] = usage.peak
        return counters

    def get_counter(self, key: str) -> int:
        return self.snapshot().get(key, 0)

    def _current(self, environment_id: str, now: datetime) -> EnvironmentUsage:
        usage = self._usage.get(environment_id)
        if usage is None:
            usage = self._usage[environment_id] = EnvironmentUsage()
        usage.roll(now)
        return usage
