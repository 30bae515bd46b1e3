"""Service configuration, loaded from environment variables."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from remoteconfig.contracts.cache import INVALIDATION_CHANNEL

DEFAULT_CACHE_TTL_SECONDS = 300


class RedisSettings(BaseSettings):
    """Redis connection settings shared by cache, limiter and pub/sub."""

    model_config = SettingsConfigDict(env_prefix="REMOTECONFIG_REDIS_")

    enabled: bool = True
    url: str = "redis://localhost:6379/0"
    socket_timeout_seconds: float = 2.0
    socket_connect_timeout_seconds: float = 2.0


class CacheSettings(BaseSettings):
    """Template response cache settings."""

    model_config = SettingsConfigDict(env_prefix="REMOTECONFIG_CACHE_")

    enabled: bool = True
    ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    fail_open: bool = True
    scan_batch_size: int = Field(100, gt=0)

    @field_validator("ttl_seconds")
    @classmethod
    def normalize_ttl(cls, v: int) -> int:
        # Entries are never written without an expiry.
        return v if v > 0 else DEFAULT_CACHE_TTL_SECONDS


class RateLimitSettings(BaseSettings):
    """Rate limiting and usage tracking settings."""

    model_config = SettingsConfigDict(env_prefix="REMOTECONFIG_RATE_LIMIT_")

    enabled: bool = True
    distributed: bool = True
    fail_open: bool = True
    default_requests_per_second: int = Field(1000, gt=0)
    default_requests_per_month: int = Field(1_000_000, gt=0)


class InvalidationSettings(BaseSettings):
    """Cache invalidation pub/sub settings."""

    model_config = SettingsConfigDict(env_prefix="REMOTECONFIG_INVALIDATION_")

    enabled: bool = True
    fail_open: bool = True
    channel: str = INVALIDATION_CHANNEL
    reconnect_delay_seconds: float = Field(1.0, gt=0)
    max_reconnect_delay_seconds: float = Field(30.0, gt=0)


class Settings(BaseSettings):
    """Top-level service settings."""

    model_config = SettingsConfigDict(env_prefix="REMOTECONFIG_")

    service_name: str = "remoteconfig-api"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    json_logs: bool = True

    redis: RedisSettings = Field(default_factory=RedisSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    invalidation: InvalidationSettings = Field(default_factory=InvalidationSettings)
