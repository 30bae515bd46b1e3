"""
Template Response Cache

Redis-backed read-through cache of resolved template values. Keys have the
form ``template:cache:{app}:{env}:{type}:{identifier}``. Every write carries
a TTL: invalidation is pattern based and best effort, so expiry is what
eventually clears entries whose invalidation message was missed.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional, Union

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError

from remoteconfig.contracts.cache import CacheInvalidationEvent, CacheInvalidationType
from remoteconfig.contracts.template import MergedTemplateValues, TemplateType
from remoteconfig.utils.exceptions import ServiceUnavailableError
from remoteconfig.utils.logging_config import get_logger
from remoteconfig.utils.redis_config import REDIS_ERRORS
from remoteconfig.utils.settings import CacheSettings

logger = get_logger(__name__)

CACHE_KEY_PREFIX = "template:cache:"
DEFAULT_SCAN_BATCH_SIZE = 100

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")
_GLOB_ESCAPE = re.compile(r"\\(.)")


def _type_value(template_type: Union[TemplateType, str]) -> str:
    return TemplateType(template_type).value


def build_cache_key(
    app_id: str,
    env_id: str,
    template_type: Union[TemplateType, str],
    identifier: Optional[str],
) -> str:
    """Cache key for one resolved response. ``None`` and ``""`` identifiers share a key."""
    return (
        f"{CACHE_KEY_PREFIX}{app_id}:{env_id}:{_type_value(template_type)}:"
        f"{identifier if identifier is not None else ''}"
    )


def escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so ``value`` only matches itself."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def has_wildcard(pattern: str) -> bool:
    """Whether ``pattern`` contains an unescaped glob metacharacter."""
    escaped = False
    for char in pattern:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char in "*?[":
            return True
    return False


def build_invalidation_pattern(event: CacheInvalidationEvent) -> str:
    """Key pattern covering every cache entry an event makes stale.

    Concrete parts are glob-escaped, so the result is always a valid SCAN
    ``MATCH`` pattern.
    """
    app_id = escape_glob(event.app_id)
    env_id = escape_glob(event.env_id) if event.env_id is not None else "*"
    template_type = _type_value(event.template_type)

    if event.type is CacheInvalidationType.SCHEMA_CHANGE:
        # Defaults changed for every environment and identifier.
        return f"{CACHE_KEY_PREFIX}{app_id}:*:{template_type}:*"

    if event.type is CacheInvalidationType.OVERRIDE_CHANGE:
        if event.identifier is not None:
            identifier = escape_glob(event.identifier)
            return f"{CACHE_KEY_PREFIX}{app_id}:{env_id}:{template_type}:{identifier}"
        # A default-layer change affects every identifier layered on top of it.
        return f"{CACHE_KEY_PREFIX}{app_id}:{env_id}:{template_type}:*"

    identifier = escape_glob(event.identifier) if event.identifier is not None else "*"
    return f"{CACHE_KEY_PREFIX}{app_id}:{env_id}:{TemplateType.USER.value}:{identifier}"


async def delete_by_pattern(
    redis_client: redis.Redis,
    pattern: str,
    batch_size: int = DEFAULT_SCAN_BATCH_SIZE,
) -> int:
    """Delete keys matching ``pattern`` and return how many were removed.

    Patterns without a wildcard name a single key and are deleted directly.
    Otherwise keys are walked with SCAN in pages of ``batch_size`` and deleted
    page by page, so the server is never blocked by a KEYS call.
    """
    if not has_wildcard(pattern):
        return int(await redis_client.delete(_GLOB_ESCAPE.sub(r"\1", pattern)) or 0)

    deleted = 0
    cursor = 0
    while True:
        cursor, keys = await redis_client.scan(cursor=cursor, match=pattern, count=batch_size)
        if keys:
            deleted += int(await redis_client.delete(*keys) or 0)
        if int(cursor) == 0:
            break
    return deleted


class TemplateCacheService(ABC):
    """Cache of resolved template responses."""

    @abstractmethod
    async def get(
        self,
        app_id: str,
        env_id: str,
        template_type: TemplateType,
        identifier: Optional[str],
    ) -> Optional[MergedTemplateValues]:
        """Cached response, or ``None`` on a miss."""

    @abstractmethod
    async def put(
        self,
        app_id: str,
        env_id: str,
        template_type: TemplateType,
        identifier: Optional[str],
        value: MergedTemplateValues,
    ) -> None:
        """Store a response with the configured TTL."""

    @abstractmethod
    async def invalidate(self, event: CacheInvalidationEvent) -> int:
        """Delete entries made stale by ``event``; returns the number deleted."""


class RedisTemplateCacheService(TemplateCacheService):
    """Redis implementation with fail-open reads and writes."""

    def __init__(self, redis_client: redis.Redis, settings: Optional[CacheSettings] = None):
        self.redis = redis_client
        self.settings = settings or CacheSettings()
        logger.info(
            "Template cache initialized",
            ttl_seconds=self.settings.ttl_seconds,
            fail_open=self.settings.fail_open,
        )

    async def get(
        self,
        app_id: str,
        env_id: str,
        template_type: TemplateType,
        identifier: Optional[str],
    ) -> Optional[MergedTemplateValues]:
        key = build_cache_key(app_id, env_id, template_type, identifier)
        try:
            payload = await self.redis.get(key)
        except REDIS_ERRORS as e:
            self._on_backend_error("Cache read failed", key, e)
            return None

        if payload is None:
            logger.debug("Cache miss", key=key)
            return None

        try:
            value = MergedTemplateValues.model_validate_json(payload)
        except (PydanticValidationError, ValueError) as e:
            logger.warning("Discarding malformed cache entry", key=key, error=str(e))
            return None

        logger.debug("Cache hit", key=key)
        return value

    async def put(
        self,
        app_id: str,
        env_id: str,
        template_type: TemplateType,
        identifier: Optional[str],
        value: MergedTemplateValues,
    ) -> None:
        key = build_cache_key(app_id, env_id, template_type, identifier)
        try:
            payload = value.model_dump_json(by_alias=True)
        except (PydanticValidationError, ValueError, TypeError) as e:
            logger.warning("Cache write skipped, value not serializable", key=key, error=str(e))
            return

        try:
            await self.redis.setex(key, self.settings.ttl_seconds, payload)
        except REDIS_ERRORS as e:
            self._on_backend_error("Cache write failed", key, e)
            return

        logger.debug("Cache put", key=key, ttl_seconds=self.settings.ttl_seconds)

    async def invalidate(self, event: CacheInvalidationEvent) -> int:
        pattern = build_invalidation_pattern(event)
        try:
            deleted = await delete_by_pattern(
                self.redis, pattern, batch_size=self.settings.scan_batch_size
            )
        except REDIS_ERRORS as e:
            # TTL expiry still bounds staleness.
            logger.warning(
                "Cache invalidation failed", pattern=pattern, event_type=event.type.value, error=str(e)
            )
            return 0

        logger.info(
            "Cache invalidated", pattern=pattern, deleted=deleted, event_type=event.type.value
        )
        return deleted

    def _on_backend_error(self, message: str, key: str, error: Exception) -> None:
        if self.settings.fail_open:
            logger.warning(message, key=key, error=str(error))
            return
        logger.error(message, key=key, error=str(error), fail_open=False)
        raise ServiceUnavailableError("Template cache unavailable") from error


class NoOpTemplateCacheService(TemplateCacheService):
    """Used when caching is disabled: always misses, drops writes."""

    def __init__(self):
        logger.info("Template cache is disabled, every request resolves from the stores")

    async def get(
        self,
        app_id: str,
        env_id: str,
        template_type: TemplateType,
        identifier: Optional[str],
    ) -> Optional[MergedTemplateValues]:
        return None

    async def put(
        self,
        app_id: str,
        env_id: str,
        template_type: TemplateType,
        identifier: Optional[str],
        value: MergedTemplateValues,
    ) -> None:
        return None

    async def invalidate(self, event: CacheInvalidationEvent) -> int:
        return 0


def create_template_cache(
    settings: CacheSettings, redis_client: Optional[redis.Redis]
) -> TemplateCacheService:
    """Pick the cache implementation the settings ask for."""
    if not settings.enabled or redis_client is None:
        return NoOpTemplateCacheService()
    return RedisTemplateCacheService(redis_client, settings)
