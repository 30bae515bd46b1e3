"""Template response cache and its invalidation bus."""

from remoteconfig.cache.invalidation import (
    CacheInvalidationPublisher,
    CacheInvalidationSubscriber,
    NoOpCacheInvalidationPublisher,
    create_invalidation_publisher,
)
from remoteconfig.cache.template_cache import (
    NoOpTemplateCacheService,
    RedisTemplateCacheService,
    TemplateCacheService,
    build_cache_key,
    build_invalidation_pattern,
    create_template_cache,
    delete_by_pattern,
)

__all__ = [
    "CacheInvalidationPublisher",
    "CacheInvalidationSubscriber",
    "NoOpCacheInvalidationPublisher",
    "create_invalidation_publisher",
    "NoOpTemplateCacheService",
    "RedisTemplateCacheService",
    "TemplateCacheService",
    "build_cache_key",
    "build_invalidation_pattern",
    "create_template_cache",
    "delete_by_pattern",
]
