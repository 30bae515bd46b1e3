"""
Template API

SDK-facing HTTP endpoints for reading resolved templates and writing
per-user overrides, plus the wiring of stores, cache, invalidation bus and
rate limiter behind them.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import redis.asyncio as redis
import uvicorn
from fastapi import APIRouter, Body, Depends, FastAPI

from remoteconfig import __version__
from remoteconfig.api.dependencies import (
    ServiceContainer,
    enforce_rate_limit,
    get_services,
    require_write_key,
)
from remoteconfig.api.errors import register_exception_handlers
from remoteconfig.cache.cleanup import NoOpRedisCleanupService, RedisCleanupService
from remoteconfig.cache.invalidation import (
    CacheInvalidationSubscriber,
    create_invalidation_publisher,
)
from remoteconfig.cache.template_cache import RedisTemplateCacheService, create_template_cache
from remoteconfig.clients.rate_limiter import create_rate_limit_service
from remoteconfig.contracts.template import TemplateValuesResponse
from remoteconfig.core.resolution import TemplateResolutionService
from remoteconfig.core.template_admin import TemplateAdminService
from remoteconfig.core.template_service import TemplateService
from remoteconfig.stores.base import ApiKeyContext, ApiKeyStore
from remoteconfig.stores.memory import InMemoryApiKeyStore, InMemoryTemplateStore
from remoteconfig.utils.logging_config import configure_structured_logging, get_logger
from remoteconfig.utils.redis_config import RedisConfig
from remoteconfig.utils.settings import Settings

logger = get_logger(__name__)

router = APIRouter(prefix="/v1/api/templates", tags=["templates"])


@router.get("/system", response_model=TemplateValuesResponse)
async def get_system_template(
    identifier: Optional[str] = None,
    context: ApiKeyContext = Depends(enforce_rate_limit),
    services: ServiceContainer = Depends(get_services),
) -> TemplateValuesResponse:
    """SYSTEM template values for the caller's environment, with an optional override."""
    merged = await services.template_service.get_merged_system_values(
        context.application_id, context.environment_id, identifier
    )
    return TemplateValuesResponse.from_merged(merged)


@router.get("/user/{user_id}", response_model=TemplateValuesResponse)
async def get_user_template(
    user_id: str,
    context: ApiKeyContext = Depends(enforce_rate_limit),
    services: ServiceContainer = Depends(get_services),
) -> TemplateValuesResponse:
    merged = await services.template_service.get_merged_user_values(
        context.application_id, context.environment_id, user_id
    )
    return TemplateValuesResponse.from_merged(merged)


@router.post("/user/{user_id}", status_code=204)
async def set_user_template_values(
    user_id: str,
    values: Dict[str, Any] = Body(...),
    context: ApiKeyContext = Depends(require_write_key),
    services: ServiceContainer = Depends(get_services),
) -> None:
    await services.template_service.set_user_values(
        context.application_id, context.environment_id, user_id, values
    )


def build_services(
    settings: Settings,
    template_store: InMemoryTemplateStore,
    api_key_store: ApiKeyStore,
    redis_client: Optional[redis.Redis],
    redis_config: Optional[RedisConfig] = None,
) -> ServiceContainer:
    """Wire the components the settings ask for around one Redis client."""
    cache = create_template_cache(settings.cache, redis_client)
    publisher = create_invalidation_publisher(settings.invalidation, redis_client)
    rate_limiter = create_rate_limit_service(settings.rate_limit, redis_client)

    subscriber = None
    if (
        settings.invalidation.enabled
        and redis_client is not None
        and isinstance(cache, RedisTemplateCacheService)
    ):
        subscriber = CacheInvalidationSubscriber(
            redis_client,
            cache,
            channel=settings.invalidation.channel,
            fail_open=settings.invalidation.fail_open,
            reconnect_delay=settings.invalidation.reconnect_delay_seconds,
            max_reconnect_delay=settings.invalidation.max_reconnect_delay_seconds,
        )

    cleanup = (
        RedisCleanupService(redis_client, settings.cache.scan_batch_size)
        if redis_client is not None
        else NoOpRedisCleanupService()
    )

    resolution = TemplateResolutionService(template_store, template_store)
    return ServiceContainer(
        settings=settings,
        template_service=TemplateService(resolution, template_store, cache, publisher),
        admin_service=TemplateAdminService(template_store, template_store, publisher, cleanup),
        rate_limiter=rate_limiter,
        api_key_store=api_key_store,
        subscriber=subscriber,
        redis_config=redis_config,
    )


def create_app(
    settings: Optional[Settings] = None,
    template_store: Optional[InMemoryTemplateStore] = None,
    api_key_store: Optional[ApiKeyStore] = None,
    redis_client: Optional[redis.Redis] = None,
) -> FastAPI:
    """Create the template API.

    An injected ``redis_client`` is owned by the caller. Without one, a client
    is created from ``settings.redis`` (when enabled) and closed on shutdown.
    """
    settings = settings or Settings()
    configure_structured_logging(settings.log_level, settings.json_logs)

    redis_config = None
    if redis_client is None and settings.redis.enabled:
        redis_config = RedisConfig(settings.redis)
        redis_client = redis_config.create_client()

    services = build_services(
        settings,
        template_store or InMemoryTemplateStore(),
        api_key_store or InMemoryApiKeyStore(),
        redis_client,
        redis_config,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting service", service=settings.service_name)
        try:
            if services.subscriber is not None:
                await services.subscriber.start()
            yield
        finally:
            if services.subscriber is not None:
                await services.subscriber.stop()
            if services.redis_config is not None:
                await services.redis_config.close()
            logger.info("Service stopped", service=settings.service_name)

    app = FastAPI(
        title="Remote Config API",
        description="Template resolution for feature flags and remote configuration",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services
    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        redis_healthy = None
        if services.redis_config is not None:
            redis_healthy = await services.redis_config.health_check()
        return {
            "status": "healthy",
            "service": settings.service_name,
            "redis": redis_healthy,
            "invalidation_subscribed": (
                services.subscriber.is_subscribed if services.subscriber is not None else False
            ),
        }

    return app


def run() -> None:
    """Serve the API with uvicorn, configured from the environment."""
    settings = Settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
