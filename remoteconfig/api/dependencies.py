"""Request dependencies: service lookup, API key auth and rate limiting."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request, Response

from remoteconfig.cache.invalidation import CacheInvalidationSubscriber
from remoteconfig.clients.rate_limiter import RateLimitService
from remoteconfig.core.template_admin import TemplateAdminService
from remoteconfig.core.template_service import TemplateService
from remoteconfig.stores.base import ApiKeyContext, ApiKeyStore
from remoteconfig.utils.exceptions import (
    AuthenticationError,
    AuthorizationError,
    RateLimitExceededError,
)
from remoteconfig.utils.hashing import hash_api_key
from remoteconfig.utils.logging_config import get_logger
from remoteconfig.utils.redis_config import RedisConfig
from remoteconfig.utils.settings import Settings

logger = get_logger(__name__)

API_KEY_HEADER = "X-API-Key"


@dataclass
class ServiceContainer:
    """Everything a request handler needs, built once per application."""
    settings: Settings
    template_service: TemplateService
    admin_service: TemplateAdminService
    rate_limiter: RateLimitService
    api_key_store: ApiKeyStore
    subscriber: Optional[CacheInvalidationSubscriber] = None
    redis_config: Optional[RedisConfig] = None


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def require_api_key(
    services: ServiceContainer = Depends(get_services),
    api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER),
) -> ApiKeyContext:
    if not api_key or not api_key.strip():
        raise AuthenticationError()

    context = await services.api_key_store.find_by_hash(hash_api_key(api_key.strip()))
    if context is None:
        logger.info("Rejected unknown API key")
        raise AuthenticationError()
    return context


async def enforce_rate_limit(
    response: Response,
    services: ServiceContainer = Depends(get_services),
    context: ApiKeyContext = Depends(require_api_key),
) -> ApiKeyContext:
    """Admit the request against the environment's bucket and count it.

    Sets the rate-limit and monthly usage headers on admitted responses.
    """
    limiter = services.rate_limiter
    environment_id = context.environment_id
    limit = context.rate_limit_per_second

    result = await limiter.try_consume(environment_id, limit)
    if not result.allowed:
        await limiter.increment_rejected_requests(environment_id)
        logger.info(
            "Request rate limited",
            environment_id=environment_id,
            retry_after_millis=result.retry_after_millis,
        )
        raise RateLimitExceededError(
            "Rate limit exceeded. Please retry later.",
            retry_after_millis=result.retry_after_millis,
            limit=limit,
        )

    monthly_usage = await limiter.increment_monthly_usage(environment_id)
    await limiter.increment_daily_usage(environment_id)
    await limiter.track_peak_burst(environment_id)

    response.headers["X-RateLimit-Limit"] = str(limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining_tokens)
    response.headers["X-Monthly-Usage"] = str(monthly_usage)
    response.headers["X-Monthly-Limit"] = str(context.requests_per_month)
    return context


async def require_write_key(
    context: ApiKeyContext = Depends(enforce_rate_limit),
) -> ApiKeyContext:
    if not context.can_write:
        raise AuthorizationError("This operation requires a WRITE API key")
    return context
