"""
Cache Invalidation Bus

The write side publishes one event per mutation on a Redis pub/sub channel;
every read-side process subscribes and deletes the matching cache keys.
Delivery is best effort. A lost message only delays consistency until the
entry's TTL expires, so neither side lets a Redis failure break its caller.
"""

import asyncio
import contextlib
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError

from remoteconfig.cache.template_cache import TemplateCacheService
from remoteconfig.contracts.cache import (
    INVALIDATION_CHANNEL,
    CacheInvalidationEvent,
    CacheInvalidationType,
)
from remoteconfig.contracts.template import TemplateType
from remoteconfig.utils.exceptions import ServiceUnavailableError
from remoteconfig.utils.logging_config import get_logger
from remoteconfig.utils.redis_config import REDIS_ERRORS
from remoteconfig.utils.settings import InvalidationSettings

logger = get_logger(__name__)


class CacheInvalidationPublisher:
    """Publishes invalidation events for template mutations."""

    def __init__(
        self,
        redis_client: redis.Redis,
        channel: str = INVALIDATION_CHANNEL,
        fail_open: bool = True,
    ):
        self.redis = redis_client
        self.channel = channel
        self.fail_open = fail_open
        logger.info("Cache invalidation publisher initialized", channel=channel)

    async def publish_schema_change(self, app_id: str, template_type: TemplateType) -> None:
        """Schema changed: every environment and identifier of the type is stale."""
        await self.publish(
            CacheInvalidationEvent(
                type=CacheInvalidationType.SCHEMA_CHANGE,
                app_id=app_id,
                env_id=None,
                template_type=template_type,
                identifier=None,
            )
        )

    async def publish_override_change(
        self,
        app_id: str,
        env_id: Optional[str],
        template_type: TemplateType,
        identifier: Optional[str],
    ) -> None:
        await self.publish(
            CacheInvalidationEvent(
                type=CacheInvalidationType.OVERRIDE_CHANGE,
                app_id=app_id,
                env_id=env_id,
                template_type=template_type,
                identifier=identifier,
            )
        )

    async def publish_user_change(
        self, app_id: str, env_id: Optional[str], user_id: Optional[str]
    ) -> None:
        await self.publish(
            CacheInvalidationEvent(
                type=CacheInvalidationType.USER_CHANGE,
                app_id=app_id,
                env_id=env_id,
                template_type=TemplateType.USER,
                identifier=user_id,
            )
        )

    async def publish_environment_deleted(self, app_id: str, env_id: str) -> None:
        """Clear both template types for a deleted environment."""
        for template_type in (TemplateType.SYSTEM, TemplateType.USER):
            await self.publish_override_change(app_id, env_id, template_type, None)

    async def publish(self, event: CacheInvalidationEvent) -> int:
        """Send one event. Returns the number of subscribers that received it."""
        try:
            message = event.to_message()
        except (PydanticValidationError, ValueError, TypeError) as e:
            logger.warning("Failed to serialize cache invalidation event", error=str(e))
            return 0

        try:
            receivers = await self.redis.publish(self.channel, message)
        except REDIS_ERRORS as e:
            if not self.fail_open:
                logger.error(
                    "Failed to publish cache invalidation", event_type=event.type.value, error=str(e)
                )
                raise ServiceUnavailableError("Cache invalidation bus unavailable") from e
            logger.warning(
                "Failed to publish cache invalidation", event_type=event.type.value, error=str(e)
            )
            return 0

        logger.debug(
            "Published cache invalidation",
            event_type=event.type.value,
            app_id=event.app_id,
            env_id=event.env_id,
            template_type=event.template_type.value,
            identifier=event.identifier,
            receivers=receivers,
        )
        return int(receivers or 0)


class NoOpCacheInvalidationPublisher(CacheInvalidationPublisher):
    """Used when Redis is disabled on the write side; publishes nothing."""

    def __init__(self):
        self.redis = None
        self.channel = INVALIDATION_CHANNEL
        self.fail_open = True
        logger.info("Cache invalidation publisher is disabled, no events will be sent")

    async def publish(self, event: CacheInvalidationEvent) -> int:
        return 0


class CacheInvalidationSubscriber:
    """Listens on the invalidation channel and applies events to the local cache.

    ``start`` and ``stop`` each take effect at most once; use the instance as
    an async context manager so ``stop`` runs on every exit path. A connection
    lost after a successful start is re-established with exponential backoff
    until ``stop`` is called.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        cache_service: TemplateCacheService,
        channel: str = INVALIDATION_CHANNEL,
        fail_open: bool = True,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
    ):
        self.redis = redis_client
        self.cache_service = cache_service
        self.channel = channel
        self.fail_open = fail_open
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None
        self._started = False
        self._stopped = False

    @property
    def is_subscribed(self) -> bool:
        return (
            self._pubsub is not None
            and not self._stopped
            and self._listener is not None
            and not self._listener.done()
        )

    async def start(self) -> bool:
        """Subscribe and begin listening. Returns whether the subscription is live.

        A failed subscribe leaves the process running in degraded mode, with TTL
        expiry as the only consistency mechanism, unless ``fail_open`` is off.
        """
        if self._started:
            return self.is_subscribed
        self._started = True

        try:
            pubsub = await self._subscribe()
        except REDIS_ERRORS as e:
            if not self.fail_open:
                logger.error(
                    "Failed to subscribe to cache invalidation channel",
                    channel=self.channel,
                    error=str(e),
                )
                raise ServiceUnavailableError("Cache invalidation bus unavailable") from e
            logger.error(
                "Failed to subscribe to cache invalidation channel, relying on TTL expiry",
                channel=self.channel,
                error=str(e),
            )
            return False

        self._pubsub = pubsub
        self._listener = asyncio.create_task(self._listen(), name="cache-invalidation-listener")
        logger.info("Subscribed to cache invalidation channel", channel=self.channel)
        return True

    async def stop(self) -> None:
        """Unsubscribe and release the connection. Teardown errors are logged only."""
        if self._stopped:
            return
        self._stopped = True

        if self._listener is not None:
            self._listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener
            self._listener = None

        if self._pubsub is None:
            return
        try:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
            logger.info("Unsubscribed from cache invalidation channel", channel=self.channel)
        except REDIS_ERRORS as e:
            logger.warning("Error during unsubscribe", channel=self.channel, error=str(e))
        finally:
            self._pubsub = None

    async def __aenter__(self) -> "CacheInvalidationSubscriber":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def handle_message(self, message) -> None:
        """Apply one raw channel message. Bad messages are logged and dropped."""
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            event = CacheInvalidationEvent.from_message(message)
        except (PydanticValidationError, ValueError, TypeError) as e:
            logger.warning(
                "Failed to process cache invalidation message", message=message, error=str(e)
            )
            return

        logger.debug(
            "Received cache invalidation",
            channel=self.channel,
            event_type=event.type.value,
            app_id=event.app_id,
        )
        try:
            await self.cache_service.invalidate(event)
        except Exception as e:
            logger.warning(
                "Cache invalidation handler failed", event_type=event.type.value, error=str(e)
            )

    async def _subscribe(self):
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(self.channel)
        except BaseException:
            with contextlib.suppress(*REDIS_ERRORS):
                await pubsub.aclose()
            raise
        return pubsub

    async def _release_pubsub(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is not None:
            with contextlib.suppress(*REDIS_ERRORS):
                await pubsub.aclose()

    async def _listen(self) -> None:
        delay = self.reconnect_delay
        while True:
            try:
                async for message in self._pubsub.listen():
                    delay = self.reconnect_delay
                    if message.get("type") != "message":
                        continue
                    await self.handle_message(message.get("data"))
                logger.warning("Cache invalidation subscription closed", channel=self.channel)
            except REDIS_ERRORS as e:
                logger.error(
                    "Cache invalidation subscription lost, relying on TTL expiry until resubscribed",
                    channel=self.channel,
                    error=str(e),
                )
            await self._release_pubsub()

            while self._pubsub is None:
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_reconnect_delay)
                try:
                    self._pubsub = await self._subscribe()
                except REDIS_ERRORS as e:
                    logger.warning(
                        "Failed to resubscribe to cache invalidation channel",
                        channel=self.channel,
                        error=str(e),
                        retry_in_seconds=delay,
                    )
            logger.info("Resubscribed to cache invalidation channel", channel=self.channel)


def create_invalidation_publisher(
    settings: InvalidationSettings, redis_client: Optional[redis.Redis]
) -> CacheInvalidationPublisher:
    if not settings.enabled or redis_client is None:
        return NoOpCacheInvalidationPublisher()
    return CacheInvalidationPublisher(redis_client, settings.channel, settings.fail_open)
