"""
Event sink: the publish-only side of real-time fan-out.

The core never waits for acknowledgement. The outbox processor hands each
committed change to an EventSink; the production sink publishes to Redis.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

import redis.asyncio as redis

from shared.config.constants import EventType
from shared.config.logging import get_logger
from shared.config.settings import settings
from .channels import channel_entity, channel_kitchen
from .event_schema import ChangeEvent
from .redis_pool import get_redis_pool

logger = get_logger(__name__)

# Event kinds that kitchen displays also receive
KITCHEN_EVENT_KINDS = frozenset({EventType.KITCHEN_ORDER_FIRED, EventType.ITEM_STATUS_CHANGED})


class EventSink(Protocol):
    """Anything that can accept a change notification."""

    async def publish(self, event: ChangeEvent) -> int:
        """Push the event; returns the number of receivers when known."""
        ...


async def publish_event(redis_client: redis.Redis, channel: str, event: ChangeEvent) -> int:
    """
    Publish an event to a Redis channel, retrying with linear backoff.

    Raises the last error once retries are exhausted.
    """
    event_json = event.to_json()
    last_error: Exception | None = None
    for attempt in range(settings.redis_publish_max_retries):
        try:
            return await redis_client.publish(channel, event_json)
        except redis.RedisError as e:
            last_error = e
            if attempt < settings.redis_publish_max_retries - 1:
                delay = settings.redis_publish_retry_delay * (attempt + 1)
                logger.warning(
                    "Redis publish failed, retrying",
                    channel=channel,
                    kind=event.kind,
                    attempt=attempt + 1,
                    delay_seconds=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

    logger.error("Redis publish failed after all retries", channel=channel, kind=event.kind)
    raise last_error  # type: ignore[misc]


class RedisEventSink:
    """Publishes change events to per-restaurant Redis channels."""

    def __init__(self, client: redis.Redis | None = None):
        self._client = client

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis_pool()
        return self._client

    async def publish(self, event: ChangeEvent) -> int:
        client = await self._get_client()
        receivers = await publish_event(
            client, channel_entity(event.restaurant_id, event.entity), event
        )
        if event.kind in KITCHEN_EVENT_KINDS:
            receivers += await publish_event(client, channel_kitchen(event.restaurant_id), event)
        return receivers
