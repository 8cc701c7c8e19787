"""
Change notifications via Redis pub/sub.

- event_schema.py: ChangeEvent dataclass with validation
- channels.py: channel naming
- redis_pool.py: async and sync connection pools
- publisher.py: EventSink protocol and the Redis sink
"""

from .event_schema import ChangeEvent, MAX_EVENT_SIZE
from .channels import channel_entity, channel_kitchen
from .redis_pool import (
    get_redis_pool,
    get_redis_sync_client,
    close_redis_pool,
    close_redis_sync_client,
)
from .publisher import EventSink, RedisEventSink, publish_event

__all__ = [
    "ChangeEvent",
    "MAX_EVENT_SIZE",
    "channel_entity",
    "channel_kitchen",
    "get_redis_pool",
    "get_redis_sync_client",
    "close_redis_pool",
    "close_redis_sync_client",
    "EventSink",
    "RedisEventSink",
    "publish_event",
]
