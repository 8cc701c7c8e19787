"""
Redis channel naming for change notifications.

    pos:<restaurant_id>:<entity>     every terminal of the restaurant
    pos:<restaurant_id>:kitchen      kitchen displays
"""

from __future__ import annotations

from shared.config.settings import settings


def _validate_positive_id(id_value: int, name: str) -> None:
    if not isinstance(id_value, int) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value}")


def channel_entity(restaurant_id: int, entity: str) -> str:
    """Channel carrying changes of one entity type inside a restaurant."""
    _validate_positive_id(restaurant_id, "restaurant_id")
    if not entity:
        raise ValueError("entity must be a non-empty string")
    return f"{settings.event_channel_prefix}:{restaurant_id}:{entity}"


def channel_kitchen(restaurant_id: int) -> str:
    """Channel for kitchen displays."""
    _validate_positive_id(restaurant_id, "restaurant_id")
    return f"{settings.event_channel_prefix}:{restaurant_id}:kitchen"
