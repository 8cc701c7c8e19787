"""
Order channel behaviors.

    from rest_api.services.channels import resolve

    behavior = resolve(order.channel)
    behavior.fire_to_kitchen(db, ctx, order)
"""

from .base import ChannelBehavior, ValidationContext, compute_total, stamp
from .dine_in import DineInBehavior
from .takeaway import TakeawayBehavior
from .delivery import DeliveryBehavior
from .reservation import ReservationBehavior
from .resolver import CHANNEL_BEHAVIORS, DINE_IN, RESERVATION, resolve

__all__ = [
    "ChannelBehavior",
    "ValidationContext",
    "compute_total",
    "stamp",
    "DineInBehavior",
    "TakeawayBehavior",
    "DeliveryBehavior",
    "ReservationBehavior",
    "CHANNEL_BEHAVIORS",
    "DINE_IN",
    "RESERVATION",
    "resolve",
]
