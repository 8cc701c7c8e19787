"""
Channel Strategy Resolver.

A closed lookup table from Channel to its behavior. Adding a channel means
adding an enum member and a behavior class here; nothing registers at runtime.
"""

from __future__ import annotations

from typing import Final

from shared.config.constants import Channel
from shared.utils.exceptions import UnsupportedChannelError

from .base import ChannelBehavior
from .delivery import DeliveryBehavior
from .dine_in import DineInBehavior
from .reservation import ReservationBehavior
from .takeaway import TakeawayBehavior

# Seating and check-in need the concrete dine-in and reservation behaviors
DINE_IN: Final[DineInBehavior] = DineInBehavior()
RESERVATION: Final[ReservationBehavior] = ReservationBehavior()

CHANNEL_BEHAVIORS: Final[dict[Channel, ChannelBehavior]] = {
    Channel.DINE_IN: DINE_IN,
    Channel.TAKEAWAY: TakeawayBehavior(),
    Channel.DELIVERY: DeliveryBehavior(),
    Channel.RESERVATION: RESERVATION,
}


def resolve(channel: Channel | str) -> ChannelBehavior:
    """
    Behavior for a channel tag.

    Raises:
        UnsupportedChannelError: tag is not a known channel
    """
    try:
        key = channel if isinstance(channel, Channel) else Channel(channel)
    except ValueError:
        raise UnsupportedChannelError(channel) from None
    return CHANNEL_BEHAVIORS[key]
