"""
Takeaway channel: orders are called by a daily token (T-1, T-2, ...).
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rest_api.models import Order, TakeawayOrder, utcnow
from shared.config.constants import DEFAULT_CUSTOMER_NAME, TAKEAWAY_TOKEN_PREFIX, Channel
from shared.security.context import ActorContext
from shared.utils.schemas import OrderInput, OrderPatch

from .base import ChannelBehavior


def next_token_seq(db: Session, restaurant_id: int, business_date: date) -> int:
    """
    Next token number for the day. Two terminals racing for the same number
    collide on uq_takeaway_daily_token; the coordinator re-runs the loser.
    """
    current = db.scalar(
        select(func.max(TakeawayOrder.token_seq)).where(
            TakeawayOrder.restaurant_id == restaurant_id,
            TakeawayOrder.business_date == business_date,
        )
    )
    return (current or 0) + 1


class TakeawayBehavior(ChannelBehavior):
    channel = Channel.TAKEAWAY

    def create_extension(
        self, db: Session, ctx: ActorContext, order: Order, data: OrderInput
    ) -> None:
        today = utcnow().date()
        seq = next_token_seq(db, ctx.restaurant_id, today)
        if not order.customer_name:
            order.customer_name = DEFAULT_CUSTOMER_NAME
        order.takeaway = TakeawayOrder(
            restaurant_id=ctx.restaurant_id,
            business_date=today,
            token_seq=seq,
            token_number=f"{TAKEAWAY_TOKEN_PREFIX}{seq}",
            customer_name=order.customer_name,
            customer_phone=data.customer_phone,
            pickup_time=data.pickup_time,
        )

    def update_extension(
        self, db: Session, ctx: ActorContext, order: Order, patch: OrderPatch
    ) -> None:
        given = patch.model_fields_set
        extension = order.takeaway
        if "customer_name" in given:
            extension.customer_name = patch.customer_name or DEFAULT_CUSTOMER_NAME
            order.customer_name = extension.customer_name
        if "customer_phone" in given:
            extension.customer_phone = patch.customer_phone
        if "pickup_time" in given:
            extension.pickup_time = patch.pickup_time
