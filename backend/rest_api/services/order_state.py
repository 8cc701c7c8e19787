"""
Order status machine and order change notifications.

Every status write goes through transition_order() so statuses only move
forward: each allowed target ranks above its source, and CANCELLED / VOIDED
are never left.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from rest_api.models import Order, utcnow
from rest_api.services.events import write_change_event
from shared.config.constants import (
    ORDER_STATUS_RANK,
    ORDER_TRANSITION_ROLES,
    ORDER_TRANSITIONS,
    AggregateType,
    Channel,
    EventType,
    OrderStatus,
    PaymentStatus,
)
from shared.security.context import ActorContext
from shared.utils.exceptions import (
    InvalidTransitionError,
    OrderNotFoundError,
    UnauthorizedError,
)
from shared.utils.schemas import OrderOutput


def load_order(db: Session, ctx: ActorContext, order_id: int, *, for_update: bool = False) -> Order:
    """
    Load an order in the caller's restaurant. Orders of other restaurants
    are reported exactly like missing ones.
    """
    stmt = select(Order).where(
        Order.id == order_id,
        Order.restaurant_id == ctx.restaurant_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    order = db.scalar(stmt)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def check_transition(order: Order, to_status: str) -> None:
    from_status = order.status
    if to_status not in ORDER_TRANSITIONS.get(from_status, []):
        raise InvalidTransitionError("order", from_status, to_status, order_id=order.id)
    if ORDER_STATUS_RANK[to_status] <= ORDER_STATUS_RANK[from_status]:
        raise InvalidTransitionError("order", from_status, to_status, order_id=order.id)
    if to_status == OrderStatus.DELIVERED and order.channel != Channel.DELIVERY.value:
        raise InvalidTransitionError(
            "order", from_status, to_status,
            order_id=order.id, reason="only delivery orders can be delivered",
        )
    if to_status == OrderStatus.CLOSED and order.payment_status != PaymentStatus.PAID:
        raise InvalidTransitionError(
            "order", from_status, to_status,
            order_id=order.id, reason="orders close only once paid",
        )


def transition_order(
    order: Order,
    ctx: ActorContext,
    to_status: str,
    description: str,
    now: datetime | None = None,
) -> str:
    """
    Apply a status change after checking the machine and the caller's role.
    Returns the previous status.
    """
    allowed_roles = ORDER_TRANSITION_ROLES.get(to_status)
    if allowed_roles is not None and not ctx.has_any_role(allowed_roles):
        raise UnauthorizedError(f"move orders to {to_status}", required_roles=list(allowed_roles))
    check_transition(order, to_status)

    now = now or utcnow()
    previous = order.status
    order.status = to_status
    order.status_version = (order.status_version or 0) + 1
    if to_status == OrderStatus.CLOSED:
        order.closed_at = now
    elif to_status == OrderStatus.CANCELLED:
        order.cancelled_at = now
        order.cancelled_by = ctx.staff_id
    elif to_status == OrderStatus.VOIDED:
        order.voided_at = now
        order.voided_by = ctx.staff_id
    order.last_action_by = ctx.staff_id
    order.last_action_desc = description
    order.last_action_at = now
    return previous


def order_record(order: Order) -> OrderOutput:
    return OrderOutput.model_validate(order)


def emit_order_event(
    db: Session,
    ctx: ActorContext,
    order: Order,
    kind: str = EventType.ORDER_UPDATED,
    **extra: object,
) -> OrderOutput:
    """Queue an order change notification; returns the record it carries."""
    db.flush()
    record = order_record(order)
    payload = record.model_dump(mode="json")
    payload.update(extra)
    write_change_event(
        db, ctx,
        entity=AggregateType.ORDER,
        kind=kind,
        entity_id=order.id,
        record=payload,
    )
    return record
