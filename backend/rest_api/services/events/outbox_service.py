"""
Outbox service for transactional change notifications.

Usage inside a unit of work:
    1. Apply the business change (claim table, close order, ...)
    2. Call write_change_event() with the same db session
    3. The TransactionCoordinator commits both together

Example:
    order.status = OrderStatus.CLOSED
    write_change_event(
        db, ctx,
        entity=AggregateType.ORDER,
        kind=EventType.ORDER_SETTLED,
        entity_id=order.id,
        record={"status": order.status, "total_cents": order.total_cents},
    )

If the unit rolls back, the event rolls back with it: notifications exist
only for committed changes.
"""

import json
from typing import Any

from sqlalchemy.orm import Session

from rest_api.models import OutboxEvent, OutboxStatus
from shared.config.logging import get_logger
from shared.security.context import ActorContext

logger = get_logger(__name__)


def write_outbox_event(
    db: Session,
    restaurant_id: int,
    event_type: str,
    aggregate_type: str,
    aggregate_id: int,
    payload: dict[str, Any],
) -> OutboxEvent:
    """
    Write an event to the outbox table.

    MUST be called within the same transaction as the business operation.

    Args:
        db: SQLAlchemy session (same session as business operation)
        restaurant_id: Scope of the change; selects the Redis channel
        event_type: EventType constant
        aggregate_type: AggregateType constant ("order", "table", ...)
        aggregate_id: ID of the aggregate
        payload: Event payload as dict (will be JSON serialized)

    Returns:
        The created OutboxEvent instance
    """
    outbox_event = OutboxEvent(
        restaurant_id=restaurant_id,
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        payload=json.dumps(payload, default=str),
        status=OutboxStatus.PENDING,
        retry_count=0,
    )
    db.add(outbox_event)
    # Don't flush/commit - let the caller control the transaction
    logger.debug(
        "Outbox event queued",
        event_type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
    )
    return outbox_event


def write_change_event(
    db: Session,
    ctx: ActorContext,
    *,
    entity: str,
    kind: str,
    entity_id: int,
    record: dict[str, Any],
) -> OutboxEvent:
    """
    Queue a change notification `{entity, kind, record}` attributed to the caller.
    """
    return write_outbox_event(
        db=db,
        restaurant_id=ctx.restaurant_id,
        event_type=kind,
        aggregate_type=entity,
        aggregate_id=entity_id,
        payload={
            "record": record,
            "actor": {"staff_id": ctx.staff_id, "role": ctx.role},
        },
    )
