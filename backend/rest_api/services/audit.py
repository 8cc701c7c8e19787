"""
Audit logging service.
Records policy overrides and sensitive order/floor/cash actions.
"""

import json
from typing import Any

from sqlalchemy.orm import Session

from rest_api.models import AuditLog
from shared.security.context import ActorContext


def log_action(
    db: Session,
    ctx: ActorContext,
    *,
    action_type: str,
    entity_type: str,
    entity_id: int,
    **details: Any,
) -> AuditLog:
    """
    Record an audited action taken by the caller.

    Args:
        db: Database session (the caller's unit of work)
        ctx: Caller identity; supplies restaurant and staff ids
        action_type: AuditAction constant
        entity_type: "order", "table", "rider_shift"
        entity_id: ID of the entity
        **details: Numbers and reasons worth keeping (capacity, guest_count, variance)

    Returns:
        Created AuditLog entry
    """
    entry = AuditLog(
        restaurant_id=ctx.restaurant_id,
        staff_id=ctx.staff_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        details=json.dumps(details, default=str) if details else None,
    )
    db.add(entry)
    # Don't commit here - let the caller handle the transaction
    return entry
