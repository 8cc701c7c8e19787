"""
Orders router - /api/orders/*

Thin controller over the order lifecycle and dispatch services. Role gates
here are coarse; finer rules (who may void) are enforced by the services.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from rest_api.routers._common import unwrap_result
from rest_api.services.domain import DispatchService, OrderLifecycleService
from shared.config.constants import (
    CASH_HANDLING_ROLES,
    FRONT_OF_HOUSE_ROLES,
    KITCHEN_ACCESS_ROLES,
    MANAGEMENT_ROLES,
)
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import current_actor, require_roles
from shared.security.context import ActorContext
from shared.security.rate_limit import limiter
from shared.utils.schemas import (
    AssignDriverRequest,
    CheckInRequest,
    ItemStatusUpdate,
    OrderInput,
    OrderOutput,
    OrderPatch,
    ReasonRequest,
    SettleRequest,
)

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("/upsert", response_model=OrderOutput)
def upsert_order(
    body: OrderInput,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> OrderOutput:
    """Create an order, or update it when `id` is given."""
    return unwrap_result(OrderLifecycleService(db).upsert_order(ctx, body))


@router.get("/{order_id}", response_model=OrderOutput)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(current_actor),
) -> OrderOutput:
    return unwrap_result(OrderLifecycleService(db).get_order(ctx, order_id))


@router.patch("/{order_id}", response_model=OrderOutput)
def update_order(
    order_id: int,
    body: OrderPatch,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> OrderOutput:
    return unwrap_result(OrderLifecycleService(db).update_order(ctx, order_id, body))


@router.post("/{order_id}/activate", response_model=OrderOutput)
def activate_order(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> OrderOutput:
    return unwrap_result(OrderLifecycleService(db).activate_order(ctx, order_id))


@router.post("/{order_id}/fire", response_model=OrderOutput)
def fire_to_kitchen(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> OrderOutput:
    return unwrap_result(OrderLifecycleService(db).fire_to_kitchen(ctx, order_id))


@router.post("/{order_id}/items/{item_id}/status", response_model=OrderOutput)
def update_item_status(
    order_id: int,
    item_id: int,
    body: ItemStatusUpdate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*KITCHEN_ACCESS_ROLES)),
) -> OrderOutput:
    return unwrap_result(
        OrderLifecycleService(db).update_item_status(ctx, order_id, item_id, body.status)
    )


@router.post("/{order_id}/ready", response_model=OrderOutput)
def mark_ready(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*KITCHEN_ACCESS_ROLES)),
) -> OrderOutput:
    return unwrap_result(OrderLifecycleService(db).mark_ready(ctx, order_id))


@router.post("/{order_id}/settle", response_model=OrderOutput)
@limiter.limit(settings.settlement_rate_limit)
def settle(
    request: Request,
    order_id: int,
    body: SettleRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*CASH_HANDLING_ROLES)),
) -> OrderOutput:
    """
    Take payment and close the order. Replays of the same settle fail with
    ALREADY_SETTLED (409) and never record revenue twice.
    """
    return unwrap_result(
        OrderLifecycleService(db).settle(ctx, order_id, body.amount_cents, body.method)
    )


@router.post("/{order_id}/cancel", response_model=OrderOutput)
def cancel_order(
    order_id: int,
    body: ReasonRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(current_actor),
) -> OrderOutput:
    return unwrap_result(OrderLifecycleService(db).cancel_order(ctx, order_id, body.reason))


@router.post("/{order_id}/void", response_model=OrderOutput)
def void_order(
    order_id: int,
    body: ReasonRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(current_actor),
) -> OrderOutput:
    """Managers only; other roles get UNAUTHORIZED (403)."""
    return unwrap_result(OrderLifecycleService(db).void_order(ctx, order_id, body.reason))


@router.post("/{order_id}/check-in", response_model=OrderOutput)
def check_in_reservation(
    order_id: int,
    body: CheckInRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> OrderOutput:
    return unwrap_result(
        OrderLifecycleService(db).check_in_reservation(
            ctx, order_id, body.guest_count, body.allow_over_capacity
        )
    )


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*MANAGEMENT_ROLES)),
) -> None:
    unwrap_result(OrderLifecycleService(db).delete_order(ctx, order_id))


# =============================================================================
# Dispatch
# =============================================================================


@router.post("/{order_id}/assign-driver", response_model=OrderOutput)
def assign_driver(
    order_id: int,
    body: AssignDriverRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> OrderOutput:
    return unwrap_result(DispatchService(db).assign_driver(ctx, order_id, body.driver_id))


@router.post("/{order_id}/mark-delivered", response_model=OrderOutput)
def mark_delivered(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(current_actor),
) -> OrderOutput:
    return unwrap_result(DispatchService(db).mark_delivered(ctx, order_id))
