"""
Floor router - /api/floor/*
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rest_api.routers._common import unwrap_result
from rest_api.services.domain import FloorService
from shared.config.constants import FRONT_OF_HOUSE_ROLES, MANAGEMENT_ROLES
from shared.infrastructure.db import get_db
from shared.security.auth import current_actor, require_roles
from shared.security.context import ActorContext
from shared.utils.schemas import (
    ConsistencyViolation,
    FloorLayout,
    GuestCountUpdate,
    MergeTablesRequest,
    OrderOutput,
    SeatPartyOutput,
    SeatPartyRequest,
    TableOutput,
)

router = APIRouter(prefix="/api/floor", tags=["floor"])


@router.post("/seat", response_model=SeatPartyOutput)
def seat_party(
    body: SeatPartyRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> SeatPartyOutput:
    """
    Seat a walk-in party: best-fit table unless `table_id` is given.
    Conflicts with another terminal come back as TABLE_UNAVAILABLE (409).
    """
    return unwrap_result(
        FloorService(db).seat_party(
            ctx,
            body.guest_count,
            preferred_section_id=body.preferred_section_id,
            allow_over_capacity=body.allow_over_capacity,
            table_id=body.table_id,
            customer_name=body.customer_name,
            waiter_id=body.waiter_id,
        )
    )


@router.post("/orders/{order_id}/guests", response_model=OrderOutput)
def update_guest_count(
    order_id: int,
    body: GuestCountUpdate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> OrderOutput:
    return unwrap_result(
        FloorService(db).update_guest_count(
            ctx, order_id, body.guest_count, body.allow_over_capacity
        )
    )


@router.post("/tables/{table_id}/clean", response_model=TableOutput)
def mark_table_clean(
    table_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> TableOutput:
    return unwrap_result(FloorService(db).mark_table_clean(ctx, table_id))


@router.post("/tables/{table_id}/merge", response_model=list[TableOutput])
def merge_tables(
    table_id: int,
    body: MergeTablesRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> list[TableOutput]:
    return unwrap_result(
        FloorService(db).merge_tables(ctx, table_id, body.secondary_table_ids)
    )


@router.post("/tables/{table_id}/split", response_model=list[TableOutput])
def split_tables(
    table_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*FRONT_OF_HOUSE_ROLES)),
) -> list[TableOutput]:
    return unwrap_result(FloorService(db).split_tables(ctx, table_id))


@router.get("/layout", response_model=FloorLayout)
def get_floor_layout(
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(current_actor),
) -> FloorLayout:
    return unwrap_result(FloorService(db).get_floor_layout(ctx))


@router.get("/consistency", response_model=list[ConsistencyViolation])
def verify_consistency(
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*MANAGEMENT_ROLES)),
) -> list[ConsistencyViolation]:
    """Every table/order link that disagrees; empty when the floor is consistent."""
    return unwrap_result(FloorService(db).verify_consistency(ctx))
