"""
Riders router - /api/riders/*

Shift open/close, what a rider owes, and cash settlements.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from rest_api.routers._common import unwrap_result
from rest_api.services.domain import AccountingService, DispatchService, RiderShiftService
from shared.config.constants import CASH_HANDLING_ROLES
from shared.config.settings import settings
from shared.infrastructure.db import get_db
from shared.security.auth import current_actor, require_roles
from shared.security.context import ActorContext
from shared.security.rate_limit import limiter
from shared.utils.schemas import (
    CloseShiftRequest,
    CourierBalance,
    CourierReconciliation,
    OpenShiftRequest,
    PendingSettlement,
    RiderSettlementOutput,
    RiderSettlementRequest,
    RiderShiftOutput,
    ShiftMetrics,
)

router = APIRouter(prefix="/api/riders", tags=["riders"])


# =============================================================================
# Shifts
# =============================================================================


@router.post("/shifts/open", response_model=RiderShiftOutput)
def open_shift(
    body: OpenShiftRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*CASH_HANDLING_ROLES)),
) -> RiderShiftOutput:
    return unwrap_result(
        RiderShiftService(db).open_shift(
            ctx, body.rider_id, body.opening_float_cents, notes=body.notes
        )
    )


@router.post("/shifts/close", response_model=RiderShiftOutput)
@limiter.limit(settings.settlement_rate_limit)
def close_shift(
    request: Request,
    body: CloseShiftRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*CASH_HANDLING_ROLES)),
) -> RiderShiftOutput:
    """
    Count the rider's cash and close the shift. A cash difference is stored
    on the shift, never rejected.
    """
    return unwrap_result(
        RiderShiftService(db).close_shift(
            ctx, body.shift_id, body.closing_cash_received_cents, notes=body.notes
        )
    )


@router.get("/shifts/{shift_id}/metrics", response_model=ShiftMetrics)
def get_shift_metrics(
    shift_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(current_actor),
) -> ShiftMetrics:
    return unwrap_result(RiderShiftService(db).get_shift_metrics(ctx, shift_id))


# =============================================================================
# Per rider
# =============================================================================


@router.get("/{rider_id}/active-shift", response_model=RiderShiftOutput | None)
def get_active_shift(
    rider_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(current_actor),
) -> RiderShiftOutput | None:
    return unwrap_result(RiderShiftService(db).get_active_shift(ctx, rider_id))


@router.get("/{rider_id}/pending-settlement", response_model=PendingSettlement)
def get_pending_settlement(
    rider_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(current_actor),
) -> PendingSettlement:
    return unwrap_result(DispatchService(db).get_pending_settlement(ctx, rider_id))


@router.get("/{rider_id}/balance", response_model=CourierBalance)
def get_courier_cash_balance(
    rider_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(current_actor),
) -> CourierBalance:
    return unwrap_result(AccountingService(db).get_courier_cash_balance(ctx, rider_id))


@router.get("/{rider_id}/reconcile", response_model=CourierReconciliation)
def reconcile_courier_balance(
    rider_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*CASH_HANDLING_ROLES)),
) -> CourierReconciliation:
    return unwrap_result(AccountingService(db).reconcile_courier_balance(ctx, rider_id))


@router.post("/{rider_id}/settle", response_model=RiderSettlementOutput)
@limiter.limit(settings.settlement_rate_limit)
def record_rider_settlement(
    request: Request,
    rider_id: int,
    body: RiderSettlementRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*CASH_HANDLING_ROLES)),
) -> RiderSettlementOutput:
    """
    Settle delivered orders with the cash a rider hands in. A repeated
    `settlement_id` fails with ALREADY_SETTLED (409).
    """
    return unwrap_result(
        AccountingService(db).record_rider_settlement(
            ctx,
            rider_id,
            body.amount_received_cents,
            body.order_ids,
            body.settlement_id,
        )
    )
