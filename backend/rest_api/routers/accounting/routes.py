"""
Accounting router - /api/accounting/*
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from rest_api.routers._common import unwrap_result
from rest_api.services.domain import AccountingService
from shared.config.constants import CASH_HANDLING_ROLES, MANAGEMENT_ROLES, Limits
from shared.infrastructure.db import get_db
from shared.security.auth import require_roles
from shared.security.context import ActorContext
from shared.utils.schemas import (
    AccountBalance,
    CustomerAggregate,
    LedgerEntryOutput,
    PayoutOutput,
    PayoutRequest,
)

router = APIRouter(prefix="/api/accounting", tags=["accounting"])


@router.post("/payouts", response_model=PayoutOutput)
def record_payout(
    body: PayoutRequest,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*CASH_HANDLING_ROLES)),
) -> PayoutOutput:
    return unwrap_result(
        AccountingService(db).record_payout(ctx, body.amount_cents, body.category, body.notes)
    )


@router.get("/ledger", response_model=list[LedgerEntryOutput])
def get_recent_ledger(
    limit: int = Query(default=Limits.DEFAULT_PAGE_SIZE, ge=1, le=Limits.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*MANAGEMENT_ROLES)),
) -> list[LedgerEntryOutput]:
    return unwrap_result(AccountingService(db).get_recent_ledger(ctx, limit))


@router.get("/balance", response_model=AccountBalance)
def get_account_balance(
    account: str,
    account_id: int | None = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*MANAGEMENT_ROLES)),
) -> AccountBalance:
    """DEBIT minus CREDIT of one ledger account (COURIER takes the rider id)."""
    return unwrap_result(AccountingService(db).get_account_balance(ctx, account, account_id))


@router.get("/customers", response_model=list[CustomerAggregate])
def get_customer_aggregates(
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_roles(*MANAGEMENT_ROLES)),
) -> list[CustomerAggregate]:
    return unwrap_result(AccountingService(db).get_customer_aggregates(ctx))
