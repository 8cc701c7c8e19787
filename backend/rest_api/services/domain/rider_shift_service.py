"""
Rider Shift Domain Service.

A shift opens with a cash float and closes by counting the cash the rider
hands back. At close:

    expected   = opening float + totals of the shift's delivered, unsettled orders
    difference = received - expected

Both are stored on the shift. A difference is recorded and audited, never
rejected.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rest_api.models import Order, RiderShift, Staff, Transaction, utcnow
from rest_api.services.audit import log_action
from rest_api.services.events import write_change_event
from shared.config.constants import (
    AggregateType,
    AuditAction,
    EventType,
    OrderStatus,
    PaymentMethod,
    Roles,
    ShiftStatus,
    TransactionKind,
)
from shared.config.logging import rider_logger as logger
from shared.infrastructure.transaction import TransactionCoordinator
from shared.security.context import ActorContext
from shared.utils.exceptions import (
    ShiftAlreadyClosedError,
    ShiftAlreadyOpenError,
    ShiftNotFoundError,
    ValidationError,
)
from shared.utils.result import OperationResult
from shared.utils.schemas import RiderShiftOutput, ShiftMetrics

from .accounting_service import AccountingService


def shift_expected_cash(opening_float_cents: int, delivered_totals: list[int]) -> int:
    return opening_float_cents + sum(delivered_totals)


class RiderShiftService:
    """
    Domain service for rider shifts and their cash reconciliation.
    """

    def __init__(self, db: Session):
        self._db = db
        self._accounting = AccountingService(db)

    # =========================================================================
    # Queries shared with dispatch
    # =========================================================================

    def open_shift_for(self, restaurant_id: int, rider_id: int) -> RiderShift | None:
        return self._db.scalar(
            select(RiderShift).where(
                RiderShift.restaurant_id == restaurant_id,
                RiderShift.rider_id == rider_id,
                RiderShift.status == ShiftStatus.OPEN,
            )
        )

    def unsettled_orders(self, shift: RiderShift, *, for_update: bool = False) -> list[Order]:
        """Delivered orders of this shift the rider still holds cash for."""
        stmt = (
            select(Order)
            .where(
                Order.restaurant_id == shift.restaurant_id,
                Order.rider_shift_id == shift.id,
                Order.assigned_driver_id == shift.rider_id,
                Order.status == OrderStatus.DELIVERED,
                Order.is_settled_with_rider.is_(False),
            )
            .order_by(Order.id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return list(self._db.scalars(stmt))

    def _load_shift(self, ctx: ActorContext, shift_id: int, *, for_update: bool = False) -> RiderShift:
        stmt = select(RiderShift).where(
            RiderShift.id == shift_id,
            RiderShift.restaurant_id == ctx.restaurant_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        shift = self._db.scalar(stmt)
        if shift is None:
            raise ShiftNotFoundError(shift_id)
        return shift

    def _emit(self, ctx: ActorContext, shift: RiderShift, kind: str) -> RiderShiftOutput:
        self._db.flush()
        record = RiderShiftOutput.model_validate(shift)
        write_change_event(
            self._db, ctx,
            entity=AggregateType.RIDER_SHIFT,
            kind=kind,
            entity_id=shift.id,
            record=record.model_dump(mode="json"),
        )
        return record

    # =========================================================================
    # Open / close
    # =========================================================================

    def open_shift(
        self,
        ctx: ActorContext,
        rider_id: int,
        opening_float_cents: int = 0,
        notes: str | None = None,
        opened_by: int | None = None,
    ) -> OperationResult[RiderShiftOutput]:
        return TransactionCoordinator(self._db).run(
            "open_shift",
            lambda: self._open_shift(ctx, rider_id, opening_float_cents, notes, opened_by),
            rider_id=rider_id,
        )

    def _open_shift(
        self,
        ctx: ActorContext,
        rider_id: int,
        opening_float_cents: int,
        notes: str | None,
        opened_by: int | None,
    ) -> RiderShiftOutput:
        if opening_float_cents < 0:
            raise ValidationError(
                "Opening float cannot be negative", opening_float_cents=opening_float_cents
            )
        # Locking the rider row serializes concurrent opens for the same rider
        rider = self._db.scalar(
            select(Staff)
            .where(
                Staff.id == rider_id,
                Staff.restaurant_id == ctx.restaurant_id,
            )
            .with_for_update()
        )
        if rider is None or not rider.is_active or rider.role != Roles.RIDER:
            raise ValidationError("Not an active rider", rider_id=rider_id)

        existing = self.open_shift_for(ctx.restaurant_id, rider_id)
        if existing is not None:
            raise ShiftAlreadyOpenError(rider_id, existing.id)

        shift = RiderShift(
            restaurant_id=ctx.restaurant_id,
            rider_id=rider_id,
            opened_by=opened_by or ctx.staff_id,
            opened_at=utcnow(),
            opening_float_cents=opening_float_cents,
            status=ShiftStatus.OPEN,
            notes=notes,
        )
        self._db.add(shift)
        self._db.flush()
        self._accounting.record_float(ctx, rider_id, opening_float_cents, shift.id)

        logger.info(
            "Shift opened",
            shift_id=shift.id,
            rider_id=rider_id,
            opening_float_cents=opening_float_cents,
        )
        return self._emit(ctx, shift, EventType.SHIFT_OPENED)

    def close_shift(
        self,
        ctx: ActorContext,
        shift_id: int,
        closing_cash_received_cents: int,
        notes: str | None = None,
        closed_by: int | None = None,
    ) -> OperationResult[RiderShiftOutput]:
        return TransactionCoordinator(self._db).run(
            "close_shift",
            lambda: self._close_shift(ctx, shift_id, closing_cash_received_cents, notes, closed_by),
            shift_id=shift_id,
        )

    def _close_shift(
        self,
        ctx: ActorContext,
        shift_id: int,
        received: int,
        notes: str | None,
        closed_by: int | None,
    ) -> RiderShiftOutput:
        if received < 0:
            raise ValidationError(
                "Closing cash cannot be negative", closing_cash_received_cents=received
            )
        shift = self._load_shift(ctx, shift_id, for_update=True)
        if shift.status == ShiftStatus.CLOSED:
            raise ShiftAlreadyClosedError(shift_id)

        orders = self.unsettled_orders(shift, for_update=True)
        expected = shift_expected_cash(
            shift.opening_float_cents, [o.total_cents for o in orders]
        )
        difference = received - expected
        reference = f"shift-{shift.id}"

        if received:
            self._db.add(
                Transaction(
                    restaurant_id=ctx.restaurant_id,
                    order_id=None,
                    amount_cents=received,
                    method=PaymentMethod.CASH,
                    kind=TransactionKind.RIDER_SETTLEMENT,
                    reference=reference,
                    processed_by=ctx.staff_id,
                )
            )
        self._accounting.record_courier_handover(
            ctx, shift.rider_id, orders, received, reference,
            float_cents=shift.opening_float_cents, shift_id=shift.id,
        )
        self._accounting.settle_rider_orders(ctx, orders, f"Settled at shift close ({shift.id})")

        shift.closing_cash_received_cents = received
        shift.expected_cash_cents = expected
        shift.cash_difference_cents = difference
        shift.status = ShiftStatus.CLOSED
        shift.closed_at = utcnow()
        shift.closed_by = closed_by or ctx.staff_id
        if notes:
            shift.notes = f"{shift.notes}\n{notes}" if shift.notes else notes

        if difference:
            log_action(
                self._db, ctx,
                action_type=AuditAction.SHIFT_VARIANCE,
                entity_type=AggregateType.RIDER_SHIFT,
                entity_id=shift.id,
                rider_id=shift.rider_id,
                expected_cents=expected,
                received_cents=received,
                difference_cents=difference,
            )
            logger.warning(
                "Shift closed with cash variance",
                shift_id=shift.id,
                rider_id=shift.rider_id,
                expected_cents=expected,
                received_cents=received,
                difference_cents=difference,
            )
        else:
            logger.info("Shift closed", shift_id=shift.id, rider_id=shift.rider_id)
        return self._emit(ctx, shift, EventType.SHIFT_CLOSED)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_active_shift(
        self, ctx: ActorContext, rider_id: int
    ) -> OperationResult[RiderShiftOutput | None]:
        def work() -> RiderShiftOutput | None:
            shift = self.open_shift_for(ctx.restaurant_id, rider_id)
            return RiderShiftOutput.model_validate(shift) if shift else None

        return TransactionCoordinator(self._db).run("get_active_shift", work, rider_id=rider_id)

    def get_shift_metrics(self, ctx: ActorContext, shift_id: int) -> OperationResult[ShiftMetrics]:
        """Order counts and cash position of a shift."""

        def work() -> ShiftMetrics:
            shift = self._load_shift(ctx, shift_id)
            rows = self._db.execute(
                select(Order.status, Order.is_settled_with_rider, func.count(), func.sum(Order.total_cents))
                .where(
                    Order.restaurant_id == ctx.restaurant_id,
                    Order.rider_shift_id == shift.id,
                )
                .group_by(Order.status, Order.is_settled_with_rider)
            ).all()

            assigned = delivered = pending = 0
            delivered_total = unsettled_total = 0
            for status, settled, count, total in rows:
                total = int(total or 0)
                if status in (OrderStatus.CANCELLED, OrderStatus.VOIDED):
                    continue
                assigned += count
                if status == OrderStatus.DELIVERED or settled:
                    delivered += count
                    delivered_total += total
                    if status == OrderStatus.DELIVERED and not settled:
                        unsettled_total += total
                else:
                    pending += count

            return ShiftMetrics(
                shift_id=shift.id,
                rider_id=shift.rider_id,
                status=shift.status,
                assigned_orders=assigned,
                delivered_orders=delivered,
                pending_orders=pending,
                delivered_total_cents=delivered_total,
                unsettled_total_cents=unsettled_total,
                expected_liability_cents=shift_expected_cash(
                    shift.opening_float_cents, [unsettled_total]
                )
                if shift.status == ShiftStatus.OPEN
                else 0,
            )

        return TransactionCoordinator(self._db).run("get_shift_metrics", work, shift_id=shift_id)
