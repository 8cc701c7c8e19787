"""
Delivery Dispatch Domain Service.

Hands delivery orders to riders on an open shift and books the sale when
the order reaches the customer. Revenue is recognised at delivery, against
the rider's COURIER account; the cash handover later only clears that
account.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from rest_api.models import ensure_utc, utcnow
from rest_api.services.audit import log_action
from rest_api.services.order_state import emit_order_event, load_order, transition_order
from shared.config.constants import (
    AggregateType,
    AuditAction,
    Channel,
    EventType,
    OrderStatus,
)
from shared.config.logging import rider_logger as logger
from shared.infrastructure.transaction import TransactionCoordinator
from shared.security.context import ActorContext
from shared.utils.exceptions import InvalidTransitionError, ValidationError
from shared.utils.result import OperationResult
from shared.utils.schemas import OrderOutput, PendingSettlement

from .accounting_service import AccountingService
from .rider_shift_service import RiderShiftService, shift_expected_cash


class DispatchService:
    """
    Domain service for rider assignment and delivery confirmation.
    """

    def __init__(self, db: Session):
        self._db = db
        self._accounting = AccountingService(db)
        self._shifts = RiderShiftService(db)

    def assign_driver(
        self, ctx: ActorContext, order_id: int, driver_id: int
    ) -> OperationResult[OrderOutput]:
        return TransactionCoordinator(self._db).run(
            "assign_driver",
            lambda: self._assign_driver(ctx, order_id, driver_id),
            order_id=order_id,
            driver_id=driver_id,
        )

    def _assign_driver(self, ctx: ActorContext, order_id: int, driver_id: int) -> OrderOutput:
        order = load_order(self._db, ctx, order_id, for_update=True)
        if order.channel != Channel.DELIVERY.value:
            raise ValidationError(
                "Only delivery orders can be dispatched",
                order_id=order.id,
                channel=order.channel,
            )
        if order.assigned_driver_id is not None:
            raise InvalidTransitionError(
                "order", order.status, OrderStatus.READY,
                order_id=order.id,
                reason="order already has a rider",
                assigned_driver_id=order.assigned_driver_id,
            )
        shift = self._shifts.open_shift_for(ctx.restaurant_id, driver_id)
        if shift is None:
            raise ValidationError("Rider has no open shift", driver_id=driver_id)

        now = utcnow()
        if order.status != OrderStatus.READY:
            transition_order(order, ctx, OrderStatus.READY, f"Dispatched to rider {driver_id}", now)
        order.assigned_driver_id = driver_id
        order.rider_shift_id = shift.id
        order.delivery.driver_id = driver_id
        order.delivery.dispatched_at = now

        log_action(
            self._db, ctx,
            action_type=AuditAction.DRIVER_ASSIGNED,
            entity_type=AggregateType.ORDER,
            entity_id=order.id,
            driver_id=driver_id,
            shift_id=shift.id,
        )
        logger.info("Rider assigned", order_id=order.id, driver_id=driver_id, shift_id=shift.id)
        return emit_order_event(self._db, ctx, order, EventType.DRIVER_ASSIGNED)

    def mark_delivered(self, ctx: ActorContext, order_id: int) -> OperationResult[OrderOutput]:
        return TransactionCoordinator(self._db).run(
            "mark_delivered",
            lambda: self._mark_delivered(ctx, order_id),
            order_id=order_id,
        )

    def _mark_delivered(self, ctx: ActorContext, order_id: int) -> OrderOutput:
        order = load_order(self._db, ctx, order_id, for_update=True)
        if order.assigned_driver_id is None:
            raise ValidationError("Order has no rider assigned", order_id=order.id)

        now = utcnow()
        transition_order(order, ctx, OrderStatus.DELIVERED, "Delivered", now)
        extension = order.delivery
        extension.delivered_at = now
        if extension.dispatched_at is not None:
            elapsed = now - ensure_utc(extension.dispatched_at)
            extension.delivery_duration_minutes = max(0, int(elapsed.total_seconds() // 60))
        self._accounting.record_order_sale(order, processed_by=ctx.staff_id)

        log_action(
            self._db, ctx,
            action_type=AuditAction.ORDER_DELIVERED,
            entity_type=AggregateType.ORDER,
            entity_id=order.id,
            driver_id=order.assigned_driver_id,
            duration_minutes=extension.delivery_duration_minutes,
        )
        logger.info(
            "Order delivered",
            order_id=order.id,
            driver_id=order.assigned_driver_id,
            duration_minutes=extension.delivery_duration_minutes,
        )
        return emit_order_event(self._db, ctx, order, EventType.ORDER_DELIVERED)

    def get_pending_settlement(
        self, ctx: ActorContext, rider_id: int
    ) -> OperationResult[PendingSettlement]:
        """Delivered, unsettled orders of the rider's open shift."""

        def work() -> PendingSettlement:
            shift = self._shifts.open_shift_for(ctx.restaurant_id, rider_id)
            if shift is None:
                return PendingSettlement(
                    rider_id=rider_id,
                    order_count=0,
                    total_cents=0,
                    opening_float_cents=0,
                    expected_cash_cents=0,
                )
            orders = self._shifts.unsettled_orders(shift)
            totals = [o.total_cents for o in orders]
            return PendingSettlement(
                rider_id=rider_id,
                shift_id=shift.id,
                orders=[OrderOutput.model_validate(o) for o in orders],
                order_count=len(orders),
                total_cents=sum(totals),
                opening_float_cents=shift.opening_float_cents,
                expected_cash_cents=shift_expected_cash(shift.opening_float_cents, totals),
            )

        return TransactionCoordinator(self._db).run(
            "get_pending_settlement", work, rider_id=rider_id
        )
