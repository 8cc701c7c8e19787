"""
Dine-in channel: the order occupies a table for its whole life.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from rest_api.models import DineInOrder, Order, Table, utcnow
from rest_api.services.audit import log_action
from rest_api.services.table_sync import TableSync
from shared.config.constants import AuditAction, Channel, Limits, TableStatus
from shared.config.logging import floor_logger as logger
from shared.config.settings import settings
from shared.security.context import ActorContext
from shared.utils.exceptions import CapacityExceededError, ValidationError
from shared.utils.schemas import OrderInput, OrderPatch

from .base import ChannelBehavior, ValidationContext


def resolve_over_capacity(allow: bool | None) -> bool:
    return settings.allow_over_capacity_default if allow is None else allow


class DineInBehavior(ChannelBehavior):
    channel = Channel.DINE_IN

    def field_errors(self, fields: dict[str, Any], context: str) -> list[str]:
        errors = []
        if not fields.get("table_id"):
            errors.append("table_id is required for DINE_IN")
        guest_count = fields.get("guest_count")
        if guest_count is None:
            if context == ValidationContext.FIRE:
                errors.append("guest_count is required for DINE_IN")
        elif guest_count < Limits.MIN_GUEST_COUNT:
            errors.append("guest_count must be at least 1")
        return errors

    def extension_fields(self, order: Order) -> dict[str, Any]:
        if order.dine_in is None:
            return {}
        return {"table_id": order.dine_in.table_id, "guest_count": order.dine_in.guest_count}

    # =========================================================================
    # Guest count / capacity
    # =========================================================================

    def check_capacity(
        self,
        db: Session,
        ctx: ActorContext,
        order: Order,
        table: Table,
        guest_count: int,
        allow_over_capacity: bool | None,
    ) -> bool:
        """
        Returns True when the party is over the (merged) table capacity and
        the override is allowed; raises CapacityExceededError otherwise.
        """
        capacity = TableSync(db, ctx).group_capacity(table)
        if guest_count <= capacity:
            return False
        if not resolve_over_capacity(allow_over_capacity):
            raise CapacityExceededError(capacity, guest_count, table_id=table.id)
        log_action(
            db, ctx,
            action_type=AuditAction.GUEST_OVER_CAPACITY,
            entity_type="order",
            entity_id=order.id,
            table_id=table.id,
            capacity=capacity,
            guest_count=guest_count,
        )
        logger.info(
            "Seating over capacity",
            order_id=order.id,
            table_id=table.id,
            capacity=capacity,
            guest_count=guest_count,
        )
        return True

    def record_guest_count(
        self,
        ctx: ActorContext,
        extension: DineInOrder,
        guest_count: int,
        capacity: int,
        over_capacity: bool,
    ) -> None:
        extension.guest_count = guest_count
        extension.is_over_capacity = over_capacity
        extension.append_history({
            "count": guest_count,
            "capacity": capacity,
            "over_capacity": over_capacity,
            "staff_id": ctx.staff_id,
            "timestamp": utcnow().isoformat(),
        })

    def change_guest_count(
        self,
        db: Session,
        ctx: ActorContext,
        order: Order,
        new_count: int,
        allow_over_capacity: bool | None,
    ) -> bool:
        """
        Re-check capacity for a new party size, append history, audit
        reductions. Returns the over-capacity flag.
        """
        if new_count < Limits.MIN_GUEST_COUNT:
            raise ValidationError("guest_count must be at least 1", guest_count=new_count)
        extension = order.dine_in
        sync = TableSync(db, ctx)
        table = sync.get_table(order.table_id)
        old_count = extension.guest_count

        over = self.check_capacity(db, ctx, order, table, new_count, allow_over_capacity)
        if new_count < old_count:
            log_action(
                db, ctx,
                action_type=AuditAction.GUEST_COUNT_REDUCTION,
                entity_type="order",
                entity_id=order.id,
                old_count=old_count,
                new_count=new_count,
            )
        self.record_guest_count(ctx, extension, new_count, sync.group_capacity(table), over)
        order.guest_count = new_count
        return over

    # =========================================================================
    # Extension
    # =========================================================================

    def create_extension(
        self, db: Session, ctx: ActorContext, order: Order, data: OrderInput
    ) -> None:
        self.seat(db, ctx, order, data.table_id, data.guest_count or 1, data.waiter_id,
                  data.allow_over_capacity)

    def seat(
        self,
        db: Session,
        ctx: ActorContext,
        order: Order,
        table_id: int,
        guest_count: int,
        waiter_id: int | None,
        allow_over_capacity: bool | None,
        expected_status: str = TableStatus.AVAILABLE,
    ) -> DineInOrder:
        """Claim the table for the order and create the dine-in row."""
        sync = TableSync(db, ctx)
        table = sync.get_table(table_id)
        over = self.check_capacity(db, ctx, order, table, guest_count, allow_over_capacity)
        sync.claim(table, order, expected=expected_status)

        order.table_id = table.id
        order.guest_count = guest_count
        extension = DineInOrder(
            table_id=table.id,
            guest_count=guest_count,
            waiter_id=waiter_id,
            seated_at=utcnow(),
        )
        self.record_guest_count(ctx, extension, guest_count, sync.group_capacity(table), over)
        order.dine_in = extension
        return extension

    def update_extension(
        self, db: Session, ctx: ActorContext, order: Order, patch: OrderPatch
    ) -> None:
        given = patch.model_fields_set
        extension = order.dine_in

        if "table_id" in given and patch.table_id != order.table_id:
            sync = TableSync(db, ctx)
            new_table = sync.get_table(patch.table_id)
            count = patch.guest_count if patch.guest_count is not None else extension.guest_count
            over = self.check_capacity(
                db, ctx, order, new_table, count, patch.allow_over_capacity
            )
            # No service happened at the old table
            old_table = sync.get_table(order.table_id)
            sync.release(old_table, TableStatus.AVAILABLE, force=True)
            sync.claim(new_table, order)
            order.table_id = new_table.id
            extension.table_id = new_table.id
            if count < extension.guest_count:
                log_action(
                    db, ctx,
                    action_type=AuditAction.GUEST_COUNT_REDUCTION,
                    entity_type="order",
                    entity_id=order.id,
                    old_count=extension.guest_count,
                    new_count=count,
                )
            self.record_guest_count(ctx, extension, count, sync.group_capacity(new_table), over)
            order.guest_count = count
        elif patch.guest_count is not None and patch.guest_count != extension.guest_count:
            self.change_guest_count(db, ctx, order, patch.guest_count, patch.allow_over_capacity)

        if "waiter_id" in given:
            extension.waiter_id = patch.waiter_id

    # =========================================================================
    # Resource side effects
    # =========================================================================

    def _table(self, db: Session, ctx: ActorContext, order: Order) -> tuple[TableSync, Table | None]:
        sync = TableSync(db, ctx)
        if order.table_id is None:
            return sync, None
        return sync, sync.get_table(order.table_id)

    def on_ready(self, db: Session, ctx: ActorContext, order: Order) -> None:
        sync, table = self._table(db, ctx, order)
        if table is not None and table.active_order_id == order.id:
            sync.request_payment(table)

    def on_closed(self, db: Session, ctx: ActorContext, order: Order) -> None:
        sync, table = self._table(db, ctx, order)
        if table is not None and table.active_order_id == order.id:
            sync.release(table, TableStatus.DIRTY)

    def on_terminated(self, db: Session, ctx: ActorContext, order: Order) -> None:
        self.on_closed(db, ctx, order)

    def on_deleted(self, db: Session, ctx: ActorContext, order: Order) -> None:
        sync, table = self._table(db, ctx, order)
        if table is not None and table.active_order_id == order.id:
            sync.release(table, TableStatus.AVAILABLE, force=True)
