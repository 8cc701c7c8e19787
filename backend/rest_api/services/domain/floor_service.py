"""
Table / Floor Domain Service.

Seating, guest counts, table merges and the floor view. Table status
itself is only written through TableSync; this service decides which table
and which transition.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from rest_api.models import Order, Section, Table
from rest_api.services.audit import log_action
from rest_api.services.channels import DINE_IN, stamp
from rest_api.services.channels.dine_in import resolve_over_capacity
from rest_api.services.order_state import emit_order_event, load_order
from rest_api.services.table_sync import TableSync
from shared.config.constants import (
    DEFAULT_CUSTOMER_NAME,
    AggregateType,
    AuditAction,
    Channel,
    EventType,
    Limits,
    OrderStatus,
    TableStatus,
)
from shared.config.logging import floor_logger as logger
from shared.infrastructure.transaction import TransactionCoordinator
from shared.security.context import ActorContext
from shared.utils.exceptions import (
    CapacityExceededError,
    InvalidTransitionError,
    NoTableAvailableError,
    TableUnavailableError,
    ValidationError,
)
from shared.utils.result import OperationResult
from shared.utils.schemas import (
    ConsistencyViolation,
    FloorLayout,
    OrderInput,
    OrderOutput,
    SeatPartyOutput,
    SectionLayout,
    TableOutput,
)

from .order_lifecycle_service import OrderLifecycleService


def pick_table(
    tables: list[Table],
    guest_count: int,
    preferred_section_id: int | None,
    allow_over_capacity: bool,
) -> Table:
    """
    Best fit among free tables: the smallest that seats the party, first in
    the preferred section, then anywhere. When over-capacity seating is
    allowed and nothing fits, the largest free table.
    """
    if not tables:
        raise NoTableAvailableError(guest_count, preferred_section_id)

    fitting = sorted(
        (t for t in tables if t.capacity >= guest_count),
        key=lambda t: (t.capacity, t.id),
    )
    if preferred_section_id is not None:
        preferred = [t for t in fitting if t.section_id == preferred_section_id]
        if preferred:
            return preferred[0]
    if fitting:
        return fitting[0]

    largest = max(tables, key=lambda t: (t.capacity, -t.id))
    if allow_over_capacity:
        return largest
    raise CapacityExceededError(largest.capacity, guest_count, table_id=largest.id)


class FloorService:
    """
    Domain service for the dining room floor.
    """

    def __init__(self, db: Session):
        self._db = db
        self._lifecycle = OrderLifecycleService(db)

    def _free_tables(self, ctx: ActorContext) -> list[Table]:
        return list(
            self._db.scalars(
                select(Table).where(
                    Table.restaurant_id == ctx.restaurant_id,
                    Table.status == TableStatus.AVAILABLE,
                    Table.merge_id.is_(None),
                )
            )
        )

    # =========================================================================
    # Seating
    # =========================================================================

    def seat_party(
        self,
        ctx: ActorContext,
        guest_count: int,
        preferred_section_id: int | None = None,
        allow_over_capacity: bool | None = None,
        table_id: int | None = None,
        customer_name: str | None = None,
        waiter_id: int | None = None,
    ) -> OperationResult[SeatPartyOutput]:
        """
        Find a table (or take the given one), claim it and open a dine-in
        order on it, in one transaction.
        """
        return TransactionCoordinator(self._db).run(
            "seat_party",
            lambda: self._seat_party(
                ctx, guest_count, preferred_section_id, allow_over_capacity,
                table_id, customer_name, waiter_id,
            ),
            guest_count=guest_count,
            table_id=table_id,
        )

    def _seat_party(
        self,
        ctx: ActorContext,
        guest_count: int,
        preferred_section_id: int | None,
        allow_over_capacity: bool | None,
        table_id: int | None,
        customer_name: str | None,
        waiter_id: int | None,
    ) -> SeatPartyOutput:
        if guest_count < Limits.MIN_GUEST_COUNT:
            raise ValidationError("guest_count must be at least 1", guest_count=guest_count)
        allow = resolve_over_capacity(allow_over_capacity)

        sync = TableSync(self._db, ctx)
        if table_id is not None:
            table = sync.get_table(table_id)
            if table.status != TableStatus.AVAILABLE or table.merge_id is not None:
                raise TableUnavailableError(table.id, current_status=table.status)
        else:
            table = pick_table(self._free_tables(ctx), guest_count, preferred_section_id, allow)

        order = self._lifecycle.build_order(
            ctx,
            OrderInput(
                channel=Channel.DINE_IN.value,
                table_id=table.id,
                guest_count=guest_count,
                waiter_id=waiter_id,
                allow_over_capacity=allow,
                customer_name=customer_name or DEFAULT_CUSTOMER_NAME,
            ),
        )

        warning = None
        if order.dine_in.is_over_capacity:
            warning = (
                f"Party of {guest_count} exceeds the {sync.group_capacity(table)} "
                f"seats of table {table.name}"
            )
        logger.info(
            "Party seated",
            order_id=order.id,
            table_id=table.id,
            guest_count=guest_count,
            over_capacity=bool(warning),
        )
        return SeatPartyOutput(
            order=OrderOutput.model_validate(order),
            table=TableOutput.model_validate(table),
            over_capacity_warning=warning,
        )

    def update_guest_count(
        self,
        ctx: ActorContext,
        order_id: int,
        new_count: int,
        allow_over_capacity: bool | None = None,
    ) -> OperationResult[OrderOutput]:
        def work() -> OrderOutput:
            order = load_order(self._db, ctx, order_id)
            if order.status in OrderStatus.TERMINAL:
                raise InvalidTransitionError(
                    "order", order.status, order.status,
                    order_id=order.id, reason="order is closed",
                )
            if order.channel != Channel.DINE_IN.value or order.dine_in is None:
                raise ValidationError(
                    "Guest counts apply to dine-in orders", order_id=order.id
                )
            DINE_IN.change_guest_count(self._db, ctx, order, new_count, allow_over_capacity)
            stamp(order, ctx, f"Guest count -> {new_count}")
            return emit_order_event(self._db, ctx, order, EventType.GUEST_COUNT_CHANGED)

        return TransactionCoordinator(self._db).run(
            "update_guest_count", work, order_id=order_id, guest_count=new_count
        )

    # =========================================================================
    # Table actions
    # =========================================================================

    def mark_table_clean(self, ctx: ActorContext, table_id: int) -> OperationResult[TableOutput]:
        """DIRTY -> AVAILABLE."""

        def work() -> TableOutput:
            sync = TableSync(self._db, ctx)
            table = sync.get_table(table_id)
            if table.status != TableStatus.DIRTY:
                raise InvalidTransitionError(
                    "table", table.status, TableStatus.AVAILABLE, table_id=table.id
                )
            sync.transition(table, TableStatus.AVAILABLE)
            return TableOutput.model_validate(table)

        return TransactionCoordinator(self._db).run("mark_table_clean", work, table_id=table_id)

    def merge_tables(
        self, ctx: ActorContext, primary_table_id: int, secondary_table_ids: list[int]
    ) -> OperationResult[list[TableOutput]]:
        """
        Join free tables to a seated table. Secondaries turn OCCUPIED with
        merge_id set and no active order of their own.
        """

        def work() -> list[TableOutput]:
            sync = TableSync(self._db, ctx)
            primary = sync.get_table(primary_table_id)
            if primary.active_order_id is None or primary.merge_id is not None:
                raise ValidationError(
                    "Primary table must hold an active order",
                    table_id=primary.id,
                    status=primary.status,
                )
            ids = [i for i in dict.fromkeys(secondary_table_ids) if i != primary.id]
            if not ids:
                raise ValidationError("No tables to merge", table_id=primary.id)

            merged = []
            for secondary_id in ids:
                secondary = sync.get_table(secondary_id)
                if secondary.status != TableStatus.AVAILABLE or secondary.merge_id is not None:
                    raise TableUnavailableError(secondary.id, current_status=secondary.status)
                merged.append(sync.transition(secondary, TableStatus.OCCUPIED, merge_id=primary.id))

            log_action(
                self._db, ctx,
                action_type=AuditAction.TABLE_MERGED,
                entity_type=AggregateType.TABLE,
                entity_id=primary.id,
                secondary_table_ids=ids,
                order_id=primary.active_order_id,
                capacity=sync.group_capacity(primary),
            )
            logger.info("Tables merged", table_id=primary.id, secondary_table_ids=ids)
            return [TableOutput.model_validate(t) for t in [primary, *merged]]

        return TransactionCoordinator(self._db).run(
            "merge_tables", work, table_id=primary_table_id
        )

    def split_tables(
        self, ctx: ActorContext, primary_table_id: int
    ) -> OperationResult[list[TableOutput]]:
        """Secondaries leave the merge group and go DIRTY."""

        def work() -> list[TableOutput]:
            sync = TableSync(self._db, ctx)
            primary = sync.get_table(primary_table_id)
            secondaries = sync.merged_secondaries(primary)
            if not secondaries:
                raise ValidationError("Table has no merged tables", table_id=primary.id)
            released = [
                sync.transition(t, TableStatus.DIRTY, merge_id=None) for t in secondaries
            ]
            log_action(
                self._db, ctx,
                action_type=AuditAction.TABLE_SPLIT,
                entity_type=AggregateType.TABLE,
                entity_id=primary.id,
                secondary_table_ids=[t.id for t in released],
            )
            logger.info(
                "Tables split",
                table_id=primary.id,
                secondary_table_ids=[t.id for t in released],
            )
            return [TableOutput.model_validate(t) for t in [primary, *released]]

        return TransactionCoordinator(self._db).run(
            "split_tables", work, table_id=primary_table_id
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_floor_layout(self, ctx: ActorContext) -> OperationResult[FloorLayout]:
        def work() -> FloorLayout:
            sections = self._db.scalars(
                select(Section)
                .where(Section.restaurant_id == ctx.restaurant_id)
                .order_by(Section.priority, Section.id)
            )
            unassigned = self._db.scalars(
                select(Table)
                .where(
                    Table.restaurant_id == ctx.restaurant_id,
                    Table.section_id.is_(None),
                )
                .order_by(Table.name)
            )
            return FloorLayout(
                sections=[SectionLayout.model_validate(s) for s in sections],
                unassigned_tables=[TableOutput.model_validate(t) for t in unassigned],
            )

        return TransactionCoordinator(self._db).run("get_floor_layout", work)

    def verify_consistency(self, ctx: ActorContext) -> OperationResult[list[ConsistencyViolation]]:
        """
        Check both directions of the table/order link:
        tables pointing at orders, and open dine-in orders pointing at tables.
        """

        def work() -> list[ConsistencyViolation]:
            tables = {
                t.id: t
                for t in self._db.scalars(
                    select(Table).where(Table.restaurant_id == ctx.restaurant_id)
                )
            }
            open_dine_in = list(
                self._db.scalars(
                    select(Order).where(
                        Order.restaurant_id == ctx.restaurant_id,
                        Order.channel == Channel.DINE_IN.value,
                        Order.status.in_(OrderStatus.OPEN),
                    )
                )
            )
            referenced_ids = [t.active_order_id for t in tables.values() if t.active_order_id]
            orders = {
                o.id: o
                for o in self._db.scalars(
                    select(Order).where(
                        Order.restaurant_id == ctx.restaurant_id,
                        Order.id.in_(referenced_ids),
                    )
                )
            } if referenced_ids else {}

            violations = []
            for table in tables.values():
                if table.active_order_id is None:
                    if table.status in TableStatus.IN_USE and table.merge_id is None:
                        violations.append(ConsistencyViolation(
                            table_id=table.id, problem=f"table is {table.status} without an order",
                        ))
                    continue
                order = orders.get(table.active_order_id)
                if order is None:
                    problem = "active order does not exist"
                elif order.status in OrderStatus.TERMINAL:
                    problem = f"active order is {order.status}"
                elif order.channel != Channel.DINE_IN.value:
                    problem = f"active order is a {order.channel} order"
                elif order.table_id != table.id:
                    problem = f"active order is seated at table {order.table_id}"
                elif table.status not in TableStatus.IN_USE:
                    problem = f"table with an active order is {table.status}"
                else:
                    continue
                violations.append(ConsistencyViolation(
                    table_id=table.id, order_id=table.active_order_id, problem=problem,
                ))

            for order in open_dine_in:
                if order.table_id is None:
                    violations.append(ConsistencyViolation(
                        order_id=order.id, problem="open dine-in order has no table",
                    ))
                    continue
                table = tables.get(order.table_id)
                if table is None:
                    problem = "order's table does not exist"
                elif table.active_order_id != order.id:
                    problem = f"table's active order is {table.active_order_id}"
                else:
                    continue
                violations.append(ConsistencyViolation(
                    table_id=order.table_id, order_id=order.id, problem=problem,
                ))

            if violations:
                logger.warning("Floor inconsistencies found", count=len(violations))
            return violations

        return TransactionCoordinator(self._db).run("verify_consistency", work)
