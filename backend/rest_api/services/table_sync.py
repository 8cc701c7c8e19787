"""
Table state synchronization.

Every write to Table.status / active_order_id goes through TableSync so the
floor never disagrees with the orders on it. Writes are compare-and-swap
UPDATEs guarded by the status the caller observed: when another terminal
changed the table first, zero rows match and the caller gets
TableUnavailableError instead of overwriting the winner.

Runs inside the caller's unit of work; never commits.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rest_api.models import Order, Table
from rest_api.services.events import write_change_event
from shared.config.constants import (
    TABLE_TRANSITIONS,
    AggregateType,
    EventType,
    TableStatus,
)
from shared.config.logging import floor_logger as logger
from shared.security.context import ActorContext
from shared.utils.exceptions import (
    InvalidTransitionError,
    TableNotFoundError,
    TableUnavailableError,
)
from shared.utils.schemas import TableOutput

_UNSET: Any = object()


class TableSync:
    """Guarded table transitions for one unit of work."""

    def __init__(self, db: Session, ctx: ActorContext):
        self._db = db
        self._ctx = ctx

    # =========================================================================
    # Reads
    # =========================================================================

    def get_table(self, table_id: int) -> Table:
        """Load a table in the caller's restaurant; other scopes look missing."""
        table = self._db.scalar(
            select(Table).where(
                Table.id == table_id,
                Table.restaurant_id == self._ctx.restaurant_id,
            )
        )
        if table is None:
            raise TableNotFoundError(table_id)
        return table

    def merged_secondaries(self, primary: Table) -> list[Table]:
        return list(
            self._db.scalars(
                select(Table)
                .where(
                    Table.merge_id == primary.id,
                    Table.restaurant_id == self._ctx.restaurant_id,
                )
                .order_by(Table.id)
            )
        )

    def group_capacity(self, primary: Table) -> int:
        """Seats in a merge group: the primary plus every joined table."""
        return primary.capacity + sum(t.capacity for t in self.merged_secondaries(primary))

    # =========================================================================
    # Guarded writes
    # =========================================================================

    def transition(
        self,
        table: Table,
        to_status: str,
        *,
        active_order_id: Any = _UNSET,
        merge_id: Any = _UNSET,
        check_machine: bool = True,
    ) -> Table:
        """
        Move `table` from the status it was read with to `to_status`.

        Raises InvalidTransitionError for edges outside the table machine
        and TableUnavailableError when the row changed underneath us.
        """
        expected = table.status
        if check_machine and to_status not in TABLE_TRANSITIONS.get(expected, []):
            raise InvalidTransitionError("table", expected, to_status, table_id=table.id)

        values: dict[str, Any] = {"status": to_status, "version": Table.version + 1}
        if active_order_id is not _UNSET:
            values["active_order_id"] = active_order_id
        if merge_id is not _UNSET:
            values["merge_id"] = merge_id

        result = self._db.execute(
            update(Table)
            .where(
                Table.id == table.id,
                Table.restaurant_id == self._ctx.restaurant_id,
                Table.status == expected,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = self._db.scalar(select(Table.status).where(Table.id == table.id))
            logger.warning(
                "Table claim lost",
                table_id=table.id,
                expected_status=expected,
                current_status=current,
            )
            raise TableUnavailableError(table.id, current_status=current)

        self._db.refresh(table)
        write_change_event(
            self._db,
            self._ctx,
            entity=AggregateType.TABLE,
            kind=EventType.TABLE_STATUS_CHANGED,
            entity_id=table.id,
            record=TableOutput.model_validate(table).model_dump(mode="json"),
        )
        logger.debug(
            "Table status changed",
            table_id=table.id,
            from_status=expected,
            to_status=to_status,
            version=table.version,
        )
        return table

    def claim(self, table: Table, order: Order, *, expected: str = TableStatus.AVAILABLE) -> Table:
        """
        Seat `order` at `table`: expected -> OCCUPIED with the active order set.
        """
        if table.status != expected or table.merge_id is not None:
            raise TableUnavailableError(table.id, current_status=table.status)
        return self.transition(table, TableStatus.OCCUPIED, active_order_id=order.id)

    def request_payment(self, table: Table) -> Table:
        """OCCUPIED -> PAYMENT_PENDING; tables already past OCCUPIED are left alone."""
        if table.status != TableStatus.OCCUPIED:
            return table
        return self.transition(table, TableStatus.PAYMENT_PENDING)

    def release(self, table: Table, to_status: str, *, force: bool = False) -> list[Table]:
        """
        Free a table and every table merged into it.

        Clears the active order and merge links. `to_status` is DIRTY after
        service happened, AVAILABLE when the order left unserved. `force`
        skips the machine check for deletion tooling.
        Returns the tables that changed.
        """
        released = []
        for secondary in self.merged_secondaries(table):
            released.append(
                self.transition(
                    secondary,
                    to_status,
                    active_order_id=None,
                    merge_id=None,
                    check_machine=not force and secondary.status != to_status,
                )
            )
        if table.status == to_status and table.active_order_id is None:
            return released
        released.append(
            self.transition(
                table,
                to_status,
                active_order_id=None,
                check_machine=not force,
            )
        )
        return released

    def hold(self, table: Table) -> Table:
        """AVAILABLE -> RESERVED for a reservation."""
        if table.status != TableStatus.AVAILABLE or table.merge_id is not None:
            raise TableUnavailableError(table.id, current_status=table.status)
        return self.transition(table, TableStatus.RESERVED)

    def release_hold(self, table: Table) -> Table:
        """RESERVED -> AVAILABLE when a reservation goes away."""
        if table.status != TableStatus.RESERVED:
            return table
        return self.transition(table, TableStatus.AVAILABLE)
