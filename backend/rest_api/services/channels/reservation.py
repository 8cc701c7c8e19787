"""
Reservation channel: a booked party, optionally holding a table until it
arrives. Check-in turns the order into a dine-in order on the held table.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from rest_api.models import Order, ReservationOrder
from rest_api.services.table_sync import TableSync
from shared.config.constants import (
    DEFAULT_CUSTOMER_NAME,
    ArrivalStatus,
    Channel,
    Limits,
    TableStatus,
)
from shared.config.logging import orders_logger as logger
from shared.security.context import ActorContext
from shared.utils.exceptions import ValidationError
from shared.utils.schemas import OrderInput, OrderPatch

from .base import ChannelBehavior
from .dine_in import DineInBehavior

DEFAULT_PARTY_SIZE = 2


class ReservationBehavior(ChannelBehavior):
    channel = Channel.RESERVATION

    def field_errors(self, fields: dict[str, Any], context: str) -> list[str]:
        errors = []
        if not fields.get("reservation_time"):
            errors.append("reservation_time is required for RESERVATION")
        guest_count = fields.get("guest_count")
        if guest_count is not None and guest_count < Limits.MIN_GUEST_COUNT:
            errors.append("guest_count must be at least 1")
        return errors

    def extension_fields(self, order: Order) -> dict[str, Any]:
        if order.reservation is None:
            return {}
        return {
            "reservation_time": order.reservation.reservation_time,
            "guest_count": order.reservation.guest_count,
            "table_id": order.reservation.table_id,
        }

    def create_extension(
        self, db: Session, ctx: ActorContext, order: Order, data: OrderInput
    ) -> None:
        if data.table_id is not None:
            sync = TableSync(db, ctx)
            sync.hold(sync.get_table(data.table_id))
        order.guest_count = data.guest_count or DEFAULT_PARTY_SIZE
        order.reservation = ReservationOrder(
            customer_name=data.customer_name or DEFAULT_CUSTOMER_NAME,
            customer_phone=data.customer_phone or "",
            reservation_time=data.reservation_time,
            guest_count=order.guest_count,
            table_id=data.table_id,
            arrival_status=ArrivalStatus.PENDING,
        )

    def update_extension(
        self, db: Session, ctx: ActorContext, order: Order, patch: OrderPatch
    ) -> None:
        given = patch.model_fields_set
        extension = order.reservation
        if "reservation_time" in given and patch.reservation_time is not None:
            extension.reservation_time = patch.reservation_time
        if "guest_count" in given and patch.guest_count is not None:
            extension.guest_count = patch.guest_count
            order.guest_count = patch.guest_count
        if "customer_name" in given:
            extension.customer_name = patch.customer_name or DEFAULT_CUSTOMER_NAME
        if "customer_phone" in given:
            extension.customer_phone = patch.customer_phone or ""
        if "table_id" in given and patch.table_id != extension.table_id:
            sync = TableSync(db, ctx)
            if extension.table_id is not None:
                sync.release_hold(sync.get_table(extension.table_id))
            if patch.table_id is not None:
                sync.hold(sync.get_table(patch.table_id))
            extension.table_id = patch.table_id

    def _release_hold(self, db: Session, ctx: ActorContext, order: Order) -> None:
        extension = order.reservation
        if extension is not None and extension.table_id is not None:
            sync = TableSync(db, ctx)
            sync.release_hold(sync.get_table(extension.table_id))

    def on_terminated(self, db: Session, ctx: ActorContext, order: Order) -> None:
        self._release_hold(db, ctx, order)
        if order.reservation is not None:
            order.reservation.arrival_status = ArrivalStatus.NO_SHOW

    def on_deleted(self, db: Session, ctx: ActorContext, order: Order) -> None:
        self._release_hold(db, ctx, order)

    def check_in(
        self,
        db: Session,
        ctx: ActorContext,
        order: Order,
        dine_in: DineInBehavior,
        guest_count: int | None = None,
        allow_over_capacity: bool | None = None,
    ) -> Order:
        """
        Seat the arrived party on the held table (RESERVED -> OCCUPIED) and
        swap the reservation row for a dine-in row.
        """
        extension = order.reservation
        if extension.table_id is None:
            raise ValidationError(
                "Reservation has no held table; seat the party instead",
                order_id=order.id,
            )
        count = guest_count if guest_count is not None else extension.guest_count
        if count < Limits.MIN_GUEST_COUNT:
            raise ValidationError("guest_count must be at least 1", guest_count=count)

        table_id = extension.table_id
        order.channel = Channel.DINE_IN.value
        dine_in.seat(
            db, ctx, order, table_id, count, order.assigned_waiter_id,
            allow_over_capacity, expected_status=TableStatus.RESERVED,
        )
        order.reservation = None
        db.flush()
        logger.info(
            "Reservation checked in",
            order_id=order.id,
            table_id=table_id,
            guest_count=count,
        )
        return order
