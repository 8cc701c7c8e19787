"""
Order Lifecycle Domain Service.

Owns order status and payment. Channel specifics (tables, tokens, holds)
are delegated to the channel behavior resolved from the order's channel, and
every operation runs as one unit of work through the TransactionCoordinator:
either the order, its table, its ledger postings and its change events are
all written, or none are.

Usage:
    service = OrderLifecycleService(db)
    result = service.settle(ctx, order_id, 4500, "CASH")
    if not result.ok:
        raise DomainHTTPException(result.error)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from rest_api.models import Order, Transaction, utcnow
from rest_api.services.audit import log_action
from rest_api.services.channels import (
    DINE_IN,
    RESERVATION,
    ValidationContext,
    compute_total,
    resolve,
    stamp,
)
from rest_api.services.events import write_change_event
from rest_api.services.order_state import (
    emit_order_event,
    load_order,
    transition_order,
)
from shared.config.constants import (
    ITEM_TRANSITIONS,
    METHOD_ACCOUNTS,
    AggregateType,
    AuditAction,
    Channel,
    EventType,
    ItemStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    TransactionKind,
)
from shared.config.logging import orders_logger as logger
from shared.infrastructure.transaction import TransactionCoordinator
from shared.security.context import ActorContext
from shared.utils.exceptions import (
    AlreadySettledError,
    InvalidTransitionError,
    ValidationError,
)
from shared.utils.result import OperationResult
from shared.utils.schemas import OrderInput, OrderOutput, OrderPatch

from .accounting_service import AccountingService


def items_finished(order: Order) -> bool:
    """Every item is done, served or skipped, and something is still charged."""
    if not order.items:
        return False
    if any(item.item_status not in ItemStatus.FINISHED for item in order.items):
        return False
    return any(item.item_status != ItemStatus.SKIPPED for item in order.items)


class OrderLifecycleService:
    """
    Domain service for the order state machine.
    """

    def __init__(self, db: Session):
        self._db = db
        self._accounting = AccountingService(db)

    def _run(self, operation: str, work, **log_context) -> OperationResult:
        return TransactionCoordinator(self._db).run(operation, work, **log_context)

    # =========================================================================
    # Create / update
    # =========================================================================

    def build_order(self, ctx: ActorContext, data: OrderInput) -> Order:
        """
        Create an order inside the caller's unit of work. Used by create and
        by seat_party, which seats and creates in one transaction.
        """
        behavior = resolve(data.channel)
        order = behavior.create_order(self._db, ctx, data)
        emit_order_event(self._db, ctx, order, EventType.ORDER_CREATED)
        return order

    def create_order(self, ctx: ActorContext, data: OrderInput) -> OperationResult[OrderOutput]:
        def work() -> OrderOutput:
            order = self.build_order(ctx, data)
            return OrderOutput.model_validate(order)

        return self._run("create_order", work, channel=data.channel)

    def _apply_patch(self, ctx: ActorContext, order: Order, patch: OrderPatch) -> OrderOutput:
        behavior = resolve(order.channel)
        behavior.update_order(self._db, ctx, order, patch)
        return emit_order_event(self._db, ctx, order, EventType.ORDER_UPDATED)

    def update_order(
        self, ctx: ActorContext, order_id: int, patch: OrderPatch
    ) -> OperationResult[OrderOutput]:
        return self._run(
            "update_order",
            lambda: self._apply_patch(ctx, load_order(self._db, ctx, order_id), patch),
            order_id=order_id,
        )

    def upsert_order(self, ctx: ActorContext, data: OrderInput) -> OperationResult[OrderOutput]:
        """Update when `data.id` is set, else create."""
        if data.id is None:
            return self.create_order(ctx, data)

        def work() -> OrderOutput:
            order = load_order(self._db, ctx, data.id)
            if data.channel != order.channel:
                raise ValidationError(
                    "An order's channel cannot be changed",
                    order_id=order.id,
                    channel=order.channel,
                    requested=data.channel,
                )
            given = data.model_dump(exclude_unset=True)
            patch = OrderPatch.model_validate(
                {k: v for k, v in given.items() if k in OrderPatch.model_fields}
            )
            return self._apply_patch(ctx, order, patch)

        return self._run("upsert_order", work, order_id=data.id)

    def activate_order(self, ctx: ActorContext, order_id: int) -> OperationResult[OrderOutput]:
        """DRAFT -> ACTIVE once the fire-time fields are present."""

        def work() -> OrderOutput:
            order = load_order(self._db, ctx, order_id)
            if order.status != OrderStatus.DRAFT:
                raise InvalidTransitionError(
                    "order", order.status, OrderStatus.ACTIVE, order_id=order.id
                )
            behavior = resolve(order.channel)
            behavior.validate(behavior.current_fields(order), ValidationContext.FIRE)
            transition_order(order, ctx, OrderStatus.ACTIVE, "Order activated")
            return emit_order_event(self._db, ctx, order, EventType.ORDER_STATUS_CHANGED)

        return self._run("activate_order", work, order_id=order_id)

    # =========================================================================
    # Kitchen
    # =========================================================================

    def _ready(self, ctx: ActorContext, order: Order, description: str) -> None:
        transition_order(order, ctx, OrderStatus.READY, description)
        resolve(order.channel).on_ready(self._db, ctx, order)

    def fire_to_kitchen(self, ctx: ActorContext, order_id: int) -> OperationResult[OrderOutput]:
        def work() -> OrderOutput:
            order = load_order(self._db, ctx, order_id)
            fired = resolve(order.channel).fire_to_kitchen(self._db, ctx, order)
            fired_ids = [item.id for item in fired]
            record = emit_order_event(
                self._db, ctx, order, EventType.KITCHEN_ORDER_FIRED, fired_item_ids=fired_ids
            )
            if items_finished(order):
                self._ready(ctx, order, "All items ready")
                record = emit_order_event(self._db, ctx, order, EventType.ORDER_STATUS_CHANGED)
            logger.info("Order fired", order_id=order.id, fired_items=len(fired_ids))
            return record

        return self._run("fire_to_kitchen", work, order_id=order_id)

    def update_item_status(
        self, ctx: ActorContext, order_id: int, item_id: int, status: str
    ) -> OperationResult[OrderOutput]:
        """
        Advance one line item. Skipping drops it from the total; the last
        item to finish moves an ACTIVE order to READY.
        """

        def work() -> OrderOutput:
            order = load_order(self._db, ctx, order_id)
            if order.status not in (OrderStatus.ACTIVE, OrderStatus.READY):
                raise InvalidTransitionError(
                    "order", order.status, order.status,
                    order_id=order.id, reason="items change only on active orders",
                )
            item = next((i for i in order.items if i.id == item_id), None)
            if item is None:
                raise ValidationError("Item not on this order", order_id=order.id, item_id=item_id)
            if status not in ITEM_TRANSITIONS.get(item.item_status, []):
                raise InvalidTransitionError(
                    "item", item.item_status, status, order_id=order.id, item_id=item.id
                )

            now = utcnow()
            item.item_status = status
            if status == ItemStatus.PREPARING:
                item.fired_at = item.fired_at or now
            elif status == ItemStatus.DONE:
                item.fired_at = item.fired_at or now
                item.completed_at = now
            elif status == ItemStatus.SERVED:
                item.served_at = now
            elif status == ItemStatus.SKIPPED:
                order.total_cents = compute_total(order)
            stamp(order, ctx, f"Item {item.item_name} -> {status}", now)

            record = emit_order_event(
                self._db, ctx, order, EventType.ITEM_STATUS_CHANGED,
                item_id=item.id, item_status=status,
            )
            if order.status == OrderStatus.ACTIVE and items_finished(order):
                self._ready(ctx, order, "All items ready")
                record = emit_order_event(self._db, ctx, order, EventType.ORDER_STATUS_CHANGED)
            return record

        return self._run("update_item_status", work, order_id=order_id, item_id=item_id)

    def mark_ready(self, ctx: ActorContext, order_id: int) -> OperationResult[OrderOutput]:
        def work() -> OrderOutput:
            order = load_order(self._db, ctx, order_id)
            self._ready(ctx, order, "Order ready")
            return emit_order_event(self._db, ctx, order, EventType.ORDER_STATUS_CHANGED)

        return self._run("mark_ready", work, order_id=order_id)

    # =========================================================================
    # Payment
    # =========================================================================

    def settle(
        self,
        ctx: ActorContext,
        order_id: int,
        amount_cents: int,
        method: str = PaymentMethod.CASH,
    ) -> OperationResult[OrderOutput]:
        """
        Take payment and close the order in one step.

        A delivered order is paid through its rider: the cash is a courier
        handover and the sale, booked at delivery, is not posted again.
        """
        return self._run(
            "settle",
            lambda: self._settle(ctx, order_id, amount_cents, method),
            order_id=order_id,
            amount_cents=amount_cents,
        )

    def _settle(
        self, ctx: ActorContext, order_id: int, amount_cents: int, method: str
    ) -> OrderOutput:
        order = load_order(self._db, ctx, order_id, for_update=True)
        if order.payment_status == PaymentStatus.PAID or order.status == OrderStatus.CLOSED:
            raise AlreadySettledError("Order already settled", order_id=order.id)
        if order.status in (OrderStatus.CANCELLED, OrderStatus.VOIDED):
            raise InvalidTransitionError(
                "order", order.status, OrderStatus.CLOSED, order_id=order.id
            )
        if method not in PaymentMethod.ALL:
            raise ValidationError("Unknown payment method", method=method)
        if amount_cents < 0:
            raise ValidationError("Amount cannot be negative", amount_cents=amount_cents)

        if order.status == OrderStatus.DELIVERED:
            return self._settle_delivered(ctx, order, amount_cents, method)

        if amount_cents < order.total_cents:
            raise ValidationError(
                f"Amount is below the order total of {order.total_cents}",
                order_id=order.id,
                total_cents=order.total_cents,
                amount_cents=amount_cents,
            )

        self._db.add(
            Transaction(
                restaurant_id=ctx.restaurant_id,
                order_id=order.id,
                amount_cents=order.total_cents,
                method=method,
                kind=TransactionKind.SALE,
                processed_by=ctx.staff_id,
            )
        )
        order.payment_status = PaymentStatus.PAID
        transition_order(order, ctx, OrderStatus.CLOSED, f"Settled ({method})")
        resolve(order.channel).on_closed(self._db, ctx, order)
        self._accounting.record_order_sale(order, method=method, processed_by=ctx.staff_id)

        logger.info(
            "Order settled",
            order_id=order.id,
            total_cents=order.total_cents,
            tendered_cents=amount_cents,
            change_cents=amount_cents - order.total_cents,
            method=method,
        )
        return emit_order_event(
            self._db, ctx, order, EventType.ORDER_SETTLED,
            tendered_cents=amount_cents, method=method,
        )

    def _settle_delivered(
        self, ctx: ActorContext, order: Order, amount_cents: int, method: str
    ) -> OrderOutput:
        if order.is_settled_with_rider:
            raise AlreadySettledError("Order already settled with its rider", order_id=order.id)

        reference = f"order-{order.id}"
        self._db.add(
            Transaction(
                restaurant_id=ctx.restaurant_id,
                order_id=order.id,
                amount_cents=amount_cents,
                method=method,
                kind=TransactionKind.RIDER_SETTLEMENT,
                reference=reference,
                processed_by=ctx.staff_id,
            )
        )
        difference = self._accounting.record_courier_handover(
            ctx, order.assigned_driver_id, [order], amount_cents, reference,
            debit_account=METHOD_ACCOUNTS[method],
        )
        self._accounting.settle_rider_orders(ctx, [order], f"Settled with rider ({method})")
        resolve(order.channel).on_closed(self._db, ctx, order)

        logger.info(
            "Delivered order settled",
            order_id=order.id,
            rider_id=order.assigned_driver_id,
            amount_cents=amount_cents,
            difference_cents=difference,
        )
        return emit_order_event(self._db, ctx, order, EventType.ORDER_UPDATED)

    # =========================================================================
    # Cancel / void / delete
    # =========================================================================

    def _terminate(
        self, ctx: ActorContext, order_id: int, to_status: str, reason: str
    ) -> OrderOutput:
        if not reason or not reason.strip():
            raise ValidationError("A reason is required", order_id=order_id)
        order = load_order(self._db, ctx, order_id, for_update=True)
        previous = transition_order(order, ctx, to_status, reason)
        if to_status == OrderStatus.VOIDED:
            order.void_reason = reason
            action = AuditAction.ORDER_VOIDED
        else:
            order.cancellation_reason = reason
            action = AuditAction.ORDER_CANCELLED

        self._accounting.reverse_order_sale(order, processed_by=ctx.staff_id)
        resolve(order.channel).on_terminated(self._db, ctx, order)
        log_action(
            self._db, ctx,
            action_type=action,
            entity_type=AggregateType.ORDER,
            entity_id=order.id,
            previous_status=previous,
            reason=reason,
            total_cents=order.total_cents,
        )
        logger.info(
            "Order terminated",
            order_id=order.id,
            status=to_status,
            previous_status=previous,
        )
        return emit_order_event(self._db, ctx, order, EventType.ORDER_STATUS_CHANGED)

    def cancel_order(
        self, ctx: ActorContext, order_id: int, reason: str
    ) -> OperationResult[OrderOutput]:
        return self._run(
            "cancel_order",
            lambda: self._terminate(ctx, order_id, OrderStatus.CANCELLED, reason),
            order_id=order_id,
        )

    def void_order(
        self, ctx: ActorContext, order_id: int, reason: str
    ) -> OperationResult[OrderOutput]:
        """Management-only cancellation."""
        return self._run(
            "void_order",
            lambda: self._terminate(ctx, order_id, OrderStatus.VOIDED, reason),
            order_id=order_id,
        )

    def delete_order(self, ctx: ActorContext, order_id: int) -> OperationResult[bool]:
        """Hard delete for orders no money was recorded against."""

        def work() -> bool:
            order = load_order(self._db, ctx, order_id)
            snapshot = {
                "id": order.id,
                "order_number": order.order_number,
                "channel": order.channel,
                "status": order.status,
            }
            deleted = resolve(order.channel).delete_order(self._db, ctx, order)
            log_action(
                self._db, ctx,
                action_type=AuditAction.ORDER_DELETED,
                entity_type=AggregateType.ORDER,
                entity_id=order_id,
                **snapshot,
            )
            write_change_event(
                self._db, ctx,
                entity=AggregateType.ORDER,
                kind=EventType.ORDER_DELETED,
                entity_id=order_id,
                record=snapshot,
            )
            logger.info("Order deleted", order_id=order_id)
            return deleted

        return self._run("delete_order", work, order_id=order_id)

    # =========================================================================
    # Reservations
    # =========================================================================

    def check_in_reservation(
        self,
        ctx: ActorContext,
        order_id: int,
        guest_count: int | None = None,
        allow_over_capacity: bool | None = None,
    ) -> OperationResult[OrderOutput]:
        """Seat an arrived reservation on its held table as a dine-in order."""

        def work() -> OrderOutput:
            order = load_order(self._db, ctx, order_id)
            if order.channel != Channel.RESERVATION.value or order.reservation is None:
                raise ValidationError("Not a reservation", order_id=order.id, channel=order.channel)
            if order.status in OrderStatus.TERMINAL:
                raise InvalidTransitionError(
                    "order", order.status, order.status,
                    order_id=order.id, reason="reservation is no longer open",
                )
            RESERVATION.check_in(self._db, ctx, order, DINE_IN, guest_count, allow_over_capacity)
            stamp(order, ctx, "Reservation checked in")
            return emit_order_event(self._db, ctx, order, EventType.ORDER_UPDATED)

        return self._run("check_in_reservation", work, order_id=order_id)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_order(self, ctx: ActorContext, order_id: int) -> OperationResult[OrderOutput]:
        return self._run(
            "get_order",
            lambda: OrderOutput.model_validate(load_order(self._db, ctx, order_id)),
            order_id=order_id,
        )
