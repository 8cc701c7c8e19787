"""
Channel behavior base class.

One subclass per order channel. The base class carries the steps every
channel shares (item handling, totals, firing, deletion) and calls hooks the
channels override for their extension row and resource side effects.

All methods run inside the caller's unit of work and never commit.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from typing import Any, Final

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rest_api.models import Customer, LedgerEntry, Order, OrderItem, Staff, Transaction, utcnow
from shared.config.constants import (
    Channel,
    ItemStatus,
    OrderStatus,
    PaymentStatus,
    ReferenceType,
)
from shared.config.logging import orders_logger as logger
from shared.security.context import ActorContext
from shared.utils.exceptions import InvalidTransitionError, ValidationError
from shared.utils.schemas import OrderInput, OrderItemInput, OrderPatch


class ValidationContext:
    """When validation runs: while drafting, or before the kitchen sees the order."""

    DRAFT: Final[str] = "DRAFT"
    FIRE: Final[str] = "FIRE"


# =============================================================================
# Shared helpers
# =============================================================================


def generate_order_number(now: datetime) -> str:
    """Human-friendly order number, e.g. ORD-142305-K7Q."""
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(3))
    return f"ORD-{now:%H%M%S}-{suffix}"


def build_items(inputs: list[OrderItemInput]) -> list[OrderItem]:
    return [
        OrderItem(
            menu_item_id=item.menu_item_id,
            item_name=item.item_name,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            requires_prep=item.requires_prep,
            item_status=ItemStatus.PENDING,
            notes=item.notes,
        )
        for item in inputs
    ]


def compute_total(order: Order) -> int:
    """Sum of line totals; skipped items are not charged."""
    return sum(
        item.line_total_cents
        for item in order.items
        if item.item_status != ItemStatus.SKIPPED
    )


def stamp(order: Order, ctx: ActorContext, description: str, now: datetime | None = None) -> None:
    """Record who touched the order last and why."""
    order.last_action_by = ctx.staff_id
    order.last_action_desc = description
    order.last_action_at = now or utcnow()


class ChannelBehavior:
    """
    Base behavior shared by every channel.

    Subclasses set `channel` and override the hooks:
        field_errors(fields, context)  -> list of problems with the merged fields
        extension_fields(order)        -> current extension values for re-validation
        create_extension / update_extension
        fire_target_status(item)
        on_ready / on_closed / on_terminated / on_deleted  -> resource side effects
    """

    channel: Channel

    # =========================================================================
    # Hooks
    # =========================================================================

    def field_errors(self, fields: dict[str, Any], context: str) -> list[str]:
        return []

    def extension_fields(self, order: Order) -> dict[str, Any]:
        return {}

    def create_extension(
        self, db: Session, ctx: ActorContext, order: Order, data: OrderInput
    ) -> None:
        raise NotImplementedError

    def update_extension(
        self, db: Session, ctx: ActorContext, order: Order, patch: OrderPatch
    ) -> None:
        raise NotImplementedError

    def fire_target_status(self, item: OrderItem) -> str:
        """Kitchen items start preparing; the rest are done as soon as they are fired."""
        return ItemStatus.PREPARING if item.requires_prep else ItemStatus.DONE

    def on_ready(self, db: Session, ctx: ActorContext, order: Order) -> None:
        pass

    def on_closed(self, db: Session, ctx: ActorContext, order: Order) -> None:
        pass

    def on_terminated(self, db: Session, ctx: ActorContext, order: Order) -> None:
        """Cancel or void."""
        pass

    def on_deleted(self, db: Session, ctx: ActorContext, order: Order) -> None:
        pass

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self, fields: dict[str, Any], context: str) -> None:
        errors = self.field_errors(fields, context)
        if errors:
            raise ValidationError(
                "; ".join(errors),
                channel=self.channel.value,
                context=context,
                errors=errors,
            )

    def current_fields(self, order: Order) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "items": list(order.items),
            "customer_name": order.customer_name,
            "customer_phone": order.customer_phone,
            "guest_count": order.guest_count,
            "table_id": order.table_id,
        }
        fields.update(self.extension_fields(order))
        return fields

    # =========================================================================
    # Shared steps
    # =========================================================================

    def resolve_customer(
        self,
        db: Session,
        ctx: ActorContext,
        customer_id: int | None,
        name: str | None,
        phone: str | None,
    ) -> Customer | None:
        """
        Link the order to a customer: by id when given, else by phone,
        registering new phone numbers on the fly.
        """
        if customer_id is not None:
            customer = db.scalar(
                select(Customer).where(
                    Customer.id == customer_id,
                    Customer.restaurant_id == ctx.restaurant_id,
                )
            )
            if customer is None:
                raise ValidationError("Unknown customer", customer_id=customer_id)
            return customer
        if not phone:
            return None
        customer = db.scalar(
            select(Customer).where(
                Customer.restaurant_id == ctx.restaurant_id,
                Customer.phone == phone,
            )
        )
        if customer is None:
            customer = Customer(
                restaurant_id=ctx.restaurant_id,
                name=name or phone,
                phone=phone,
            )
            db.add(customer)
            db.flush()
        return customer

    def check_waiter(self, db: Session, ctx: ActorContext, waiter_id: int | None) -> None:
        """The assigned waiter must be staff of the caller's restaurant."""
        if waiter_id is None:
            return
        waiter = db.scalar(
            select(Staff).where(
                Staff.id == waiter_id,
                Staff.restaurant_id == ctx.restaurant_id,
            )
        )
        if waiter is None:
            raise ValidationError("Unknown waiter", waiter_id=waiter_id)

    def create_order(self, db: Session, ctx: ActorContext, data: OrderInput) -> Order:
        context = ValidationContext.DRAFT if data.draft else ValidationContext.FIRE
        self.validate(data.model_dump(), context)
        self.check_waiter(db, ctx, data.waiter_id)

        now = utcnow()
        customer = self.resolve_customer(
            db, ctx, data.customer_id, data.customer_name, data.customer_phone
        )
        order = Order(
            restaurant_id=ctx.restaurant_id,
            order_number=generate_order_number(now),
            channel=self.channel.value,
            status=OrderStatus.DRAFT if data.draft else OrderStatus.ACTIVE,
            payment_status=PaymentStatus.UNPAID,
            status_version=0,
            customer_id=customer.id if customer else None,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            assigned_waiter_id=data.waiter_id,
            is_settled_with_rider=False,
        )
        order.items = build_items(data.items)
        order.total_cents = compute_total(order)
        stamp(order, ctx, "Order created", now)
        db.add(order)
        db.flush()

        self.create_extension(db, ctx, order, data)
        db.flush()

        logger.info(
            "Order created",
            order_id=order.id,
            order_number=order.order_number,
            channel=order.channel,
            status=order.status,
            total_cents=order.total_cents,
        )
        return order

    def update_order(
        self, db: Session, ctx: ActorContext, order: Order, patch: OrderPatch
    ) -> Order:
        if order.status in OrderStatus.TERMINAL:
            raise InvalidTransitionError(
                "order", order.status, order.status,
                order_id=order.id, reason="terminal orders cannot be edited",
            )
        if order.status == OrderStatus.DELIVERED:
            # The sale is already booked against the rider at this total
            raise InvalidTransitionError(
                "order", order.status, order.status,
                order_id=order.id, reason="delivered orders cannot be edited",
            )

        given = patch.model_dump(exclude_unset=True)
        fields = {**self.current_fields(order), **given}
        context = (
            ValidationContext.DRAFT if order.status == OrderStatus.DRAFT else ValidationContext.FIRE
        )
        self.validate(fields, context)
        if "waiter_id" in given:
            self.check_waiter(db, ctx, patch.waiter_id)

        if "items" in given and patch.items is not None:
            started = [i.id for i in order.items if i.item_status != ItemStatus.PENDING]
            if started:
                raise InvalidTransitionError(
                    "order", order.status, order.status,
                    order_id=order.id,
                    reason="items already fired cannot be replaced",
                    fired_item_ids=started,
                )
            order.items = build_items(patch.items)

        if {"customer_id", "customer_phone", "customer_name"} & given.keys():
            customer = self.resolve_customer(
                db, ctx,
                given.get("customer_id"),
                fields.get("customer_name"),
                fields.get("customer_phone"),
            )
            if customer is not None:
                order.customer_id = customer.id
        if "customer_name" in given:
            order.customer_name = patch.customer_name
        if "customer_phone" in given:
            order.customer_phone = patch.customer_phone
        if "waiter_id" in given:
            order.assigned_waiter_id = patch.waiter_id

        self.update_extension(db, ctx, order, patch)
        order.total_cents = compute_total(order)
        stamp(order, ctx, "Order updated")
        db.flush()
        return order

    def fire_to_kitchen(self, db: Session, ctx: ActorContext, order: Order) -> list[OrderItem]:
        """
        Send PENDING items to the kitchen. Items already past PENDING are untouched.
        Returns the items that changed.
        """
        if order.status != OrderStatus.ACTIVE:
            raise InvalidTransitionError(
                "order", order.status, "FIRED",
                order_id=order.id, reason="only active orders can be fired",
            )
        if not order.items:
            raise ValidationError("Cannot fire an empty order", order_id=order.id)
        self.validate(self.current_fields(order), ValidationContext.FIRE)

        now = utcnow()
        fired = []
        for item in order.items:
            if item.item_status != ItemStatus.PENDING:
                continue
            item.item_status = self.fire_target_status(item)
            item.fired_at = now
            if item.item_status == ItemStatus.DONE:
                item.completed_at = now
            fired.append(item)

        stamp(order, ctx, "Order fired to kitchen", now)
        db.flush()
        return fired

    def delete_order(self, db: Session, ctx: ActorContext, order: Order) -> bool:
        """
        Hard delete. Refused once money was recorded against the order.
        """
        has_money = db.scalar(
            select(func.count()).select_from(Transaction).where(Transaction.order_id == order.id)
        ) or db.scalar(
            select(func.count()).select_from(LedgerEntry).where(
                LedgerEntry.restaurant_id == ctx.restaurant_id,
                LedgerEntry.reference_type == ReferenceType.ORDER,
                LedgerEntry.reference_id == str(order.id),
            )
        )
        if has_money:
            raise InvalidTransitionError(
                "order", order.status, "DELETED",
                order_id=order.id, reason="orders with recorded payments cannot be deleted",
            )

        self.on_deleted(db, ctx, order)
        db.delete(order)
        db.flush()
        return True
