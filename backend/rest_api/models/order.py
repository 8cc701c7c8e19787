"""
Order models: Order (base record) and OrderItem.

Channel-specific data lives in one extension row per order, see channel.py.
Money is stored in integer cents.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, TimestampMixin

if TYPE_CHECKING:
    from .channel import DeliveryOrder, DineInOrder, ReservationOrder, TakeawayOrder
    from .table import Table


class Order(TimestampMixin, Base):
    """
    One order on any channel.

    Statuses: DRAFT -> ACTIVE -> READY -> (DELIVERED) -> CLOSED, plus the
    terminal CANCELLED / VOIDED. payment_status is independent (UNPAID or PAID).
    A CLOSED order is always PAID.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    order_number: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[str] = mapped_column(Text, nullable=False)  # DINE_IN, TAKEAWAY, DELIVERY, RESERVATION
    status: Mapped[str] = mapped_column(Text, default="ACTIVE", nullable=False)
    payment_status: Mapped[str] = mapped_column(Text, default="UNPAID", nullable=False)
    total_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    # Incremented on every status change; terminals drop stale updates by it
    status_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    table_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("tables.id"), nullable=True, index=True
    )
    guest_count: Mapped[Optional[int]] = mapped_column(Integer)
    customer_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("customers.id"), nullable=True, index=True
    )
    customer_name: Mapped[Optional[str]] = mapped_column(Text)
    customer_phone: Mapped[Optional[str]] = mapped_column(Text)
    assigned_waiter_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("staff.id"), nullable=True
    )
    assigned_driver_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("staff.id"), nullable=True, index=True
    )
    rider_shift_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("rider_shifts.id"), nullable=True
    )
    is_settled_with_rider: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    voided_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    void_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Last-action stamp shown on terminals
    last_action_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    last_action_desc: Mapped[Optional[str]] = mapped_column(Text)
    last_action_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    table: Mapped[Optional["Table"]] = relationship()

    dine_in: Mapped[Optional["DineInOrder"]] = relationship(
        back_populates="order", uselist=False, cascade="all, delete-orphan"
    )
    takeaway: Mapped[Optional["TakeawayOrder"]] = relationship(
        back_populates="order", uselist=False, cascade="all, delete-orphan"
    )
    delivery: Mapped[Optional["DeliveryOrder"]] = relationship(
        back_populates="order", uselist=False, cascade="all, delete-orphan"
    )
    reservation: Mapped[Optional["ReservationOrder"]] = relationship(
        back_populates="order", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_orders_restaurant_status", "restaurant_id", "status"),
        Index("ix_orders_restaurant_channel", "restaurant_id", "channel"),
        Index("ix_orders_driver_settled", "assigned_driver_id", "is_settled_with_rider"),
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, number={self.order_number}, "
            f"channel={self.channel}, status={self.status})>"
        )


class OrderItem(Base):
    """
    A line on an order.

    item_status: PENDING -> PREPARING -> DONE -> SERVED, or SKIPPED for items
    that never go through the kitchen.
    """

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    requires_prep: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    item_status: Mapped[str] = mapped_column(Text, default="PENDING", nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    fired_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    served_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    order: Mapped["Order"] = relationship(back_populates="items")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, name={self.item_name}, status={self.item_status})>"
