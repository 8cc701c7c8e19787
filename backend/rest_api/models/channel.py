"""
Per-channel order extensions. Each order has exactly one of these rows,
matching Order.channel, created together with the order.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK

if TYPE_CHECKING:
    from .order import Order


class DineInOrder(Base):
    """Dine-in details: table, guests, waiter, capacity override history."""

    __tablename__ = "dine_in_orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("tables.id"))
    guest_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    waiter_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("staff.id"))
    seated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_over_capacity: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # JSON list of {"count", "capacity", "over_capacity", "staff_id", "timestamp"}
    guest_count_history: Mapped[Optional[str]] = mapped_column(Text)

    order: Mapped["Order"] = relationship(back_populates="dine_in")

    def history(self) -> list[dict]:
        return json.loads(self.guest_count_history) if self.guest_count_history else []

    def append_history(self, entry: dict) -> None:
        self.guest_count_history = json.dumps(self.history() + [entry], default=str)


class TakeawayOrder(Base):
    """
    Takeaway details. token_number ("T-007") is unique per restaurant per
    business day; token_seq is the numeric part.
    """

    __tablename__ = "takeaway_orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    restaurant_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    business_date: Mapped[date] = mapped_column(Date, nullable=False)
    token_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    token_number: Mapped[str] = mapped_column(Text, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(Text)
    customer_phone: Mapped[Optional[str]] = mapped_column(Text)
    pickup_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    order: Mapped["Order"] = relationship(back_populates="takeaway")

    __table_args__ = (
        UniqueConstraint(
            "restaurant_id", "business_date", "token_seq", name="uq_takeaway_daily_token"
        ),
    )


class DeliveryOrder(Base):
    """Delivery details: address, assigned rider, dispatch timings."""

    __tablename__ = "delivery_orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_phone: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_address: Mapped[str] = mapped_column(Text, nullable=False)
    delivery_notes: Mapped[Optional[str]] = mapped_column(Text)
    driver_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("staff.id"))
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    delivery_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)

    order: Mapped["Order"] = relationship(back_populates="delivery")

    __table_args__ = (Index("ix_delivery_orders_driver", "driver_id"),)


class ReservationOrder(Base):
    """Reservation details. Check-in converts the order to dine-in."""

    __tablename__ = "reservation_orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_phone: Mapped[str] = mapped_column(Text, nullable=False)
    reservation_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False)
    table_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("tables.id"))
    arrival_status: Mapped[str] = mapped_column(Text, default="PENDING", nullable=False)

    order: Mapped["Order"] = relationship(back_populates="reservation")
