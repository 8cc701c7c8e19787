"""
Restaurant scope and its people: Restaurant, Staff, Customer.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, TimestampMixin


class Restaurant(TimestampMixin, Base):
    """
    A single store location. Every operation is scoped to one restaurant.
    """

    __tablename__ = "restaurants"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    currency: Mapped[str] = mapped_column(Text, default="USD", nullable=False)


class Staff(TimestampMixin, Base):
    """
    A staff member. Riders are staff with role RIDER; their id doubles as the
    courier account id in the ledger.
    """

    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False)  # ADMIN, MANAGER, CASHIER, WAITER, KITCHEN, RIDER
    phone: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_staff_restaurant_role", "restaurant_id", "role"),
    )

    def __repr__(self) -> str:
        return f"<Staff(id={self.id}, role={self.role})>"


class Customer(TimestampMixin, Base):
    """Customer known by phone number within a restaurant."""

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "phone", name="uq_customer_restaurant_phone"),
    )
