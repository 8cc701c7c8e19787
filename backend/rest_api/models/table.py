"""
Floor models: Section, Table.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, TimestampMixin


class Section(TimestampMixin, Base):
    """
    Area of the floor (main room, terrace). Lower priority values are
    offered first when seating.
    """

    __tablename__ = "sections"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    prefix: Mapped[Optional[str]] = mapped_column(Text)  # "T", "VIP"
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    tables: Mapped[list["Table"]] = relationship(
        back_populates="section", order_by="Table.name"
    )


class Table(TimestampMixin, Base):
    """
    Seating unit.

    Status and active_order_id are only written by the floor synchronization
    code, with a compare-and-swap on status. active_order_id is non-null iff
    the referenced order is an open dine-in order whose table_id is this table.
    Secondary tables of a merge group carry merge_id and no active order.
    """

    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    section_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("sections.id"), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)  # "T-07"
    capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="AVAILABLE", nullable=False)
    # No FK: orders.table_id already points here, and the cycle would block DDL ordering
    active_order_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    merge_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("tables.id"), nullable=True
    )
    # Bumped on every status change; lets terminals detect stale floor views
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    section: Mapped[Optional["Section"]] = relationship(back_populates="tables")

    __table_args__ = (
        Index("ix_tables_restaurant_status", "restaurant_id", "status"),
        Index("ix_tables_active_order", "active_order_id"),
    )

    def __repr__(self) -> str:
        return f"<Table(id={self.id}, name={self.name}, status={self.status})>"
