"""
Rider shift model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, utcnow


class RiderShift(Base):
    """
    A rider's working period, opened with a cash float and closed by
    counting the cash handed back.

    expected_cash_cents and cash_difference_cents are written once, at close.
    At most one OPEN shift per rider.
    """

    __tablename__ = "rider_shifts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    rider_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("staff.id"), nullable=False, index=True
    )
    opened_by: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("staff.id"))
    closed_by: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("staff.id"))
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    opening_float_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    closing_cash_received_cents: Mapped[Optional[int]] = mapped_column(BigInteger)
    expected_cash_cents: Mapped[Optional[int]] = mapped_column(BigInteger)
    cash_difference_cents: Mapped[Optional[int]] = mapped_column(BigInteger)
    status: Mapped[str] = mapped_column(Text, default="OPEN", nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_rider_shifts_rider_status", "rider_id", "status"),
        Index(
            "uq_rider_shifts_open",
            "rider_id",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<RiderShift(id={self.id}, rider={self.rider_id}, status={self.status})>"
