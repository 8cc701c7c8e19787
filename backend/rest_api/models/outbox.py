"""
Outbox model for transactional change notifications.

Events are written in the same transaction as the business change, so a
notification exists if and only if the change committed. A background
processor publishes PENDING rows to Redis afterwards.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import BigInteger, DateTime, Enum as SQLEnum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, utcnow


class OutboxStatus(str, Enum):
    """Status of an outbox event."""
    PENDING = "PENDING"      # Ready to be processed
    PROCESSING = "PROCESSING"  # Claimed by a processor
    PUBLISHED = "PUBLISHED"  # Successfully published
    FAILED = "FAILED"        # Failed after max retries


class OutboxEvent(Base):
    """
    Pending change notification.

    aggregate_type is the entity name used for channel routing
    ("order", "table", "ledger", "rider_shift").
    """
    __tablename__ = "outbox_event"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    restaurant_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    aggregate_type: Mapped[str] = mapped_column(String(50), nullable=False)
    aggregate_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # ChangeEvent record and actor, JSON serialized
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[OutboxStatus] = mapped_column(
        SQLEnum(OutboxStatus, name="outbox_status"),
        default=OutboxStatus.PENDING,
        nullable=False,
        index=True,
    )

    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_outbox_event_status_created", "status", "created_at"),
        Index("ix_outbox_event_restaurant_status", "restaurant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<OutboxEvent(id={self.id}, type={self.event_type}, status={self.status.value})>"
