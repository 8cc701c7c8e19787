"""
Audit Log Model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, utcnow


class AuditLog(Base):
    """
    Records policy overrides and sensitive actions: who did what to which
    entity, with the numbers involved as JSON details.
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    staff_id: Mapped[Optional[int]] = mapped_column(BigInteger, index=True)
    action_type: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text)  # JSON
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_audit_logs_restaurant_action", "restaurant_id", "action_type"),
        Index("ix_audit_logs_restaurant_entity", "restaurant_id", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action_type}, entity={self.entity_type}:{self.entity_id})>"
