"""
Money records: Transaction (money received) and LedgerEntry (double-entry
journal). Both are append-only; corrections are new rows.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, utcnow


class Transaction(Base):
    """
    Money received for a sale or handed over by a rider.

    reference holds the settlement id for rider settlements; the unique
    constraint turns a replayed settlement into an IntegrityError.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    order_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("orders.id"), nullable=True, index=True
    )
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    method: Mapped[str] = mapped_column(Text, nullable=False)  # CASH, CARD, WALLET
    kind: Mapped[str] = mapped_column(Text, nullable=False)  # SALE, RIDER_SETTLEMENT
    reference: Mapped[Optional[str]] = mapped_column(Text)
    processed_by: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("staff.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("restaurant_id", "reference", name="uq_transaction_reference"),
    )

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, kind={self.kind}, amount={self.amount_cents})>"


class LedgerEntry(Base):
    """
    One side of a journal posting.

    Balance of an account is DEBIT minus CREDIT. COURIER entries carry the
    rider's staff id in account_id; other accounts leave it null.
    """

    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    account: Mapped[str] = mapped_column(Text, nullable=False)
    account_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    entry_type: Mapped[str] = mapped_column(Text, nullable=False)  # DEBIT, CREDIT
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reference_type: Mapped[str] = mapped_column(Text, nullable=False)
    reference_id: Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    processed_by: Mapped[Optional[int]] = mapped_column(BigInteger)
    # "sale:<order_id>:credit" etc.; NULL for postings that may repeat
    idempotency_key: Mapped[Optional[str]] = mapped_column(Text, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_ledger_restaurant_account", "restaurant_id", "account", "account_id"),
        Index("ix_ledger_restaurant_created", "restaurant_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id}, account={self.account}, "
            f"{self.entry_type} {self.amount_cents})>"
        )
