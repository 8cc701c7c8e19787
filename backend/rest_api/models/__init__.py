"""
SQLAlchemy ORM Models Package.

Models are organized into domain-specific modules:
- base: Base class, TimestampMixin, id type and clock helpers
- tenant: Restaurant, Staff, Customer
- table: Section, Table
- order: Order, OrderItem
- channel: DineInOrder, TakeawayOrder, DeliveryOrder, ReservationOrder
- ledger: Transaction, LedgerEntry
- rider: RiderShift
- audit: AuditLog
- outbox: OutboxEvent
"""

from .base import Base, BigIntPK, TimestampMixin, ensure_utc, utcnow

from .tenant import Restaurant, Staff, Customer

from .table import Section, Table

# Rider shifts before orders: orders.rider_shift_id references them
from .rider import RiderShift

from .order import Order, OrderItem

from .channel import DineInOrder, TakeawayOrder, DeliveryOrder, ReservationOrder

from .ledger import Transaction, LedgerEntry

from .audit import AuditLog

from .outbox import OutboxEvent, OutboxStatus


__all__ = [
    "Base",
    "BigIntPK",
    "TimestampMixin",
    "ensure_utc",
    "utcnow",
    "Restaurant",
    "Staff",
    "Customer",
    "Section",
    "Table",
    "RiderShift",
    "Order",
    "OrderItem",
    "DineInOrder",
    "TakeawayOrder",
    "DeliveryOrder",
    "ReservationOrder",
    "Transaction",
    "LedgerEntry",
    "AuditLog",
    "OutboxEvent",
    "OutboxStatus",
]
