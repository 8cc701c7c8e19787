"""
Centralized constants for the backend application.
Avoid magic strings for roles, statuses and event types.

Usage:
    from shared.config.constants import OrderStatus, MANAGEMENT_ROLES

    if ctx.role in MANAGEMENT_ROLES:
        ...

    if order.status == OrderStatus.ACTIVE:
        ...
"""

from enum import Enum
from typing import Final


# =============================================================================
# Staff Roles
# =============================================================================


class Roles:
    """Staff role constants."""

    ADMIN: Final[str] = "ADMIN"
    MANAGER: Final[str] = "MANAGER"
    CASHIER: Final[str] = "CASHIER"
    WAITER: Final[str] = "WAITER"
    KITCHEN: Final[str] = "KITCHEN"
    RIDER: Final[str] = "RIDER"

    ALL: Final[list[str]] = [ADMIN, MANAGER, CASHIER, WAITER, KITCHEN, RIDER]


MANAGEMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER})
FRONT_OF_HOUSE_ROLES: Final[frozenset[str]] = frozenset(
    {Roles.ADMIN, Roles.MANAGER, Roles.CASHIER, Roles.WAITER}
)
CASH_HANDLING_ROLES: Final[frozenset[str]] = frozenset(
    {Roles.ADMIN, Roles.MANAGER, Roles.CASHIER}
)
KITCHEN_ACCESS_ROLES: Final[frozenset[str]] = frozenset(
    {Roles.ADMIN, Roles.MANAGER, Roles.KITCHEN, Roles.WAITER}
)


# =============================================================================
# Order Channels
# =============================================================================


class Channel(str, Enum):
    """Order-taking mode. Each member has exactly one behavior implementation."""

    DINE_IN = "DINE_IN"
    TAKEAWAY = "TAKEAWAY"
    DELIVERY = "DELIVERY"
    RESERVATION = "RESERVATION"


# =============================================================================
# Entity Status Constants
# =============================================================================


class OrderStatus:
    """Order status constants."""

    DRAFT: Final[str] = "DRAFT"
    ACTIVE: Final[str] = "ACTIVE"
    READY: Final[str] = "READY"
    DELIVERED: Final[str] = "DELIVERED"  # Delivery channel only
    CLOSED: Final[str] = "CLOSED"
    CANCELLED: Final[str] = "CANCELLED"
    VOIDED: Final[str] = "VOIDED"

    OPEN: Final[list[str]] = [DRAFT, ACTIVE, READY, DELIVERED]
    TERMINAL: Final[list[str]] = [CLOSED, CANCELLED, VOIDED]


class PaymentStatus:
    """Order payment status constants."""

    UNPAID: Final[str] = "UNPAID"
    PAID: Final[str] = "PAID"


class ItemStatus:
    """Order line item status constants."""

    PENDING: Final[str] = "PENDING"
    PREPARING: Final[str] = "PREPARING"
    DONE: Final[str] = "DONE"
    SERVED: Final[str] = "SERVED"
    SKIPPED: Final[str] = "SKIPPED"

    # Items in these states no longer block the order from being ready
    FINISHED: Final[list[str]] = [DONE, SERVED, SKIPPED]


class TableStatus:
    """Table status constants."""

    AVAILABLE: Final[str] = "AVAILABLE"
    OCCUPIED: Final[str] = "OCCUPIED"
    PAYMENT_PENDING: Final[str] = "PAYMENT_PENDING"
    DIRTY: Final[str] = "DIRTY"
    RESERVED: Final[str] = "RESERVED"

    IN_USE: Final[list[str]] = [OCCUPIED, PAYMENT_PENDING]


class ShiftStatus:
    """Rider shift status constants."""

    OPEN: Final[str] = "OPEN"
    CLOSED: Final[str] = "CLOSED"


class ArrivalStatus:
    """Reservation arrival status constants."""

    PENDING: Final[str] = "PENDING"
    NO_SHOW: Final[str] = "NO_SHOW"


class PaymentMethod:
    """Payment method constants."""

    CASH: Final[str] = "CASH"
    CARD: Final[str] = "CARD"
    WALLET: Final[str] = "WALLET"

    ALL: Final[list[str]] = [CASH, CARD, WALLET]


class TransactionKind:
    """Kinds of money-received records."""

    SALE: Final[str] = "SALE"
    RIDER_SETTLEMENT: Final[str] = "RIDER_SETTLEMENT"


# =============================================================================
# Ledger
# =============================================================================


class EntryType:
    """Double-entry sides."""

    DEBIT: Final[str] = "DEBIT"
    CREDIT: Final[str] = "CREDIT"


class LedgerAccount:
    """Ledger accounts. COURIER entries also carry the rider's staff id."""

    REVENUE: Final[str] = "REVENUE"
    CASH: Final[str] = "CASH"
    CARD_CLEARING: Final[str] = "CARD_CLEARING"
    COURIER: Final[str] = "COURIER"
    EXPENSE: Final[str] = "EXPENSE"
    CASH_VARIANCE: Final[str] = "CASH_VARIANCE"


class ReferenceType:
    """What a ledger entry refers to."""

    ORDER: Final[str] = "ORDER"
    SETTLEMENT: Final[str] = "SETTLEMENT"
    PAYOUT: Final[str] = "PAYOUT"
    RIDER_SHIFT: Final[str] = "RIDER_SHIFT"
    ADJUSTMENT: Final[str] = "ADJUSTMENT"


# Which account receives the money for a payment method
METHOD_ACCOUNTS: Final[dict[str, str]] = {
    PaymentMethod.CASH: LedgerAccount.CASH,
    PaymentMethod.CARD: LedgerAccount.CARD_CLEARING,
    PaymentMethod.WALLET: LedgerAccount.CARD_CLEARING,
}


class CustomerSegment:
    """Customer segments derived from order counts."""

    VIP: Final[str] = "VIP"
    REGULAR: Final[str] = "REGULAR"
    NEW: Final[str] = "NEW"

    VIP_MIN_ORDERS: Final[int] = 11
    REGULAR_MIN_ORDERS: Final[int] = 4


# =============================================================================
# Status Transitions
# =============================================================================

# Every target ranks above its source or is terminal, so observed statuses never go back.
ORDER_STATUS_RANK: Final[dict[str, int]] = {
    OrderStatus.DRAFT: 0,
    OrderStatus.ACTIVE: 1,
    OrderStatus.READY: 2,
    OrderStatus.DELIVERED: 3,
    OrderStatus.CLOSED: 4,
    OrderStatus.CANCELLED: 5,
    OrderStatus.VOIDED: 5,
}

ORDER_TRANSITIONS: Final[dict[str, list[str]]] = {
    OrderStatus.DRAFT: [
        OrderStatus.ACTIVE, OrderStatus.CLOSED, OrderStatus.CANCELLED, OrderStatus.VOIDED,
    ],
    OrderStatus.ACTIVE: [
        OrderStatus.READY, OrderStatus.CLOSED, OrderStatus.CANCELLED, OrderStatus.VOIDED,
    ],
    OrderStatus.READY: [
        OrderStatus.DELIVERED, OrderStatus.CLOSED, OrderStatus.CANCELLED, OrderStatus.VOIDED,
    ],
    OrderStatus.DELIVERED: [OrderStatus.CLOSED, OrderStatus.CANCELLED, OrderStatus.VOIDED],
    OrderStatus.CLOSED: [],  # Terminal state
    OrderStatus.CANCELLED: [],  # Terminal state
    OrderStatus.VOIDED: [],  # Terminal state
}

# Role restrictions keyed by target status; targets not listed are open to any staff
ORDER_TRANSITION_ROLES: Final[dict[str, frozenset[str]]] = {
    OrderStatus.VOIDED: MANAGEMENT_ROLES,
    OrderStatus.CANCELLED: FRONT_OF_HOUSE_ROLES,
}

ITEM_TRANSITIONS: Final[dict[str, list[str]]] = {
    ItemStatus.PENDING: [ItemStatus.PREPARING, ItemStatus.DONE, ItemStatus.SKIPPED],
    ItemStatus.PREPARING: [ItemStatus.DONE, ItemStatus.SKIPPED],
    ItemStatus.DONE: [ItemStatus.SERVED],
    ItemStatus.SERVED: [],
    ItemStatus.SKIPPED: [],
}

TABLE_TRANSITIONS: Final[dict[str, list[str]]] = {
    TableStatus.AVAILABLE: [TableStatus.OCCUPIED, TableStatus.RESERVED],
    # Back to AVAILABLE only when the order leaves before any service happened
    TableStatus.OCCUPIED: [TableStatus.PAYMENT_PENDING, TableStatus.DIRTY, TableStatus.AVAILABLE],
    TableStatus.PAYMENT_PENDING: [TableStatus.DIRTY],
    TableStatus.DIRTY: [TableStatus.AVAILABLE],
    TableStatus.RESERVED: [TableStatus.OCCUPIED, TableStatus.AVAILABLE],
}


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 99

    # Money (in cents)
    MIN_PRICE_CENTS: Final[int] = 0
    MAX_PRICE_CENTS: Final[int] = 100_000_00

    MIN_GUEST_COUNT: Final[int] = 1
    MAX_GUEST_COUNT: Final[int] = 50

    MAX_NAME_LENGTH: Final[int] = 200
    MAX_NOTES_LENGTH: Final[int] = 1000

    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 200


DEFAULT_CUSTOMER_NAME: Final[str] = "Guest"
TAKEAWAY_TOKEN_PREFIX: Final[str] = "T-"


# =============================================================================
# Event Types (outbox / Redis)
# =============================================================================


class EventType:
    """Change notification kinds."""

    ORDER_CREATED: Final[str] = "ORDER_CREATED"
    ORDER_UPDATED: Final[str] = "ORDER_UPDATED"
    ORDER_DELETED: Final[str] = "ORDER_DELETED"
    ORDER_STATUS_CHANGED: Final[str] = "ORDER_STATUS_CHANGED"
    ORDER_SETTLED: Final[str] = "ORDER_SETTLED"
    KITCHEN_ORDER_FIRED: Final[str] = "KITCHEN_ORDER_FIRED"
    ITEM_STATUS_CHANGED: Final[str] = "ITEM_STATUS_CHANGED"

    TABLE_STATUS_CHANGED: Final[str] = "TABLE_STATUS_CHANGED"
    GUEST_COUNT_CHANGED: Final[str] = "GUEST_COUNT_CHANGED"

    LEDGER_POSTED: Final[str] = "LEDGER_POSTED"
    RIDER_SETTLED: Final[str] = "RIDER_SETTLED"
    SHIFT_OPENED: Final[str] = "SHIFT_OPENED"
    SHIFT_CLOSED: Final[str] = "SHIFT_CLOSED"
    DRIVER_ASSIGNED: Final[str] = "DRIVER_ASSIGNED"
    ORDER_DELIVERED: Final[str] = "ORDER_DELIVERED"


class AggregateType:
    """Entity names used to route change notifications."""

    ORDER: Final[str] = "order"
    TABLE: Final[str] = "table"
    LEDGER: Final[str] = "ledger"
    RIDER_SHIFT: Final[str] = "rider_shift"


# =============================================================================
# Audit Actions
# =============================================================================


class AuditAction:
    """Audit log action types."""

    GUEST_OVER_CAPACITY: Final[str] = "GUEST_OVER_CAPACITY"
    GUEST_COUNT_REDUCTION: Final[str] = "GUEST_COUNT_REDUCTION"
    ORDER_CANCELLED: Final[str] = "ORDER_CANCELLED"
    ORDER_VOIDED: Final[str] = "ORDER_VOIDED"
    ORDER_DELETED: Final[str] = "ORDER_DELETED"
    DRIVER_ASSIGNED: Final[str] = "DRIVER_ASSIGNED"
    ORDER_DELIVERED: Final[str] = "ORDER_DELIVERED"
    TABLE_MERGED: Final[str] = "TABLE_MERGED"
    TABLE_SPLIT: Final[str] = "TABLE_SPLIT"
    SHIFT_VARIANCE: Final[str] = "SHIFT_VARIANCE"
