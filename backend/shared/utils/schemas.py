"""
Shared Pydantic schemas: request bodies and the records services return.

Input schemas only check shapes and types. Business rules (guest count,
required fields per channel, capacity) are enforced by the services so they
surface as ErrorKind values instead of request-parsing errors.
"""

import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

PaymentMethodLiteral = Literal["CASH", "CARD", "WALLET"]
ItemStatusLiteral = Literal["PENDING", "PREPARING", "DONE", "SERVED", "SKIPPED"]


# =============================================================================
# Order Input Schemas
# =============================================================================


class OrderItemInput(BaseModel):
    """A line item as entered on a terminal."""

    menu_item_id: int | None = None
    item_name: str = Field(min_length=1, max_length=Limits.MAX_NAME_LENGTH)
    quantity: int = Field(default=1, ge=Limits.MIN_QUANTITY, le=Limits.MAX_QUANTITY)
    unit_price_cents: int = Field(ge=Limits.MIN_PRICE_CENTS, le=Limits.MAX_PRICE_CENTS)
    requires_prep: bool = True
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class OrderInput(BaseModel):
    """
    Order creation (or upsert when `id` is set).

    `channel` stays a plain string: an unknown tag is reported as
    UNSUPPORTED_CHANNEL by the resolver rather than rejected by parsing.
    """

    id: int | None = None
    channel: str
    draft: bool = False
    items: list[OrderItemInput] = Field(default_factory=list)

    # Dine-in / reservation
    table_id: int | None = None
    guest_count: int | None = None
    waiter_id: int | None = None
    allow_over_capacity: bool | None = None

    # Customer
    customer_id: int | None = None
    customer_name: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    customer_phone: str | None = Field(default=None, max_length=40)

    # Delivery
    delivery_address: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)
    delivery_notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)

    # Takeaway / reservation timing
    pickup_time: datetime | None = None
    reservation_time: datetime | None = None


class OrderPatch(BaseModel):
    """
    Partial update. Only fields present in the request body are applied
    (see `model_fields_set`).
    """

    items: list[OrderItemInput] | None = None
    table_id: int | None = None
    guest_count: int | None = None
    waiter_id: int | None = None
    allow_over_capacity: bool | None = None
    customer_id: int | None = None
    customer_name: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    customer_phone: str | None = Field(default=None, max_length=40)
    delivery_address: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)
    delivery_notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)
    pickup_time: datetime | None = None
    reservation_time: datetime | None = None


class ItemStatusUpdate(BaseModel):
    status: ItemStatusLiteral


class SettleRequest(BaseModel):
    amount_cents: int = Field(ge=0)
    method: PaymentMethodLiteral = "CASH"


class ReasonRequest(BaseModel):
    """Cancel / void reason."""

    reason: str = Field(min_length=1, max_length=Limits.MAX_NOTES_LENGTH)


class CheckInRequest(BaseModel):
    guest_count: int | None = None
    allow_over_capacity: bool | None = None


class AssignDriverRequest(BaseModel):
    driver_id: int


# =============================================================================
# Floor Input Schemas
# =============================================================================


class SeatPartyRequest(BaseModel):
    guest_count: int
    preferred_section_id: int | None = None
    allow_over_capacity: bool | None = None
    table_id: int | None = None
    customer_name: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    waiter_id: int | None = None


class GuestCountUpdate(BaseModel):
    guest_count: int
    allow_over_capacity: bool | None = None


class MergeTablesRequest(BaseModel):
    secondary_table_ids: list[int] = Field(min_length=1)


# =============================================================================
# Rider / Accounting Input Schemas
# =============================================================================


class OpenShiftRequest(BaseModel):
    rider_id: int
    opening_float_cents: int = 0
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class CloseShiftRequest(BaseModel):
    shift_id: int
    closing_cash_received_cents: int = Field(ge=0)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class RiderSettlementRequest(BaseModel):
    amount_received_cents: int = Field(ge=0)
    order_ids: list[int] = Field(min_length=1)
    settlement_id: str = Field(min_length=1, max_length=100)


class PayoutRequest(BaseModel):
    amount_cents: int = Field(gt=0)
    category: str = Field(min_length=1, max_length=100)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


# =============================================================================
# Output Schemas
# =============================================================================


class OrderItemOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int | None = None
    item_name: str
    quantity: int
    unit_price_cents: int
    requires_prep: bool
    item_status: str
    notes: str | None = None
    fired_at: datetime | None = None
    completed_at: datetime | None = None
    served_at: datetime | None = None


class DineInOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    table_id: int | None = None
    guest_count: int
    waiter_id: int | None = None
    seated_at: datetime | None = None
    is_over_capacity: bool
    guest_count_history: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("guest_count_history", mode="before")
    @classmethod
    def _parse_history(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return json.loads(value)
        return value


class TakeawayOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token_number: str
    customer_name: str | None = None
    customer_phone: str | None = None
    pickup_time: datetime | None = None


class DeliveryOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customer_name: str
    customer_phone: str
    delivery_address: str
    delivery_notes: str | None = None
    driver_id: int | None = None
    dispatched_at: datetime | None = None
    delivered_at: datetime | None = None
    delivery_duration_minutes: int | None = None


class ReservationOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customer_name: str
    customer_phone: str
    reservation_time: datetime
    guest_count: int
    table_id: int | None = None
    arrival_status: str


class OrderOutput(BaseModel):
    """Order with its items and channel extension."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    restaurant_id: int
    order_number: str
    channel: str
    status: str
    payment_status: str
    total_cents: int
    status_version: int
    table_id: int | None = None
    guest_count: int | None = None
    customer_id: int | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    assigned_waiter_id: int | None = None
    assigned_driver_id: int | None = None
    rider_shift_id: int | None = None
    is_settled_with_rider: bool = False
    created_at: datetime | None = None
    closed_at: datetime | None = None
    cancellation_reason: str | None = None
    void_reason: str | None = None
    last_action_by: int | None = None
    last_action_desc: str | None = None
    last_action_at: datetime | None = None
    items: list[OrderItemOutput] = Field(default_factory=list)
    dine_in: DineInOutput | None = None
    takeaway: TakeawayOutput | None = None
    delivery: DeliveryOutput | None = None
    reservation: ReservationOutput | None = None


class TableOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    section_id: int | None = None
    name: str
    capacity: int
    status: str
    active_order_id: int | None = None
    merge_id: int | None = None
    version: int


class SectionLayout(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    prefix: str | None = None
    priority: int
    tables: list[TableOutput] = Field(default_factory=list)


class FloorLayout(BaseModel):
    sections: list[SectionLayout]
    unassigned_tables: list[TableOutput] = Field(default_factory=list)


class SeatPartyOutput(BaseModel):
    order: OrderOutput
    table: TableOutput
    over_capacity_warning: str | None = None


class ConsistencyViolation(BaseModel):
    table_id: int | None = None
    order_id: int | None = None
    problem: str


class LedgerEntryOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account: str
    account_id: int | None = None
    entry_type: str
    amount_cents: int
    reference_type: str
    reference_id: str | None = None
    description: str | None = None
    processed_by: int | None = None
    created_at: datetime | None = None


class RiderSettlementOutput(BaseModel):
    settlement_id: str
    rider_id: int
    order_ids: list[int]
    expected_cents: int
    received_cents: int
    difference_cents: int
    transaction_id: int


class PayoutOutput(BaseModel):
    entry_id: int
    amount_cents: int
    category: str


class CourierBalance(BaseModel):
    rider_id: int
    balance_cents: int
    pending_orders: int


class CourierReconciliation(BaseModel):
    rider_id: int
    derived_balance_cents: int
    ledger_balance_cents: int
    drift_cents: int
    in_sync: bool


class AccountBalance(BaseModel):
    account: str
    account_id: int | None = None
    debit_cents: int
    credit_cents: int
    balance_cents: int


class CustomerAggregate(BaseModel):
    customer_id: int
    name: str
    phone: str | None = None
    order_count: int
    total_spent_cents: int
    last_order_at: datetime | None = None
    segment: str


class RiderShiftOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    rider_id: int
    opened_by: int | None = None
    closed_by: int | None = None
    opened_at: datetime
    closed_at: datetime | None = None
    opening_float_cents: int
    closing_cash_received_cents: int | None = None
    expected_cash_cents: int | None = None
    cash_difference_cents: int | None = None
    status: str
    notes: str | None = None


class ShiftMetrics(BaseModel):
    shift_id: int
    rider_id: int
    status: str
    assigned_orders: int
    delivered_orders: int
    pending_orders: int
    delivered_total_cents: int
    unsettled_total_cents: int
    expected_liability_cents: int


class PendingSettlement(BaseModel):
    rider_id: int
    shift_id: int | None = None
    orders: list[OrderOutput] = Field(default_factory=list)
    order_count: int
    total_cents: int
    opening_float_cents: int
    expected_cash_cents: int
