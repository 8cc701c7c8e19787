"""
Tests for DispatchService: rider assignment, delivery confirmation and
pending settlement lookups.
"""

import json

import pytest
from sqlalchemy import select

from rest_api.models import AuditLog, Order, OutboxEvent
from rest_api.services.domain.accounting_service import AccountingService
from rest_api.services.domain.dispatch_service import DispatchService
from rest_api.services.domain.order_lifecycle_service import OrderLifecycleService
from rest_api.services.domain.rider_shift_service import RiderShiftService
from shared.config.constants import AuditAction, EventType, LedgerAccount, OrderStatus
from shared.utils.exceptions import ErrorKind
from shared.utils.schemas import OrderPatch
from tests.conftest import (
    account_balance,
    delivered_order,
    delivery_input,
    item,
    ledger_entries,
    takeaway_input,
)


@pytest.fixture
def dispatch(db_session):
    return DispatchService(db_session)


@pytest.fixture
def shift(db_session, cashier_ctx, rider):
    return RiderShiftService(db_session).open_shift(
        cashier_ctx, rider.id, opening_float_cents=1000
    ).unwrap()


@pytest.fixture
def delivery_order(db_session, cashier_ctx):
    return OrderLifecycleService(db_session).create_order(cashier_ctx, delivery_input()).unwrap()


class TestAssignDriver:
    """Riders take delivery orders only while on shift."""

    def test_assign_readies_order_and_links_shift(
        self, dispatch, db_session, cashier_ctx, rider, shift, delivery_order
    ):
        result = dispatch.assign_driver(cashier_ctx, delivery_order.id, rider.id)

        assert result.ok
        order = result.value
        assert order.status == OrderStatus.READY
        assert order.assigned_driver_id == rider.id
        assert order.rider_shift_id == shift.id
        assert order.delivery.driver_id == rider.id
        assert order.delivery.dispatched_at is not None

        audit = db_session.scalar(
            select(AuditLog).where(AuditLog.action_type == AuditAction.DRIVER_ASSIGNED)
        )
        assert json.loads(audit.details)["shift_id"] == shift.id

    def test_rider_without_shift_rejected(self, dispatch, db_session, cashier_ctx, rider, delivery_order):
        result = dispatch.assign_driver(cashier_ctx, delivery_order.id, rider.id)

        assert result.kind is ErrorKind.VALIDATION_ERROR
        order = db_session.get(Order, delivery_order.id)
        assert order.assigned_driver_id is None
        assert order.status == OrderStatus.ACTIVE

    def test_non_delivery_order_rejected(self, dispatch, db_session, cashier_ctx, rider, shift):
        order = OrderLifecycleService(db_session).create_order(cashier_ctx, takeaway_input()).unwrap()

        result = dispatch.assign_driver(cashier_ctx, order.id, rider.id)

        assert result.kind is ErrorKind.VALIDATION_ERROR
        assert result.error.context["channel"] == "TAKEAWAY"

    def test_second_assignment_rejected(
        self, dispatch, db_session, cashier_ctx, rider, second_rider, shift, delivery_order
    ):
        RiderShiftService(db_session).open_shift(cashier_ctx, second_rider.id).unwrap()
        dispatch.assign_driver(cashier_ctx, delivery_order.id, rider.id).unwrap()

        result = dispatch.assign_driver(cashier_ctx, delivery_order.id, second_rider.id)

        assert result.kind is ErrorKind.INVALID_TRANSITION
        assert db_session.get(Order, delivery_order.id).assigned_driver_id == rider.id

    def test_cancelled_order_cannot_be_dispatched(
        self, dispatch, db_session, cashier_ctx, rider, shift, delivery_order
    ):
        OrderLifecycleService(db_session).cancel_order(cashier_ctx, delivery_order.id, "Changed mind").unwrap()

        result = dispatch.assign_driver(cashier_ctx, delivery_order.id, rider.id)

        assert result.kind is ErrorKind.INVALID_TRANSITION

    def test_unknown_order(self, dispatch, cashier_ctx, rider, shift):
        assert dispatch.assign_driver(cashier_ctx, 999, rider.id).kind is ErrorKind.ORDER_NOT_FOUND


class TestMarkDelivered:
    """Delivery books the sale against the rider."""

    def test_delivery_posts_sale_to_courier(self, dispatch, db_session, cashier_ctx, rider, shift, delivery_order):
        dispatch.assign_driver(cashier_ctx, delivery_order.id, rider.id).unwrap()

        delivered = dispatch.mark_delivered(cashier_ctx, delivery_order.id).unwrap()

        assert delivered.status == OrderStatus.DELIVERED
        assert delivered.delivery.delivered_at is not None
        assert delivered.delivery.delivery_duration_minutes == 0
        assert account_balance(db_session, LedgerAccount.REVENUE) == -1500
        sale = ledger_entries(db_session, account=LedgerAccount.COURIER, reference_type="ORDER")
        assert [(e.account_id, e.amount_cents) for e in sale] == [(rider.id, 1500)]
        kinds = [e.event_type for e in db_session.scalars(select(OutboxEvent).order_by(OutboxEvent.id))]
        assert kinds[-1] == EventType.ORDER_DELIVERED

    def test_unassigned_order_rejected(self, dispatch, cashier_ctx, delivery_order):
        result = dispatch.mark_delivered(cashier_ctx, delivery_order.id)

        assert result.kind is ErrorKind.VALIDATION_ERROR

    def test_delivered_twice_rejected(self, dispatch, db_session, cashier_ctx, rider, shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id)

        result = dispatch.mark_delivered(cashier_ctx, order_id)

        assert result.kind is ErrorKind.INVALID_TRANSITION
        assert len(ledger_entries(db_session, account=LedgerAccount.REVENUE)) == 1

    def test_delivered_order_cannot_be_edited(self, db_session, cashier_ctx, rider, shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id, price=1500)

        result = OrderLifecycleService(db_session).update_order(
            cashier_ctx, order_id, OrderPatch(items=[item("Pizza", 9000)])
        )

        assert result.kind is ErrorKind.INVALID_TRANSITION
        assert db_session.get(Order, order_id).total_cents == 1500
        reconciliation = AccountingService(db_session).reconcile_courier_balance(
            cashier_ctx, rider.id
        ).unwrap()
        assert reconciliation.in_sync
        assert reconciliation.drift_cents == 0

    def test_settle_delivered_order_is_a_handover(self, db_session, cashier_ctx, rider, shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id, price=1500)

        settled = OrderLifecycleService(db_session).settle(cashier_ctx, order_id, 1500).unwrap()

        assert settled.status == OrderStatus.CLOSED
        assert settled.is_settled_with_rider is True
        assert len(ledger_entries(db_session, account=LedgerAccount.REVENUE)) == 1
        # Only the float is left on the courier account
        assert account_balance(db_session, LedgerAccount.COURIER, rider.id) == 1000


class TestPendingSettlement:
    """What a rider owes on the open shift."""

    def test_pending_includes_float(self, dispatch, db_session, cashier_ctx, rider, shift):
        first = delivered_order(db_session, cashier_ctx, rider.id, price=1500)
        second = delivered_order(db_session, cashier_ctx, rider.id, price=500)

        pending = dispatch.get_pending_settlement(cashier_ctx, rider.id).unwrap()

        assert pending.shift_id == shift.id
        assert [o.id for o in pending.orders] == [first, second]
        assert pending.order_count == 2
        assert pending.total_cents == 2000
        assert pending.opening_float_cents == 1000
        assert pending.expected_cash_cents == 3000

    def test_no_shift_means_nothing_pending(self, dispatch, cashier_ctx, rider):
        pending = dispatch.get_pending_settlement(cashier_ctx, rider.id).unwrap()

        assert pending.shift_id is None
        assert pending.orders == []
        assert pending.expected_cash_cents == 0

    def test_settled_orders_drop_out(self, dispatch, db_session, cashier_ctx, rider, shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id)
        OrderLifecycleService(db_session).settle(cashier_ctx, order_id, 1500).unwrap()

        pending = dispatch.get_pending_settlement(cashier_ctx, rider.id).unwrap()

        assert pending.order_count == 0
        assert pending.expected_cash_cents == 1000
