"""
Tests for AccountingService: ledger postings, rider settlements,
courier balances and customer aggregates.
"""

import pytest

from rest_api.models import Order, Transaction
from rest_api.services.domain.accounting_service import AccountingService, customer_segment
from rest_api.services.domain.dispatch_service import DispatchService
from rest_api.services.domain.order_lifecycle_service import OrderLifecycleService
from rest_api.services.domain.rider_shift_service import RiderShiftService
from shared.config.constants import (
    CustomerSegment,
    LedgerAccount,
    OrderStatus,
    PaymentStatus,
    ReferenceType,
)
from shared.utils.exceptions import ErrorKind
from tests.conftest import (
    account_balance,
    delivered_order,
    delivery_input,
    ledger_entries,
    takeaway_input,
)


@pytest.fixture
def service(db_session):
    return AccountingService(db_session)


@pytest.fixture
def open_shift(db_session, cashier_ctx, rider):
    return RiderShiftService(db_session).open_shift(cashier_ctx, rider.id).unwrap()


def assert_balanced(db):
    entries = ledger_entries(db)
    debits = sum(e.amount_cents for e in entries if e.entry_type == "DEBIT")
    credits = sum(e.amount_cents for e in entries if e.entry_type == "CREDIT")
    assert debits == credits


class TestPayout:
    """Cash out of the drawer for expenses."""

    def test_payout_moves_cash_to_expense(self, service, db_session, cashier_ctx):
        payout = service.record_payout(cashier_ctx, 2500, "Ice", notes="Two bags").unwrap()

        assert payout.amount_cents == 2500
        assert account_balance(db_session, LedgerAccount.CASH) == -2500
        assert account_balance(db_session, LedgerAccount.EXPENSE) == 2500
        expense = ledger_entries(db_session, account=LedgerAccount.EXPENSE)[0]
        assert expense.reference_type == ReferenceType.PAYOUT
        assert expense.description == "Ice: Two bags"

    @pytest.mark.parametrize("amount", [0, -100])
    def test_payout_must_be_positive(self, service, db_session, cashier_ctx, amount):
        result = service.record_payout(cashier_ctx, amount, "Ice")

        assert result.kind is ErrorKind.VALIDATION_ERROR
        assert ledger_entries(db_session) == []


class TestSalePosting:
    """Revenue is posted once per order."""

    def test_sale_posted_once(self, service, db_session, cashier_ctx):
        order_out = OrderLifecycleService(db_session).create_order(cashier_ctx, takeaway_input()).unwrap()
        order = db_session.get(Order, order_out.id)

        assert service.record_order_sale(order, method="CASH") is True
        assert service.record_order_sale(order, method="CASH") is False

        revenue = ledger_entries(db_session, account=LedgerAccount.REVENUE)
        assert len(revenue) == 1
        assert revenue[0].idempotency_key == f"sale:{order.id}:credit"

    def test_zero_total_posts_nothing(self, service, db_session, cashier_ctx):
        order_out = OrderLifecycleService(db_session).create_order(
            cashier_ctx, takeaway_input(items=[])
        ).unwrap()

        assert service.record_order_sale(db_session.get(Order, order_out.id)) is False

    def test_delivery_revenue_booked_at_delivery(self, db_session, cashier_ctx, rider, open_shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id, price=1500)

        courier = ledger_entries(db_session, account=LedgerAccount.COURIER, account_id=rider.id)
        assert [(e.entry_type, e.amount_cents, e.reference_id) for e in courier] == [
            ("DEBIT", 1500, str(order_id))
        ]
        assert account_balance(db_session, LedgerAccount.REVENUE) == -1500

    def test_cancel_after_delivery_reverses_sale(self, service, db_session, cashier_ctx, rider, open_shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id, price=1500)

        OrderLifecycleService(db_session).cancel_order(cashier_ctx, order_id, "Refused at door").unwrap()

        assert account_balance(db_session, LedgerAccount.REVENUE) == 0
        assert account_balance(db_session, LedgerAccount.COURIER, rider.id) == 0
        assert service.reconcile_courier_balance(cashier_ctx, rider.id).unwrap().in_sync
        assert_balanced(db_session)


class TestRiderSettlement:
    """Batch settlement of delivered orders with the cash a rider hands in."""

    def test_settles_orders_and_clears_courier(self, service, db_session, cashier_ctx, rider, open_shift):
        first = delivered_order(db_session, cashier_ctx, rider.id, price=1500)
        second = delivered_order(db_session, cashier_ctx, rider.id, price=2000)

        result = service.record_rider_settlement(cashier_ctx, rider.id, 3500, [first, second], "S-1").unwrap()

        assert result.expected_cents == 3500
        assert result.difference_cents == 0
        for order_id in (first, second):
            order = db_session.get(Order, order_id)
            assert order.status == OrderStatus.CLOSED
            assert order.payment_status == PaymentStatus.PAID
            assert order.is_settled_with_rider is True
        assert account_balance(db_session, LedgerAccount.COURIER, rider.id) == 0
        assert account_balance(db_session, LedgerAccount.CASH) == 3500
        assert ledger_entries(db_session, account=LedgerAccount.CASH_VARIANCE) == []
        assert len(ledger_entries(db_session, account=LedgerAccount.REVENUE)) == 2
        assert_balanced(db_session)

    def test_duplicate_settlement_id_rejected(self, service, db_session, cashier_ctx, rider, open_shift):
        first = delivered_order(db_session, cashier_ctx, rider.id)
        second = delivered_order(db_session, cashier_ctx, rider.id)
        service.record_rider_settlement(cashier_ctx, rider.id, 1500, [first], "S-1").unwrap()

        replay = service.record_rider_settlement(cashier_ctx, rider.id, 1500, [second], "S-1")

        assert replay.kind is ErrorKind.ALREADY_SETTLED
        assert db_session.get(Order, second).is_settled_with_rider is False
        assert db_session.query(Transaction).filter_by(reference="S-1").count() == 1

    def test_order_settled_twice_rejected(self, service, cashier_ctx, rider, db_session, open_shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id)
        service.record_rider_settlement(cashier_ctx, rider.id, 1500, [order_id], "S-1").unwrap()

        again = service.record_rider_settlement(cashier_ctx, rider.id, 1500, [order_id], "S-2")

        assert again.kind is ErrorKind.ALREADY_SETTLED

    def test_wrong_rider_rejects_whole_batch(
        self, service, db_session, cashier_ctx, rider, second_rider, open_shift
    ):
        RiderShiftService(db_session).open_shift(cashier_ctx, second_rider.id).unwrap()
        mine = delivered_order(db_session, cashier_ctx, rider.id)
        theirs = delivered_order(db_session, cashier_ctx, second_rider.id)

        result = service.record_rider_settlement(cashier_ctx, rider.id, 3000, [mine, theirs], "S-1")

        assert result.kind is ErrorKind.VALIDATION_ERROR
        assert result.error.context["order_id"] == theirs
        assert db_session.get(Order, mine).is_settled_with_rider is False
        assert db_session.query(Transaction).count() == 0

    def test_undelivered_order_rejected(self, service, db_session, cashier_ctx, rider, open_shift):

        order = OrderLifecycleService(db_session).create_order(cashier_ctx, delivery_input()).unwrap()
        DispatchService(db_session).assign_driver(cashier_ctx, order.id, rider.id).unwrap()

        result = service.record_rider_settlement(cashier_ctx, rider.id, 1500, [order.id], "S-1")

        assert result.kind is ErrorKind.VALIDATION_ERROR

    def test_shortfall_goes_to_variance(self, service, db_session, cashier_ctx, rider, open_shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id, price=2000)

        result = service.record_rider_settlement(cashier_ctx, rider.id, 1800, [order_id], "S-1").unwrap()

        assert result.difference_cents == -200
        variance = ledger_entries(db_session, account=LedgerAccount.CASH_VARIANCE)
        assert [(e.entry_type, e.amount_cents) for e in variance] == [("DEBIT", 200)]
        assert account_balance(db_session, LedgerAccount.COURIER, rider.id) == 0
        assert_balanced(db_session)

    def test_surplus_goes_to_variance(self, service, db_session, cashier_ctx, rider, open_shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id, price=2000)

        service.record_rider_settlement(cashier_ctx, rider.id, 2100, [order_id], "S-1").unwrap()

        variance = ledger_entries(db_session, account=LedgerAccount.CASH_VARIANCE)
        assert [(e.entry_type, e.amount_cents) for e in variance] == [("CREDIT", 100)]
        assert_balanced(db_session)

    def test_missing_order(self, service, cashier_ctx, rider):
        result = service.record_rider_settlement(cashier_ctx, rider.id, 100, [9999], "S-1")

        assert result.kind is ErrorKind.ORDER_NOT_FOUND


class TestCourierBalance:
    """Derived courier cash versus the COURIER account."""

    def test_balance_counts_unsettled_deliveries(self, service, db_session, cashier_ctx, rider, open_shift):
        delivered_order(db_session, cashier_ctx, rider.id, price=1500)
        delivered_order(db_session, cashier_ctx, rider.id, price=700)

        balance = service.get_courier_cash_balance(cashier_ctx, rider.id).unwrap()

        assert balance.balance_cents == 2200
        assert balance.pending_orders == 2

    def test_reconcile_ignores_float(self, service, db_session, cashier_ctx, rider):
        RiderShiftService(db_session).open_shift(cashier_ctx, rider.id, opening_float_cents=1000).unwrap()
        delivered_order(db_session, cashier_ctx, rider.id, price=1500)

        reconciliation = service.reconcile_courier_balance(cashier_ctx, rider.id).unwrap()

        assert reconciliation.derived_balance_cents == 1500
        assert reconciliation.ledger_balance_cents == 1500
        assert reconciliation.in_sync is True
        # The COURIER account itself still carries the float
        assert account_balance(db_session, LedgerAccount.COURIER, rider.id) == 2500

    def test_reconcile_reports_drift(self, service, db_session, cashier_ctx, rider, open_shift):
        order_id = delivered_order(db_session, cashier_ctx, rider.id, price=1500)
        # Marked settled without any ledger posting
        db_session.get(Order, order_id).is_settled_with_rider = True
        db_session.commit()

        reconciliation = service.reconcile_courier_balance(cashier_ctx, rider.id).unwrap()

        assert reconciliation.derived_balance_cents == 0
        assert reconciliation.ledger_balance_cents == 1500
        assert reconciliation.drift_cents == -1500
        assert reconciliation.in_sync is False


class TestReads:

    def test_account_balance(self, service, db_session, cashier_ctx):
        lifecycle = OrderLifecycleService(db_session)
        order = lifecycle.create_order(cashier_ctx, takeaway_input()).unwrap()
        lifecycle.settle(cashier_ctx, order.id, 500, "CASH").unwrap()
        service.record_payout(cashier_ctx, 200, "Tips").unwrap()

        cash = service.get_account_balance(cashier_ctx, LedgerAccount.CASH).unwrap()

        assert (cash.debit_cents, cash.credit_cents, cash.balance_cents) == (500, 200, 300)

    def test_recent_ledger_is_newest_first_and_limited(self, service, cashier_ctx):
        for amount in (100, 200, 300):
            service.record_payout(cashier_ctx, amount, "Misc").unwrap()

        entries = service.get_recent_ledger(cashier_ctx, limit=2).unwrap()

        assert len(entries) == 2
        assert entries[0].id > entries[1].id

    def test_ledger_scoped_to_restaurant(self, service, cashier_ctx, foreign_ctx):
        service.record_payout(cashier_ctx, 100, "Misc").unwrap()

        assert service.get_recent_ledger(foreign_ctx).unwrap() == []

    def test_customer_aggregates(self, service, db_session, cashier_ctx):
        lifecycle = OrderLifecycleService(db_session)
        orders = [
            lifecycle.create_order(
                cashier_ctx, takeaway_input(customer_name="Ana", customer_phone="555-0111")
            ).unwrap()
            for _ in range(4)
        ]
        for order in orders[:2]:
            lifecycle.settle(cashier_ctx, order.id, 500).unwrap()

        [aggregate] = service.get_customer_aggregates(cashier_ctx).unwrap()

        assert aggregate.name == "Ana"
        assert aggregate.order_count == 4
        assert aggregate.total_spent_cents == 1000
        assert aggregate.segment == CustomerSegment.REGULAR
        assert aggregate.last_order_at is not None

    @pytest.mark.parametrize(
        "count,segment",
        [(0, "NEW"), (3, "NEW"), (4, "REGULAR"), (10, "REGULAR"), (11, "VIP"), (50, "VIP")],
    )
    def test_segments(self, count, segment):
        assert customer_segment(count) == segment
