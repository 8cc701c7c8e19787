"""
Ledger / Accounting Domain Service.

Double-entry journal of the money the restaurant takes in and hands out.
Every posting writes a DEBIT and a CREDIT of equal size, so any account's
balance is DEBIT minus CREDIT and the journal as a whole always nets to zero.

Postings:
    sale            CREDIT REVENUE / DEBIT CASH, CARD_CLEARING or COURIER(rider)
    sale reversal   the mirror image, when a delivered order is cancelled
    courier handover DEBIT CASH received / CREDIT COURIER(rider) order totals,
                    difference to CASH_VARIANCE
    rider float     CREDIT CASH / DEBIT COURIER(rider) at shift open, reversed at close
    payout          CREDIT CASH / DEBIT EXPENSE

The courier cash balance is never stored: it is the sum of the rider's
delivered, unsettled orders, and reconcile_courier_balance() checks it
against the COURIER account.

Helpers returning plain values (record_order_sale, reverse_order_sale,
record_courier_handover, record_float, settle_rider_orders) run inside the
caller's unit of work and never commit; public operations return an
OperationResult.
"""

from __future__ import annotations

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from rest_api.models import Customer, LedgerEntry, Order, Transaction, utcnow
from rest_api.services.events import write_change_event
from rest_api.services.order_state import emit_order_event, transition_order
from shared.config.constants import (
    METHOD_ACCOUNTS,
    AggregateType,
    CustomerSegment,
    EntryType,
    EventType,
    LedgerAccount,
    Limits,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ReferenceType,
    TransactionKind,
)
from shared.config.logging import ledger_logger as logger
from shared.infrastructure.transaction import TransactionCoordinator
from shared.security.context import ActorContext
from shared.utils.exceptions import (
    AlreadySettledError,
    OrderNotFoundError,
    ValidationError,
)
from shared.utils.result import OperationResult
from shared.utils.schemas import (
    AccountBalance,
    CourierBalance,
    CourierReconciliation,
    CustomerAggregate,
    LedgerEntryOutput,
    PayoutOutput,
    RiderSettlementOutput,
)


def customer_segment(order_count: int) -> str:
    if order_count >= CustomerSegment.VIP_MIN_ORDERS:
        return CustomerSegment.VIP
    if order_count >= CustomerSegment.REGULAR_MIN_ORDERS:
        return CustomerSegment.REGULAR
    return CustomerSegment.NEW


class AccountingService:
    """
    Domain service for ledger postings and courier cash.
    """

    def __init__(self, db: Session):
        self._db = db

    # =========================================================================
    # Posting primitives
    # =========================================================================

    def _entry(
        self,
        restaurant_id: int,
        account: str,
        entry_type: str,
        amount_cents: int,
        reference_type: str,
        reference_id: str | None,
        *,
        account_id: int | None = None,
        description: str | None = None,
        processed_by: int | None = None,
        idempotency_key: str | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            restaurant_id=restaurant_id,
            account=account,
            account_id=account_id,
            entry_type=entry_type,
            amount_cents=amount_cents,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
            processed_by=processed_by,
            idempotency_key=idempotency_key,
        )
        self._db.add(entry)
        return entry

    def _post_variance(
        self,
        restaurant_id: int,
        difference_cents: int,
        reference_id: str,
        processed_by: int | None,
        description: str,
    ) -> LedgerEntry | None:
        """
        Book cash over/short. A shortfall is a DEBIT to CASH_VARIANCE (the
        drawer got less than owed), a surplus a CREDIT.
        """
        if difference_cents == 0:
            return None
        return self._entry(
            restaurant_id,
            LedgerAccount.CASH_VARIANCE,
            EntryType.CREDIT if difference_cents > 0 else EntryType.DEBIT,
            abs(difference_cents),
            ReferenceType.ADJUSTMENT,
            reference_id,
            description=description,
            processed_by=processed_by,
        )

    def _sale_key(self, order: Order, side: str) -> str:
        return f"sale:{order.id}:{side}"

    def _sale_posted(self, order: Order) -> bool:
        return (
            self._db.scalar(
                select(LedgerEntry.id).where(
                    LedgerEntry.idempotency_key == self._sale_key(order, "credit")
                )
            )
            is not None
        )

    def _sale_debit_target(self, order: Order, method: str | None) -> tuple[str, int | None]:
        if order.status == OrderStatus.DELIVERED and order.assigned_driver_id is not None:
            return LedgerAccount.COURIER, order.assigned_driver_id
        return METHOD_ACCOUNTS.get(method or PaymentMethod.CASH, LedgerAccount.CASH), None

    def record_order_sale(
        self,
        order: Order,
        *,
        method: str | None = None,
        processed_by: int | None = None,
    ) -> bool:
        """
        Post the revenue of an order exactly once.

        Returns False when the sale was already posted (or there is nothing
        to post). The unique idempotency keys make a concurrent second
        posting fail at flush, which the coordinator retries into this
        no-op branch.
        """
        if order.total_cents <= 0 or self._sale_posted(order):
            return False

        account, account_id = self._sale_debit_target(order, method)
        reference = str(order.id)
        description = f"Sale {order.order_number}"
        self._entry(
            order.restaurant_id, LedgerAccount.REVENUE, EntryType.CREDIT,
            order.total_cents, ReferenceType.ORDER, reference,
            description=description, processed_by=processed_by,
            idempotency_key=self._sale_key(order, "credit"),
        )
        self._entry(
            order.restaurant_id, account, EntryType.DEBIT,
            order.total_cents, ReferenceType.ORDER, reference,
            account_id=account_id, description=description, processed_by=processed_by,
            idempotency_key=self._sale_key(order, "debit"),
        )
        self._db.flush()
        logger.info(
            "Sale posted",
            order_id=order.id,
            amount_cents=order.total_cents,
            debit_account=account,
            account_id=account_id,
        )
        return True

    def reverse_order_sale(self, order: Order, processed_by: int | None = None) -> bool:
        """
        Undo a posted sale when its order is cancelled or voided after
        delivery. Idempotent like record_order_sale.
        """
        if not self._sale_posted(order):
            return False
        reversal_key = self._sale_key(order, "reversal:debit")
        if self._db.scalar(
            select(LedgerEntry.id).where(LedgerEntry.idempotency_key == reversal_key)
        ) is not None:
            return False

        debit = self._db.scalar(
            select(LedgerEntry).where(
                LedgerEntry.idempotency_key == self._sale_key(order, "debit")
            )
        )
        reference = str(order.id)
        description = f"Reversal of sale {order.order_number}"
        self._entry(
            order.restaurant_id, LedgerAccount.REVENUE, EntryType.DEBIT,
            debit.amount_cents, ReferenceType.ORDER, reference,
            description=description, processed_by=processed_by,
            idempotency_key=reversal_key,
        )
        self._entry(
            order.restaurant_id, debit.account, EntryType.CREDIT,
            debit.amount_cents, ReferenceType.ORDER, reference,
            account_id=debit.account_id, description=description,
            processed_by=processed_by,
            idempotency_key=self._sale_key(order, "reversal:credit"),
        )
        self._db.flush()
        logger.info("Sale reversed", order_id=order.id, amount_cents=debit.amount_cents)
        return True

    def record_courier_handover(
        self,
        ctx: ActorContext,
        rider_id: int,
        orders: list[Order],
        amount_received_cents: int,
        reference_id: str,
        *,
        float_cents: int = 0,
        shift_id: int | None = None,
        debit_account: str = LedgerAccount.CASH,
    ) -> int:
        """
        Cash handed over by a rider: the drawer gets what was received, the
        courier account is cleared of the order totals (and of the shift
        float when one is returned), and the gap goes to CASH_VARIANCE.
        Returns the difference, received minus expected.
        """
        expected = sum(o.total_cents for o in orders) + float_cents
        difference = amount_received_cents - expected
        description = f"Rider {rider_id} handover"
        if amount_received_cents:
            self._entry(
                ctx.restaurant_id, debit_account, EntryType.DEBIT,
                amount_received_cents, ReferenceType.SETTLEMENT, reference_id,
                description=description, processed_by=ctx.staff_id,
            )
        for order in orders:
            if order.total_cents:
                self._entry(
                    ctx.restaurant_id, LedgerAccount.COURIER, EntryType.CREDIT,
                    order.total_cents, ReferenceType.SETTLEMENT, reference_id,
                    account_id=rider_id,
                    description=f"Settled {order.order_number}",
                    processed_by=ctx.staff_id,
                )
        if float_cents:
            self._entry(
                ctx.restaurant_id, LedgerAccount.COURIER, EntryType.CREDIT,
                float_cents, ReferenceType.RIDER_SHIFT, str(shift_id),
                account_id=rider_id, description="Float returned",
                processed_by=ctx.staff_id,
            )
        self._post_variance(
            ctx.restaurant_id, difference, reference_id, ctx.staff_id,
            f"Rider {rider_id} cash {'over' if difference > 0 else 'short'}",
        )
        self._db.flush()
        return difference

    def record_float(
        self, ctx: ActorContext, rider_id: int, amount_cents: int, shift_id: int
    ) -> None:
        """Cash float handed to a rider when a shift opens."""
        if amount_cents <= 0:
            return
        reference = str(shift_id)
        self._entry(
            ctx.restaurant_id, LedgerAccount.CASH, EntryType.CREDIT,
            amount_cents, ReferenceType.RIDER_SHIFT, reference,
            description="Float issued", processed_by=ctx.staff_id,
        )
        self._entry(
            ctx.restaurant_id, LedgerAccount.COURIER, EntryType.DEBIT,
            amount_cents, ReferenceType.RIDER_SHIFT, reference,
            account_id=rider_id, description="Float issued", processed_by=ctx.staff_id,
        )
        self._db.flush()

    def settle_rider_orders(
        self,
        ctx: ActorContext,
        orders: list[Order],
        description: str,
    ) -> None:
        """Mark delivered orders as paid through their rider and close them."""
        now = utcnow()
        for order in orders:
            self.record_order_sale(order, processed_by=ctx.staff_id)
            order.is_settled_with_rider = True
            order.payment_status = PaymentStatus.PAID
            transition_order(order, ctx, OrderStatus.CLOSED, description, now)
            emit_order_event(self._db, ctx, order, EventType.ORDER_SETTLED)

    # =========================================================================
    # Public operations
    # =========================================================================

    def record_rider_settlement(
        self,
        ctx: ActorContext,
        rider_id: int,
        amount_received_cents: int,
        order_ids: list[int],
        settlement_id: str,
    ) -> OperationResult[RiderSettlementOutput]:
        """
        Settle a batch of delivered orders with the cash a rider hands in.
        All orders must qualify or nothing is written.
        """
        return TransactionCoordinator(self._db).run(
            "record_rider_settlement",
            lambda: self._record_rider_settlement(
                ctx, rider_id, amount_received_cents, order_ids, settlement_id
            ),
            rider_id=rider_id,
            settlement_id=settlement_id,
        )

    def _record_rider_settlement(
        self,
        ctx: ActorContext,
        rider_id: int,
        amount_received_cents: int,
        order_ids: list[int],
        settlement_id: str,
    ) -> RiderSettlementOutput:
        if amount_received_cents < 0:
            raise ValidationError("amount_received_cents cannot be negative")
        unique_ids = list(dict.fromkeys(order_ids))
        if not unique_ids:
            raise ValidationError("Settlement needs at least one order")

        existing = self._db.scalar(
            select(Transaction.id).where(
                Transaction.restaurant_id == ctx.restaurant_id,
                Transaction.reference == settlement_id,
            )
        )
        if existing is not None:
            raise AlreadySettledError(
                "Settlement already recorded",
                settlement_id=settlement_id,
                transaction_id=existing,
            )

        found = {
            o.id: o
            for o in self._db.scalars(
                select(Order)
                .where(
                    Order.restaurant_id == ctx.restaurant_id,
                    Order.id.in_(unique_ids),
                )
                .with_for_update()
            )
        }
        orders = []
        for order_id in unique_ids:
            order = found.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if order.assigned_driver_id != rider_id:
                raise ValidationError(
                    "Order is not assigned to this rider",
                    order_id=order_id,
                    rider_id=rider_id,
                    assigned_driver_id=order.assigned_driver_id,
                )
            if order.is_settled_with_rider or order.payment_status == PaymentStatus.PAID:
                raise AlreadySettledError("Order already settled", order_id=order_id)
            if order.status != OrderStatus.DELIVERED:
                raise ValidationError(
                    "Only delivered orders can be settled with a rider",
                    order_id=order_id,
                    status=order.status,
                )
            orders.append(order)

        transaction = Transaction(
            restaurant_id=ctx.restaurant_id,
            order_id=None,
            amount_cents=amount_received_cents,
            method=PaymentMethod.CASH,
            kind=TransactionKind.RIDER_SETTLEMENT,
            reference=settlement_id,
            processed_by=ctx.staff_id,
        )
        self._db.add(transaction)
        difference = self.record_courier_handover(
            ctx, rider_id, orders, amount_received_cents, settlement_id
        )
        self.settle_rider_orders(ctx, orders, f"Settled with rider ({settlement_id})")
        self._db.flush()

        output = RiderSettlementOutput(
            settlement_id=settlement_id,
            rider_id=rider_id,
            order_ids=[o.id for o in orders],
            expected_cents=amount_received_cents - difference,
            received_cents=amount_received_cents,
            difference_cents=difference,
            transaction_id=transaction.id,
        )
        write_change_event(
            self._db, ctx,
            entity=AggregateType.LEDGER,
            kind=EventType.RIDER_SETTLED,
            entity_id=transaction.id,
            record=output.model_dump(mode="json"),
        )
        logger.info(
            "Rider settlement recorded",
            rider_id=rider_id,
            settlement_id=settlement_id,
            orders=len(orders),
            received_cents=amount_received_cents,
            difference_cents=difference,
        )
        return output

    def record_payout(
        self,
        ctx: ActorContext,
        amount_cents: int,
        category: str,
        notes: str | None = None,
    ) -> OperationResult[PayoutOutput]:
        """Cash taken out of the drawer for an expense."""
        return TransactionCoordinator(self._db).run(
            "record_payout",
            lambda: self._record_payout(ctx, amount_cents, category, notes),
            amount_cents=amount_cents,
        )

    def _record_payout(
        self, ctx: ActorContext, amount_cents: int, category: str, notes: str | None
    ) -> PayoutOutput:
        if amount_cents <= 0:
            raise ValidationError("Payout amount must be positive", amount_cents=amount_cents)
        if not category:
            raise ValidationError("Payout category is required")

        description = f"{category}: {notes}" if notes else category
        credit = self._entry(
            ctx.restaurant_id, LedgerAccount.CASH, EntryType.CREDIT,
            amount_cents, ReferenceType.PAYOUT, category,
            description=description, processed_by=ctx.staff_id,
        )
        self._entry(
            ctx.restaurant_id, LedgerAccount.EXPENSE, EntryType.DEBIT,
            amount_cents, ReferenceType.PAYOUT, category,
            description=description, processed_by=ctx.staff_id,
        )
        self._db.flush()

        output = PayoutOutput(entry_id=credit.id, amount_cents=amount_cents, category=category)
        write_change_event(
            self._db, ctx,
            entity=AggregateType.LEDGER,
            kind=EventType.LEDGER_POSTED,
            entity_id=credit.id,
            record=output.model_dump(mode="json"),
        )
        logger.info("Payout recorded", amount_cents=amount_cents, category=category)
        return output

    # =========================================================================
    # Reads
    # =========================================================================

    def courier_balance(self, restaurant_id: int, rider_id: int) -> tuple[int, int]:
        """(cash held, order count) from the rider's delivered unsettled orders."""
        total, count = self._db.execute(
            select(func.coalesce(func.sum(Order.total_cents), 0), func.count(Order.id)).where(
                Order.restaurant_id == restaurant_id,
                Order.assigned_driver_id == rider_id,
                Order.status == OrderStatus.DELIVERED,
                Order.is_settled_with_rider.is_(False),
            )
        ).one()
        return int(total), int(count)

    def get_courier_cash_balance(
        self, ctx: ActorContext, rider_id: int
    ) -> OperationResult[CourierBalance]:
        def work() -> CourierBalance:
            balance, pending = self.courier_balance(ctx.restaurant_id, rider_id)
            return CourierBalance(rider_id=rider_id, balance_cents=balance, pending_orders=pending)

        return TransactionCoordinator(self._db).run(
            "get_courier_cash_balance", work, rider_id=rider_id
        )

    def _balance(
        self, restaurant_id: int, account: str, account_id: int | None, *exclude_refs: str
    ) -> tuple[int, int]:
        stmt = select(
            func.coalesce(
                func.sum(case((LedgerEntry.entry_type == EntryType.DEBIT, LedgerEntry.amount_cents), else_=0)),
                0,
            ),
            func.coalesce(
                func.sum(case((LedgerEntry.entry_type == EntryType.CREDIT, LedgerEntry.amount_cents), else_=0)),
                0,
            ),
        ).where(
            LedgerEntry.restaurant_id == restaurant_id,
            LedgerEntry.account == account,
        )
        if account_id is not None:
            stmt = stmt.where(LedgerEntry.account_id == account_id)
        if exclude_refs:
            stmt = stmt.where(LedgerEntry.reference_type.not_in(exclude_refs))
        debit, credit = self._db.execute(stmt).one()
        return int(debit), int(credit)

    def reconcile_courier_balance(
        self, ctx: ActorContext, rider_id: int
    ) -> OperationResult[CourierReconciliation]:
        """
        Compare what the rider should hold (from orders) with the COURIER
        account, floats left out.
        """

        def work() -> CourierReconciliation:
            derived, _ = self.courier_balance(ctx.restaurant_id, rider_id)
            debit, credit = self._balance(
                ctx.restaurant_id, LedgerAccount.COURIER, rider_id, ReferenceType.RIDER_SHIFT
            )
            ledger = debit - credit
            drift = derived - ledger
            if drift:
                logger.warning(
                    "Courier balance drift",
                    rider_id=rider_id,
                    derived_cents=derived,
                    ledger_cents=ledger,
                )
            return CourierReconciliation(
                rider_id=rider_id,
                derived_balance_cents=derived,
                ledger_balance_cents=ledger,
                drift_cents=drift,
                in_sync=drift == 0,
            )

        return TransactionCoordinator(self._db).run(
            "reconcile_courier_balance", work, rider_id=rider_id
        )

    def get_account_balance(
        self, ctx: ActorContext, account: str, account_id: int | None = None
    ) -> OperationResult[AccountBalance]:
        def work() -> AccountBalance:
            debit, credit = self._balance(ctx.restaurant_id, account, account_id)
            return AccountBalance(
                account=account,
                account_id=account_id,
                debit_cents=debit,
                credit_cents=credit,
                balance_cents=debit - credit,
            )

        return TransactionCoordinator(self._db).run(
            "get_account_balance", work, account=account
        )

    def get_customer_aggregates(
        self, ctx: ActorContext
    ) -> OperationResult[list[CustomerAggregate]]:
        """Order count, closed-order spend and last visit per customer."""

        def work() -> list[CustomerAggregate]:
            rows = self._db.execute(
                select(
                    Customer.id,
                    Customer.name,
                    Customer.phone,
                    func.count(Order.id),
                    func.coalesce(
                        func.sum(
                            case((Order.status == OrderStatus.CLOSED, Order.total_cents), else_=0)
                        ),
                        0,
                    ),
                    func.max(Order.created_at),
                )
                .outerjoin(Order, Order.customer_id == Customer.id)
                .where(Customer.restaurant_id == ctx.restaurant_id)
                .group_by(Customer.id, Customer.name, Customer.phone)
                .order_by(Customer.id)
            ).all()
            return [
                CustomerAggregate(
                    customer_id=customer_id,
                    name=name,
                    phone=phone,
                    order_count=order_count,
                    total_spent_cents=int(spent),
                    last_order_at=last_order_at,
                    segment=customer_segment(order_count),
                )
                for customer_id, name, phone, order_count, spent, last_order_at in rows
            ]

        return TransactionCoordinator(self._db).run("get_customer_aggregates", work)

    def get_recent_ledger(
        self, ctx: ActorContext, limit: int = Limits.DEFAULT_PAGE_SIZE
    ) -> OperationResult[list[LedgerEntryOutput]]:
        def work() -> list[LedgerEntryOutput]:
            size = max(1, min(limit, Limits.MAX_PAGE_SIZE))
            entries = self._db.scalars(
                select(LedgerEntry)
                .where(LedgerEntry.restaurant_id == ctx.restaurant_id)
                .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
                .limit(size)
            )
            return [LedgerEntryOutput.model_validate(e) for e in entries]

        return TransactionCoordinator(self._db).run("get_recent_ledger", work, limit=limit)
