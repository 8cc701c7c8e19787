"""
Tests for channel behaviors: per-channel validation, extension rows and
the resource each channel holds.
"""

from datetime import datetime, timedelta, timezone

import pytest

from rest_api.models import Customer, Order, OrderItem
from rest_api.services.channels import (
    DeliveryBehavior,
    DineInBehavior,
    ReservationBehavior,
    TakeawayBehavior,
    ValidationContext,
    compute_total,
    resolve,
)
from rest_api.services.domain.order_lifecycle_service import OrderLifecycleService
from shared.config.constants import Channel, ItemStatus, OrderStatus, TableStatus
from shared.utils.exceptions import ErrorKind, UnsupportedChannelError, ValidationError
from shared.utils.schemas import OrderInput, OrderPatch
from tests.conftest import (
    delivery_input,
    dine_in_input,
    item,
    reservation_input,
    takeaway_input,
)


class TestResolver:
    """Channel tag to behavior lookup."""

    @pytest.mark.parametrize(
        "tag,behavior_cls",
        [
            ("DINE_IN", DineInBehavior),
            ("TAKEAWAY", TakeawayBehavior),
            ("DELIVERY", DeliveryBehavior),
            ("RESERVATION", ReservationBehavior),
            (Channel.DELIVERY, DeliveryBehavior),
        ],
    )
    def test_resolves_known_channels(self, tag, behavior_cls):
        assert isinstance(resolve(tag), behavior_cls)

    def test_unknown_channel_is_rejected(self):
        with pytest.raises(UnsupportedChannelError) as exc_info:
            resolve("DRIVE_THRU")
        assert exc_info.value.kind is ErrorKind.UNSUPPORTED_CHANNEL
        assert exc_info.value.context["channel"] == "DRIVE_THRU"

    def test_create_with_unknown_channel_writes_nothing(self, db_session, waiter_ctx):
        service = OrderLifecycleService(db_session)

        result = service.create_order(waiter_ctx, OrderInput(channel="DRIVE_THRU", items=[item()]))

        assert not result.ok
        assert result.kind is ErrorKind.UNSUPPORTED_CHANNEL
        assert db_session.query(Order).count() == 0


class TestFieldValidation:
    """Required fields differ per channel and per validation moment."""

    def test_dine_in_requires_table(self):
        with pytest.raises(ValidationError, match="table_id"):
            resolve("DINE_IN").validate({"guest_count": 2}, ValidationContext.DRAFT)

    def test_dine_in_guest_count_only_required_at_fire(self):
        behavior = resolve("DINE_IN")
        behavior.validate({"table_id": 1}, ValidationContext.DRAFT)
        with pytest.raises(ValidationError, match="guest_count"):
            behavior.validate({"table_id": 1}, ValidationContext.FIRE)

    def test_delivery_address_and_phone_required_at_fire(self):
        behavior = resolve("DELIVERY")
        behavior.validate({}, ValidationContext.DRAFT)
        with pytest.raises(ValidationError) as exc_info:
            behavior.validate({}, ValidationContext.FIRE)
        errors = exc_info.value.context["errors"]
        assert any("delivery_address" in e for e in errors)
        assert any("customer_phone" in e for e in errors)

    def test_reservation_requires_time(self):
        with pytest.raises(ValidationError, match="reservation_time"):
            resolve("RESERVATION").validate({"guest_count": 2}, ValidationContext.DRAFT)

    def test_takeaway_has_no_required_fields(self):
        resolve("TAKEAWAY").validate({}, ValidationContext.FIRE)


class TestDineIn:
    """Dine-in orders occupy their table from creation."""

    def test_create_claims_table(self, db_session, waiter_ctx, floor):
        table = floor["T-2"]
        service = OrderLifecycleService(db_session)

        result = service.create_order(waiter_ctx, dine_in_input(table, guest_count=3))

        assert result.ok
        order = result.value
        assert order.status == OrderStatus.ACTIVE
        assert order.table_id == table.id
        assert order.dine_in.guest_count == 3
        assert order.dine_in.is_over_capacity is False
        assert len(order.dine_in.guest_count_history) == 1

        db_session.refresh(table)
        assert table.status == TableStatus.OCCUPIED
        assert table.active_order_id == order.id

    def test_missing_guest_count_fails_without_side_effects(self, db_session, waiter_ctx, floor):
        table = floor["T-2"]
        service = OrderLifecycleService(db_session)

        result = service.create_order(
            waiter_ctx, OrderInput(channel="DINE_IN", table_id=table.id, items=[item()])
        )

        assert result.kind is ErrorKind.VALIDATION_ERROR
        db_session.refresh(table)
        assert table.status == TableStatus.AVAILABLE
        assert db_session.query(Order).count() == 0

    def test_draft_may_omit_guest_count(self, db_session, waiter_ctx, floor):
        service = OrderLifecycleService(db_session)

        result = service.create_order(
            waiter_ctx,
            OrderInput(channel="DINE_IN", table_id=floor["T-1"].id, draft=True, items=[item()]),
        )

        assert result.ok
        assert result.value.status == OrderStatus.DRAFT

    def test_occupied_table_cannot_be_claimed_twice(self, db_session, waiter_ctx, floor):
        table = floor["T-2"]
        service = OrderLifecycleService(db_session)
        first = service.create_order(waiter_ctx, dine_in_input(table))

        second = service.create_order(waiter_ctx, dine_in_input(table))

        assert first.ok
        assert second.kind is ErrorKind.TABLE_UNAVAILABLE
        db_session.refresh(table)
        assert table.active_order_id == first.value.id

    def test_moving_table_frees_old_table(self, db_session, waiter_ctx, floor):
        service = OrderLifecycleService(db_session)
        order = service.create_order(waiter_ctx, dine_in_input(floor["T-1"])).unwrap()

        result = service.update_order(waiter_ctx, order.id, OrderPatch(table_id=floor["T-2"].id))

        assert result.ok
        assert result.value.table_id == floor["T-2"].id
        db_session.refresh(floor["T-1"])
        db_session.refresh(floor["T-2"])
        assert floor["T-1"].status == TableStatus.AVAILABLE
        assert floor["T-1"].active_order_id is None
        assert floor["T-2"].active_order_id == order.id


class TestTakeaway:
    """Takeaway orders get a daily token."""

    def test_tokens_increase_per_order(self, db_session, cashier_ctx):
        service = OrderLifecycleService(db_session)

        first = service.create_order(cashier_ctx, takeaway_input()).unwrap()
        second = service.create_order(cashier_ctx, takeaway_input()).unwrap()

        assert first.takeaway.token_number == "T-1"
        assert second.takeaway.token_number == "T-2"

    def test_default_customer_name(self, db_session, cashier_ctx):
        order = OrderLifecycleService(db_session).create_order(
            cashier_ctx, takeaway_input()
        ).unwrap()

        assert order.customer_name == "Guest"
        assert order.takeaway.customer_name == "Guest"

    def test_tokens_are_per_restaurant(self, db_session, cashier_ctx, foreign_ctx):
        service = OrderLifecycleService(db_session)
        service.create_order(cashier_ctx, takeaway_input()).unwrap()

        foreign = service.create_order(foreign_ctx, takeaway_input()).unwrap()

        assert foreign.takeaway.token_number == "T-1"


class TestDelivery:
    """Delivery orders carry address and phone."""

    def test_create_links_customer_by_phone(self, db_session, cashier_ctx):
        service = OrderLifecycleService(db_session)

        first = service.create_order(cashier_ctx, delivery_input()).unwrap()
        second = service.create_order(cashier_ctx, delivery_input()).unwrap()

        assert first.customer_id is not None
        assert first.customer_id == second.customer_id
        assert db_session.query(Customer).count() == 1
        assert first.delivery.delivery_address == "12 Elm Street"

    def test_missing_address_rejected_when_not_draft(self, db_session, cashier_ctx):
        result = OrderLifecycleService(db_session).create_order(
            cashier_ctx,
            OrderInput(channel="DELIVERY", customer_phone="555-0199", items=[item()]),
        )

        assert result.kind is ErrorKind.VALIDATION_ERROR

    def test_draft_activation_checks_fire_fields(self, db_session, cashier_ctx):
        service = OrderLifecycleService(db_session)
        draft = service.create_order(
            cashier_ctx, OrderInput(channel="DELIVERY", draft=True, items=[item()])
        ).unwrap()

        blocked = service.activate_order(cashier_ctx, draft.id)
        assert blocked.kind is ErrorKind.VALIDATION_ERROR

        service.update_order(
            cashier_ctx,
            draft.id,
            OrderPatch(delivery_address="3 Oak Lane", customer_phone="555-0123"),
        ).unwrap()
        activated = service.activate_order(cashier_ctx, draft.id)

        assert activated.ok
        assert activated.value.status == OrderStatus.ACTIVE


class TestReservation:
    """Reservations hold a table until the party arrives."""

    def test_hold_sets_table_reserved(self, db_session, waiter_ctx, floor):
        table = floor["P-1"]

        order = OrderLifecycleService(db_session).create_order(
            waiter_ctx, reservation_input(table)
        ).unwrap()

        assert order.table_id is None
        assert order.reservation.table_id == table.id
        db_session.refresh(table)
        assert table.status == TableStatus.RESERVED
        assert table.active_order_id is None

    def test_reserved_table_is_not_seatable(self, db_session, waiter_ctx, floor):
        service = OrderLifecycleService(db_session)
        service.create_order(waiter_ctx, reservation_input(floor["P-1"])).unwrap()

        result = service.create_order(waiter_ctx, dine_in_input(floor["P-1"]))

        assert result.kind is ErrorKind.TABLE_UNAVAILABLE

    def test_moving_hold_releases_previous_table(self, db_session, waiter_ctx, floor):
        service = OrderLifecycleService(db_session)
        order = service.create_order(waiter_ctx, reservation_input(floor["P-1"])).unwrap()

        service.update_order(waiter_ctx, order.id, OrderPatch(table_id=floor["P-2"].id)).unwrap()

        db_session.refresh(floor["P-1"])
        db_session.refresh(floor["P-2"])
        assert floor["P-1"].status == TableStatus.AVAILABLE
        assert floor["P-2"].status == TableStatus.RESERVED

    def test_reservation_without_table(self, db_session, waiter_ctx):
        order = OrderLifecycleService(db_session).create_order(
            waiter_ctx,
            OrderInput(
                channel="RESERVATION",
                customer_name="Kim",
                reservation_time=datetime.now(timezone.utc) + timedelta(days=1),
            ),
        ).unwrap()

        assert order.reservation.table_id is None
        assert order.guest_count == 2


class TestTotals:
    """Totals come from line items; skipped lines are free."""

    def test_compute_total_ignores_skipped(self):
        order = Order(channel="TAKEAWAY")
        order.items = [
            OrderItem(item_name="Steak", unit_price_cents=1200, quantity=2, item_status=ItemStatus.DONE),
            OrderItem(item_name="Soup", unit_price_cents=800, quantity=1, item_status=ItemStatus.SKIPPED),
        ]

        assert compute_total(order) == 2400
