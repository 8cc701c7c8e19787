"""
Property-based tests with Hypothesis for the pure rules: table choice,
order totals, status ordering, customer segments and shift cash.
"""

import pytest
from hypothesis import assume, given, settings, strategies as st

from rest_api.models import Order, OrderItem, Table
from rest_api.services.channels import compute_total
from rest_api.services.domain.accounting_service import customer_segment
from rest_api.services.domain.floor_service import pick_table
from rest_api.services.domain.rider_shift_service import shift_expected_cash
from rest_api.services.order_state import check_transition
from shared.config.constants import (
    ORDER_STATUS_RANK,
    Channel,
    ItemStatus,
    OrderStatus,
    PaymentStatus,
)
from shared.utils.exceptions import CapacityExceededError, InvalidTransitionError

STATUSES = list(ORDER_STATUS_RANK)


@st.composite
def floors(draw):
    """Free tables with unique ids spread over three sections."""
    specs = draw(
        st.lists(
            st.tuples(st.integers(min_value=1, max_value=12), st.integers(min_value=1, max_value=3)),
            min_size=1,
            max_size=10,
        )
    )
    return [
        Table(id=i + 1, section_id=section, capacity=capacity, name=f"T-{i + 1}")
        for i, (capacity, section) in enumerate(specs)
    ]


line_items = st.lists(
    st.tuples(
        st.integers(min_value=0, max_value=50_000),
        st.integers(min_value=1, max_value=20),
        st.sampled_from([ItemStatus.PENDING, ItemStatus.DONE, ItemStatus.SKIPPED]),
    ),
    max_size=15,
)


def order_with(items) -> Order:
    order = Order(channel=Channel.TAKEAWAY.value)
    order.items = [
        OrderItem(item_name="x", unit_price_cents=price, quantity=qty, item_status=status)
        for price, qty, status in items
    ]
    return order


class TestPickTableProperties:

    @given(tables=floors(), guest_count=st.integers(min_value=1, max_value=15))
    @settings(max_examples=100)
    def test_best_fit_is_smallest_fitting_table(self, tables, guest_count):
        fitting = [t for t in tables if t.capacity >= guest_count]
        assume(fitting)

        chosen = pick_table(tables, guest_count, None, allow_over_capacity=False)

        assert chosen.capacity >= guest_count
        assert chosen.capacity == min(t.capacity for t in fitting)

    @given(
        tables=floors(),
        guest_count=st.integers(min_value=1, max_value=15),
        section=st.integers(min_value=1, max_value=3),
    )
    @settings(max_examples=100)
    def test_preferred_section_wins_when_it_fits(self, tables, guest_count, section):
        in_section = [t for t in tables if t.section_id == section and t.capacity >= guest_count]
        assume(in_section)

        chosen = pick_table(tables, guest_count, section, allow_over_capacity=False)

        assert chosen.section_id == section
        assert chosen.capacity == min(t.capacity for t in in_section)

    @given(tables=floors(), extra=st.integers(min_value=1, max_value=5))
    def test_too_large_party(self, tables, extra):
        guest_count = max(t.capacity for t in tables) + extra

        with pytest.raises(CapacityExceededError):
            pick_table(tables, guest_count, None, allow_over_capacity=False)

        chosen = pick_table(tables, guest_count, None, allow_over_capacity=True)
        assert chosen.capacity == max(t.capacity for t in tables)


class TestTotalProperties:

    @given(items=line_items)
    def test_total_is_sum_of_unskipped_lines(self, items):
        expected = sum(price * qty for price, qty, status in items if status != ItemStatus.SKIPPED)

        assert compute_total(order_with(items)) == expected

    @given(items=line_items, index=st.integers(min_value=0))
    def test_skipping_never_raises_total(self, items, index):
        assume(items)
        before = compute_total(order_with(items))
        price, qty, _ = items[index % len(items)]
        items[index % len(items)] = (price, qty, ItemStatus.SKIPPED)

        assert compute_total(order_with(items)) <= before


class TestStatusProperties:

    @given(from_status=st.sampled_from(STATUSES), to_status=st.sampled_from(STATUSES))
    def test_status_never_moves_backwards(self, from_status, to_status):
        order = Order(
            id=1,
            channel=Channel.DELIVERY.value,
            status=from_status,
            payment_status=PaymentStatus.PAID,
        )

        try:
            check_transition(order, to_status)
        except InvalidTransitionError:
            return
        assert ORDER_STATUS_RANK[to_status] > ORDER_STATUS_RANK[from_status]

    @given(to_status=st.sampled_from(STATUSES))
    def test_terminal_statuses_are_final(self, to_status):
        for terminal in (OrderStatus.CLOSED, OrderStatus.CANCELLED, OrderStatus.VOIDED):
            order = Order(id=1, channel=Channel.DELIVERY.value, status=terminal)
            with pytest.raises(InvalidTransitionError):
                check_transition(order, to_status)


class TestCashProperties:

    @given(count=st.integers(min_value=0, max_value=500), more=st.integers(min_value=0, max_value=50))
    def test_segment_is_monotonic(self, count, more):
        order = ["NEW", "REGULAR", "VIP"]

        assert order.index(customer_segment(count + more)) >= order.index(customer_segment(count))

    @given(
        float_cents=st.integers(min_value=0, max_value=100_000),
        totals=st.lists(st.integers(min_value=0, max_value=100_000), max_size=20),
    )
    def test_expected_cash_never_below_float(self, float_cents, totals):
        expected = shift_expected_cash(float_cents, totals)

        assert expected >= float_cents
        assert expected - float_cents == sum(totals)
