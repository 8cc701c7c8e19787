"""
Pytest configuration and fixtures for backend tests.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rest_api.main import app
from rest_api.models import Base, LedgerEntry, Restaurant, Section, Staff, Table
from rest_api.services.domain.dispatch_service import DispatchService
from rest_api.services.domain.order_lifecycle_service import OrderLifecycleService
from rest_api.services.events import write_outbox_event
from shared.config.constants import AggregateType, EventType, Roles
from shared.infrastructure.db import get_db
from shared.security.auth import sign_jwt
from shared.security.context import ActorContext
from shared.security.rate_limit import limiter
from shared.utils.schemas import OrderInput, OrderItemInput


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Settlement endpoints are rate limited; tests hit them back to back
limiter.enabled = False


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def restaurant(db_session):
    restaurant = Restaurant(name="Test Bistro", currency="USD")
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def other_restaurant(db_session):
    restaurant = Restaurant(name="Across The Street", currency="USD")
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def staff(db_session, restaurant):
    """One staff member per non-rider role, keyed by role."""
    members = {
        role: Staff(restaurant_id=restaurant.id, name=f"Test {role.title()}", role=role)
        for role in (Roles.ADMIN, Roles.MANAGER, Roles.CASHIER, Roles.WAITER, Roles.KITCHEN)
    }
    db_session.add_all(members.values())
    db_session.commit()
    return members


@pytest.fixture
def rider(db_session, restaurant):
    rider = Staff(restaurant_id=restaurant.id, name="Rita Rider", role=Roles.RIDER, phone="555-0101")
    db_session.add(rider)
    db_session.commit()
    db_session.refresh(rider)
    return rider


@pytest.fixture
def second_rider(db_session, restaurant):
    rider = Staff(restaurant_id=restaurant.id, name="Rob Rider", role=Roles.RIDER)
    db_session.add(rider)
    db_session.commit()
    db_session.refresh(rider)
    return rider


@pytest.fixture
def floor(db_session, restaurant):
    """
    Two sections and four tables, keyed by table name:
        Main:    T-1 (2 seats), T-2 (4 seats)
        Terrace: P-1 (6 seats), P-2 (4 seats)
    """
    main = Section(restaurant_id=restaurant.id, name="Main", prefix="T", priority=0)
    terrace = Section(restaurant_id=restaurant.id, name="Terrace", prefix="P", priority=1)
    db_session.add_all([main, terrace])
    db_session.flush()

    tables = {
        "T-1": Table(restaurant_id=restaurant.id, section_id=main.id, name="T-1", capacity=2),
        "T-2": Table(restaurant_id=restaurant.id, section_id=main.id, name="T-2", capacity=4),
        "P-1": Table(restaurant_id=restaurant.id, section_id=terrace.id, name="P-1", capacity=6),
        "P-2": Table(restaurant_id=restaurant.id, section_id=terrace.id, name="P-2", capacity=4),
    }
    for table in tables.values():
        table.status = "AVAILABLE"
        table.version = 0
    db_session.add_all(tables.values())
    db_session.commit()
    return tables


# =============================================================================
# Caller identities
# =============================================================================


def make_ctx(member: Staff) -> ActorContext:
    return ActorContext(restaurant_id=member.restaurant_id, staff_id=member.id, role=member.role)


@pytest.fixture
def manager_ctx(staff):
    return make_ctx(staff[Roles.MANAGER])


@pytest.fixture
def cashier_ctx(staff):
    return make_ctx(staff[Roles.CASHIER])


@pytest.fixture
def waiter_ctx(staff):
    return make_ctx(staff[Roles.WAITER])


@pytest.fixture
def kitchen_ctx(staff):
    return make_ctx(staff[Roles.KITCHEN])


@pytest.fixture
def foreign_ctx(db_session, other_restaurant):
    manager = Staff(restaurant_id=other_restaurant.id, name="Other Manager", role=Roles.MANAGER)
    db_session.add(manager)
    db_session.commit()
    return make_ctx(manager)


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture(scope="function")
def client(db_session):
    """
    Test client with the database session overridden and the Redis
    revocation lookup stubbed. Not entered as a context manager, so the
    lifespan (outbox processor, Redis pools) does not start.
    """

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with patch("shared.security.auth.check_token_validity", return_value=True):
        yield TestClient(app)

    app.dependency_overrides.clear()


def auth_headers_for(member: Staff) -> dict[str, str]:
    token = sign_jwt({
        "sub": str(member.id),
        "restaurant_id": member.restaurant_id,
        "role": member.role,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def manager_headers(staff):
    return auth_headers_for(staff[Roles.MANAGER])


@pytest.fixture
def cashier_headers(staff):
    return auth_headers_for(staff[Roles.CASHIER])


@pytest.fixture
def waiter_headers(staff):
    return auth_headers_for(staff[Roles.WAITER])


@pytest.fixture
def kitchen_headers(staff):
    return auth_headers_for(staff[Roles.KITCHEN])


# =============================================================================
# Order input builders
# =============================================================================


def item(name: str = "Burger", price: int = 1500, quantity: int = 1, requires_prep: bool = True):
    return OrderItemInput(
        item_name=name, unit_price_cents=price, quantity=quantity, requires_prep=requires_prep
    )


def dine_in_input(table: Table, guest_count: int = 2, items=None, **extra) -> OrderInput:
    return OrderInput(
        channel="DINE_IN",
        table_id=table.id,
        guest_count=guest_count,
        items=items if items is not None else [item()],
        **extra,
    )


def takeaway_input(items=None, **extra) -> OrderInput:
    return OrderInput(
        channel="TAKEAWAY",
        items=items if items is not None else [item("Fries", 500)],
        **extra,
    )


def delivery_input(items=None, **extra) -> OrderInput:
    fields = {
        "customer_name": "Dana",
        "customer_phone": "555-0199",
        "delivery_address": "12 Elm Street",
    }
    fields.update(extra)
    return OrderInput(
        channel="DELIVERY",
        items=items if items is not None else [item("Pizza", 1500)],
        **fields,
    )


def reservation_input(table: Table | None = None, guest_count: int = 4, **extra) -> OrderInput:
    return OrderInput(
        channel="RESERVATION",
        table_id=table.id if table is not None else None,
        guest_count=guest_count,
        customer_name="Morgan",
        customer_phone="555-0142",
        reservation_time=datetime.now(timezone.utc) + timedelta(hours=2),
        **extra,
    )


# =============================================================================
# Ledger helpers
# =============================================================================


def ledger_entries(db, **filters) -> list[LedgerEntry]:
    stmt = select(LedgerEntry).order_by(LedgerEntry.id)
    for name, value in filters.items():
        stmt = stmt.where(getattr(LedgerEntry, name) == value)
    return list(db.scalars(stmt))


def account_balance(db, account: str, account_id: int | None = None) -> int:
    """DEBIT minus CREDIT."""
    filters = {"account": account}
    if account_id is not None:
        filters["account_id"] = account_id
    return sum(
        e.amount_cents if e.entry_type == "DEBIT" else -e.amount_cents
        for e in ledger_entries(db, **filters)
    )


# =============================================================================
# Delivery flow
# =============================================================================


def delivered_order(db, ctx, rider_id: int, price: int = 1500) -> int:
    """Create, dispatch and deliver a delivery order. The rider needs an open shift."""
    order = OrderLifecycleService(db).create_order(
        ctx, delivery_input(items=[item("Pizza", price)])
    ).unwrap()
    dispatch = DispatchService(db)
    dispatch.assign_driver(ctx, order.id, rider_id).unwrap()
    dispatch.mark_delivered(ctx, order.id).unwrap()
    return order.id


# =============================================================================
# Outbox
# =============================================================================


def queue_outbox_event(db, restaurant_id: int, event_type: str = EventType.ORDER_CREATED) -> int:
    """Commit one PENDING outbox row and return its id."""
    event = write_outbox_event(
        db=db,
        restaurant_id=restaurant_id,
        event_type=event_type,
        aggregate_type=AggregateType.ORDER,
        aggregate_id=1,
        payload={"record": {"id": 1}, "actor": {"staff_id": 3, "role": "CASHIER"}},
    )
    db.commit()
    return event.id
