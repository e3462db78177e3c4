"""
Pytest configuration and fixtures for backend tests.
"""

import itertools
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rest_api.main import app
from rest_api.models import Base, MenuItem, Order, PromoCode, Restaurant, RestaurantTable
from rest_api.repositories import InMemoryDatabase, InMemoryOrderStore, SqlOrderStore, get_order_store
from rest_api.services.domain.restaurant_service import public_restaurant_cache
from rest_api.services.events.order_events import OrderEventBroadcaster, get_order_events, set_broadcaster
from rest_api.services.payments.gateway import (
    GatewaySession,
    PaymentGateway,
    get_payment_gateway,
    vendor_id_for,
)
from shared.config.settings import settings
from shared.infrastructure.events import InMemoryBroadcaster
from shared.security.auth import sign_jwt

WEBHOOK_SECRET = "test-webhook-secret"

# Explicit ids keep fixtures readable across the SQL and memory backends
_id_counter = itertools.count(1000)


def next_id() -> int:
    return next(_id_counter)


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


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


@pytest.fixture
def store(db_session):
    return SqlOrderStore(db_session)


@pytest.fixture
def memory_db():
    return InMemoryDatabase()


@pytest.fixture
def memory_store(memory_db):
    return InMemoryOrderStore(memory_db)


@pytest.fixture
def broadcaster():
    recorder = InMemoryBroadcaster()
    set_broadcaster(recorder)
    yield recorder
    set_broadcaster(None)


@pytest.fixture
def events(broadcaster):
    return OrderEventBroadcaster(broadcaster)


@pytest.fixture
def fake_gateway():
    """Gateway double: vendors get their deterministic id, orders get a session."""
    gateway = AsyncMock(spec=PaymentGateway)

    async def create_vendor(vendor):
        return vendor_id_for(vendor.restaurant_id)

    async def create_order(request):
        return GatewaySession(
            gateway_order_id=request.gateway_order_id,
            payment_session_id=f"session_{request.gateway_order_id}",
            payment_link=f"https://sandbox.cashfree.com/pg/orders/{request.gateway_order_id}/pay",
        )

    gateway.create_vendor.side_effect = create_vendor
    gateway.create_order.side_effect = create_order
    gateway.create_refund.return_value = {"refund_id": "REFUND_1", "refund_status": "PENDING"}
    gateway.get_order.return_value = {
        "cf_order_id": 2149460581,
        "order_status": "PAID",
        "order_amount": 262.5,
        "payment_method": {"upi": {"upi_id": "customer@upi"}},
    }
    gateway.list_settlements.return_value = [{"settlement_id": 77, "amount": 259.88}]
    return gateway


@pytest.fixture(autouse=True)
def clear_public_cache():
    public_restaurant_cache.clear()
    yield
    public_restaurant_cache.clear()


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "cashfree_client_secret", WEBHOOK_SECRET)
    return WEBHOOK_SECRET


@pytest.fixture(scope="function")
def client(db_session, events, fake_gateway, webhook_secret):
    """
    Create a test client with store, event and gateway overrides.

    The lifespan is not entered, so no database or Redis connection is made.
    """

    def override_get_order_store():
        yield SqlOrderStore(db_session)

    app.dependency_overrides[get_order_store] = override_get_order_store
    app.dependency_overrides[get_order_events] = lambda: events
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway

    yield TestClient(app)

    app.dependency_overrides.clear()


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def seed_restaurant(db_session):
    restaurant = Restaurant(
        name="Spice Route",
        slug="spice-route",
        email="owner@spiceroute.in",
        phone="+91 98765 43210",
        address="12 MG Road, Bengaluru",
        tax_percentage=Decimal("5.00"),
        bank_account_number="026291800001191",
        bank_ifsc="YESB0000262",
        bank_account_name="Spice Route LLP",
    )
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def other_restaurant(db_session):
    restaurant = Restaurant(name="Other Place", slug="other-place", tax_percentage=Decimal("5.00"))
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def seed_table(db_session, seed_restaurant):
    table = RestaurantTable(restaurant_id=seed_restaurant.id, table_code="T5", seats=4)
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture
def seed_menu(db_session, seed_restaurant):
    """Paneer Tikka ₹100 (stock 20), Masala Chai ₹50 (stock 6, alert below 5)."""
    paneer = MenuItem(
        restaurant_id=seed_restaurant.id,
        name="Paneer Tikka",
        price=Decimal("100.00"),
        inventory_count=20,
    )
    chai = MenuItem(
        restaurant_id=seed_restaurant.id,
        name="Masala Chai",
        price=Decimal("50.00"),
        inventory_count=6,
        low_stock_threshold=5,
    )
    db_session.add_all([paneer, chai])
    db_session.commit()
    db_session.refresh(paneer)
    db_session.refresh(chai)
    return {"paneer": paneer, "chai": chai}


@pytest.fixture
def seed_promo(db_session, seed_restaurant):
    promo = PromoCode(
        restaurant_id=seed_restaurant.id,
        code="WELCOME10",
        discount_percentage=Decimal("10.00"),
        min_order_amount=Decimal("200.00"),
    )
    db_session.add(promo)
    db_session.commit()
    db_session.refresh(promo)
    return promo


def make_order(db_session, restaurant, **overrides) -> Order:
    """Insert an order directly (262.50 total by default)."""
    now = datetime.now(timezone.utc)
    values = dict(
        restaurant_id=restaurant.id,
        order_number=f"R{restaurant.id}_{next_id()}_001",
        table_id="T5",
        table_number=5,
        customer_phone="9876543210",
        subtotal=Decimal("250.00"),
        discount=Decimal("0.00"),
        tax_percentage=Decimal("5.00"),
        tax_amount=Decimal("12.50"),
        total_amount=Decimal("262.50"),
        status="preparing",
        payment_method="cash",
        payment_status="pending",
        created_at=now,
        updated_at=now,
    )
    values.update(overrides)
    order = Order(**values)
    order.items = []
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order


def staff_token(restaurant_id: int, role: str = "admin", user_id: int = 7) -> str:
    return sign_jwt({"sub": str(user_id), "restaurant_id": restaurant_id, "role": role})


def auth_header(restaurant_id: int, role: str = "admin") -> dict[str, str]:
    return {"Authorization": f"Bearer {staff_token(restaurant_id, role)}"}


def staff_ctx(restaurant_id: int, role: str = "admin") -> dict:
    return {"sub": "7", "restaurant_id": restaurant_id, "role": role}
