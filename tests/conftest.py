import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone

# The application engine is created at import time; keep it off Postgres.
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from booking_core.api.dependencies import get_db, get_payment_gateway
from booking_core.domain.value_objects import GatewayOrder
from booking_core.infrastructure.db import models  # noqa: F401
from booking_core.infrastructure.db.models import Coupon
from booking_core.infrastructure.db.session import Base
from booking_core.infrastructure.gateways.razorpay_gateway import RazorpayGateway
from booking_core.infrastructure.repositories.inventory_repository import InventoryRepository
from booking_core.infrastructure.repositories.wallet_repository import WalletRepository
from booking_core.main import app

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "rzp_test_secret"


def build_sqlite_engine(url: str, **kwargs):
    """
    SQLite engine with working SAVEPOINTs and writer serialisation.
    pysqlite's own transaction handling is disabled so SQLAlchemy emits BEGIN itself.
    """
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": 30},
        **kwargs,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def sign(order_id: str, payment_id: str, secret: str = TEST_KEY_SECRET) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        f"{order_id}|{payment_id}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class FakeGateway:
    """Issues local order ids; signatures are checked by the real Razorpay verifier."""

    def __init__(self):
        self.orders: list[GatewayOrder] = []
        self._verifier = RazorpayGateway(key_id=TEST_KEY_ID, key_secret=TEST_KEY_SECRET)

    def create_order(self, amount_minor_units: int, currency: str, receipt_id: str) -> GatewayOrder:
        order = GatewayOrder(
            order_id=f"order_test_{len(self.orders) + 1:04d}",
            amount_minor_units=amount_minor_units,
            currency=currency,
            receipt=receipt_id,
        )
        self.orders.append(order)
        return order

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return self._verifier.verify_signature(order_id, payment_id, signature)


@pytest.fixture
def engine():
    engine = build_sqlite_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    def _override_get_db():
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_event(db):
    def _make_event(
        host_id: str = "host_1",
        starts_in: timedelta = timedelta(days=7),
        ticket_types=(("Regular", 500, 10), ("VIP", 1500, 2)),
        title: str = "Indie Night",
    ) -> str:
        event = InventoryRepository(db).create_event(
            host_id=host_id,
            title=title,
            venue="Blue Frog, Mumbai",
            starts_at=datetime.now(timezone.utc) + starts_in,
            ticket_types=ticket_types,
        )
        db.commit()
        return event.id

    return _make_event


@pytest.fixture
def make_coupon(db):
    def _make_coupon(
        code: str = "SAVE100",
        fixed_amount: int = 100,
        minimum_order_amount: int = 0,
        usage_cap: int = 10,
        used_count: int = 0,
        is_blocked: bool = False,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        coupon = Coupon(
            code=code,
            fixed_amount=fixed_amount,
            minimum_order_amount=minimum_order_amount,
            usage_cap=usage_cap,
            used_count=used_count,
            is_blocked=is_blocked,
            starts_at=starts_at or now - timedelta(days=1),
            ends_at=ends_at or now + timedelta(days=30),
        )
        db.add(coupon)
        db.commit()
        return coupon.id

    return _make_coupon


@pytest.fixture
def fund_wallet(db):
    def _fund_wallet(user_id: str, amount: int) -> None:
        WalletRepository(db).credit(
            user_id=user_id,
            amount=amount,
            payment_id=None,
            description="Initial balance",
        )
        db.commit()

    return _fund_wallet


def intent_payload(event_id: str, tickets, coupon_id: str | None = None, discount: int = 0) -> dict:
    """camelCase booking intent body for the given [(type, qty, price)] lines."""
    total = sum(quantity * price for _, quantity, price in tickets)
    payload = {
        "eventId": event_id,
        "tickets": [
            {"ticketType": ticket_type, "quantity": quantity, "unitPrice": price}
            for ticket_type, quantity, price in tickets
        ],
        "totalAmount": total,
        "discountedAmount": total - discount,
    }
    if coupon_id:
        payload["couponId"] = coupon_id
    return payload
