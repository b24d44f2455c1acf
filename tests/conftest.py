"""Shared test fixtures for the DocKit settlement service tests.

Uses a SQLite file database so tests run without PostgreSQL.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from app; the Settings
# model reads .env eagerly via pydantic-settings, and the module-level
# ``engine`` in app.core.database would try to connect to PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.core.clock import FixedClock
from app.core.database import Base, get_db
from app.main import app
from app.models import (
    ChargingStation,
    ChargingTransaction,
    PaymentAdjustment,
    Restaurant,
    RestaurantOrder,
    Vendor,
)

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"

NOON = datetime(2024, 1, 10, 12, 0, 0)

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


# Enable foreign keys for SQLite
@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """FastAPI test client with overridden DB dependency."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def clock():
    """Clock pinned to the afternoon after the settlement day."""
    return FixedClock(datetime(2024, 1, 11, 9, 30, 0))


class Seeder:
    """Inserts and commits domain rows with sensible defaults."""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def vendor(self, **overrides) -> Vendor:
        fields = {
            "business_name": "Volt Hub",
            "name": "Asha Rao",
            "email": "ops@volthub.example",
            "phone_number": "+91-9000000000",
            "bank_details": {
                "account_number": "00112233",
                "account_holder_name": "Volt Hub Pvt Ltd",
                "bank_name": "State Bank",
                "ifsc_code": "SBIN0000001",
            },
        }
        fields.update(overrides)
        return self._save(Vendor(**fields))

    def station(self, vendor, **overrides) -> ChargingStation:
        fields = {"vendor_id": vendor.id, "name": "Dock 1", "images": [], "image_count": 0}
        fields.update(overrides)
        return self._save(ChargingStation(**fields))

    def restaurant(self, vendor, **overrides) -> Restaurant:
        fields = {"vendor_id": vendor.id if vendor else None, "name": "Plug & Plate"}
        fields.update(overrides)
        return self._save(Restaurant(**fields))

    def transaction(self, vendor, adjustments=(), **overrides) -> ChargingTransaction:
        fields = {
            "vendor_id": vendor.id if vendor else None,
            "booking_code": "BK-1001",
            "customer_name": "Ravi",
            "status": "completed",
            "total_amount": Decimal("55.00"),
            "actual_end_time": NOON,
            "updated_at": NOON,
        }
        fields.update(overrides)
        txn = ChargingTransaction(**fields)
        for adj in adjustments:
            txn.adjustments.append(PaymentAdjustment(**adj))
        return self._save(txn)

    def order(self, restaurant, **overrides) -> RestaurantOrder:
        fields = {
            "restaurant_id": restaurant.id if restaurant else None,
            "order_number": "ORD-2001",
            "customer_name": "Meera",
            "status": "completed",
            "subtotal": Decimal("230.00"),
            "total_amount": Decimal("250.00"),
            "item_count": 3,
            "completed_at": NOON,
            "updated_at": NOON,
        }
        fields.update(overrides)
        return self._save(RestaurantOrder(**fields))


@pytest.fixture
def seed(db_session):
    return Seeder(db_session)
