"""
Pytest fixtures for orderdesk backend tests.

Provides test database setup, seeded delivery config and catalog, a fixed
clock, and the test client.

Fixed clock: NOW is Monday 2026-10-19 09:00 in America/Porto_Velho (UTC-4).
With the default DAY_BEFORE_AT 16:00 cutoff, today is closed ("Cutoff
passed") and every later day inside the 14-day window is bookable.
"""

import copy
from datetime import date, datetime, timezone

import pytest
from orderdesk import create_app
from orderdesk.extensions import db
from orderdesk.services import catalog_service, delivery_config_service
from orderdesk.services.order_binding_service import mint_binding

NOW = datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)
TODAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
NEXT_MONDAY = date(2026, 10, 26)
NEXT_TUESDAY = date(2026, 10, 27)
SUNDAY = date(2026, 10, 25)

ADMIN_TOKEN = "test-admin-token"

TEST_CATALOG = [
    {
        "id": "orange-juice",
        "name": "Orange Juice",
        "kind": "PRODUCT",
        "variants": {
            "300ml": {"price_cents": 800, "stock_qty": 10},
            "500ml": {"price_cents": 1200, "stock_qty": 10},
        },
    },
    {
        "id": "green-detox",
        "name": "Green Detox",
        "kind": "PRODUCT",
        "variants": {
            "300ml": {"price_cents": 1000, "stock_qty": 10},
        },
    },
    {
        "id": "retired-juice",
        "name": "Retired Juice",
        "kind": "PRODUCT",
        "is_active": False,
        "variants": {
            "300ml": {"price_cents": 900, "stock_qty": 10},
        },
    },
    {
        "id": "weekly-kit",
        "name": "Weekly Kit",
        "kind": "BUNDLE",
        "variants": {
            "default": {"price_cents": 5000, "stock_qty": 0},
        },
    },
]


def make_config_payload(
    *,
    morning_capacity: int = 10,
    daily_capacity: int = 20,
    cutoff: dict | None = None,
    closed_dates: list | None = None,
    pickup_enabled: bool = True,
) -> dict:
    """Monday..Saturday open with morning/afternoon slots, Sunday closed."""
    slots = [
        {"id": "morning", "label": "Morning", "start": "09:00", "end": "12:00",
         "capacity": morning_capacity, "enabled": True},
        {"id": "afternoon", "label": "Afternoon", "start": "13:00", "end": "17:00",
         "capacity": 10, "enabled": True},
    ]
    open_day = {"open": True, "daily_capacity": daily_capacity, "slots": slots}
    closed_day = {"open": False, "daily_capacity": daily_capacity, "slots": slots}
    templates = {
        k: copy.deepcopy(closed_day if k == "sun" else open_day)
        for k in delivery_config_service.WEEKDAY_KEYS
    }
    return {
        "timezone": "America/Porto_Velho",
        "max_advance_days": 14,
        "cutoff_policy": cutoff or {"type": "DAY_BEFORE_AT", "day_before_at": "16:00"},
        "modes": {
            "DELIVERY": {"enabled": True, "weekday_templates": templates},
            "PICKUP": {"enabled": pickup_enabled, "weekday_templates": copy.deepcopy(templates)},
        },
        "closed_dates": closed_dates or [],
        "notes_for_customer": "Deliveries leave at 8am",
    }


def checkout_payload(**overrides) -> dict:
    payload = {
        "items": [
            {"type": "PRODUCT", "product_id": "orange-juice", "variant_key": "500ml", "quantity": 2},
        ],
        "customer": {
            "name": "Maria Silva",
            "phone": "(69) 99999-0001",
            "email": "maria@example.com",
            "delivery_method": "delivery",
            "address": "Rua das Flores 123",
            "neighborhood": "Centro",
        },
        "schedule": {"date": NEXT_MONDAY.isoformat(), "slot_id": "morning"},
    }
    payload.update(overrides)
    return payload


def admin_headers() -> dict:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'ADMIN_API_TOKEN': ADMIN_TOKEN,
    'ORDER_TOKEN_PEPPER': 'test-pepper',
    'TRANSACTION_RETRY_BACKOFF': 0.0,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def delivery_config(db_session):
    """Saved default test configuration."""
    return delivery_config_service.save_delivery_config(make_config_payload(), actor="test")


@pytest.fixture(scope='function')
def catalog(db_session):
    catalog_service.seed_catalog(copy.deepcopy(TEST_CATALOG))
    db_session.commit()
    return TEST_CATALOG


@pytest.fixture(scope='function')
def frozen_clock(monkeypatch):
    """Pin the clock used by the HTTP-facing services to NOW."""
    from orderdesk.services import (
        availability_service,
        checkout_service,
        reservation_service,
        schedule_admin_service,
    )

    for module in (availability_service, checkout_service, reservation_service, schedule_admin_service):
        monkeypatch.setattr(module, "aware_utcnow", lambda: NOW)
    return NOW


@pytest.fixture(scope='function')
def binding(db_session):
    """A fresh browser binding (no order exists yet)."""
    return mint_binding()
