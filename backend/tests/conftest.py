"""
Pytest fixtures for seatclock backend tests.

Provides the in-memory application, a per-test clean database, a
controllable clock, and a small venue (one store, two seat types, three
tables, two casts).
"""

from datetime import datetime, timedelta

import pytest
from seatclock import create_app
from seatclock.extensions import db
from seatclock.models import Cast, SeatType, Store, Table


T0 = datetime(2026, 10, 19, 19, 0, 0)


class FrozenClock:
    """Callable clock for services; time moves only when a test says so."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'POS_SANDBOX': True,
    })

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
def clock():
    return FrozenClock()


@pytest.fixture(scope='function')
def venue(db_session):
    """
    Store with:
    - standard seats: 1000 per 30 minutes (tables T1, T2)
    - VIP seats: 2000 per 60 minutes (table V1)
    - casts Aoi (fee 3000) and Rin (fee 2000)
    """
    store = Store(name="Shibuya", code="SBY", timezone="Asia/Tokyo", tax_rate_bps=1000)
    db_session.add(store)
    db_session.flush()

    standard = SeatType(store_id=store.id, display_name="Standard", price_per_unit=1000, time_unit_minutes=30)
    vip = SeatType(store_id=store.id, display_name="VIP", price_per_unit=2000, time_unit_minutes=60)
    db_session.add_all([standard, vip])
    db_session.flush()

    t1 = Table(store_id=store.id, name="T1", seat_type_id=standard.id)
    t2 = Table(store_id=store.id, name="T2", seat_type_id=standard.id)
    v1 = Table(store_id=store.id, name="V1", seat_type_id=vip.id)
    aoi = Cast(store_id=store.id, display_name="Aoi", nomination_fee=3000)
    rin = Cast(store_id=store.id, display_name="Rin", nomination_fee=2000)
    db_session.add_all([t1, t2, v1, aoi, rin])
    db_session.commit()

    return {
        "store": store,
        "standard": standard,
        "vip": vip,
        "t1": t1,
        "t2": t2,
        "v1": v1,
        "aoi": aoi,
        "rin": rin,
    }
