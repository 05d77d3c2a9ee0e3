import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from triplog.db import Base
from triplog.models.models import Vehicle

TENANT_ID = 1
OTHER_TENANT_ID = 2


class FrozenClock:
    """Deterministic stand-in for utcnow()"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingReports:
    """ReportCreator fake that remembers every call"""

    def __init__(self):
        self.calls = []

    def create(self, vehicle_id, type, description, notes, driver_id, tenant_id):
        self.calls.append(
            {
                "vehicle_id": vehicle_id,
                "type": type,
                "description": description,
                "notes": notes,
                "driver_id": driver_id,
                "tenant_id": tenant_id,
            }
        )
        return uuid.uuid4()


class FailingReports:
    def __init__(self):
        self.attempts = 0

    def create(self, *args, **kwargs):
        self.attempts += 1
        raise RuntimeError("reports service unavailable")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def driver_id():
    return uuid.uuid4()


@pytest.fixture
def other_driver_id():
    return uuid.uuid4()


@pytest.fixture
def make_vehicle(db):
    def _make(assigned_driver_id=None, current_odometer=100000, tenant_id=TENANT_ID, registration="AB-123-CD"):
        vehicle = Vehicle(
            tenant_id=tenant_id,
            registration=registration,
            brand="Renault",
            model="Master",
            assigned_driver_id=assigned_driver_id,
            current_odometer=current_odometer,
        )
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
        return vehicle

    return _make


@pytest.fixture
def vehicle(make_vehicle, driver_id):
    return make_vehicle(assigned_driver_id=driver_id)


@pytest.fixture
def reports():
    return RecordingReports()


@pytest.fixture
def failing_reports():
    return FailingReports()


@pytest.fixture
def tenant_id():
    return TENANT_ID


@pytest.fixture
def other_tenant_id():
    return OTHER_TENANT_ID
