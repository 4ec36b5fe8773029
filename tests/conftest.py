"""
Test configuration and fixtures.

Every test gets its own SQLite database file bound to the global
`sessionMaker`, so the API handlers and background jobs run unchanged.
Redis and OpenObserve are replaced by mocks.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine
from fastapi.testclient import TestClient

from cabhub.src import argon2, db, notifier
from cabhub.src.db import (
    Account,
    Company,
    CompanyVendorAssociation,
    Driver,
    ORMbase,
    Vehicle,
    Vendor,
    sessionMaker,
)
from cabhub.src.enums import UserRole, VehicleType
from cabhub.src.lifecycle import BookingInput
from cabhub.src.schemas import Actor

PASSWORD = "password"


# ============================================================================
# INFRASTRUCTURE
# ============================================================================


@pytest.fixture(autouse=True)
def mock_redis():
    """Replace the Redis client used for locks and the change feed."""
    client = MagicMock()
    with patch("cabhub.src.redis.redisClient", client):
        yield client


@pytest.fixture(autouse=True)
def mock_openobserve():
    """Swallow audit events instead of posting them over HTTP."""
    with patch("cabhub.src.openobserve.requests.post") as post:
        yield post


@pytest.fixture(autouse=True)
def clear_listeners():
    yield
    notifier.listeners.clear()


@pytest.fixture
def engine(tmp_path):
    testEngine = create_engine(
        f"sqlite:///{tmp_path / 'cabhub.db'}",
        connect_args={"check_same_thread": False},
    )
    ORMbase.metadata.create_all(testEngine)
    sessionMaker.configure(bind=testEngine)
    yield testEngine
    sessionMaker.configure(bind=db.engine)
    testEngine.dispose()


@pytest.fixture
def session(engine):
    session = sessionMaker()
    yield session
    session.close()


@pytest.fixture
def client(engine):
    from cabhub.main import app

    with TestClient(app) as testClient:
        yield testClient


# ============================================================================
# DATA FIXTURES
# ============================================================================


def _account(session, username, role):
    account = Account(
        username=username, password=argon2.makePassword(PASSWORD), role=role
    )
    session.add(account)
    session.flush()
    return account


def _vendor(session, username, name):
    account = _account(session, username, UserRole.VENDOR)
    vendor = Vendor(account_id=account.id, name=name, service_areas=["Kochi"])
    session.add(vendor)
    session.flush()
    driver = Driver(
        vendor_id=vendor.id,
        name=f"{name} driver",
        phone="tel:+91-98765-43210",
        license_number=f"DL-{vendor.id:04d}",
    )
    vehicle = Vehicle(
        vendor_id=vendor.id,
        registration_number=f"KL07AB{vendor.id:04d}",
        vehicle_type=VehicleType.SEDAN,
        make="Toyota",
        model="Etios",
    )
    session.add_all([driver, vehicle])
    session.flush()
    return SimpleNamespace(
        account=account,
        vendor=vendor,
        driver=driver,
        vehicle=vehicle,
        actor=Actor(role=UserRole.VENDOR, owner_id=vendor.id, account_id=account.id),
    )


def _company(session, username, name):
    account = _account(session, username, UserRole.COMPANY)
    company = Company(account_id=account.id, name=name)
    session.add(company)
    session.flush()
    return SimpleNamespace(
        account=account,
        company=company,
        actor=Actor(role=UserRole.COMPANY, owner_id=company.id, account_id=account.id),
    )


@pytest.fixture
def world(session):
    """
    Two companies and three vendors.

    - `acme` is associated with `swift` and `metro`.
    - `globex` has no associations.
    - `rapid` is not associated with anybody.
    """
    acme = _company(session, "acme", "Acme Corp")
    globex = _company(session, "globex", "Globex")
    swift = _vendor(session, "swift", "Swift Cabs")
    metro = _vendor(session, "metro", "Metro Taxi")
    rapid = _vendor(session, "rapid", "Rapid Rides")
    session.add_all(
        [
            CompanyVendorAssociation(
                company_id=acme.company.id, vendor_id=swift.vendor.id
            ),
            CompanyVendorAssociation(
                company_id=acme.company.id, vendor_id=metro.vendor.id
            ),
        ]
    )
    session.commit()
    return SimpleNamespace(
        acme=acme, globex=globex, swift=swift, metro=metro, rapid=rapid
    )


@pytest.fixture
def booking_input():
    return BookingInput(
        guest_name="Ravi Menon",
        guest_phone="tel:+91-98765-43210",
        guest_email="ravi@example.com",
        pickup_location="Cochin International Airport",
        dropoff_location="Infopark Phase 2",
        pickup_datetime=datetime.now(timezone.utc) + timedelta(hours=2),
        fare_amount=850,
    )
