"""Pytest fixtures for testing"""

import json
import pytest
from datetime import date
from typing import Generator
import httpx
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from stms_billing.api.dependencies import get_event_client
from stms_billing.api.main import create_app
from stms_billing.infrastructure.clients.events import BillingEventClient
from stms_billing.infrastructure.database.models import Base
from stms_billing.infrastructure.database.session import get_db
from stms_billing.infrastructure.memory.store import InMemoryLedgerStore
from stms_billing.domain.models import Builty, Client, Driver, Trip, Truck
from stms_billing.domain.reconciliation import ReconciliationService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sent_events() -> list[dict]:
    """Billing events captured by the mock webhook receiver"""
    return []


@pytest.fixture
def client(db: Session, sent_events: list[dict]) -> TestClient:
    """Create FastAPI test client with test database and a recording event receiver"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    def record(request: httpx.Request) -> httpx.Response:
        sent_events.append(json.loads(request.content))
        return httpx.Response(202)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_client] = lambda: BillingEventClient(transport=httpx.MockTransport(record))
    return TestClient(app)


# ----------------------------------------------------------------------
# In-process ledger for domain tests
# ----------------------------------------------------------------------


@pytest.fixture
def ledger() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def service(ledger: InMemoryLedgerStore) -> ReconciliationService:
    return ReconciliationService(ledger)


@pytest.fixture
def acme(ledger: InMemoryLedgerStore) -> Client:
    """Client with no credit limit and nothing outstanding"""
    return ledger.add(Client(name="Acme Logistics", client_number="CL-001"))


@pytest.fixture
def trip(ledger: InMemoryLedgerStore, acme: Client) -> Trip:
    truck = ledger.add(Truck(registration_number="MH12AB1234"))
    driver = ledger.add(Driver(name="Ramesh Kumar", license_number="DL-0420110012345"))
    return ledger.add(
        Trip(
            trip_number="TRP-001",
            truck_id=truck.id,
            driver_id=driver.id,
            client_id=acme.id,
            source="Pune",
            destination="Mumbai",
        )
    )


@pytest.fixture
def make_builty(trip: Trip, acme: Client):
    """Factory for unsaved builties on the default trip and client"""
    counter = iter(range(1, 1000))

    def _make(freight: str = "10000.00", **overrides) -> Builty:
        fields = dict(
            builty_number=f"BLT-{next(counter):04d}",
            trip_id=trip.id,
            client_id=acme.id,
            freight_charges=freight,
            builty_date=date(2024, 1, 10),
        )
        fields.update(overrides)
        return Builty(**fields)

    return _make
