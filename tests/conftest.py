"""
Test configuration and fixtures.

Provides:
- In-memory SQLite session (schema created per test)
- Owner configuration / customer factories
- Fake calendar adapter recording remote events
- HTTPX AsyncClient bound to the app with the owner header
"""
import os
import uuid

from typing import AsyncGenerator, Generator

from cryptography.fernet import Fernet

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FERNET_KEY"] = Fernet.generate_key().decode()
os.environ["ENV"] = "test"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from agenda.core.config import settings
from agenda.core.deps import get_db
from agenda.core.encryption import encrypt_token
from agenda.db.base import Base
from agenda.db.enums import SyncErrorKind
from agenda.db.models import Customer, OwnerCalendarConfig
from agenda.main import app
from agenda.services.calendar_service import EventBody, RemoteEvent
from agenda.services.errors import CalendarSyncError


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """No real backoff sleeps in tests."""
    monkeypatch.setattr(settings, "SYNC_RETRY_BASE_DELAY", 0.0)
    monkeypatch.setattr(settings, "SYNC_RETRY_MAX_DELAY", 0.0)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh in-memory database per test; one shared connection across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()

    yield session

    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()


# =============================================================================
# Domain Fixtures
# =============================================================================

def make_owner_config(
    db: Session,
    *,
    buffer_minutes: int = 0,
    connected: bool = False,
    sync_enabled: bool | None = None,
    **overrides,
) -> OwnerCalendarConfig:
    config = OwnerCalendarConfig(
        owner_id=overrides.pop("owner_id", uuid.uuid4()),
        timezone=overrides.pop("timezone", "America/Santiago"),
        default_duration_minutes=overrides.pop("default_duration_minutes", 60),
        buffer_minutes=buffer_minutes,
        workday_start_hour=overrides.pop("workday_start_hour", 9),
        workday_end_hour=overrides.pop("workday_end_hour", 18),
        calendar_sync_enabled=connected if sync_enabled is None else sync_enabled,
        calendar_id="primary",
        needs_reauth=False,
        **overrides,
    )
    if connected:
        config.access_token_encrypted = encrypt_token("access-1")
        config.refresh_token_encrypted = encrypt_token("refresh-1")
    db.add(config)
    db.commit()
    db.refresh(config)
    return config


def make_customer(db: Session, owner_id: uuid.UUID, name: str = "Ana Rojas", **kwargs) -> Customer:
    customer = Customer(owner_id=owner_id, name=name, **kwargs)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@pytest.fixture
def owner_factory(db: Session):
    """Create extra owners: `owner_factory(buffer_minutes=15, connected=True)`."""
    return lambda **kwargs: make_owner_config(db, **kwargs)


@pytest.fixture
def customer_factory(db: Session):
    return lambda owner_id, **kwargs: make_customer(db, owner_id, **kwargs)


@pytest.fixture
def owner(db: Session) -> OwnerCalendarConfig:
    """Owner without a calendar connection."""
    return make_owner_config(db)


@pytest.fixture
def connected_owner(db: Session) -> OwnerCalendarConfig:
    """Owner with Google Calendar connected and sync enabled."""
    return make_owner_config(db, connected=True, contact_phone="+56 9 1234 5678")


@pytest.fixture
def customer(db: Session, owner: OwnerCalendarConfig) -> Customer:
    return make_customer(db, owner.owner_id, email="ana@example.com")


@pytest.fixture
def connected_customer(db: Session, connected_owner: OwnerCalendarConfig) -> Customer:
    return make_customer(db, connected_owner.owner_id, email="ana@example.com")


# =============================================================================
# Fake Calendar
# =============================================================================

class FakeCalendar:
    """
    In-memory calendar adapter.

    Use as an adapter factory: `adapter_factory=fake`. Queue errors in
    `failures` to make the next calls raise them, in order.
    """

    def __init__(self):
        self.events: dict[str, EventBody] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.tokens: list[str] = []
        self.failures: list[CalendarSyncError] = []
        self._counter = 0

    def __call__(self, access_token: str, calendar_id: str) -> "FakeCalendar":
        self.tokens.append(access_token)
        return self

    def _maybe_fail(self) -> None:
        if self.failures:
            raise self.failures.pop(0)

    async def create_event(self, body: EventBody) -> RemoteEvent:
        self.calls.append(("create", None))
        self._maybe_fail()
        self._counter += 1
        event_id = f"evt-{self._counter}"
        self.events[event_id] = body
        return RemoteEvent(id=event_id, link=f"https://calendar.example/{event_id}")

    async def update_event(self, external_id: str, body: EventBody) -> RemoteEvent:
        self.calls.append(("update", external_id))
        self._maybe_fail()
        if external_id not in self.events:
            raise CalendarSyncError(SyncErrorKind.NOT_FOUND, "Event not found", status_code=404)
        self.events[external_id] = body
        return RemoteEvent(id=external_id, link=f"https://calendar.example/{external_id}")

    async def delete_event(self, external_id: str) -> None:
        self.calls.append(("delete", external_id))
        self._maybe_fail()
        if external_id not in self.events:
            raise CalendarSyncError(SyncErrorKind.NOT_FOUND, "Event not found", status_code=410)
        del self.events[external_id]


@pytest.fixture
def fake_calendar(monkeypatch) -> FakeCalendar:
    """Fake calendar installed as the default adapter factory."""
    from agenda.services import sync_service

    fake = FakeCalendar()
    monkeypatch.setattr(sync_service, "default_adapter_factory", fake)
    return fake


def sync_error(kind: SyncErrorKind, message: str = "boom") -> CalendarSyncError:
    return CalendarSyncError(kind, message)


# =============================================================================
# HTTP Client Fixtures
# =============================================================================

@pytest.fixture
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Async client sharing the test session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def owner_client(
    client: AsyncClient, owner: OwnerCalendarConfig
) -> AsyncClient:
    client.headers["X-Owner-Id"] = str(owner.owner_id)
    return client
