from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import create_access_token, hash_password
from app.config import settings
from app.db import Base, get_db
from app.dependencies import get_queue
from app.main import app
from app.models.client import Client
from app.models.operator import Operator
from app.models.reminder import Reminder
from app.services.queue import JobQueue
from app.services.schedule import utc_today

# Tests drive the poller and worker directly; the app lifespan must not start them.
settings.enable_scheduler = False
settings.enable_worker = False


class FakeClock:
    """Callable clock for the queue; `advance` moves time forward."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def session_factory():
    """In-memory SQLite database shared by every session the test opens."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(session_factory, clock):
    return JobQueue(
        session_factory,
        "notifications",
        max_attempts=3,
        backoff_delay=2.0,
        backoff_max=300.0,
        lock_duration=60,
        max_stalled_count=3,
        keep_completed=100,
        clock=clock,
    )


def _override_dependencies(db_session, queue):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_queue] = lambda: queue


@pytest.fixture
def client(db_session, queue):
    """Create a test client with database and queue overrides."""
    _override_dependencies(db_session, queue)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_client(db_session, queue):
    """Create a test client with an authenticated operator."""
    operator = Operator(
        email="test@example.com",
        hashed_password=hash_password("password123"),
        full_name="Test Operator",
    )
    db_session.add(operator)
    db_session.commit()
    db_session.refresh(operator)

    token = create_access_token(operator.id)

    _override_dependencies(db_session, queue)
    with TestClient(app) as test_client:
        test_client.headers["Authorization"] = f"Bearer {token}"
        test_client.test_operator = operator
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_client(db_session):
    """Insert a client row directly."""

    def _make(**overrides) -> Client:
        values = {
            "full_name": "Jane Doe",
            "email": "jane@example.com",
            "whatsapp_number": "+14155550100",
            "is_active": True,
        }
        values.update(overrides)
        row = Client(**values)
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        return row

    return _make


@pytest.fixture
def make_reminder(db_session):
    """Insert a reminder row directly, bypassing API validation."""

    def _make(client: Client, **overrides) -> Reminder:
        values = {
            "client_id": client.id,
            "product_service_name": "SSL Certificate",
            "description": None,
            "expiry_date": utc_today() + timedelta(days=7),
            "notification_channel": "email",
            "reminder_schedule": [30, 7, 1],
            "next_reminder_date": utc_today(),
            "status": "active",
        }
        values.update(overrides)
        row = Reminder(**values)
        db_session.add(row)
        db_session.commit()
        db_session.refresh(row)
        return row

    return _make
