"""Pytest fixtures and configuration for famsync tests."""

import pytest
import uuid
from datetime import date, datetime
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from famsync.config import SyncSettings
from famsync.database.database import Base, build_engine, init_db
from famsync.database.local_store import LocalStore
from famsync.database.outbox import OutboxRepository
from famsync.models.session import SessionContext
from famsync.models.task import Task
from famsync.remote.task_store import RemoteTaskGateway
from famsync.sync.engine import SyncEngine

from .fakes import FakeDocumentStore, RecordingSleep


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    engine = build_engine(TEST_DATABASE_URL, poolclass=StaticPool, echo=False)
    init_db(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def outbox(db_session: Session):
    """Outbox with the default retry cap."""
    return OutboxRepository(db_session)


@pytest.fixture
def local_store(db_session: Session):
    """LocalStore over the test database."""
    return LocalStore(db_session)


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return "user-a"


@pytest.fixture
def test_family_id():
    return "family-1"


@pytest.fixture
def session_context(test_user_id, test_family_id):
    """Session of a family member using this device."""
    return SessionContext(user_id=test_user_id, family_id=test_family_id, user_name="Alice", role="adult")


@pytest.fixture
def sample_task_base(test_user_id, test_family_id):
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    now = datetime.utcnow()
    return {
        "id": str(uuid.uuid4()),
        "title": "Take out the trash",
        "category": "home",
        "date": date.today(),
        "created_by": test_user_id,
        "created_by_name": "Alice",
        "family_id": test_family_id,
        "created_at": now,
        "updated_at": now,
    }


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample family Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture
def private_task(sample_task_base):
    """Create a task visible only to its author."""
    return Task(**{**sample_task_base, "id": str(uuid.uuid4()), "private": True})


@pytest.fixture
def remote_store():
    """In-memory remote document store."""
    return FakeDocumentStore()


@pytest.fixture
def gateway(remote_store):
    return RemoteTaskGateway(remote_store)


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def sync_settings():
    """Settings with a small retry cap so exhaustion is quick to reach."""
    return SyncSettings(max_retries=3)


@pytest.fixture
def sync_engine(db_session, local_store, gateway, session_context, sync_settings, fake_sleep):
    """Online SyncEngine wired to the fake store with a recorded backoff sleep."""
    return SyncEngine(
        OutboxRepository(db_session, max_retries=sync_settings.max_retries),
        local_store,
        gateway,
        session_context,
        settings=sync_settings,
        sleep=fake_sleep,
        rand=lambda: 0.5,
        is_online=True,
    )
