"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database, and replaces Discord with a recording
notifier so tests never touch the network.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from donation_ledger.main import app
from donation_ledger.api.deps import (
    get_catalog_cache,
    get_dispatcher,
    get_notifier,
)
from donation_ledger.models import Account, RankTier
from donation_ledger.models.base import Base, get_db
from donation_ledger.services.outbox import OutboxDispatcher
from donation_ledger.services.rank_catalog import CatalogCache, RankCatalog


# Use SQLite for tests, no external database needed.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class RecordingNotifier:
    """NotificationSink that remembers every call."""

    def __init__(self):
        self.role_syncs = []
        self.announcements = []
        self.alerts = []

    def sync_roles(self, discord_user_id, add_role_id=None, remove_role_id=None):
        self.role_syncs.append((discord_user_id, add_role_id, remove_role_id))

    def announce_donation(self, announcement):
        self.announcements.append(announcement)

    def alert_operators(self, message):
        self.alerts.append(message)


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
    This ensures each test starts with a clean database.
    """
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def catalog_cache():
    # TTL of zero: every lookup sees the current table
    return CatalogCache(ttl_seconds=0)


@pytest.fixture
def catalog(db_session, catalog_cache):
    return RankCatalog(db_session, catalog_cache)


@pytest.fixture
def tiers(db_session):
    """A small catalog: supporter ($5 / 30d) and patron ($20 / 30d)."""
    rows = [
        RankTier(
            id="supporter", name="Supporter",
            min_amount=Decimal("5.00"), duration_days=30,
            discord_role_id="role-supporter",
        ),
        RankTier(
            id="patron", name="Patron",
            min_amount=Decimal("20.00"), duration_days=30,
            discord_role_id="role-patron",
        ),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return {tier.id: tier for tier in rows}


@pytest.fixture
def make_account(db_session):
    """Factory that creates and commits a platform account."""
    def _make(username="steve", **kwargs):
        account = Account(username=username, **kwargs)
        db_session.add(account)
        db_session.commit()
        return account
    return _make


@pytest.fixture
def client(db_session, notifier, catalog_cache):
    """
    Provide a test client with the test database.

    We override get_db so the FastAPI app uses our test
    session, and run side effects inline against the
    recording notifier.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_dispatcher] = lambda: OutboxDispatcher()
    app.dependency_overrides[get_catalog_cache] = lambda: catalog_cache
    yield TestClient(app)
    app.dependency_overrides.clear()
