"""
Shared test fixtures.

Sets up an isolated SQLite database so tests never touch
the real database. Tables are created before each test and
dropped after it, so no test data persists.
"""

import os
import uuid
from decimal import Decimal

# Must be set before the application modules create their engine
TEST_DATABASE_URL = "sqlite:///./test.db"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from upi_ledger.api.advice import get_llm_client
from upi_ledger.auth import get_identity_provider
from upi_ledger.errors import Unauthorized
from upi_ledger.main import app
from upi_ledger.models.base import Base, get_db
from upi_ledger.money import to_minor_units
from upi_ledger.services.ledger_store import LedgerStore

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)

ALICE_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
BOB_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
CAROL_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")

ALICE_PHONE = "9876543210"
BOB_PHONE = "9123456780"
CAROL_PHONE = "8123456789"


class FakeIdentityProvider:
    """Maps fixed bearer tokens to user ids."""

    def __init__(self, tokens: dict[str, uuid.UUID]):
        self.tokens = tokens

    def resolve(self, token: str) -> uuid.UUID:
        if token not in self.tokens:
            raise Unauthorized()
        return self.tokens[token]


def make_profile(store, profile_id, phone, balance="100.00", name=None):
    """Helper: create a profile holding the given balance."""
    return store.create_profile(
        profile_id=profile_id,
        phone=phone,
        balance_minor=to_minor_units(Decimal(balance), allow_zero=True),
        name=name,
    )


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
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
def session_factory():
    """For tests that need one session per simulated request."""
    return TestSessionLocal


@pytest.fixture
def store(db_session):
    return LedgerStore(db_session)


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider({
        "alice-token": ALICE_ID,
        "bob-token": BOB_ID,
        "carol-token": CAROL_ID,
    })


@pytest.fixture
def client(db_session, identity_provider):
    """
    Provide a test client with the test database.

    The database, identity provider and language model client
    dependencies are overridden so no external service is hit.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_llm_client] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
