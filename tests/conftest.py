"""
Shared test fixtures.

Sets up an isolated test database so tests never touch
the real database. Tables are created before and dropped
after every test, so no ledger data leaks between tests.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from delivery_ledger.main import app
from delivery_ledger.models.base import Base, get_db
from delivery_ledger.schemas.order import OrderCreate
from delivery_ledger.services.account_store import AccountStore
from delivery_ledger.services.ledger_engine import LedgerEngine
from delivery_ledger.services.order_service import OrderService


# Use SQLite for tests, no external database needed.
# SQLite ignores FOR UPDATE, which is fine for a single
# test connection.
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

ACTOR = 1


@pytest.fixture(autouse=True)
def setup_database():
    """
    Create all tables before each test, drop them after.

    autouse=True means every test gets this automatically.
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
def store(db_session):
    return AccountStore(db_session, cashbox_name="main")


@pytest.fixture
def ledger(db_session, store):
    """Ledger engine with the no-negative-cash policy."""
    return LedgerEngine(db_session, store=store, allow_negative_cashbox=False)


@pytest.fixture
def orders(db_session, ledger):
    return OrderService(db_session, engine=ledger)


@pytest.fixture
def make_order(orders, db_session):
    """Create and commit an order; keyword arguments override the defaults."""
    def _make(**overrides):
        data = {
            "client_id": 9,
            "total_usd": "100.00",
            "delivery_fee_usd": "10.00",
            "actor_id": ACTOR,
        }
        data.update(overrides)
        order = orders.create_order(OrderCreate(**data))
        db_session.commit()
        return order
    return _make


@pytest.fixture
def client(db_session):
    """
    Provide a test client with the test database.

    We override the get_db dependency so the FastAPI app
    uses our test session instead of the real database.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
