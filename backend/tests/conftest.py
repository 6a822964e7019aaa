"""Pytest configuration and fixtures."""

import os

# Settings are read once at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-cashdesk-suite-0123456789")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("WS_AUTH_TIMEOUT_SECONDS", "1")

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cashdesk.core.rbac import UserRole
from cashdesk.core.security import create_access_token, get_password_hash
from cashdesk.db.base import Base
from cashdesk.db.session import get_db
from cashdesk.main import app
# Import all models to ensure they're registered with Base.metadata
from cashdesk.models import *  # noqa: F401,F403
from cashdesk.models.sales import SaleOrder
from cashdesk.models.user import User
from cashdesk.services.event_publisher import event_sink
from cashdesk.services.monitoring_hub import hub

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


class FakeClock:
    """Manually advanced clock returning naive UTC datetimes."""

    def __init__(self, start: datetime = datetime(2024, 5, 14, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clean_hub():
    """Every test starts with empty presence maps."""
    hub.reset()
    yield
    hub.reset()


@pytest.fixture(scope="function")
def client(db_session: Session, session_factory) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    original_factory = event_sink.session_factory
    event_sink.session_factory = session_factory
    # Disable rate limiters during tests to avoid flaky failures
    from cashdesk.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    event_sink.session_factory = original_factory
    app.dependency_overrides.clear()


def _make_user(db: Session, email: str, role: UserRole, name: str, is_active: bool = True) -> User:
    user = User(
        email=email,
        password_hash=get_password_hash("testpass123"),
        role=role,
        name=name,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def cashier(db_session: Session) -> User:
    return _make_user(db_session, "alice@example.com", UserRole.CASHIER, "Alice Cashier")


@pytest.fixture
def other_cashier(db_session: Session) -> User:
    return _make_user(db_session, "bob@example.com", UserRole.CASHIER, "Bob Cashier")


@pytest.fixture
def supervisor(db_session: Session) -> User:
    return _make_user(db_session, "sam@example.com", UserRole.SUPERVISOR, "Sam Supervisor")


@pytest.fixture
def manager(db_session: Session) -> User:
    return _make_user(db_session, "mia@example.com", UserRole.MANAGER, "Mia Manager")


def token_for(user: User, **overrides) -> str:
    """Sign a token for ``user`` with the shared test key."""
    data = {"sub": str(user.id), "email": user.email, "role": user.role.value}
    data.update(overrides)
    return create_access_token(data=data)


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def cashier_headers(cashier: User) -> dict:
    return headers_for(cashier)


@pytest.fixture
def supervisor_headers(supervisor: User) -> dict:
    return headers_for(supervisor)


@pytest.fixture
def manager_headers(manager: User) -> dict:
    return headers_for(manager)


@pytest.fixture
def add_sale(db_session: Session):
    """Record a sale rung up by a cashier at a given time."""
    counter = {"n": 0}

    def _add(cashier_id: int, amount, at: datetime, items: int = 1) -> SaleOrder:
        counter["n"] += 1
        order = SaleOrder(
            order_number=f"ORD-{counter['n']:05d}",
            cashier_id=cashier_id,
            total_price=Decimal(str(amount)),
            items_count=items,
            created_at=at,
        )
        db_session.add(order)
        db_session.commit()
        return order

    return _add
