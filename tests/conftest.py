"""Test configuration and fixtures."""

import os
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.clock import fixed_clock
from core.settings import Settings
from db.models import Base, Order, OrderItem, Payment, PaymentState
from db.repository import OrderRepository, PaymentRepository
from main import app
from payments.nvp_client import NVPClient
from tests.helpers import NOW


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Setup test environment variables before each test."""
    original_env = dict(os.environ)

    os.environ.update(
        {
            "DATABASE_URL": "sqlite:///:memory:",
            "PAYPAL_API_USERNAME": "merchant_api1.example.com",
            "PAYPAL_API_PASSWORD": "api-password",
            "PAYPAL_SIGNATURE": "api-signature",
            "PAYPAL_MODE": "test",
            "APP_NAME": "Test Checkout",
            "ENVIRONMENT": "development",
            "DISABLE_TRACING": "true",
        }
    )

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_settings():
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        PAYPAL_API_USERNAME="merchant_api1.example.com",
        PAYPAL_API_PASSWORD="api-password",
        PAYPAL_SIGNATURE="api-signature",
        PAYPAL_MODE="test",
        APP_NAME="Test Checkout",
        ENVIRONMENT="development",
    )


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest.fixture
def test_db_engine():
    """Create a test database engine and setup tables."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=test_db_engine
    )


@pytest.fixture
def test_db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def order_repository(test_db_session):
    return OrderRepository(test_db_session)


@pytest.fixture
def payment_repository(test_db_session):
    return PaymentRepository(test_db_session)


@pytest.fixture
def order(test_db_session):
    """An order worth 10.00 USD with two line items."""
    order = Order(
        order_number="1001",
        email=None,
        total_amount=Decimal("10.00"),
        currency_code="USD",
        data={},
    )
    order.items = [
        OrderItem(title="Coffee beans", unit_price=Decimal("4.00"), quantity=2),
        OrderItem(title="Filter papers", unit_price=Decimal("2.00"), quantity=1),
    ]
    test_db_session.add(order)
    test_db_session.commit()
    return order


@pytest.fixture
def make_payment(test_db_session, order):
    """Factory for payments attached to the ``order`` fixture."""

    def _make(
        state=PaymentState.authorization,
        amount="10.00",
        refunded_amount="0.00",
        remote_id="AUTH-1",
        **fields,
    ):
        payment = Payment(
            order_id=order.id,
            state=state,
            amount=Decimal(amount),
            refunded_amount=Decimal(refunded_amount),
            currency_code="USD",
            remote_id=remote_id,
            remote_state="Pending",
            test=True,
            authorized_at=NOW,
            **fields,
        )
        test_db_session.add(payment)
        test_db_session.commit()
        return payment

    return _make


@pytest.fixture
def nvp_client():
    """NVPClient double; configure return values per test."""
    return MagicMock(spec=NVPClient)


@pytest.fixture
def mock_post():
    """Patch the HTTP transport shared by the NVP client and the IPN validator."""
    with patch("payments.nvp_client.requests.post") as mock:
        yield mock


@pytest.fixture
def client(mock_settings, session_factory, clock):
    """Test client with the database and settings overridden."""
    from api.dependencies import get_clock
    from core.settings import get_settings
    from db.session import get_db, reset_engines

    reset_engines()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: mock_settings
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    reset_engines()


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests (SQLite)")
    config.addinivalue_line("markers", "slow: marks tests as slow running")
