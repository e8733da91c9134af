"""
Simple smoke tests to verify basic functionality.
"""

from decimal import Decimal

import pytest

from core.settings import clear_settings, get_settings, init_settings
from db.models import Order, Payment, PaymentState


def test_app_startup(client):
    """Test that the application starts up properly."""
    response = client.get("/healthz")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["app_name"] == "Test Checkout"
    assert data["database"] == "SQLite"
    assert data["environment"] == "development"
    assert data["paypal_mode"] == "test"


def test_health_alias(client):
    assert client.get("/health").json()["status"] == "ok"


def test_openapi_available(client):
    """Test that OpenAPI documentation is available."""
    response = client.get("/docs")
    assert response.status_code == 200

    paths = client.get("/openapi.json").json()["paths"]
    assert "/api/v1/checkout/{order_id}/start" in paths
    assert "/api/v1/payments/{payment_id}/refund" in paths
    assert "/api/v1/webhook/paypal/ipn" in paths


def test_settings_modes(mock_settings):
    assert mock_settings.is_test_mode is True
    assert mock_settings.billing_agreement_enabled is False

    live = mock_settings.model_copy(
        update={"PAYPAL_MODE": "live", "PAYPAL_REFERENCE_TRANSACTIONS": True}
    )
    assert live.is_test_mode is False
    # A billing agreement needs a description as well
    assert live.billing_agreement_enabled is False


def test_settings_singleton():
    settings = init_settings(PAYPAL_MODE="live", APP_NAME="Override")
    try:
        assert get_settings() is settings
        assert settings.APP_NAME == "Override"
        assert settings.is_test_mode is False
    finally:
        clear_settings()

    with pytest.raises(RuntimeError, match="not initialized"):
        get_settings()


def test_database_connection(test_db_session):
    """Test that database connection works."""
    order = Order(order_number="42", total_amount=Decimal("12.50"), currency_code="EUR", data={})
    test_db_session.add(order)
    test_db_session.commit()

    payment = Payment(
        order_id=order.id,
        state=PaymentState.capture_partially_refunded,
        amount=Decimal("12.50"),
        refunded_amount=Decimal("2.50"),
        currency_code="EUR",
        remote_id="CAP-42",
    )
    test_db_session.add(payment)
    test_db_session.commit()
    test_db_session.expire_all()

    retrieved = test_db_session.query(Payment).filter_by(remote_id="CAP-42").first()
    assert retrieved is not None
    assert retrieved.order.order_number == "42"
    assert retrieved.state == PaymentState.capture_partially_refunded
    assert retrieved.balance == Decimal("10.00")
