"""Test the metrics module."""

from unittest.mock import patch, MagicMock

import pytest
import requests
from prometheus_client import generate_latest

from core.metrics import (
    init_metrics,
    ipn_notifications_total,
    nvp_latency,
    nvp_requests_total,
    payment_transitions_total,
)
from payments.ipn import IPNHandler, IPNOutcome, IPNValidator
from payments.nvp_client import NVPClient
from tests.helpers import MockResponse, nvp_reply


def test_nvp_requests_counted_by_ack(mock_post, mock_settings):
    metric = nvp_requests_total.labels(method="DoVoid", ack="Failure")
    initial_value = metric._value.get()
    mock_post.return_value = nvp_reply(ACK="Failure", L_ERRORCODE0="10609")

    NVPClient(mock_settings).do_void("AUTH-1")

    assert metric._value.get() == initial_value + 1


def test_nvp_transport_errors_counted(mock_post, mock_settings):
    metric = nvp_requests_total.labels(method="DoVoid", ack="transport_error")
    initial_value = metric._value.get()
    mock_post.return_value = MockResponse("Bad Gateway", status_code=502)

    with pytest.raises(requests.HTTPError):
        NVPClient(mock_settings).do_void("AUTH-1")

    assert metric._value.get() == initial_value + 1


def test_nvp_latency_histogram():
    histogram = nvp_latency.labels(method="DoCapture")
    histogram.observe(0.25)
    histogram.observe(1.5)
    assert histogram._sum.get() > 0


def test_ipn_outcomes_counted(mock_settings, payment_repository):
    metric = ipn_notifications_total.labels(outcome=IPNOutcome.empty.value)
    initial_value = metric._value.get()

    IPNHandler(IPNValidator(mock_settings), payment_repository).handle(b"")

    assert metric._value.get() == initial_value + 1


def test_payment_transitions_labels():
    metric = payment_transitions_total.labels(state="capture_completed", source="ipn")
    initial_value = metric._value.get()
    metric.inc()
    assert metric._value.get() == initial_value + 1
    assert metric._labelvalues == ("capture_completed", "ipn")


def test_init_metrics_with_app():
    """Test metrics initialization with FastAPI app."""
    mock_app = MagicMock()

    with patch("core.metrics.Instrumentator") as mock_instrumentator:
        mock_inst = MagicMock()
        mock_instrumentator.return_value = mock_inst
        mock_inst.instrument.return_value = mock_inst
        mock_inst.expose.return_value = mock_inst

        result = init_metrics(mock_app)

        mock_instrumentator.assert_called_once()
        mock_inst.instrument.assert_called_with(mock_app)
        mock_inst.expose.assert_called_with(
            mock_app, endpoint="/metrics", include_in_schema=False
        )
        assert result == mock_inst


def test_metrics_endpoint_integration(client):
    """Test that metrics endpoint is available and returns Prometheus format."""
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "text/plain" in response.headers.get("content-type", "")

    content = response.text
    assert "paypal_nvp_requests_total" in content
    assert "paypal_nvp_latency_seconds" in content
    assert "paypal_payment_transitions_total" in content
    assert "paypal_ipn_notifications_total" in content


def test_metrics_endpoint_denied_outside_development(client, monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.delenv("METRICS_AUTH_TOKEN", raising=False)

    response = client.get("/metrics")

    assert response.status_code == 401
    assert response.json() == {"detail": "Metrics endpoint access denied"}


def test_metrics_endpoint_allows_auth_token(client, monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("METRICS_AUTH_TOKEN", "scrape-token")

    response = client.get("/metrics", headers={"X-Metrics-Auth": "scrape-token"})

    assert response.status_code == 200
    assert "paypal_nvp_requests_total" in response.text


def test_metrics_naming_convention():
    # prometheus_client strips the _total suffix from counter names
    assert nvp_requests_total._name == "paypal_nvp_requests"
    assert payment_transitions_total._name == "paypal_payment_transitions"
    assert ipn_notifications_total._name == "paypal_ipn_notifications"
    assert nvp_latency._name == "paypal_nvp_latency_seconds"


def test_metrics_export():
    result = generate_latest()
    assert isinstance(result, bytes)
    assert b"paypal_nvp_requests_total" in result
