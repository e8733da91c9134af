"""
Prometheus metrics for the PayPal Express Checkout service.

Exposes the FastAPI request metrics plus payment-domain counters at /metrics.
"""

from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_client import Counter, Histogram
from fastapi import Request, status
from fastapi.responses import JSONResponse
import os

nvp_requests_total = Counter(
    "paypal_nvp_requests_total",
    "NVP API calls by method and ACK value",
    ["method", "ack"],
)

nvp_latency = Histogram(
    "paypal_nvp_latency_seconds",
    "Round trip time of NVP API calls",
    ["method"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

payment_transitions_total = Counter(
    "paypal_payment_transitions_total",
    "Local payment state transitions",
    ["state", "source"],  # source: checkout, api, ipn
)

ipn_notifications_total = Counter(
    "paypal_ipn_notifications_total",
    "IPN notifications by handling outcome",
    ["outcome"],
)


def init_metrics(app):
    """
    Initialize Prometheus metrics instrumentation for the FastAPI app.

    Args:
        app: FastAPI application instance

    Returns:
        Instrumentator instance
    """
    inst = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics"],
    )
    inst.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    return inst


def add_metrics_auth_middleware(app):
    """
    Protect the /metrics endpoint outside development.
    Set METRICS_AUTH_TOKEN to allow scraping with the X-Metrics-Auth header.
    """

    @app.middleware("http")
    async def metrics_auth_middleware(request: Request, call_next):
        if request.url.path != "/metrics":
            return await call_next(request)

        if os.getenv("ENVIRONMENT", "development") == "development":
            return await call_next(request)

        auth_header = request.headers.get("X-Metrics-Auth")
        expected_token = os.getenv("METRICS_AUTH_TOKEN")
        if expected_token and auth_header == expected_token:
            return await call_next(request)

        # Allow internal network access (VPN/private networks)
        client_ip = request.client.host if request.client else None
        if client_ip and client_ip.startswith(("10.", "192.168.", "172.")):
            return await call_next(request)

        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Metrics endpoint access denied"},
        )
