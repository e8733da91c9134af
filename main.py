"""
PayPal Express Checkout - Main Application Entry Point

This module initializes the FastAPI application: the Express Checkout flow,
payment operations (capture, void, refund) and the PayPal IPN listener.
"""

import structlog
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from api import routes, webhooks
from api.middleware import log_api_entry
from core.logging import configure_logging
from core.metrics import add_metrics_auth_middleware, init_metrics
from core.settings import Settings, clear_settings, get_settings, init_settings
from core.tracing import init_tracer
from db.session import init_db

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events."""
    init_settings()
    settings = get_settings()

    init_tracer(settings.OTEL_SERVICE_NAME)
    init_db(settings)
    log.info(
        "app.started",
        paypal_mode=settings.PAYPAL_MODE,
        solution_type=settings.PAYPAL_SOLUTION_TYPE,
        payment_action=settings.PAYPAL_PAYMENT_ACTION,
    )

    yield
    clear_settings()


app = FastAPI(
    title="PayPal Express Checkout",
    description="""
    ## PayPal Express Checkout (NVP) gateway

    - **Checkout**: SetExpressCheckout, buyer approval on PayPal, DoExpressCheckoutPayment
    - **Payment operations**: capture, void and (partial) refund of authorizations
    - **IPN**: validated Instant Payment Notifications reconcile payment state
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

FastAPIInstrumentor.instrument_app(app)

init_metrics(app)
add_metrics_auth_middleware(app)

app.middleware("http")(log_api_entry)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error("api.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
    )


@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Health check endpoint alias."""
    return await health_check(settings)


@app.get("/healthz")
async def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint to verify API status."""
    db_type = (
        "PostgreSQL" if settings.DATABASE_URL.startswith("postgresql") else "SQLite"
    )
    return {
        "status": "ok",
        "app_name": settings.APP_NAME,
        "database": db_type,
        "environment": settings.ENVIRONMENT,
        "paypal_mode": settings.PAYPAL_MODE,
    }


API_PREFIX = "/api/v1"

app.include_router(routes.router, prefix=API_PREFIX)
app.include_router(webhooks.router, prefix=API_PREFIX, tags=["webhooks"])


def main():
    configure_logging()
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
