import logging
import sys
import structlog
import os
from opentelemetry.instrumentation.logging import LoggingInstrumentor

# NVP credential fields that must never reach a log sink
SENSITIVE_KEYS = frozenset({"PWD", "SIGNATURE", "USER", "api_password", "signature"})


def get_log_level():
    """Get log level from environment or default to INFO"""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_log_renderer():
    """Get log renderer based on environment"""
    env = os.getenv("ENVIRONMENT", "development")
    # Use JSON format for tests and production
    if env in ["test", "production"]:
        return structlog.processors.JSONRenderer()
    # Pretty printing for local development
    return structlog.dev.ConsoleRenderer(colors=True, sort_keys=False)


def mask_credentials(logger, method_name, event_dict):
    """Replace credential values, including ones nested in an NVP payload."""
    for key, value in event_dict.items():
        if key in SENSITIVE_KEYS:
            event_dict[key] = "***"
        elif isinstance(value, dict) and SENSITIVE_KEYS.intersection(value):
            event_dict[key] = {
                k: ("***" if k in SENSITIVE_KEYS else v) for k, v in value.items()
            }
    return event_dict


def configure_logging():
    """Set up structlog + OTEL context injection."""
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.ExceptionPrettyPrinter(),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            mask_credentials,
            get_log_renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    env = os.getenv("ENVIRONMENT", "development")
    if env == "test":
        # In test mode, write to stdout for easier capture
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]  # Replace any existing handlers
    root_logger.setLevel(get_log_level())

    # Silence Uvicorn and SQLAlchemy noise
    logging.getLogger("uvicorn.error").handlers.clear()
    logging.getLogger("uvicorn.access").handlers.clear()
    logging.getLogger("sqlalchemy").setLevel(logging.ERROR)

    # Initialize OpenTelemetry logging instrumentation AFTER configuring logging
    LoggingInstrumentor().instrument(set_logging_format=False)


# Business Event Log Names
class BusinessEvents:
    """Standard names for business event logs"""

    API_ENTRY = "api.request"

    NVP_REQUEST = "paypal.nvp.request"
    NVP_FAILURE = "paypal.nvp.failure"

    CHECKOUT_STARTED = "checkout.started"
    CHECKOUT_START_FAILED = "checkout.start_failed"
    CHECKOUT_RETURNED = "checkout.returned"
    CHECKOUT_ABORTED = "checkout.aborted"
    CHECKOUT_CANCELLED = "checkout.cancelled"

    PAYMENT_CREATED = "payment.created"
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_VOIDED = "payment.voided"
    PAYMENT_REFUNDED = "payment.refunded"
    PAYMENT_REJECTED = "payment.rejected"
    PAYMENT_STATUS_UNKNOWN = "payment.status_unknown"

    IPN_RECEIVED = "ipn.received"
    IPN_INVALID = "ipn.invalid"
    IPN_DISCARDED = "ipn.discarded"
    IPN_APPLIED = "ipn.applied"


# Configure logging when module is imported
configure_logging()
