import structlog
from fastapi import Request

from core.logging import BusinessEvents

# PayPal appends these to the return URL; they identify the buyer's session
REDACTED_QUERY_PARAMS = {"token", "PayerID"}


async def log_api_entry(request: Request, call_next):
    """Middleware to log API entries with request details"""
    # Get a fresh logger each time to ensure test configurations are respected
    log = structlog.get_logger(__name__)

    query_params = {
        key: ("***" if key in REDACTED_QUERY_PARAMS else value)
        for key, value in request.query_params.items()
    }
    log.info(
        BusinessEvents.API_ENTRY,
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
        path_params=dict(request.path_params),
        query_params=query_params,
    )
    response = await call_next(request)
    return response
