"""
Webhook handlers for PayPal IPN
"""

import requests
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_ipn_handler
from api.schemas import IPNResponse
from payments.ipn import IPNHandler

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/webhook/paypal/ipn", response_model=IPNResponse)
async def paypal_ipn(request: Request, handler: IPNHandler = Depends(get_ipn_handler)):
    """
    PayPal IPN listener.

    Always answers 200 for notifications that were read, including ones that
    were discarded. Only an unreachable validation endpoint answers 503 so
    that PayPal delivers the notification again.
    """
    # The exact bytes are needed for the validation postback
    payload = await request.body()
    try:
        outcome = await run_in_threadpool(handler.handle, payload)
    except requests.RequestException as e:
        log.error("ipn.validation_unavailable", error=str(e))
        raise HTTPException(status_code=503, detail="IPN validation unavailable")
    return IPNResponse(status=outcome.value)
