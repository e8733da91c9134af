"""Mapping of PayPal payment statuses onto local payment states."""

from typing import Optional

import structlog

from core.logging import BusinessEvents
from db.models import PaymentState

log = structlog.get_logger(__name__)

REMOTE_STATUS_TO_STATE = {
    "Pending": PaymentState.authorization,
    "Completed": PaymentState.capture_completed,
    "Processed": PaymentState.capture_completed,
    "Voided": PaymentState.authorization_voided,
    "Expired": PaymentState.authorization_expired,
    "Refunded": PaymentState.capture_refunded,
    "Partially-Refunded": PaymentState.capture_partially_refunded,
}


def map_remote_status(
    remote_status: Optional[str],
    fallback: PaymentState = PaymentState.authorization,
) -> PaymentState:
    """Local state for a PayPal status; unknown statuses keep ``fallback``."""
    state = REMOTE_STATUS_TO_STATE.get(remote_status or "")
    if state is None:
        log.warning(
            BusinessEvents.PAYMENT_STATUS_UNKNOWN,
            remote_status=remote_status,
            fallback=fallback.value,
        )
        return fallback
    return state
