"""
PayPal IPN (Instant Payment Notification) listener logic.

IPNs are untrusted: each one is posted back to PayPal for validation before
anything is read from it. IPN only confirms what the synchronous flow already
knows about; it never creates payments, and re-delivery is a no-op.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union

import requests
import structlog
import tenacity

from core.clock import Clock, system_clock
from core.logging import BusinessEvents
from core.metrics import ipn_notifications_total, payment_transitions_total
from core.settings import Settings
from db.models import REFUNDABLE_STATES, Payment, PaymentState
from db.repository import PaymentRepository
from payments import nvp
from payments.reconciler import refund_outcome

log = structlog.get_logger(__name__)

VALIDATION_ENDPOINTS = {
    True: "https://www.sandbox.paypal.com/cgi-bin/webscr",
    False: "https://www.paypal.com/cgi-bin/webscr",
}
VALIDATE_PREFIX = b"cmd=_notify-validate&"

RECOGNIZED_STATUSES = frozenset({"Failed", "Voided", "Pending", "Completed", "Refunded"})
AUTHORIZATION_STATUSES = {
    "Voided": PaymentState.authorization_voided,
    "Pending": PaymentState.authorization,
    "Completed": PaymentState.capture_completed,
}


class IPNOutcome(str, Enum):
    empty = "empty"
    invalid = "invalid"
    not_a_payment = "not_a_payment"
    unrecognized_status = "unrecognized_status"
    duplicate = "duplicate"
    payment_not_found = "payment_not_found"
    stale = "stale"
    failed = "failed"
    synchronous = "synchronous"
    applied = "applied"


class IPNValidator:
    """Confirms an IPN with PayPal by posting it back verbatim."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @staticmethod
    def endpoint(notification: dict[str, str]) -> str:
        return VALIDATION_ENDPOINTS[notification.get("test_ipn") == "1"]

    # The postback only reads; retrying it cannot double-apply anything
    @tenacity.retry(
        retry=tenacity.retry_if_exception_type(
            (requests.ConnectionError, requests.Timeout)
        ),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=0.5, max=4),
        reraise=True,
    )
    def postback(self, raw_body: bytes, notification: dict[str, str]) -> dict[str, str]:
        response = requests.post(
            self.endpoint(notification),
            data=VALIDATE_PREFIX + raw_body,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.settings.PAYPAL_TIMEOUT,
        )
        response.raise_for_status()
        return nvp.decode(response.text)

    def is_valid(self, raw_body: bytes, notification: dict[str, str]) -> bool:
        reply = self.postback(raw_body, notification)
        return "VERIFIED" in reply and "INVALID" not in reply


def parse_notification(raw_body: bytes) -> dict[str, str]:
    # IPNs declare their own charset (windows-1252 unless configured otherwise)
    charset = nvp.decode(raw_body, encoding="latin-1").get("charset") or "utf-8"
    return nvp.decode(raw_body, encoding=charset)


def ledger_key(notification: dict[str, str]) -> Optional[str]:
    """Duplicate-guard key: the txn id, else a per-delivery IPN identifier."""
    for field in ("txn_id", "ipn_track_id", "verify_sign"):
        if notification.get(field):
            return notification[field]
    if notification.get("parent_txn_id"):
        return f"{notification['parent_txn_id']}:{notification.get('mc_gross', '')}"
    return None


def parse_amount(value: Optional[str]) -> Optional[Decimal]:
    try:
        return Decimal(value) if value not in (None, "") else None
    except InvalidOperation:
        return None


class IPNHandler:
    def __init__(
        self,
        validator: IPNValidator,
        payments: PaymentRepository,
        clock: Clock = system_clock,
    ):
        self.validator = validator
        self.payments = payments
        self.clock = clock

    def handle(self, raw_body: Union[bytes, str, None]) -> IPNOutcome:
        outcome = self._handle(raw_body)
        ipn_notifications_total.labels(outcome=outcome.value).inc()
        return outcome

    def _handle(self, raw_body: Union[bytes, str, None]) -> IPNOutcome:
        if isinstance(raw_body, str):
            raw_body = raw_body.encode("utf-8")
        notification = parse_notification(raw_body)
        if not notification:
            log.warning(BusinessEvents.IPN_DISCARDED, reason=IPNOutcome.empty.value)
            return IPNOutcome.empty

        txn_id = notification.get("txn_id")
        status = notification.get("payment_status")
        ipn_log = log.bind(
            txn_id=txn_id,
            payment_status=status,
            txn_type=notification.get("txn_type"),
            test_ipn=notification.get("test_ipn"),
        )
        ipn_log.info(BusinessEvents.IPN_RECEIVED)

        if not self.validator.is_valid(raw_body, notification):
            ipn_log.warning(BusinessEvents.IPN_INVALID)
            return IPNOutcome.invalid

        if not txn_id and not notification.get("parent_txn_id"):
            ipn_log.info(BusinessEvents.IPN_DISCARDED, reason=IPNOutcome.not_a_payment.value)
            return IPNOutcome.not_a_payment
        if status not in RECOGNIZED_STATUSES:
            ipn_log.info(
                BusinessEvents.IPN_DISCARDED, reason=IPNOutcome.unrecognized_status.value
            )
            return IPNOutcome.unrecognized_status
        if self.payments.is_processed(ledger_key(notification), status):
            ipn_log.info(BusinessEvents.IPN_DISCARDED, reason=IPNOutcome.duplicate.value)
            return IPNOutcome.duplicate

        if status in AUTHORIZATION_STATUSES and notification.get("auth_id") and txn_id:
            return self._apply_authorization(notification, ipn_log)
        if status == "Refunded":
            return self._apply_refund(notification, ipn_log)
        if status == "Failed":
            # Failed checkouts never produced a local payment
            ipn_log.info(BusinessEvents.IPN_DISCARDED, reason=IPNOutcome.failed.value)
            return IPNOutcome.failed

        ipn_log.info(BusinessEvents.IPN_DISCARDED, reason=IPNOutcome.synchronous.value)
        return IPNOutcome.synchronous

    def _apply_authorization(self, notification: dict[str, str], ipn_log) -> IPNOutcome:
        auth_id = notification["auth_id"]
        status = notification["payment_status"]
        payment = self.payments.find_by_remote_id(auth_id)
        if payment is None:
            ipn_log.warning(
                BusinessEvents.IPN_DISCARDED,
                reason=IPNOutcome.payment_not_found.value,
                auth_id=auth_id,
            )
            return IPNOutcome.payment_not_found
        if payment.state != PaymentState.authorization:
            # Already settled by the synchronous flow or an earlier IPN
            ipn_log.info(
                BusinessEvents.IPN_DISCARDED,
                reason=IPNOutcome.stale.value,
                payment_id=payment.id,
                state=payment.state.value,
            )
            return IPNOutcome.stale

        amount = parse_amount(notification.get("mc_gross"))
        if amount is not None:
            payment.amount = abs(amount)
        payment.state = AUTHORIZATION_STATUSES[status]
        if payment.state == PaymentState.capture_completed:
            payment.captured_at = self.clock()
        payment.remote_id = notification["txn_id"]
        return self._commit(payment, notification, ipn_log)

    def _apply_refund(self, notification: dict[str, str], ipn_log) -> IPNOutcome:
        parent_txn_id = notification.get("parent_txn_id")
        payment = self.payments.find_by_remote_id(parent_txn_id)
        if payment is None:
            ipn_log.warning(
                BusinessEvents.IPN_DISCARDED,
                reason=IPNOutcome.payment_not_found.value,
                parent_txn_id=parent_txn_id,
            )
            return IPNOutcome.payment_not_found
        if payment.state not in REFUNDABLE_STATES:
            ipn_log.info(
                BusinessEvents.IPN_DISCARDED,
                reason=IPNOutcome.stale.value,
                payment_id=payment.id,
                state=payment.state.value,
            )
            return IPNOutcome.stale

        amount = parse_amount(notification.get("mc_gross"))
        refund_amount = abs(amount) if amount is not None else None
        if not refund_amount or refund_amount > payment.balance:
            ipn_log.warning(
                BusinessEvents.IPN_DISCARDED,
                reason=IPNOutcome.stale.value,
                payment_id=payment.id,
                refund_amount=str(refund_amount),
                balance=str(payment.balance),
            )
            return IPNOutcome.stale

        new_refunded, new_state, _ = refund_outcome(payment, refund_amount)
        payment.refunded_amount = new_refunded
        payment.state = new_state
        return self._commit(payment, notification, ipn_log)

    def _commit(self, payment: Payment, notification: dict[str, str], ipn_log) -> IPNOutcome:
        status = notification["payment_status"]
        if notification.get("mc_currency"):
            payment.currency_code = notification["mc_currency"]
        payment.remote_state = status
        self.payments.mark_processed(ledger_key(notification), status, payment, source="ipn")
        self.payments.save(payment)

        payment_transitions_total.labels(state=payment.state.value, source="ipn").inc()
        ipn_log.info(
            BusinessEvents.IPN_APPLIED,
            payment_id=payment.id,
            state=payment.state.value,
            amount=str(payment.amount),
            refunded_amount=str(payment.refunded_amount),
        )
        return IPNOutcome.applied
