"""
Payment state reconciler

Capture, void and refund of Express Checkout payments, plus the refund
arithmetic shared with the IPN handler. Preconditions are checked before any
call to PayPal; a rejected call leaves the payment untouched.
"""

from decimal import Decimal
from typing import Optional, Union

import structlog

from core.clock import Clock, system_clock
from core.logging import BusinessEvents
from core.metrics import payment_transitions_total
from db.models import REFUNDABLE_STATES, Payment, PaymentState
from db.repository import PaymentRepository
from payments import nvp
from payments.errors import (
    InvalidPaymentStateError,
    InvalidRequestError,
    PaymentGatewayError,
    is_failure,
)
from payments.nvp_client import NVPClient

log = structlog.get_logger(__name__)

Amount = Union[Decimal, str, int, float]


def to_decimal(amount: Amount) -> Decimal:
    return Decimal(nvp.format_amount(amount))


def refund_outcome(payment: Payment, amount: Decimal) -> tuple[Decimal, PaymentState, str]:
    """
    New refunded total, resulting state and PayPal REFUNDTYPE for refunding
    ``amount`` on ``payment``.
    """
    full_amount = Decimal(payment.amount)
    new_refunded = Decimal(payment.refunded_amount or 0) + amount
    if new_refunded < full_amount:
        return new_refunded, PaymentState.capture_partially_refunded, "Partial"
    refund_type = "Partial" if amount < full_amount else "Full"
    return new_refunded, PaymentState.capture_refunded, refund_type


class PaymentReconciler:
    def __init__(
        self,
        client: NVPClient,
        payments: PaymentRepository,
        clock: Clock = system_clock,
    ):
        self.client = client
        self.payments = payments
        self.clock = clock

    def capture(self, payment: Payment, amount: Optional[Amount] = None) -> Payment:
        """Capture an authorization, in full unless ``amount`` is given."""
        if payment.state != PaymentState.authorization:
            raise InvalidPaymentStateError(
                'Only payments in the "authorization" state can be captured.'
            )
        capture_amount = to_decimal(payment.amount if amount is None else amount)
        if capture_amount <= 0:
            raise InvalidRequestError("Capture amount must be positive.")

        response = self.client.do_capture(
            payment.remote_id,
            nvp.format_amount(capture_amount),
            payment.currency_code,
            invoice_number=payment.order.order_number if payment.order else None,
        )
        self._raise_on_failure(response, payment, "capture")

        payment.state = PaymentState.capture_completed
        payment.amount = capture_amount
        payment.captured_at = self.clock()
        payment.remote_id = response.get("TRANSACTIONID") or payment.remote_id
        payment.remote_state = response.get("PAYMENTSTATUS") or "Completed"
        self.payments.mark_processed(payment.remote_id, "Completed", payment, source="api")
        self.payments.save(payment)

        payment_transitions_total.labels(state=payment.state.value, source="api").inc()
        log.info(
            BusinessEvents.PAYMENT_CAPTURED,
            payment_id=payment.id,
            remote_id=payment.remote_id,
            amount=str(capture_amount),
        )
        return payment

    def void(self, payment: Payment) -> Payment:
        if payment.state != PaymentState.authorization:
            raise InvalidPaymentStateError(
                'Only payments in the "authorization" state can be voided.'
            )

        response = self.client.do_void(payment.remote_id)
        self._raise_on_failure(response, payment, "void")

        payment.state = PaymentState.authorization_voided
        payment.remote_state = "Voided"
        self.payments.save(payment)

        payment_transitions_total.labels(state=payment.state.value, source="api").inc()
        log.info(BusinessEvents.PAYMENT_VOIDED, payment_id=payment.id, remote_id=payment.remote_id)
        return payment

    def refund(self, payment: Payment, amount: Optional[Amount] = None) -> Payment:
        """Refund ``amount`` (default: the remaining balance) of a captured payment."""
        if payment.state not in REFUNDABLE_STATES:
            raise InvalidPaymentStateError(
                'Only payments in the "capture_completed" and '
                '"capture_partially_refunded" states can be refunded.'
            )
        balance = payment.balance
        refund_amount = balance if amount is None else to_decimal(amount)
        if refund_amount <= 0:
            raise InvalidRequestError("Refund amount must be positive.")
        if refund_amount > balance:
            raise InvalidRequestError(
                f"Can't refund more than {nvp.format_amount(balance)} {payment.currency_code}."
            )

        new_refunded, new_state, refund_type = refund_outcome(payment, refund_amount)
        response = self.client.refund_transaction(
            payment.remote_id,
            refund_type,
            nvp.format_amount(refund_amount),
            payment.currency_code,
        )
        self._raise_on_failure(response, payment, "refund")

        payment.refunded_amount = new_refunded
        payment.state = new_state
        payment.remote_state = "Refunded"
        self.payments.mark_processed(
            response.get("REFUNDTRANSACTIONID"), "Refunded", payment, source="api"
        )
        self.payments.save(payment)

        payment_transitions_total.labels(state=new_state.value, source="api").inc()
        log.info(
            BusinessEvents.PAYMENT_REFUNDED,
            payment_id=payment.id,
            remote_id=payment.remote_id,
            amount=str(refund_amount),
            refund_type=refund_type,
            refunded_total=str(new_refunded),
        )
        return payment

    def _raise_on_failure(self, response: dict, payment: Payment, operation: str) -> None:
        if not is_failure(response):
            return
        error = PaymentGatewayError.from_response(response)
        log.error(
            BusinessEvents.PAYMENT_REJECTED,
            operation=operation,
            payment_id=payment.id,
            remote_id=payment.remote_id,
            error_code=error.code,
            error=error.message,
        )
        raise error
