"""
Express Checkout flow

Drives one order through SetExpressCheckout -> buyer approval on PayPal ->
GetExpressCheckoutDetails -> DoExpressCheckoutPayment, and creates the local
payment once PayPal has accepted it.
"""

from typing import Any, Optional

import structlog

from core.clock import Clock, system_clock
from core.logging import BusinessEvents
from core.metrics import payment_transitions_total
from core.settings import Settings
from db.models import ZERO, Order, Payment, PaymentState
from db.repository import OrderRepository, PaymentRepository
from payments import nvp
from payments.errors import is_failure
from payments.nvp_client import NVPClient
from payments.status import map_remote_status

log = structlog.get_logger(__name__)

ORDER_DATA_KEY = "paypal_express_checkout"
GATEWAY_ID = "paypal_express_checkout"
BILLING_TYPE = "MerchantInitiatedBillingSingleAgreement"

CHECKOUT_URLS = {
    "test": "https://www.sandbox.paypal.com/checkoutnow",
    "live": "https://www.paypal.com/checkoutnow",
}


def checkout_url(mode: str, token: str) -> str:
    return f"{CHECKOUT_URLS[mode]}?token={token}"


class ExpressCheckout:
    def __init__(
        self,
        client: NVPClient,
        orders: OrderRepository,
        payments: PaymentRepository,
        settings: Settings,
        clock: Clock = system_clock,
    ):
        self.client = client
        self.orders = orders
        self.payments = payments
        self.settings = settings
        self.clock = clock

    # -- request builders -------------------------------------------------

    def build_set_express_checkout(
        self, order: Order, return_url: str, cancel_url: str
    ) -> dict[str, Any]:
        nvp_data = {
            "METHOD": "SetExpressCheckout",
            "SOLUTIONTYPE": "Mark",
            "LANDINGPAGE": "Login",
            # No way to show buyer notes on our side
            "ALLOWNOTE": "0",
            "PAYMENTREQUEST_0_PAYMENTACTION": self.settings.PAYPAL_PAYMENT_ACTION,
            "PAYMENTREQUEST_0_AMT": nvp.format_amount(order.total_amount),
            "PAYMENTREQUEST_0_CURRENCYCODE": order.currency_code,
            "PAYMENTREQUEST_0_INVNUM": f"{order.id}-{int(self.clock().timestamp())}",
            "RETURNURL": return_url,
            "CANCELURL": cancel_url,
        }

        token = (order.get_data(ORDER_DATA_KEY) or {}).get("token")
        if token:
            nvp_data["TOKEN"] = token

        for n, item in enumerate(order.items):
            nvp_data[f"L_PAYMENTREQUEST_0_NAME{n}"] = item.title
            nvp_data[f"L_PAYMENTREQUEST_0_AMT{n}"] = nvp.format_amount(item.unit_price)
            nvp_data[f"L_PAYMENTREQUEST_0_QTY{n}"] = str(item.quantity)

        if self.settings.billing_agreement_enabled:
            nvp_data["BILLINGTYPE"] = BILLING_TYPE
            nvp_data["L_BILLINGTYPE0"] = BILLING_TYPE
            nvp_data["L_BILLINGAGREEMENTDESCRIPTION0"] = self.settings.PAYPAL_BA_DESC

        # Account optional checkout: card payments without a PayPal login
        if self.settings.PAYPAL_SOLUTION_TYPE != "Mark":
            nvp_data["SOLUTIONTYPE"] = "Sole"
            if self.settings.PAYPAL_SOLUTION_TYPE == "SoleBilling":
                nvp_data["LANDINGPAGE"] = "Billing"

        # TODO: send shipping address once orders carry a shipping profile
        nvp_data["NOSHIPPING"] = "1"
        return nvp_data

    def build_do_express_checkout_payment(self, order: Order) -> dict[str, Any]:
        checkout_data = order.get_data(ORDER_DATA_KEY) or {}
        return {
            "METHOD": "DoExpressCheckoutPayment",
            "TOKEN": checkout_data.get("token"),
            "PAYERID": checkout_data.get("payerid"),
            "PAYMENTREQUEST_0_AMT": nvp.format_amount(order.total_amount),
            "PAYMENTREQUEST_0_CURRENCYCODE": order.currency_code,
            "PAYMENTREQUEST_0_INVNUM": order.order_number,
            "PAYMENTREQUEST_0_PAYMENTACTION": self.settings.PAYPAL_PAYMENT_ACTION,
        }

    # -- flow steps -------------------------------------------------------

    def start(self, order: Order, return_url: str, cancel_url: str) -> Optional[str]:
        """
        Register the checkout with PayPal.

        Returns the PayPal approval URL to redirect the buyer to, or None when
        PayPal did not hand out a token.
        """
        response = self.client.set_express_checkout(
            self.build_set_express_checkout(order, return_url, cancel_url)
        )
        token = response.get("TOKEN")
        if not token:
            log.warning(
                BusinessEvents.CHECKOUT_START_FAILED,
                order_id=order.id,
                ack=response.get("ACK"),
                error_code=response.get("L_ERRORCODE0"),
                error=response.get("L_LONGMESSAGE0"),
            )
            return None

        order.set_data(ORDER_DATA_KEY, {"flow": "ec", "token": token, "payerid": False})
        self.orders.save(order)

        log.info(BusinessEvents.CHECKOUT_STARTED, order_id=order.id, token=token)
        return checkout_url(self.settings.PAYPAL_MODE, token)

    def on_return(self, order: Order) -> Optional[Payment]:
        """
        Finish the checkout after the buyer approved it on PayPal.

        Returns the created payment, or None when the flow was aborted.
        """
        checkout_data = dict(order.get_data(ORDER_DATA_KEY) or {})
        token = checkout_data.get("token")
        if not token:
            log.warning(
                BusinessEvents.CHECKOUT_ABORTED, order_id=order.id, reason="no_token"
            )
            return None

        details = self.client.get_express_checkout_details(token)
        if is_failure(details):
            log.warning(
                BusinessEvents.CHECKOUT_ABORTED,
                order_id=order.id,
                reason="details_rejected",
                error_code=details.get("L_ERRORCODE0"),
                error=details.get("L_LONGMESSAGE0"),
            )
            return None

        checkout_data["payerid"] = details.get("PAYERID")
        order.set_data(ORDER_DATA_KEY, checkout_data)
        if not order.email and details.get("EMAIL"):
            order.email = details["EMAIL"]
        self.orders.save(order)
        log.info(BusinessEvents.CHECKOUT_RETURNED, order_id=order.id, token=token)

        response = self.client.do_express_checkout_payment(
            self.build_do_express_checkout_payment(order)
        )
        remote_status = response.get("PAYMENTINFO_0_PAYMENTSTATUS")
        if is_failure(response) or remote_status == "Failed":
            log.warning(
                BusinessEvents.CHECKOUT_ABORTED,
                order_id=order.id,
                reason="payment_failed",
                remote_status=remote_status,
                error_code=response.get("L_ERRORCODE0"),
                error=response.get("L_LONGMESSAGE0"),
            )
            return None

        remote_id = response.get("PAYMENTINFO_0_TRANSACTIONID")
        existing = self.payments.find_by_remote_id(remote_id)
        if existing is not None:
            log.info(
                BusinessEvents.CHECKOUT_RETURNED,
                order_id=order.id,
                payment_id=existing.id,
                duplicate=True,
            )
            return existing

        return self._create_payment(order, remote_id, remote_status)

    def on_cancel(self, order: Order) -> None:
        """The buyer backed out on PayPal. Nothing is created or changed."""
        log.info(BusinessEvents.CHECKOUT_CANCELLED, order_id=order.id)

    def _create_payment(
        self, order: Order, remote_id: Optional[str], remote_status: Optional[str]
    ) -> Payment:
        now = self.clock()
        state = map_remote_status(remote_status)
        payment = self.payments.create(
            order_id=order.id,
            payment_gateway=GATEWAY_ID,
            state=state,
            amount=order.total_amount,
            currency_code=order.currency_code,
            refunded_amount=ZERO,
            remote_id=remote_id,
            remote_state=remote_status,
            test=self.settings.is_test_mode,
            authorized_at=now,
        )
        if state == PaymentState.capture_completed:
            payment.captured_at = now
        self.payments.save(payment)
        # The IPN echoing this transaction must not be applied a second time
        self.payments.mark_processed(remote_id, remote_status or "", payment, source="api")
        self.payments.save(payment)

        payment_transitions_total.labels(state=state.value, source="checkout").inc()
        log.info(
            BusinessEvents.PAYMENT_CREATED,
            order_id=order.id,
            payment_id=payment.id,
            remote_id=remote_id,
            remote_status=remote_status,
            state=state.value,
            amount=str(payment.amount),
        )
        return payment
