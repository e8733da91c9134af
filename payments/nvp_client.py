"""
PayPal NVP API client.

Stateless apart from credentials and mode. Calls are never retried here:
DoCapture and RefundTransaction are not idempotent on PayPal's side.
"""

import time
from typing import Any, Mapping, Optional

import requests
import structlog

from core.logging import BusinessEvents
from core.metrics import nvp_latency, nvp_requests_total
from core.settings import Settings
from core.tracing import tracer
from payments import nvp

API_VERSION = "124.0"

NVP_ENDPOINTS = {
    "test": "https://api-3t.sandbox.paypal.com/nvp",
    "live": "https://api-3t.paypal.com/nvp",
}

log = structlog.get_logger(__name__)


class NVPClient:
    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def endpoint(self) -> str:
        return NVP_ENDPOINTS[self.settings.PAYPAL_MODE]

    def credentials(self) -> dict[str, str]:
        return {
            "USER": self.settings.PAYPAL_API_USERNAME,
            "PWD": self.settings.PAYPAL_API_PASSWORD,
            "SIGNATURE": self.settings.PAYPAL_SIGNATURE,
            "VERSION": API_VERSION,
        }

    def request(self, nvp_data: Mapping[str, Any]) -> dict[str, str]:
        """
        Send one NVP call and return the decoded reply.

        Keys already present in ``nvp_data`` win over the credential defaults.
        Transport errors (including non-2xx statuses) propagate as
        ``requests.RequestException``.
        """
        payload = dict(nvp_data)
        for key, value in self.credentials().items():
            payload.setdefault(key, value)
        method = payload.get("METHOD", "unknown")

        started = time.perf_counter()
        with tracer.start_as_current_span(f"paypal.nvp.{method}") as span:
            span.set_attribute("paypal.mode", self.settings.PAYPAL_MODE)
            try:
                response = requests.post(
                    self.endpoint,
                    data=nvp.encode(payload),
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    timeout=self.settings.PAYPAL_TIMEOUT,
                )
                response.raise_for_status()
            except requests.RequestException as e:
                nvp_requests_total.labels(method=method, ack="transport_error").inc()
                log.error(BusinessEvents.NVP_FAILURE, method=method, error=str(e))
                raise
            finally:
                nvp_latency.labels(method=method).observe(time.perf_counter() - started)

            reply = nvp.decode(response.text)
            ack = reply.get("ACK", "missing")
            span.set_attribute("paypal.ack", ack)

        nvp_requests_total.labels(method=method, ack=ack).inc()
        log.info(
            BusinessEvents.NVP_REQUEST,
            method=method,
            ack=ack,
            correlation_id=reply.get("CORRELATIONID"),
            error_code=reply.get("L_ERRORCODE0"),
        )
        return reply

    def set_express_checkout(self, fields: Mapping[str, Any]) -> dict[str, str]:
        return self.request({"METHOD": "SetExpressCheckout", **fields})

    def get_express_checkout_details(self, token: str) -> dict[str, str]:
        return self.request({"METHOD": "GetExpressCheckoutDetails", "TOKEN": token})

    def do_express_checkout_payment(self, fields: Mapping[str, Any]) -> dict[str, str]:
        return self.request({"METHOD": "DoExpressCheckoutPayment", **fields})

    def do_capture(
        self,
        authorization_id: str,
        amount: str,
        currency_code: str,
        invoice_number: Optional[str] = None,
    ) -> dict[str, str]:
        fields = {
            "METHOD": "DoCapture",
            "AUTHORIZATIONID": authorization_id,
            "AMT": amount,
            "CURRENCYCODE": currency_code,
            "COMPLETETYPE": "Complete",
        }
        if invoice_number:
            fields["INVNUM"] = invoice_number
        return self.request(fields)

    def do_void(self, authorization_id: str) -> dict[str, str]:
        return self.request({"METHOD": "DoVoid", "AUTHORIZATIONID": authorization_id})

    def refund_transaction(
        self, transaction_id: str, refund_type: str, amount: str, currency_code: str
    ) -> dict[str, str]:
        return self.request(
            {
                "METHOD": "RefundTransaction",
                "TRANSACTIONID": transaction_id,
                "REFUNDTYPE": refund_type,
                "AMT": amount,
                "CURRENCYCODE": currency_code,
            }
        )
