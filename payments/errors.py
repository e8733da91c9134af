from typing import Mapping, Optional


class PaymentGatewayError(Exception):
    """PayPal rejected an operation (``ACK=Failure``)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    @classmethod
    def from_response(cls, response: Mapping[str, str]) -> "PaymentGatewayError":
        message = response.get("L_LONGMESSAGE0") or response.get(
            "L_SHORTMESSAGE0", "PayPal rejected the request"
        )
        return cls(message, response.get("L_ERRORCODE0"))

    def __str__(self):
        return f"[{self.code}] {self.message}" if self.code else self.message


class InvalidPaymentStateError(ValueError):
    """The payment is not in a state that allows the requested operation."""


class InvalidRequestError(Exception):
    """The requested amount cannot be applied to the payment."""


FAILURE_ACKS = frozenset({"Failure", "FailureWithWarning"})


def is_failure(response: Mapping[str, str]) -> bool:
    return response.get("ACK") in FAILURE_ACKS
