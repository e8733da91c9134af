"""
Payment operations: capture, void and refund of Express Checkout payments.
"""

from typing import Optional

import requests
from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import get_payment_repository, get_reconciler
from api.schemas import AmountRequest, PaymentOut
from db.models import Payment
from db.repository import PaymentRepository
from payments.errors import (
    InvalidPaymentStateError,
    InvalidRequestError,
    PaymentGatewayError,
)
from payments.reconciler import PaymentReconciler

router = APIRouter()


def load_payment(payment_id: int, payments: PaymentRepository) -> Payment:
    payment = payments.load(payment_id)
    if payment is None:
        raise HTTPException(status_code=404, detail=f"Payment {payment_id} not found")
    return payment


def run_operation(operation, *args) -> Payment:
    """Run a reconciler operation, translating its errors to HTTP statuses."""
    try:
        return operation(*args)
    except InvalidPaymentStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InvalidRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PaymentGatewayError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": e.message, "code": e.code},
        )
    except requests.RequestException as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"PayPal unavailable: {e}",
        )


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(
    payment_id: int, payments: PaymentRepository = Depends(get_payment_repository)
):
    return load_payment(payment_id, payments)


@router.post("/{payment_id}/capture", response_model=PaymentOut)
def capture_payment(
    payment_id: int,
    body: Optional[AmountRequest] = None,
    payments: PaymentRepository = Depends(get_payment_repository),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    payment = load_payment(payment_id, payments)
    return run_operation(reconciler.capture, payment, body.amount if body else None)


@router.post("/{payment_id}/void", response_model=PaymentOut)
def void_payment(
    payment_id: int,
    payments: PaymentRepository = Depends(get_payment_repository),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    payment = load_payment(payment_id, payments)
    return run_operation(reconciler.void, payment)


@router.post("/{payment_id}/refund", response_model=PaymentOut)
def refund_payment(
    payment_id: int,
    body: Optional[AmountRequest] = None,
    payments: PaymentRepository = Depends(get_payment_repository),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    payment = load_payment(payment_id, payments)
    return run_operation(reconciler.refund, payment, body.amount if body else None)
