"""
Express Checkout routes: send the buyer to PayPal and take them back.
"""

import requests
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from api.dependencies import get_express_checkout, get_order_repository
from api.schemas import CheckoutCancelled, PaymentOut
from db.models import Order
from db.repository import OrderRepository
from payments.express_checkout import ExpressCheckout

log = structlog.get_logger(__name__)

router = APIRouter()


def load_order(order_id: int, orders: OrderRepository) -> Order:
    order = orders.load(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order


@router.get("/{order_id}/start")
def start_checkout(
    order_id: int,
    request: Request,
    orders: OrderRepository = Depends(get_order_repository),
    checkout: ExpressCheckout = Depends(get_express_checkout),
):
    """Register the order with PayPal and redirect the buyer to the approval page."""
    order = load_order(order_id, orders)
    try:
        redirect_url = checkout.start(
            order,
            return_url=str(request.url_for("checkout_return", order_id=order_id)),
            cancel_url=str(request.url_for("checkout_cancel", order_id=order_id)),
        )
    except requests.RequestException as e:
        raise HTTPException(status_code=503, detail=f"PayPal unavailable: {e}")

    if not redirect_url:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="PayPal did not return an Express Checkout token",
        )
    return RedirectResponse(redirect_url, status_code=status.HTTP_302_FOUND)


@router.get("/{order_id}/return", response_model=PaymentOut, name="checkout_return")
def checkout_return(
    order_id: int,
    orders: OrderRepository = Depends(get_order_repository),
    checkout: ExpressCheckout = Depends(get_express_checkout),
):
    """PayPal sends the buyer here after approval; completes the payment."""
    order = load_order(order_id, orders)
    try:
        payment = checkout.on_return(order)
    except requests.RequestException as e:
        raise HTTPException(status_code=503, detail=f"PayPal unavailable: {e}")

    if payment is None:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="PayPal checkout could not be completed",
        )
    return payment


@router.get("/{order_id}/cancel", response_model=CheckoutCancelled, name="checkout_cancel")
def checkout_cancel(
    order_id: int,
    orders: OrderRepository = Depends(get_order_repository),
    checkout: ExpressCheckout = Depends(get_express_checkout),
):
    order = load_order(order_id, orders)
    checkout.on_cancel(order)
    return CheckoutCancelled(order_id=order_id)
