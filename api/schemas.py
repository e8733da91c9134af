"""
API Schemas Module

This module defines Pydantic models for request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from db.models import PaymentState


class PaymentOut(BaseModel):
    id: int
    order_id: int
    state: PaymentState
    amount: Decimal
    currency_code: str
    refunded_amount: Decimal
    remote_id: Optional[str] = None
    remote_state: Optional[str] = None
    test: bool
    authorized_at: Optional[datetime] = None
    captured_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AmountRequest(BaseModel):
    """Capture/refund body. Without an amount the full balance is used."""

    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)


class CheckoutCancelled(BaseModel):
    order_id: int
    status: str = "cancelled"


class IPNResponse(BaseModel):
    status: str
