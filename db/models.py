"""
Database Models Module

This module defines SQLAlchemy ORM models for:
- Orders and their line items
- Payments and their local state machine
- Remote PayPal transactions already applied to a payment
"""

from decimal import Decimal
from datetime import datetime, UTC
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Enum,
    Numeric,
    Index,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

ZERO = Decimal("0.00")


class Order(Base):
    """Order owned by the surrounding commerce system."""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(64), nullable=False)
    email = Column(String(255), nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency_code = Column(String(3), nullable=False, default="USD")
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))

    items = relationship(
        "OrderItem", back_populates="order", order_by="OrderItem.id", lazy="selectin"
    )

    def get_data(self, key: str, default: Any = None) -> Any:
        return (self.data or {}).get(key, default)

    def set_data(self, key: str, value: Any) -> None:
        # Reassign so the JSON column is flagged as modified
        data = dict(self.data or {})
        data[key] = value
        self.data = data

    def __repr__(self):
        return f"<Order(id={self.id}, number={self.order_number})>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    order = relationship("Order", back_populates="items")


class PaymentState(PyEnum):
    authorization = "authorization"
    authorization_voided = "authorization_voided"
    authorization_expired = "authorization_expired"
    capture_completed = "capture_completed"
    capture_partially_refunded = "capture_partially_refunded"
    capture_refunded = "capture_refunded"


REFUNDABLE_STATES = frozenset(
    {PaymentState.capture_completed, PaymentState.capture_partially_refunded}
)


class Payment(Base):
    """One funds-movement record tied to one order."""

    __tablename__ = "payments"
    __table_args__ = (Index("ix_payments_order_state", "order_id", "state"),)

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    payment_gateway = Column(String(64), nullable=False, default="paypal_express_checkout")
    state = Column(Enum(PaymentState), nullable=False, default=PaymentState.authorization)
    amount = Column(Numeric(12, 2), nullable=False)
    currency_code = Column(String(3), nullable=False)
    refunded_amount = Column(Numeric(12, 2), nullable=False, default=ZERO)
    remote_id = Column(String(64), nullable=True, index=True)
    remote_state = Column(String(64), nullable=True)
    test = Column(Boolean, nullable=False, default=False)
    authorized_at = Column(DateTime, nullable=True)
    captured_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(UTC))

    order = relationship("Order")

    @property
    def balance(self) -> Decimal:
        return Decimal(self.amount) - Decimal(self.refunded_amount or ZERO)

    def __repr__(self):
        return f"<Payment(id={self.id}, state={self.state}, remote_id={self.remote_id})>"


class ProcessedTransaction(Base):
    """A PayPal transaction (by txn id and status) already applied to a payment."""

    __tablename__ = "processed_transactions"
    __table_args__ = (
        UniqueConstraint("txn_id", "payment_status", name="uq_processed_txn_status"),
    )

    id = Column(Integer, primary_key=True)
    txn_id = Column(String(64), nullable=False)
    payment_status = Column(String(64), nullable=False)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)
    source = Column(String(16), nullable=False)  # "api" or "ipn"
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(UTC))

    def __repr__(self):
        return f"<ProcessedTransaction(txn_id={self.txn_id}, status={self.payment_status})>"
