"""Persistence adapter: ORM records, sessions and the repositories the payment services use."""

from db.models import Base, Order, OrderItem, Payment, PaymentState, ProcessedTransaction
from db.repository import OrderRepository, PaymentRepository

__all__ = [
    "Base",
    "Order",
    "OrderItem",
    "Payment",
    "PaymentState",
    "ProcessedTransaction",
    "OrderRepository",
    "PaymentRepository",
]
