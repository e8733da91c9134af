"""
Repositories handed to the payment services.

The services mutate in-memory records and call ``save``; committing is the
repository's job.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models import Order, Payment, ProcessedTransaction


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def load(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def save(self, order: Order) -> Order:
        self.db.add(order)
        self.db.commit()
        return order


class PaymentRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> Payment:
        """Build an unsaved payment; callers decide when to ``save``."""
        return Payment(**fields)

    def load(self, payment_id: int) -> Optional[Payment]:
        return self.db.get(Payment, payment_id)

    def save(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.commit()
        return payment

    def find_by_remote_id(self, remote_id: Optional[str]) -> Optional[Payment]:
        if not remote_id:
            return None
        result = self.db.execute(
            select(Payment).where(Payment.remote_id == remote_id).order_by(Payment.id)
        )
        return result.scalars().first()

    def is_processed(self, txn_id: Optional[str], payment_status: str) -> bool:
        if not txn_id:
            return False
        result = self.db.execute(
            select(ProcessedTransaction.id).where(
                ProcessedTransaction.txn_id == txn_id,
                ProcessedTransaction.payment_status == payment_status,
            )
        )
        return result.first() is not None

    def mark_processed(
        self,
        txn_id: Optional[str],
        payment_status: str,
        payment: Payment,
        source: str,
    ) -> None:
        """Record ``txn_id`` as applied. Flushed with the next ``save``."""
        if not txn_id or self.is_processed(txn_id, payment_status):
            return
        self.db.add(
            ProcessedTransaction(
                txn_id=txn_id,
                payment_status=payment_status,
                payment_id=payment.id,
                source=source,
            )
        )
