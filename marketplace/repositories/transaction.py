from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from marketplace.models.transaction import Transaction, TransactionKind, TransactionStatus


class TransactionRepository:
    """Payment transactions. Line transactions are written here but read through orders."""

    def __init__(self, db: Session):
        self.db = db

    def _payments(self):
        return (
            self.db.query(Transaction)
            .options(joinedload(Transaction.user), joinedload(Transaction.order))
            .filter(Transaction.kind == TransactionKind.PAYMENT)
        )

    def get(self, transaction_id: int) -> Optional[Transaction]:
        return self._payments().filter(Transaction.id == transaction_id).first()

    def get_for_update(self, transaction_id: int) -> Optional[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.id == transaction_id,
                Transaction.kind == TransactionKind.PAYMENT,
            )
            .with_for_update()
            .first()
        )

    def get_by_number(self, transaction_number: str) -> Optional[Transaction]:
        return self._payments().filter(Transaction.transaction_number == transaction_number).first()

    def number_exists(self, transaction_number: str) -> bool:
        return (
            self.db.query(Transaction.id)
            .filter(Transaction.transaction_number == transaction_number)
            .first()
            is not None
        )

    def list(self, user_id: int = None) -> List[Transaction]:
        query = self._payments()
        if user_id is not None:
            query = query.filter(Transaction.user_id == user_id)
        return query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()

    def add(self, transaction: Transaction) -> Transaction:
        self.db.add(transaction)
        return transaction

    def delete(self, transaction: Transaction) -> None:
        self.db.delete(transaction)

    def detach_product(self, product_id: int) -> int:
        return (
            self.db.query(Transaction)
            .filter(Transaction.product_id == product_id)
            .update({"product_id": None}, synchronize_session=False)
        )

    def stats(self) -> dict:
        payments = self.db.query(Transaction).filter(Transaction.kind == TransactionKind.PAYMENT)

        def _count(status: TransactionStatus) -> int:
            return payments.filter(Transaction.status == status).count()

        total_amount = (
            self.db.query(func.coalesce(func.sum(Transaction.amount), 0))
            .filter(
                Transaction.kind == TransactionKind.PAYMENT,
                Transaction.status == TransactionStatus.SUCCESS,
            )
            .scalar()
        )
        return {
            "total_transactions": payments.count(),
            "total_amount": total_amount,
            "pending_count": _count(TransactionStatus.PENDING),
            "success_count": _count(TransactionStatus.SUCCESS),
            "failed_count": _count(TransactionStatus.FAILED),
        }
