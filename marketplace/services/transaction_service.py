from datetime import datetime
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.exceptions import (
    Conflict,
    Forbidden,
    InvalidInput,
    OrderNotFound,
    TransactionNotFound,
    UserNotFound,
)
from marketplace.core.principal import Principal
from marketplace.models.transaction import (
    DEFAULT_PAYMENT_METHOD,
    TERMINAL_TRANSACTION_STATUSES,
    TRANSACTION_STATUS_TRANSITIONS,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from marketplace.repositories.order import OrderRepository
from marketplace.repositories.transaction import TransactionRepository
from marketplace.repositories.user import UserRepository
from marketplace.services.order_service import generate_reference

logger = structlog.get_logger()

TRANSACTION_NUMBER_MAX_ATTEMPTS = 10


def apply_status(transaction: Transaction, new_status: TransactionStatus) -> bool:
    """Move a payment transaction to ``new_status``.

    Returns False for a same-status no-op. ``paid_at`` is stamped only on the
    first entry into success and is never overwritten.
    """
    current = transaction.status
    if new_status == current:
        return False
    if current in TERMINAL_TRANSACTION_STATUSES:
        raise Conflict(f"Transaction is already {current.value}")
    if new_status not in TRANSACTION_STATUS_TRANSITIONS[current]:
        raise Conflict(f"Cannot move transaction from {current.value} to {new_status.value}")

    transaction.status = new_status
    if new_status == TransactionStatus.SUCCESS and transaction.paid_at is None:
        transaction.paid_at = datetime.utcnow()
    return True


class TransactionService:
    def __init__(self, db: Session):
        self.db = db
        self.transactions = TransactionRepository(db)
        self.orders = OrderRepository(db)
        self.users = UserRepository(db)

    def generate_transaction_number(self) -> str:
        for _ in range(TRANSACTION_NUMBER_MAX_ATTEMPTS):
            number = generate_reference("TRX")
            if not self.transactions.number_exists(number):
                return number
        raise Conflict("Failed to generate a unique transaction number; retry")

    def create(
        self,
        principal: Principal,
        user_id: Optional[int],
        order_id: Optional[int],
        amount: Optional[Decimal],
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Transaction:
        if not user_id or not order_id or amount is None:
            raise InvalidInput("User ID, order ID, and amount are required")
        if amount <= 0:
            raise InvalidInput("Amount must be greater than zero")
        principal.ensure_can_act_for(user_id, "You can only record payments for yourself")

        if not self.users.get(user_id):
            raise UserNotFound()
        order = self.orders.get(order_id)
        if not order:
            raise OrderNotFound()
        if order.user_id != user_id:
            raise Forbidden("Order does not belong to this user")

        transaction = Transaction(
            kind=TransactionKind.PAYMENT,
            transaction_number=self.generate_transaction_number(),
            user_id=user_id,
            order_id=order.id,
            amount=amount,
            payment_method=payment_method or DEFAULT_PAYMENT_METHOD,
            notes=notes,
            status=TransactionStatus.PENDING,
        )
        try:
            self.transactions.add(transaction)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Transaction number collision; retry") from exc
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "transaction_created",
            transaction_id=transaction.id,
            transaction_number=transaction.transaction_number,
            order_id=order.id,
            amount=str(amount),
        )
        return self.transactions.get(transaction.id)

    def list_all(self, principal: Principal) -> List[Transaction]:
        principal.ensure_admin()
        return self.transactions.list()

    def get(self, principal: Principal, transaction_id: int) -> Transaction:
        transaction = self.transactions.get(transaction_id)
        if not transaction:
            raise TransactionNotFound()
        principal.ensure_can_act_for(transaction.user_id, "You can only view your own transactions")
        return transaction

    def get_by_number(self, principal: Principal, transaction_number: str) -> Transaction:
        transaction = self.transactions.get_by_number(transaction_number)
        if not transaction:
            raise TransactionNotFound()
        principal.ensure_can_act_for(transaction.user_id, "You can only view your own transactions")
        return transaction

    def list_for_user(self, principal: Principal, user_id: int) -> List[Transaction]:
        principal.ensure_can_act_for(user_id, "You can only view your own transactions")
        transactions = self.transactions.list(user_id=user_id)
        if not transactions:
            raise TransactionNotFound("No transactions found for this user")
        return transactions

    def update_status(
        self,
        principal: Principal,
        transaction_id: int,
        new_status: Optional[TransactionStatus],
    ) -> Transaction:
        if new_status is None:
            raise InvalidInput("Status is required")

        try:
            transaction = self.transactions.get_for_update(transaction_id)
            if not transaction:
                raise TransactionNotFound()
            principal.ensure_can_act_for(transaction.user_id, "You can only update your own transactions")

            old_status = transaction.status
            changed = apply_status(transaction, new_status)
            if changed:
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if changed:
            logger.info(
                "transaction_status_updated",
                transaction_id=transaction_id,
                old_status=old_status.value,
                new_status=new_status.value,
                changed_by=principal.id,
            )
        return self.transactions.get(transaction_id)

    def update(
        self,
        principal: Principal,
        transaction_id: int,
        amount: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Transaction:
        transaction = self.get(principal, transaction_id)
        if transaction.status != TransactionStatus.PENDING:
            raise Conflict("Only pending transactions can be edited")

        if amount is not None:
            if amount <= 0:
                raise InvalidInput("Amount must be greater than zero")
            transaction.amount = amount
        if payment_method is not None:
            transaction.payment_method = payment_method
        if notes is not None:
            transaction.notes = notes

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return self.transactions.get(transaction_id)

    def delete(self, principal: Principal, transaction_id: int) -> None:
        principal.ensure_admin()
        transaction = self.transactions.get(transaction_id)
        if not transaction:
            raise TransactionNotFound()
        try:
            self.transactions.delete(transaction)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("transaction_deleted", transaction_id=transaction_id, deleted_by=principal.id)
