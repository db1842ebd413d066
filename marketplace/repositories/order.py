from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from marketplace.models.order import Order


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Order).options(selectinload(Order.transactions))

    def get(self, order_id: int) -> Optional[Order]:
        return self._query().filter(Order.id == order_id).first()

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return self._query().filter(Order.order_number == order_number).first()

    def get_by_idempotency_key(self, user_id: int, idempotency_key: str) -> Optional[Order]:
        return (
            self._query()
            .filter(
                Order.user_id == user_id,
                Order.idempotency_key == idempotency_key,
            )
            .first()
        )

    def number_exists(self, order_number: str) -> bool:
        return (
            self.db.query(Order.id).filter(Order.order_number == order_number).first()
            is not None
        )

    def list(self, user_id: int = None) -> List[Order]:
        query = self._query()
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    def add(self, order: Order) -> Order:
        self.db.add(order)
        return order

    def delete(self, order: Order) -> None:
        self.db.delete(order)

    def count(self) -> int:
        return self.db.query(func.count(Order.id)).scalar()
