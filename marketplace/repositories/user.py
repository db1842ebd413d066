from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace.models.order import Order
from marketplace.models.product import Product
from marketplace.models.user import User


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_for_update(self, user_id: int) -> Optional[User]:
        """Lock the user row; serialises cart and checkout work per user."""
        return (
            self.db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .first()
        )

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def email_taken(self, email: str, exclude_user_id: int = None) -> bool:
        query = self.db.query(User.id).filter(User.email == email)
        if exclude_user_id is not None:
            query = query.filter(User.id != exclude_user_id)
        return query.first() is not None

    def list(self) -> List[User]:
        return self.db.query(User).order_by(User.id).all()

    def add(self, user: User) -> User:
        self.db.add(user)
        return user

    def delete(self, user: User) -> None:
        self.db.delete(user)

    def has_orders(self, user_id: int) -> bool:
        return self.db.query(Order.id).filter(Order.user_id == user_id).first() is not None

    def has_products(self, user_id: int) -> bool:
        return self.db.query(Product.id).filter(Product.seller_id == user_id).first() is not None
