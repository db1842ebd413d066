from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session, joinedload

from marketplace.models.cart import CartItem
from marketplace.models.product import Product


@dataclass(frozen=True)
class CartLine:
    """Snapshot of a cart item joined with its product at read time."""

    id: int
    user_id: int
    product_id: int
    quantity: int
    subtotal: Optional[Decimal]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    product_name: str
    product_price: Decimal
    product_stock: int
    product_description: Optional[str]
    product_image: Optional[str]

    @property
    def live_total(self) -> Decimal:
        return self.product_price * self.quantity

    @property
    def cached_total(self) -> Decimal:
        """Stored subtotal, or the live total when no subtotal was written."""
        if self.subtotal is None:
            return self.live_total
        return self.subtotal

    @classmethod
    def from_row(cls, item: CartItem, product: Product) -> "CartLine":
        return cls(
            id=item.id,
            user_id=item.user_id,
            product_id=item.product_id,
            quantity=item.quantity,
            subtotal=item.subtotal,
            created_at=item.created_at,
            updated_at=item.updated_at,
            product_name=product.name,
            product_price=product.price,
            product_stock=product.stock,
            product_description=product.description,
            product_image=product.image,
        )


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, item_id: int) -> Optional[CartItem]:
        return (
            self.db.query(CartItem)
            .options(joinedload(CartItem.product))
            .filter(CartItem.id == item_id)
            .first()
        )

    def find_line(self, user_id: int, product_id: int) -> Optional[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.user_id == user_id, CartItem.product_id == product_id)
            .first()
        )

    def list_lines(self, user_id: int) -> List[CartLine]:
        rows = (
            self.db.query(CartItem, Product)
            .join(Product, CartItem.product_id == Product.id)
            .filter(CartItem.user_id == user_id)
            .order_by(CartItem.created_at.desc(), CartItem.id.desc())
            .all()
        )
        return [CartLine.from_row(item, product) for item, product in rows]

    def add(self, item: CartItem) -> CartItem:
        self.db.add(item)
        return item

    def delete(self, item: CartItem) -> None:
        self.db.delete(item)

    def clear(self, user_id: int) -> int:
        return (
            self.db.query(CartItem)
            .filter(CartItem.user_id == user_id)
            .delete(synchronize_session=False)
        )

    def delete_lines(self, user_id: int, item_ids: Sequence[int]) -> int:
        """Delete exactly the given lines; the row count tells the caller how many it won."""
        if not item_ids:
            return 0
        return (
            self.db.query(CartItem)
            .filter(CartItem.user_id == user_id, CartItem.id.in_(list(item_ids)))
            .delete(synchronize_session=False)
        )

    def delete_for_product(self, product_id: int) -> int:
        return (
            self.db.query(CartItem)
            .filter(CartItem.product_id == product_id)
            .delete(synchronize_session=False)
        )

    def reprice_product(self, product: Product) -> int:
        items = self.db.query(CartItem).filter(CartItem.product_id == product.id).all()
        for item in items:
            item.reprice(product.price)
        return len(items)
