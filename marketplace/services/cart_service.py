from decimal import Decimal
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.exceptions import (
    CartItemNotFound,
    Conflict,
    InsufficientStock,
    InvalidInput,
    ProductNotFound,
    UserNotFound,
)
from marketplace.core.principal import Principal
from marketplace.models.cart import CartItem
from marketplace.repositories.cart import CartLine, CartRepository
from marketplace.repositories.product import ProductRepository
from marketplace.repositories.user import UserRepository

logger = structlog.get_logger()


def _require_quantity(quantity: Optional[int]) -> int:
    if quantity is None or quantity < 1:
        raise InvalidInput("Quantity must be at least 1")
    return quantity


class CartService:
    """Per-user cart lines with stock checks and a cached subtotal per line."""

    def __init__(self, db: Session):
        self.db = db
        self.carts = CartRepository(db)
        self.products = ProductRepository(db)
        self.users = UserRepository(db)

    def add_to_cart(
        self,
        principal: Principal,
        product_id: Optional[int],
        quantity: Optional[int],
    ) -> Tuple[CartItem, bool]:
        """Create or merge the caller's line for a product.

        Returns the line and whether it was newly created.
        """
        if not product_id:
            raise InvalidInput("Product ID and quantity are required")
        quantity = _require_quantity(quantity)

        try:
            # Serialise read-check-write for this user's cart
            self.users.get_for_update(principal.id)

            product = self.products.get_active(product_id)
            if not product:
                raise ProductNotFound()

            if quantity > product.stock:
                raise InsufficientStock(product.stock)

            existing = self.carts.find_line(principal.id, product.id)
            if existing:
                new_quantity = existing.quantity + quantity
                if new_quantity > product.stock:
                    raise InsufficientStock(product.stock)
                existing.reprice(product.price, new_quantity)
                item, created = existing, False
            else:
                item = CartItem(user_id=principal.id, product_id=product.id)
                item.reprice(product.price, quantity)
                self.carts.add(item)
                created = True

            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(
                "cart_add_conflict",
                user_id=principal.id,
                product_id=product_id,
            )
            raise Conflict("Cart was modified concurrently; retry") from exc
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(item)
        logger.info(
            "cart_item_added" if created else "cart_item_merged",
            user_id=principal.id,
            product_id=item.product_id,
            quantity=item.quantity,
        )
        return item, created

    def get_item(self, principal: Principal, item_id: int) -> CartLine:
        item = self.carts.get(item_id)
        if not item:
            raise CartItemNotFound()
        principal.ensure_can_act_for(item.user_id, "You can only view your own cart")
        return CartLine.from_row(item, item.product)

    def update_quantity(self, principal: Principal, item_id: int, quantity: Optional[int]) -> CartItem:
        quantity = _require_quantity(quantity)

        item = self.carts.get(item_id)
        if not item:
            raise CartItemNotFound()
        principal.ensure_can_act_for(item.user_id, "You can only modify your own cart")

        try:
            # Serialise with add_to_cart on the user row
            self.users.get_for_update(item.user_id)

            product = self.products.get(item.product_id)
            if not product:
                raise ProductNotFound()
            if quantity > product.stock:
                raise InsufficientStock(product.stock)

            item.reprice(product.price, quantity)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(item)
        logger.info("cart_item_updated", cart_item_id=item.id, quantity=item.quantity)
        return item

    def remove(self, principal: Principal, item_id: int) -> None:
        item = self.carts.get(item_id)
        if not item:
            raise CartItemNotFound()
        principal.ensure_can_act_for(item.user_id, "You can only modify your own cart")

        try:
            self.carts.delete(item)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("cart_item_removed", cart_item_id=item_id)

    def clear(self, principal: Principal, user_id: int) -> int:
        principal.ensure_can_act_for(user_id, "You can only clear your own cart")
        try:
            if not self.users.get_for_update(user_id):
                raise UserNotFound()
            deleted = self.carts.clear(user_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("cart_cleared", user_id=user_id, deleted_items=deleted)
        return deleted

    def get_cart(self, principal: Principal, user_id: int) -> Tuple[List[CartLine], int, Decimal]:
        """Lines newest first, with the line count and total price."""
        lines = self._lines_for(principal, user_id)
        total_price = sum((line.cached_total for line in lines), Decimal("0"))
        return lines, len(lines), total_price

    def get_summary(self, principal: Principal, user_id: int) -> dict:
        lines = self._lines_for(principal, user_id)
        return {
            "total_items": len(lines),
            "total_quantity": sum(line.quantity for line in lines),
            "total_price": sum((line.cached_total for line in lines), Decimal("0")),
        }

    def _lines_for(self, principal: Principal, user_id: int) -> List[CartLine]:
        principal.ensure_can_act_for(user_id, "You can only view your own cart")
        if not self.users.get(user_id):
            raise UserNotFound()
        return self.carts.list_lines(user_id)
