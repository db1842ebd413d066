from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from marketplace.core.exceptions import Forbidden, ProductNotFound, UserNotFound
from marketplace.core.principal import Principal
from marketplace.models.product import Product
from marketplace.repositories.cart import CartRepository
from marketplace.repositories.product import ProductRepository
from marketplace.repositories.transaction import TransactionRepository
from marketplace.repositories.user import UserRepository

logger = structlog.get_logger()

UPDATABLE_FIELDS = ("name", "description", "category", "image", "stock")


class ProductService:
    def __init__(self, db: Session):
        self.db = db
        self.products = ProductRepository(db)
        self.carts = CartRepository(db)
        self.transactions = TransactionRepository(db)
        self.users = UserRepository(db)

    def create_product(
        self,
        principal: Principal,
        name: str,
        price: Decimal,
        stock: int,
        description: Optional[str] = None,
        category: Optional[str] = None,
        image: Optional[str] = None,
    ) -> Product:
        if not principal.can_sell:
            raise Forbidden("Only sellers can create products")

        product = Product(
            seller_id=principal.id,
            name=name,
            price=price,
            stock=stock,
            description=description,
            category=category,
            image=image,
        )
        try:
            self.products.add(product)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(product)
        logger.info("product_created", product_id=product.id, seller_id=principal.id)
        return product

    def list_products(self, search: str = None, category: str = None) -> List[Product]:
        return self.products.list_active(search=search, category=category)

    def get_product(self, product_id: int) -> Product:
        product = self.products.get(product_id, with_seller=True)
        if not product:
            raise ProductNotFound()
        return product

    def list_by_seller(self, seller_id: int) -> List[Product]:
        if not self.users.get(seller_id):
            raise UserNotFound("Seller not found")
        return self.products.list_by_seller(seller_id)

    def list_mine(self, principal: Principal) -> List[Product]:
        return self.products.list_by_seller(principal.id)

    def update_product(self, principal: Principal, product_id: int, changes: dict) -> Product:
        """Apply a partial update; a price change reprices every cart line holding the product."""
        product = self._owned(principal, product_id, "You can only update your own products")

        for field in UPDATABLE_FIELDS:
            if changes.get(field) is not None:
                setattr(product, field, changes[field])

        repriced = 0
        new_price = changes.get("price")
        try:
            if new_price is not None and Decimal(str(new_price)) != product.price:
                product.price = new_price
                repriced = self.carts.reprice_product(product)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(product)
        logger.info(
            "product_updated",
            product_id=product.id,
            fields=sorted(k for k, v in changes.items() if v is not None),
            repriced_cart_lines=repriced,
        )
        return product

    def set_active(self, principal: Principal, product_id: int, is_active: bool) -> Product:
        product = self._owned(principal, product_id, "You can only manage your own products")
        try:
            product.is_active = is_active
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(product)
        logger.info("product_activation_changed", product_id=product.id, is_active=is_active)
        return product

    def delete_product(self, principal: Principal, product_id: int) -> None:
        product = self._owned(principal, product_id, "You can only delete your own products")
        try:
            removed_lines = self.carts.delete_for_product(product.id)
            self.transactions.detach_product(product.id)
            self.products.delete(product)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("product_deleted", product_id=product_id, removed_cart_lines=removed_lines)

    def _owned(self, principal: Principal, product_id: int, message: str) -> Product:
        product = self.products.get(product_id)
        if not product:
            raise ProductNotFound()
        principal.ensure_can_act_for(product.seller_id, message)
        return product
