from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from marketplace.models.product import Product


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: int, with_seller: bool = False) -> Optional[Product]:
        query = self.db.query(Product)
        if with_seller:
            query = query.options(joinedload(Product.seller))
        return query.filter(Product.id == product_id).first()

    def get_active(self, product_id: int) -> Optional[Product]:
        return (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.is_active == True)
            .first()
        )

    def lock_many(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        """Lock products in ascending id order to avoid deadlocks between checkouts."""
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        products = (
            self.db.query(Product)
            .filter(Product.id.in_(ids))
            .order_by(Product.id)
            .with_for_update()
            .all()
        )
        return {product.id: product for product in products}

    def list_active(self, search: str = None, category: str = None) -> List[Product]:
        query = self.db.query(Product).filter(Product.is_active == True)

        if category:
            query = query.filter(Product.category == category)

        if search:
            search_term = f"%{search}%"
            query = query.filter(
                or_(
                    Product.name.ilike(search_term),
                    Product.description.ilike(search_term),
                )
            )
            return query.order_by(Product.rating.desc(), Product.created_at.desc(), Product.id.desc()).all()

        return query.order_by(Product.created_at.desc(), Product.id.desc()).all()

    def list_by_seller(self, seller_id: int) -> List[Product]:
        return (
            self.db.query(Product)
            .filter(Product.seller_id == seller_id)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .all()
        )

    def add(self, product: Product) -> Product:
        self.db.add(product)
        return product

    def delete(self, product: Product) -> None:
        self.db.delete(product)

    def stats(self) -> dict:
        total_products, total_stock = self.db.query(
            func.count(Product.id),
            func.coalesce(func.sum(Product.stock), 0),
        ).one()
        total_active = (
            self.db.query(func.count(Product.id))
            .filter(Product.is_active == True)
            .scalar()
        )
        return {
            "total_products": total_products,
            "total_active": total_active,
            "total_stock": int(total_stock),
        }
