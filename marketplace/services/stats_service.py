"""Admin counters over orders, products and payment transactions."""

from sqlalchemy.orm import Session

from marketplace.core.principal import Principal
from marketplace.repositories.order import OrderRepository
from marketplace.repositories.product import ProductRepository
from marketplace.repositories.transaction import TransactionRepository


class StatsService:
    def __init__(self, db: Session):
        self.db = db

    def order_stats(self, principal: Principal) -> dict:
        principal.ensure_admin()
        return {"total_orders": OrderRepository(self.db).count()}

    def product_stats(self, principal: Principal) -> dict:
        principal.ensure_admin()
        return ProductRepository(self.db).stats()

    def transaction_stats(self, principal: Principal) -> dict:
        principal.ensure_admin()
        return TransactionRepository(self.db).stats()
