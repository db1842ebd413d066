import random
import string
import time
from decimal import Decimal
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.exceptions import (
    Conflict,
    EmptyCart,
    InsufficientStock,
    InvalidInput,
    OrderNotFound,
    UserNotFound,
)
from marketplace.core.principal import Principal
from marketplace.models.order import (
    CANCELLABLE_ORDER_STATUSES,
    ORDER_STATUS_TRANSITIONS,
    Order,
    OrderStatus,
)
from marketplace.models.product import Product
from marketplace.models.transaction import Transaction, TransactionKind
from marketplace.repositories.cart import CartLine, CartRepository
from marketplace.repositories.order import OrderRepository
from marketplace.repositories.product import ProductRepository
from marketplace.repositories.transaction import TransactionRepository
from marketplace.repositories.user import UserRepository

logger = structlog.get_logger()

ORDER_NUMBER_MAX_ATTEMPTS = 10
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference(prefix: str) -> str:
    """``<prefix>-<epoch millis>-<5 chars>``; unlikely to collide but not guaranteed unique."""
    timestamp = int(time.time() * 1000)
    random_part = "".join(random.choices(_SUFFIX_ALPHABET, k=5))
    return f"{prefix}-{timestamp}-{random_part}"


def log_stock_depletion_warning(product: Product) -> None:
    if product.stock <= settings.LOW_STOCK_WARNING_THRESHOLD:
        logger.warning(
            "stock_depletion_warning",
            product_id=product.id,
            stock=product.stock,
        )
    if product.stock <= 0:
        logger.warning("stock_depleted", product_id=product.id)


class OrderService:
    """Turns a user's cart into an order plus one line transaction per cart line."""

    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderRepository(db)
        self.carts = CartRepository(db)
        self.products = ProductRepository(db)
        self.transactions = TransactionRepository(db)
        self.users = UserRepository(db)

    def generate_order_number(self) -> str:
        """Generate a unique order number with bounded retries."""
        for _ in range(ORDER_NUMBER_MAX_ATTEMPTS):
            order_number = generate_reference("ORD")
            if not self.orders.number_exists(order_number):
                return order_number
        raise Conflict("Failed to generate a unique order number; retry")

    def create_from_cart(
        self,
        principal: Principal,
        user_id: Optional[int],
        shipping_address: Optional[str],
        shipping_phone: Optional[str] = None,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Tuple[Order, bool]:
        """Create an order from the user's cart.

        Returns the order and whether it was created by this call; a replay
        with a known idempotency key returns the existing order untouched.

        The cart is claimed by deleting exactly the lines that were read.
        If another request consumed any of them first the claim comes up
        short and the whole unit of work is rolled back with ``Conflict``,
        so one cart can never back two orders.
        """
        if not user_id or not shipping_address or not shipping_address.strip():
            raise InvalidInput("User ID and shipping address are required")
        principal.ensure_can_act_for(user_id, "You can only order from your own cart")

        if idempotency_key:
            existing = self.orders.get_by_idempotency_key(user_id, idempotency_key)
            if existing:
                return existing, False

        try:
            if not self.users.get_for_update(user_id):
                raise UserNotFound()

            # Re-check under the lock; a same-key request may have committed meanwhile
            if idempotency_key:
                existing = self.orders.get_by_idempotency_key(user_id, idempotency_key)
                if existing:
                    self.db.rollback()
                    return existing, False

            lines = self.carts.list_lines(user_id)
            if not lines:
                raise EmptyCart()

            # Live price, not the cached subtotal
            total_price = sum((line.live_total for line in lines), Decimal("0"))

            claimed = self.carts.delete_lines(user_id, [line.id for line in lines])
            if claimed != len(lines):
                logger.warning(
                    "order_cart_claim_conflict",
                    user_id=user_id,
                    expected_lines=len(lines),
                    claimed_lines=claimed,
                )
                raise Conflict("Cart changed while the order was being placed; retry")

            stock_deducted = False
            if settings.DECREMENT_STOCK_ON_ORDER:
                self._deduct_stock(lines)
                stock_deducted = True

            order = Order(
                order_number=self.generate_order_number(),
                user_id=user_id,
                total_price=total_price,
                status=OrderStatus.PENDING,
                shipping_address=shipping_address.strip(),
                shipping_phone=shipping_phone,
                notes=notes,
                idempotency_key=idempotency_key,
                stock_deducted=stock_deducted,
            )
            self.orders.add(order)
            self.db.flush()

            for line in lines:
                self.transactions.add(
                    Transaction(
                        kind=TransactionKind.LINE,
                        user_id=user_id,
                        order_id=order.id,
                        product_id=line.product_id,
                        quantity=line.quantity,
                        price=line.product_price,
                    )
                )

            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("order_create_conflict", user_id=user_id, error_type=type(exc).__name__)
            raise Conflict("Order could not be created due to a concurrent change; retry") from exc
        except Exception:
            self.db.rollback()
            raise

        order = self.orders.get(order.id)
        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            user_id=user_id,
            total_price=str(order.total_price),
            line_count=len(lines),
            stock_deducted=stock_deducted,
        )
        return order, True

    def _deduct_stock(self, lines: List[CartLine]) -> None:
        requested = {}
        for line in lines:
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

        locked = self.products.lock_many(requested.keys())
        for product_id, quantity in requested.items():
            product = locked.get(product_id)
            if product is None or product.stock < quantity:
                raise InsufficientStock(product.stock if product else 0)

        for product_id, quantity in requested.items():
            product = locked[product_id]
            product.stock -= quantity
            log_stock_depletion_warning(product)

    def _restore_stock(self, order: Order) -> None:
        product_ids = [t.product_id for t in order.line_items if t.product_id is not None]
        locked = self.products.lock_many(product_ids)
        for line in order.line_items:
            product = locked.get(line.product_id)
            if product is not None:
                product.stock += line.quantity
        order.stock_deducted = False

    def list_orders(self, principal: Principal) -> List[Order]:
        if principal.is_admin:
            return self.orders.list()
        return self.orders.list(user_id=principal.id)

    def list_for_user(self, principal: Principal, user_id: int) -> List[Order]:
        principal.ensure_can_act_for(user_id, "You can only view your own orders")
        if not self.users.get(user_id):
            raise UserNotFound()
        return self.orders.list(user_id=user_id)

    def get_order(self, principal: Principal, order_id: int) -> Order:
        order = self.orders.get(order_id)
        if not order:
            raise OrderNotFound()
        principal.ensure_can_act_for(order.user_id, "You can only view your own orders")
        return order

    def get_by_number(self, principal: Principal, order_number: str) -> Order:
        order = self.orders.get_by_number(order_number)
        if not order:
            raise OrderNotFound()
        principal.ensure_can_act_for(order.user_id, "You can only view your own orders")
        return order

    def update_order(
        self,
        principal: Principal,
        order_id: int,
        shipping_address: Optional[str] = None,
        shipping_phone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        order = self.get_order(principal, order_id)
        if order.status != OrderStatus.PENDING:
            raise Conflict("Only pending orders can be edited")

        if shipping_address is not None:
            if not shipping_address.strip():
                raise InvalidInput("Shipping address cannot be empty")
            order.shipping_address = shipping_address.strip()
        if shipping_phone is not None:
            order.shipping_phone = shipping_phone
        if notes is not None:
            order.notes = notes

        self._commit()
        return self.orders.get(order.id)

    def update_status(self, principal: Principal, order_id: int, new_status: OrderStatus) -> Order:
        principal.ensure_admin()
        order = self.orders.get(order_id)
        if not order:
            raise OrderNotFound()

        old_status = order.status
        if new_status == old_status:
            return order
        if new_status not in ORDER_STATUS_TRANSITIONS[old_status]:
            raise Conflict(f"Cannot move order from {old_status.value} to {new_status.value}")

        try:
            if new_status == OrderStatus.CANCELLED and order.stock_deducted:
                self._restore_stock(order)
            order.status = new_status
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "order_status_updated",
            order_id=order.id,
            old_status=old_status.value,
            new_status=new_status.value,
            changed_by=principal.id,
        )
        return self.orders.get(order.id)

    def cancel(self, principal: Principal, order_id: int) -> Order:
        order = self.get_order(principal, order_id)
        if order.status == OrderStatus.CANCELLED:
            return order
        if order.status not in CANCELLABLE_ORDER_STATUSES:
            raise Conflict("Cannot cancel shipped/delivered orders")

        previous_status = order.status
        try:
            if order.stock_deducted:
                self._restore_stock(order)
            order.status = OrderStatus.CANCELLED
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "order_cancelled",
            order_id=order.id,
            user_id=order.user_id,
            previous_status=previous_status.value,
        )
        return self.orders.get(order.id)

    def delete(self, principal: Principal, order_id: int) -> None:
        principal.ensure_admin()
        order = self.orders.get(order_id)
        if not order:
            raise OrderNotFound()
        try:
            self.orders.delete(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("order_deleted", order_id=order_id, deleted_by=principal.id)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
