from sqlalchemy import Boolean, Column, Integer, String, Numeric, ForeignKey, DateTime, Enum, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from marketplace.db.base_class import Base
from marketplace.models.transaction import TransactionKind


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Admin-driven lifecycle; delivered and cancelled are terminal.
ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

CANCELLABLE_ORDER_STATUSES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Fixed at creation; there is no recompute path
    total_price = Column(Numeric(12, 2), nullable=False)

    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)

    shipping_address = Column(Text, nullable=False)
    shipping_phone = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)

    idempotency_key = Column(String(64), unique=True, nullable=True, index=True)
    stock_deducted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="orders")
    transactions = relationship(
        "Transaction",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="Transaction.id",
    )

    @property
    def line_items(self):
        return [t for t in self.transactions if t.kind == TransactionKind.LINE]
