from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum, Text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from marketplace.db.base_class import Base


class TransactionKind(str, enum.Enum):
    LINE = "line"  # What was ordered, at what price
    PAYMENT = "payment"  # A declared payment attempt against an order


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_TRANSACTION_STATUSES = {
    TransactionStatus.SUCCESS,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
}

TRANSACTION_STATUS_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.PROCESSING} | TERMINAL_TRANSACTION_STATUSES,
    TransactionStatus.PROCESSING: set(TERMINAL_TRANSACTION_STATUSES),
    TransactionStatus.SUCCESS: set(),
    TransactionStatus.FAILED: set(),
    TransactionStatus.CANCELLED: set(),
}

DEFAULT_PAYMENT_METHOD = "bank_transfer"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(Enum(TransactionKind), nullable=False, index=True)
    transaction_number = Column(String(50), unique=True, nullable=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)

    # Line fields
    quantity = Column(Integer, nullable=True)
    price = Column(Numeric(12, 2), nullable=True)  # Unit price snapshot

    # Payment fields
    amount = Column(Numeric(12, 2), nullable=True)
    payment_method = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False, index=True)
    paid_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="transactions")
    order = relationship("Order", back_populates="transactions")
    product = relationship("Product")

    @property
    def line_total(self):
        if self.price is None or self.quantity is None:
            return None
        return self.price * self.quantity
