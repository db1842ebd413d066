from decimal import Decimal
from typing import List, Optional
from datetime import datetime
import uuid

import bleach
from pydantic import BaseModel, Field, field_validator

from marketplace.models.order import OrderStatus
from marketplace.models.transaction import TransactionKind, TransactionStatus


def _clean_text(value: Optional[str], limit: int, label: str) -> Optional[str]:
    if value is None:
        return value
    sanitized = bleach.clean(value, tags=[], attributes={}, strip=True).strip()
    if len(sanitized) > limit:
        raise ValueError(f"{label} too long (max {limit} chars)")
    return sanitized


class OrderFromCartCreate(BaseModel):
    # user_id and shipping_address are checked by OrderService (invalid input, not schema errors)
    user_id: Optional[int] = None
    shipping_address: Optional[str] = None
    shipping_phone: Optional[str] = Field(default=None, max_length=20)
    notes: Optional[str] = None
    idempotency_key: Optional[str] = Field(default=None, min_length=32, max_length=64)

    @field_validator("shipping_address")
    @classmethod
    def validate_address(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value, 1000, "Shipping address")

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value, 500, "Notes")

    @field_validator("idempotency_key")
    @classmethod
    def validate_idempotency_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return str(uuid.UUID(value))


class OrderUpdate(BaseModel):
    shipping_address: Optional[str] = None
    shipping_phone: Optional[str] = Field(default=None, max_length=20)
    notes: Optional[str] = None

    @field_validator("shipping_address")
    @classmethod
    def validate_address(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value, 1000, "Shipping address")

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value, 500, "Notes")


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderTransactionResponse(BaseModel):
    id: int
    kind: TransactionKind
    product_id: Optional[int]
    quantity: Optional[int]
    price: Optional[Decimal]
    line_total: Optional[Decimal]
    transaction_number: Optional[str]
    amount: Optional[Decimal]
    status: TransactionStatus
    paid_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_number: str
    user_id: int
    total_price: Decimal
    status: OrderStatus
    shipping_address: str
    shipping_phone: Optional[str]
    notes: Optional[str]
    stock_deducted: bool
    created_at: datetime
    updated_at: Optional[datetime]
    transactions: List[OrderTransactionResponse]

    class Config:
        from_attributes = True
