from decimal import Decimal
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime

import bleach

from marketplace.models.order import OrderStatus
from marketplace.models.transaction import TransactionStatus
from marketplace.schemas.user import UserSummary


def _clean_notes(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    sanitized = bleach.clean(value, tags=[], attributes={}, strip=True).strip()
    if len(sanitized) > 500:
        raise ValueError("Notes too long (max 500 chars)")
    return sanitized


class TransactionCreate(BaseModel):
    user_id: Optional[int] = None
    order_id: Optional[int] = None
    amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    payment_method: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _clean_notes(value)


class TransactionUpdate(BaseModel):
    amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    payment_method: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _clean_notes(value)


class TransactionStatusUpdate(BaseModel):
    status: Optional[TransactionStatus] = None


class TransactionOrderSummary(BaseModel):
    id: int
    total_price: Decimal
    status: OrderStatus

    class Config:
        from_attributes = True


class TransactionResponse(BaseModel):
    id: int
    transaction_number: str
    user_id: int
    order_id: int
    amount: Decimal
    payment_method: str
    notes: Optional[str]
    status: TransactionStatus
    paid_at: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]
    user: Optional[UserSummary] = None
    order: Optional[TransactionOrderSummary] = None

    class Config:
        from_attributes = True
