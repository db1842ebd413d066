from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from marketplace.schemas.user import UserSummary


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    stock: int = Field(..., ge=0)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    image: Optional[str] = Field(default=None, max_length=255)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=150)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    stock: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    image: Optional[str] = Field(default=None, max_length=255)


class ProductResponse(BaseModel):
    id: int
    seller_id: int
    name: str
    price: Decimal
    stock: int
    description: Optional[str]
    category: Optional[str]
    image: Optional[str]
    rating: float
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class ProductDetailResponse(ProductResponse):
    seller: Optional[UserSummary] = None
