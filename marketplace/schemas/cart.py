from decimal import Decimal
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


# Presence and range are checked by CartService so that a missing or
# non-positive quantity is reported as invalid input rather than a schema error.
class CartItemCreate(BaseModel):
    product_id: Optional[int] = None
    quantity: Optional[int] = None


class CartItemUpdate(BaseModel):
    quantity: Optional[int] = None


class CartItemResponse(BaseModel):
    id: int
    user_id: int
    product_id: int
    quantity: int
    subtotal: Optional[Decimal]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class CartProductResponse(BaseModel):
    id: int
    name: str
    price: Decimal
    description: Optional[str]
    image: Optional[str]
    stock: int


class CartLineResponse(CartItemResponse):
    product: CartProductResponse


class CartSummaryResponse(BaseModel):
    total_items: int
    total_quantity: int
    total_price: Decimal
