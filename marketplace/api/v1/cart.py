from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from marketplace.api.deps import get_cart_service, get_principal
from marketplace.core.principal import Principal
from marketplace.repositories.cart import CartLine
from marketplace.schemas.cart import (
    CartItemCreate,
    CartItemResponse,
    CartItemUpdate,
    CartLineResponse,
    CartProductResponse,
    CartSummaryResponse,
)
from marketplace.services.cart_service import CartService
from marketplace.utils.response import dump, success

router = APIRouter()


def _line_payload(line: CartLine) -> dict:
    return CartLineResponse(
        id=line.id,
        user_id=line.user_id,
        product_id=line.product_id,
        quantity=line.quantity,
        subtotal=line.subtotal,
        created_at=line.created_at,
        updated_at=line.updated_at,
        product=CartProductResponse(
            id=line.product_id,
            name=line.product_name,
            price=line.product_price,
            description=line.product_description,
            image=line.product_image,
            stock=line.product_stock,
        ),
    ).model_dump()


@router.post(
    "",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"description": "Quantity merged into the existing line"},
        201: {"description": "Line created"},
        400: {"description": "Invalid input or insufficient stock"},
        404: {"description": "Product not found"},
    },
)
def add_to_cart(
    item_in: CartItemCreate,
    principal: Principal = Depends(get_principal),
    service: CartService = Depends(get_cart_service),
):
    """Add a product to the caller's cart, merging into an existing line"""
    item, created = service.add_to_cart(principal, item_in.product_id, item_in.quantity)
    if created:
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content=success(data=dump(CartItemResponse, item), message="Item added to cart"),
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=success(data=dump(CartItemResponse, item), message="Cart item quantity updated"),
    )


@router.get("/item/{item_id}", response_model=dict)
def get_cart_item(
    item_id: int,
    principal: Principal = Depends(get_principal),
    service: CartService = Depends(get_cart_service),
):
    line = service.get_item(principal, item_id)
    return success(data=_line_payload(line), message="Cart item retrieved")


@router.delete("/user/{user_id}", response_model=dict)
def clear_cart(
    user_id: int,
    principal: Principal = Depends(get_principal),
    service: CartService = Depends(get_cart_service),
):
    deleted = service.clear(principal, user_id)
    return success(message="Cart cleared", deleted_items=deleted)


@router.get("/{user_id}", response_model=dict)
def get_cart(
    user_id: int,
    principal: Principal = Depends(get_principal),
    service: CartService = Depends(get_cart_service),
):
    """Cart lines newest first with item count and total price"""
    lines, total_items, total_price = service.get_cart(principal, user_id)
    return success(
        data=[_line_payload(line) for line in lines],
        message="Cart retrieved",
        total_items=total_items,
        total_price=total_price,
    )


@router.get("/{user_id}/summary", response_model=dict)
def get_cart_summary(
    user_id: int,
    principal: Principal = Depends(get_principal),
    service: CartService = Depends(get_cart_service),
):
    summary = CartSummaryResponse(**service.get_summary(principal, user_id))
    return success(data=summary.model_dump(), message="Cart summary retrieved")


@router.put("/{item_id}", response_model=dict)
def update_cart_item(
    item_id: int,
    item_update: CartItemUpdate,
    principal: Principal = Depends(get_principal),
    service: CartService = Depends(get_cart_service),
):
    item = service.update_quantity(principal, item_id, item_update.quantity)
    return success(data=dump(CartItemResponse, item), message="Cart item updated")


@router.delete("/{item_id}", response_model=dict)
def remove_cart_item(
    item_id: int,
    principal: Principal = Depends(get_principal),
    service: CartService = Depends(get_cart_service),
):
    service.remove(principal, item_id)
    return success(message="Item removed from cart")
