from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from marketplace.api.deps import get_order_service, get_principal, get_stats_service
from marketplace.core.principal import Principal
from marketplace.core.rate_limiter import limiter
from marketplace.schemas.order import (
    OrderFromCartCreate,
    OrderResponse,
    OrderStatusUpdate,
    OrderUpdate,
)
from marketplace.services.order_service import OrderService
from marketplace.services.stats_service import StatsService
from marketplace.utils.response import dump, success

router = APIRouter()


@router.post(
    "/from-cart",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Create order from cart",
    description="""
Converts the user's whole cart into one pending order.

Behavior:
1. The order total uses live product prices
2. One line transaction is written per cart line
3. The cart is emptied in the same database transaction
4. Replaying a known `idempotency_key` returns the existing order with 200
5. A concurrent conversion of the same cart fails with 409; retry
""",
    responses={
        200: {"description": "Existing order for this idempotency key"},
        201: {"description": "Order created"},
        400: {"description": "Invalid input, empty cart or insufficient stock"},
        403: {"description": "Ordering from another user's cart"},
        404: {"description": "User not found"},
        409: {"description": "Cart consumed concurrently"},
    },
)
@limiter.limit("10/minute")
def create_order_from_cart(
    request: Request,
    order_in: OrderFromCartCreate,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
):
    order, created = service.create_from_cart(
        principal,
        user_id=order_in.user_id,
        shipping_address=order_in.shipping_address,
        shipping_phone=order_in.shipping_phone,
        notes=order_in.notes,
        idempotency_key=order_in.idempotency_key,
    )
    if created:
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content=success(data=dump(OrderResponse, order), message="Order created successfully"),
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=success(data=dump(OrderResponse, order), message="Order already exists for this request"),
    )


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_orders(
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
):
    """All orders for admins, the caller's own otherwise"""
    orders = service.list_orders(principal)
    return success(data=dump(OrderResponse, orders), message="Orders retrieved", count=len(orders))


@router.get("/stats", response_model=dict)
def get_order_stats(
    principal: Principal = Depends(get_principal),
    stats: StatsService = Depends(get_stats_service),
):
    return success(data=stats.order_stats(principal), message="Order statistics retrieved")


@router.get("/user/{user_id}", response_model=dict)
def get_user_orders(
    user_id: int,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
):
    orders = service.list_for_user(principal, user_id)
    return success(data=dump(OrderResponse, orders), message="Orders retrieved", count=len(orders))


@router.get("/number/{order_number}", response_model=dict)
def get_order_by_number(
    order_number: str,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
):
    order = service.get_by_number(principal, order_number)
    return success(data=dump(OrderResponse, order), message="Order retrieved")


@router.put("/status/{order_id}", response_model=dict)
def update_order_status(
    order_id: int,
    status_update: OrderStatusUpdate,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
):
    """Move an order through its lifecycle (admin only)"""
    order = service.update_status(principal, order_id, status_update.status)
    return success(data=dump(OrderResponse, order), message="Order status updated")


@router.patch("/cancel/{order_id}", response_model=dict)
def cancel_order(
    order_id: int,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
):
    order = service.cancel(principal, order_id)
    return success(data=dump(OrderResponse, order), message="Order cancelled successfully")


@router.get("/{order_id}", response_model=dict)
def get_order(
    order_id: int,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
):
    order = service.get_order(principal, order_id)
    return success(data=dump(OrderResponse, order), message="Order retrieved")


@router.put("/{order_id}", response_model=dict)
def update_order(
    order_id: int,
    order_update: OrderUpdate,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
):
    """Edit shipping details while the order is pending"""
    order = service.update_order(principal, order_id, **order_update.model_dump(exclude_unset=True))
    return success(data=dump(OrderResponse, order), message="Order updated successfully")


@router.delete("/{order_id}", response_model=dict)
def delete_order(
    order_id: int,
    principal: Principal = Depends(get_principal),
    service: OrderService = Depends(get_order_service),
):
    service.delete(principal, order_id)
    return success(message="Order deleted successfully")
