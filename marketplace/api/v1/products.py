from typing import Optional

from fastapi import APIRouter, Depends, Request, status

from marketplace.api.deps import get_principal, get_product_service, get_stats_service
from marketplace.core.principal import Principal
from marketplace.core.rate_limiter import limiter
from marketplace.schemas.product import (
    ProductCreate,
    ProductDetailResponse,
    ProductResponse,
    ProductUpdate,
)
from marketplace.services.product_service import ProductService
from marketplace.services.stats_service import StatsService
from marketplace.utils.response import dump, success

router = APIRouter()


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=dict, status_code=status.HTTP_201_CREATED)
def create_product(
    product_in: ProductCreate,
    principal: Principal = Depends(get_principal),
    service: ProductService = Depends(get_product_service),
):
    """Create a product listing owned by the caller (sellers and admins)"""
    product = service.create_product(principal, **product_in.model_dump())
    return success(data=dump(ProductResponse, product), message="Product created successfully")


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
@limiter.limit("100/minute")
def get_products(
    request: Request,
    search: Optional[str] = None,
    category: Optional[str] = None,
    service: ProductService = Depends(get_product_service),
):
    """Active products, newest first; with ``search`` ordered by rating then recency"""
    products = service.list_products(search=search, category=category)
    return success(data=dump(ProductResponse, products), message="Products retrieved", count=len(products))


@router.get("/stats", response_model=dict)
def get_product_stats(
    principal: Principal = Depends(get_principal),
    stats: StatsService = Depends(get_stats_service),
):
    return success(data=stats.product_stats(principal), message="Product statistics retrieved")


@router.get("/mine", response_model=dict)
def get_my_products(
    principal: Principal = Depends(get_principal),
    service: ProductService = Depends(get_product_service),
):
    products = service.list_mine(principal)
    return success(data=dump(ProductResponse, products), message="Products retrieved", count=len(products))


@router.get("/seller/{seller_id}", response_model=dict)
@limiter.limit("100/minute")
def get_products_by_seller(
    request: Request,
    seller_id: int,
    service: ProductService = Depends(get_product_service),
):
    products = service.list_by_seller(seller_id)
    return success(data=dump(ProductResponse, products), message="Products retrieved", count=len(products))


@router.get("/category/{category}", response_model=dict)
@limiter.limit("100/minute")
def get_products_by_category(
    request: Request,
    category: str,
    service: ProductService = Depends(get_product_service),
):
    """Get products by category"""
    products = service.list_products(category=category)
    return success(data=dump(ProductResponse, products), message="Products retrieved", count=len(products))


@router.get("/search/{keyword}", response_model=dict)
@limiter.limit("100/minute")
def search_products(
    request: Request,
    keyword: str,
    service: ProductService = Depends(get_product_service),
):
    products = service.list_products(search=keyword)
    return success(data=dump(ProductResponse, products), message="Search results", count=len(products))


@router.get("/{product_id}", response_model=dict)
@limiter.limit("100/minute")
def get_product(
    request: Request,
    product_id: int,
    service: ProductService = Depends(get_product_service),
):
    """Get product detail with its seller"""
    product = service.get_product(product_id)
    return success(data=dump(ProductDetailResponse, product), message="Product retrieved")


@router.put("/{product_id}", response_model=dict)
def update_product(
    product_id: int,
    product_update: ProductUpdate,
    principal: Principal = Depends(get_principal),
    service: ProductService = Depends(get_product_service),
):
    product = service.update_product(principal, product_id, product_update.model_dump(exclude_unset=True))
    return success(data=dump(ProductResponse, product), message="Product updated successfully")


@router.patch("/{product_id}/activate", response_model=dict)
def activate_product(
    product_id: int,
    principal: Principal = Depends(get_principal),
    service: ProductService = Depends(get_product_service),
):
    product = service.set_active(principal, product_id, True)
    return success(data=dump(ProductResponse, product), message="Product activated")


@router.patch("/{product_id}/deactivate", response_model=dict)
def deactivate_product(
    product_id: int,
    principal: Principal = Depends(get_principal),
    service: ProductService = Depends(get_product_service),
):
    product = service.set_active(principal, product_id, False)
    return success(data=dump(ProductResponse, product), message="Product deactivated")


@router.delete("/{product_id}", response_model=dict)
def delete_product(
    product_id: int,
    principal: Principal = Depends(get_principal),
    service: ProductService = Depends(get_product_service),
):
    service.delete_product(principal, product_id)
    return success(message="Product deleted successfully")
