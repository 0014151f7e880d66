# app/routes/products.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_product_service, get_seller_id
from app.schemas.base import ApiResponse, Pagination
from app.schemas.product import ProductCreate, ProductRead, ProductUpdate
from app.services.product_service import ProductService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=ApiResponse[list[ProductRead]])
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    category: Optional[str] = None,
    seller_id: str = Depends(get_seller_id),
    service: ProductService = Depends(get_product_service),
):
    result = await service.list_products(seller_id, page=page, limit=limit, search=search, category=category)
    return ApiResponse[list[ProductRead]](
        data=result["items"],
        pagination=Pagination(**result["pagination"]),
    )


@router.get("/{product_id}", response_model=ApiResponse[ProductRead])
async def get_product(
    product_id: int,
    seller_id: str = Depends(get_seller_id),
    service: ProductService = Depends(get_product_service),
):
    product = await service.get_product(seller_id, product_id)
    return ApiResponse[ProductRead](data=product)


@router.post("", response_model=ApiResponse[ProductRead], status_code=201)
async def create_product(
    product_data: ProductCreate,
    seller_id: str = Depends(get_seller_id),
    service: ProductService = Depends(get_product_service),
):
    product = await service.create_product(seller_id, product_data)
    return ApiResponse[ProductRead](data=product, message="Product created successfully")


@router.put("/{product_id}", response_model=ApiResponse[ProductRead])
async def update_product(
    product_id: int,
    update_data: ProductUpdate,
    seller_id: str = Depends(get_seller_id),
    service: ProductService = Depends(get_product_service),
):
    product = await service.update_product(seller_id, product_id, update_data)
    return ApiResponse[ProductRead](data=product, message="Product updated successfully")


@router.delete("/{product_id}", response_model=ApiResponse[dict])
async def delete_product(
    product_id: int,
    seller_id: str = Depends(get_seller_id),
    service: ProductService = Depends(get_product_service),
):
    await service.delete_product(seller_id, product_id)
    return ApiResponse[dict](data={"id": product_id}, message="Product deleted successfully")
