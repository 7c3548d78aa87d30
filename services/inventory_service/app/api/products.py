"""Product HTTP endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..dependencies import get_inventory_service, get_repository
from ..errors import InventoryError
from ..models import ProductStatus
from ..repository import InventoryRepository
from ..schemas import ProductCreate, ProductListResponse, ProductResponse, ProductUpdate
from ..services import InventoryService
from .errors import to_http_exception

router = APIRouter(prefix="/products", tags=["products"])


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    service: InventoryService = Depends(get_inventory_service),
) -> ProductResponse:
    try:
        product = await service.create_product(payload)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return ProductResponse.model_validate(product)


@router.get("", response_model=ProductListResponse)
async def list_products(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    search: str | None = None,
    status_filter: ProductStatus | None = Query(default=None, alias="status"),
    include_disabled: bool = Query(default=True, alias="includeDisabled"),
    repository: InventoryRepository = Depends(get_repository),
) -> ProductListResponse:
    products, total = await repository.list_products(
        search=search,
        status=status_filter,
        include_disabled=include_disabled,
        limit=limit,
        offset=offset,
    )
    return ProductListResponse(items=[ProductResponse.model_validate(product) for product in products], total=total)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str, repository: InventoryRepository = Depends(get_repository)) -> ProductResponse:
    product = await repository.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return ProductResponse.model_validate(product)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    service: InventoryService = Depends(get_inventory_service),
) -> ProductResponse:
    try:
        product = await service.update_product(product_id, payload)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: str,
    service: InventoryService = Depends(get_inventory_service),
) -> Response:
    try:
        await service.delete_product(product_id)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
