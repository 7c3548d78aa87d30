"""Return HTTP endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..dependencies import get_inventory_service, get_repository
from ..errors import InventoryError
from ..models import ProductReturn
from ..repository import InventoryRepository
from ..schemas import ReturnCreate, ReturnListResponse, ReturnResponse, ReturnUpdate
from ..services import InventoryService
from .errors import to_http_exception

router = APIRouter(prefix="/returns", tags=["returns"])


@router.post("", response_model=ReturnResponse, status_code=status.HTTP_201_CREATED)
async def create_return(
    payload: ReturnCreate,
    service: InventoryService = Depends(get_inventory_service),
) -> ReturnResponse:
    try:
        record = await service.create_return(payload)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return ReturnResponse.model_validate(record)


@router.get("", response_model=ReturnListResponse)
async def list_returns(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    product_id: str | None = Query(default=None, alias="productId"),
    repository: InventoryRepository = Depends(get_repository),
) -> ReturnListResponse:
    records, total = await repository.list_movements(ProductReturn, product_id=product_id, limit=limit, offset=offset)
    return ReturnListResponse(items=[ReturnResponse.model_validate(record) for record in records], total=total)


@router.get("/{record_id}", response_model=ReturnResponse)
async def get_return(record_id: str, repository: InventoryRepository = Depends(get_repository)) -> ReturnResponse:
    record = await repository.get_movement(ProductReturn, record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Return not found")
    return ReturnResponse.model_validate(record)


@router.patch("/{record_id}", response_model=ReturnResponse)
async def update_return(
    record_id: str,
    payload: ReturnUpdate,
    service: InventoryService = Depends(get_inventory_service),
) -> ReturnResponse:
    try:
        record = await service.update_return(record_id, payload)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return ReturnResponse.model_validate(record)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_return(
    record_id: str,
    service: InventoryService = Depends(get_inventory_service),
) -> Response:
    try:
        await service.delete_return(record_id)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
