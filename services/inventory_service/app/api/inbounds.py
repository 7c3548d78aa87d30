"""Inbound HTTP endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..dependencies import get_inventory_service, get_repository
from ..errors import InventoryError
from ..models import Inbound
from ..repository import InventoryRepository
from ..schemas import InboundCreate, InboundListResponse, InboundResponse, InboundUpdate
from ..services import InventoryService
from .errors import to_http_exception

router = APIRouter(prefix="/inbounds", tags=["inbounds"])


@router.post("", response_model=InboundResponse, status_code=status.HTTP_201_CREATED)
async def create_inbound(
    payload: InboundCreate,
    service: InventoryService = Depends(get_inventory_service),
) -> InboundResponse:
    try:
        record = await service.create_inbound(payload)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return InboundResponse.model_validate(record)


@router.get("", response_model=InboundListResponse)
async def list_inbounds(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    product_id: str | None = Query(default=None, alias="productId"),
    repository: InventoryRepository = Depends(get_repository),
) -> InboundListResponse:
    records, total = await repository.list_movements(Inbound, product_id=product_id, limit=limit, offset=offset)
    return InboundListResponse(items=[InboundResponse.model_validate(record) for record in records], total=total)


@router.get("/{record_id}", response_model=InboundResponse)
async def get_inbound(record_id: str, repository: InventoryRepository = Depends(get_repository)) -> InboundResponse:
    record = await repository.get_movement(Inbound, record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inbound not found")
    return InboundResponse.model_validate(record)


@router.patch("/{record_id}", response_model=InboundResponse)
async def update_inbound(
    record_id: str,
    payload: InboundUpdate,
    service: InventoryService = Depends(get_inventory_service),
) -> InboundResponse:
    try:
        record = await service.update_inbound(record_id, payload)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return InboundResponse.model_validate(record)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_inbound(
    record_id: str,
    service: InventoryService = Depends(get_inventory_service),
) -> Response:
    try:
        await service.delete_inbound(record_id)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
