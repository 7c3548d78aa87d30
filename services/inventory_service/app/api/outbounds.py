"""Outbound HTTP endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..dependencies import get_inventory_service, get_repository
from ..errors import InventoryError
from ..models import Outbound
from ..repository import InventoryRepository
from ..schemas import OutboundCreate, OutboundListResponse, OutboundResponse, OutboundUpdate
from ..services import InventoryService
from .errors import to_http_exception

router = APIRouter(prefix="/outbounds", tags=["outbounds"])


@router.post("", response_model=OutboundResponse, status_code=status.HTTP_201_CREATED)
async def create_outbound(
    payload: OutboundCreate,
    service: InventoryService = Depends(get_inventory_service),
) -> OutboundResponse:
    try:
        record = await service.create_outbound(payload)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return OutboundResponse.model_validate(record)


@router.get("", response_model=OutboundListResponse)
async def list_outbounds(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    product_id: str | None = Query(default=None, alias="productId"),
    repository: InventoryRepository = Depends(get_repository),
) -> OutboundListResponse:
    records, total = await repository.list_movements(Outbound, product_id=product_id, limit=limit, offset=offset)
    return OutboundListResponse(items=[OutboundResponse.model_validate(record) for record in records], total=total)


@router.get("/{record_id}", response_model=OutboundResponse)
async def get_outbound(record_id: str, repository: InventoryRepository = Depends(get_repository)) -> OutboundResponse:
    record = await repository.get_movement(Outbound, record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Outbound not found")
    return OutboundResponse.model_validate(record)


@router.patch("/{record_id}", response_model=OutboundResponse)
async def update_outbound(
    record_id: str,
    payload: OutboundUpdate,
    service: InventoryService = Depends(get_inventory_service),
) -> OutboundResponse:
    try:
        record = await service.update_outbound(record_id, payload)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return OutboundResponse.model_validate(record)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_outbound(
    record_id: str,
    service: InventoryService = Depends(get_inventory_service),
) -> Response:
    try:
        await service.delete_outbound(record_id)
    except InventoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
