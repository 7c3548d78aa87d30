"""Mapping from domain errors to HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from ..errors import AlertDeliveryError, InventoryError, NotFoundError, ProductConflict, StockValidationError


def to_http_exception(exc: InventoryError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ProductConflict):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (StockValidationError, AlertDeliveryError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
