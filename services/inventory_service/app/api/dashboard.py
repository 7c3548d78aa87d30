"""Dashboard HTTP endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..dependencies import get_repository
from ..repository import InventoryRepository
from ..schemas import DashboardSummaryResponse, DashboardTotals, ProductSnapshot

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

LOW_STOCK_LIMIT = 10


@router.get("/summary", response_model=DashboardSummaryResponse)
async def get_summary(repository: InventoryRepository = Depends(get_repository)) -> DashboardSummaryResponse:
    """Totals, the lowest low-stock products and per-product stock, ignoring disabled products."""

    totals = await repository.summarize_stock()
    low_stock = await repository.list_low_stock(limit=LOW_STOCK_LIMIT)
    snapshot = await repository.list_stock_snapshot()
    return DashboardSummaryResponse(
        totals=DashboardTotals(**totals),
        low_stock=[ProductSnapshot.model_validate(product) for product in low_stock],
        stock_by_product=[ProductSnapshot.model_validate(product) for product in snapshot],
    )
