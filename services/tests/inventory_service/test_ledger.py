from contextlib import asynccontextmanager

import pytest
from prometheus_client import REGISTRY

from services.common import create_schema, dispose_engines, get_session_factory
from services.inventory_service.app.errors import ProductNotFound
from services.inventory_service.app.ledger import (
    StockLedger,
    calculate_remain,
    resolve_status,
    should_trigger_low_stock_alert,
)
from services.inventory_service.app.models import Base, ProductStatus
from services.inventory_service.app.repository import InventoryRepository


class _MetricTracker:
    def __init__(self, name: str, labels: dict[str, str] | None = None) -> None:
        self.name = name
        self.labels = labels or {}
        baseline = REGISTRY.get_sample_value(name, self.labels)
        self._baseline = baseline if baseline is not None else 0.0

    def delta(self) -> float:
        current = REGISTRY.get_sample_value(self.name, self.labels)
        value = current if current is not None else 0.0
        return value - self._baseline


@asynccontextmanager
async def _session(tmp_path):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"
    await create_schema(database_url, Base.metadata)
    session_factory = get_session_factory(database_url)
    try:
        async with session_factory() as session:
            yield session
    finally:
        await dispose_engines()


@pytest.mark.parametrize(
    ("total_in", "total_out", "total_return", "expected"),
    [
        (10, 3, 1, 8),
        (0, 0, 0, 0),
        (5, 12, 2, -5),
        (0, 7, 0, -7),
    ],
)
def test_calculate_remain_allows_negative(total_in: int, total_out: int, total_return: int, expected: int) -> None:
    assert calculate_remain(total_in, total_out, total_return) == expected


@pytest.mark.parametrize(
    ("remain", "safety_stock", "expected"),
    [
        (-1, 10, ProductStatus.low),
        (0, 0, ProductStatus.low),
        (5, 0, ProductStatus.normal),
        (9, 10, ProductStatus.low),
        (10, 10, ProductStatus.warn),
        (11, 10, ProductStatus.warn),
        (12, 10, ProductStatus.normal),
        (25, 10, ProductStatus.normal),
        (3, 3, ProductStatus.warn),
        (4, 3, ProductStatus.normal),
    ],
)
def test_resolve_status_tiers(remain: int, safety_stock: int, expected: ProductStatus) -> None:
    assert resolve_status(remain, safety_stock) == expected


def test_low_stock_trigger_only_on_transition_into_low() -> None:
    assert should_trigger_low_stock_alert(ProductStatus.normal, ProductStatus.low)
    assert should_trigger_low_stock_alert(ProductStatus.warn, ProductStatus.low)
    assert not should_trigger_low_stock_alert(ProductStatus.low, ProductStatus.low)
    assert not should_trigger_low_stock_alert(ProductStatus.normal, ProductStatus.warn)
    assert not should_trigger_low_stock_alert(ProductStatus.low, ProductStatus.normal)


@pytest.mark.asyncio
async def test_adjust_applies_deltas_and_reports_transition(tmp_path) -> None:
    adjustments = _MetricTracker("inventory_stock_adjustments_total", {"kind": "outbound"})
    transitions = _MetricTracker("inventory_low_stock_transitions_total")

    async with _session(tmp_path) as session:
        repository = InventoryRepository(session)
        product = await repository.create_product(code="P-1", name="Widget", safety_stock=10)
        ledger = StockLedger(repository)

        stocked = await ledger.adjust(product.id, inbound_delta=15)
        assert stocked.product.remain == 15
        assert stocked.product.status == ProductStatus.normal
        assert not stocked.crossed_into_low

        drained = await ledger.adjust(product.id, outbound_delta=10)
        assert drained.previous_status == ProductStatus.normal
        assert drained.product.remain == 5
        assert drained.product.total_out == 10
        assert drained.product.status == ProductStatus.low
        assert drained.crossed_into_low

        again = await ledger.adjust(product.id, outbound_delta=1)
        assert again.product.remain == 4
        assert not again.crossed_into_low

        returned = await ledger.adjust(product.id, return_delta=2)
        assert returned.product.total_return == 2
        assert returned.product.remain == 6

    assert adjustments.delta() == 2
    assert transitions.delta() == 1


@pytest.mark.asyncio
async def test_adjust_can_drive_remain_negative(tmp_path) -> None:
    async with _session(tmp_path) as session:
        repository = InventoryRepository(session)
        product = await repository.create_product(code="P-2", name="Gadget", safety_stock=0)
        result = await StockLedger(repository).adjust(product.id, outbound_delta=3)

    assert result.product.remain == -3
    assert result.product.status == ProductStatus.low


@pytest.mark.asyncio
async def test_adjust_missing_product_raises(tmp_path) -> None:
    async with _session(tmp_path) as session:
        ledger = StockLedger(InventoryRepository(session))
        with pytest.raises(ProductNotFound):
            await ledger.adjust("missing", inbound_delta=1)


@pytest.mark.asyncio
async def test_recalculate_reflects_new_safety_stock(tmp_path) -> None:
    async with _session(tmp_path) as session:
        repository = InventoryRepository(session)
        product = await repository.create_product(code="P-3", name="Sprocket", safety_stock=2)
        ledger = StockLedger(repository)
        await ledger.adjust(product.id, inbound_delta=8)

        await repository.update_product(product, {"safety_stock": 20})
        recalculated = await ledger.recalculate(product.id)

    assert recalculated.remain == 8
    assert recalculated.status == ProductStatus.low
