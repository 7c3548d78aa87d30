from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from prometheus_client import REGISTRY

from services.common import create_schema, dispose_engines, get_session_factory
from services.inventory_service.app.alert_settings import AlertSettings, AlertTarget
from services.inventory_service.app.alerts import AlertDispatcher
from services.inventory_service.app.errors import (
    MovementNotFound,
    ProductConflict,
    ProductNotFound,
    StockValidationError,
)
from services.inventory_service.app.models import Base, Inbound, Outbound, ProductStatus, ReturnStatus, RetryReason
from services.inventory_service.app.policy import AlertPolicy
from services.inventory_service.app.repository import AlertRepository, InventoryRepository
from services.inventory_service.app.schemas import (
    InboundCreate,
    InboundUpdate,
    OutboundCreate,
    OutboundUpdate,
    ProductCreate,
    ProductUpdate,
    ReturnCreate,
    ReturnUpdate,
)
from services.inventory_service.app.services import InventoryService, LowStockNotifier
from services.inventory_service.app.timeutils import ensure_utc

NOON = datetime(2024, 3, 14, 12, 0, tzinfo=timezone.utc)
LATE = datetime(2024, 3, 14, 23, 0, tzinfo=timezone.utc)

_LIVE_SETTINGS = AlertSettings(
    enabled=True,
    bot_token="123:abc",
    cooldown_minutes=60,
    quiet_hours="22-07",
    targets=(AlertTarget(chat_id="ops"),),
)


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


class _StaticSettings:
    def __init__(self, settings: AlertSettings) -> None:
        self.settings = settings

    async def get_current_settings(self) -> AlertSettings:
        return self.settings


class _RecordingChannel:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_message(self, *, bot_token: str, chat_id: str, text: str) -> None:
        self.sent.append((chat_id, text))


class _ExplodingDispatcher:
    async def notify_low_stock(self, product, *, now=None):
        raise RuntimeError("alert store unavailable")


@asynccontextmanager
async def _service(tmp_path, *, clock=lambda: NOON, dispatcher_factory=None):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}"
    await create_schema(database_url, Base.metadata)
    session_factory = get_session_factory(database_url)
    channel = _RecordingChannel()

    def build(session) -> AlertDispatcher:
        repository = AlertRepository(session)
        provider = _StaticSettings(_LIVE_SETTINGS)
        return AlertDispatcher(repository, AlertPolicy(repository, provider), provider, channel, clock=clock)

    notifier = LowStockNotifier(session_factory, dispatcher_factory or build)
    try:
        async with session_factory() as session:
            yield InventoryService(InventoryRepository(session), notifier), channel
    finally:
        await dispose_engines()


async def _stocked(service: InventoryService, *, code: str = "SKU-1", safety: int = 10, quantity: int = 15):
    product = await service.create_product(ProductCreate(code=code, name="Bolt", safety_stock=safety))
    await service.create_inbound(InboundCreate(product_id=product.id, quantity=quantity))
    return product


async def _alerts(service: InventoryService, product_id: str | None = None):
    alerts, _ = await AlertRepository(service.repository.session).list_alerts(
        product_id=product_id, level=None, channel=None, limit=50, offset=0
    )
    return alerts


@pytest.mark.asyncio
async def test_outbound_crossing_into_low_sends_alert(tmp_path) -> None:
    async with _service(tmp_path) as (service, channel):
        product = await _stocked(service)
        assert product.status == ProductStatus.normal

        await service.create_outbound(OutboundCreate(product_id=product.id, quantity=10))
        alerts = await _alerts(service, product.id)

    assert product.remain == 5
    assert product.total_out == 10
    assert product.status == ProductStatus.low
    assert len(alerts) == 1
    assert ensure_utc(alerts[0].sent_at) == NOON
    assert alerts[0].retry_at is None
    assert len(channel.sent) == 1
    chat_id, text = channel.sent[0]
    assert chat_id == "ops"
    assert "Bolt (SKU-1)" in text
    assert "Remaining: 5 EA" in text


@pytest.mark.asyncio
async def test_low_stock_during_quiet_hours_is_deferred(tmp_path) -> None:
    async with _service(tmp_path, clock=lambda: LATE) as (service, channel):
        product = await _stocked(service)
        await service.create_outbound(OutboundCreate(product_id=product.id, quantity=10))
        alerts = await _alerts(service, product.id)

    assert channel.sent == []
    assert len(alerts) == 1
    deferred = alerts[0]
    assert deferred.sent_at is None
    assert deferred.retry_reason == RetryReason.quiet_hours
    assert deferred.message.startswith("[DEFERRED] ")
    assert ensure_utc(deferred.retry_at) == datetime(2024, 3, 15, 7, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_staying_low_does_not_alert_again(tmp_path) -> None:
    async with _service(tmp_path) as (service, channel):
        product = await _stocked(service)
        await service.create_outbound(OutboundCreate(product_id=product.id, quantity=10))
        await service.create_outbound(OutboundCreate(product_id=product.id, quantity=2))
        alerts = await _alerts(service, product.id)

    assert product.remain == 3
    assert len(alerts) == 1
    assert len(channel.sent) == 1


@pytest.mark.asyncio
async def test_post_commit_alert_failure_keeps_the_movement(tmp_path) -> None:
    failures = _MetricTracker("alert_post_commit_failures_total")
    async with _service(tmp_path, dispatcher_factory=lambda session: _ExplodingDispatcher()) as (service, _):
        product = await _stocked(service)
        outbound = await service.create_outbound(OutboundCreate(product_id=product.id, quantity=10))
        stored = await service.repository.get_movement(Outbound, outbound.id)

    assert stored is not None
    assert product.remain == 5
    assert failures.delta() == 1


@pytest.mark.asyncio
async def test_duplicate_product_code_conflicts(tmp_path) -> None:
    async with _service(tmp_path) as (service, _):
        await service.create_product(ProductCreate(code="DUP", name="First"))
        with pytest.raises(ProductConflict):
            await service.create_product(ProductCreate(code="DUP", name="Second"))


@pytest.mark.asyncio
async def test_outbound_cannot_exceed_remaining_stock(tmp_path) -> None:
    async with _service(tmp_path) as (service, _):
        product = await _stocked(service, quantity=5)
        with pytest.raises(StockValidationError):
            await service.create_outbound(OutboundCreate(product_id=product.id, quantity=6))

    assert product.total_out == 0
    assert product.remain == 5


@pytest.mark.asyncio
async def test_disabled_product_rejects_outbound_and_returns(tmp_path) -> None:
    async with _service(tmp_path) as (service, _):
        product = await _stocked(service)
        await service.update_product(product.id, ProductUpdate(disabled=True))

        with pytest.raises(StockValidationError):
            await service.create_outbound(OutboundCreate(product_id=product.id, quantity=1))
        with pytest.raises(StockValidationError):
            await service.create_return(ReturnCreate(product_id=product.id, quantity=1, reason="damaged"))

        inbound = await service.create_inbound(InboundCreate(product_id=product.id, quantity=3))

    assert inbound.quantity == 3
    assert product.remain == 18


@pytest.mark.asyncio
async def test_outbound_update_checks_only_the_increase(tmp_path) -> None:
    async with _service(tmp_path) as (service, _):
        product = await _stocked(service, safety=0, quantity=10)
        outbound = await service.create_outbound(OutboundCreate(product_id=product.id, quantity=6))

        await service.update_outbound(outbound.id, OutboundUpdate(quantity=10))
        assert product.remain == 0
        with pytest.raises(StockValidationError):
            await service.update_outbound(outbound.id, OutboundUpdate(quantity=11))

        await service.update_outbound(outbound.id, OutboundUpdate(quantity=4))

    assert product.total_out == 4
    assert product.remain == 6


@pytest.mark.asyncio
async def test_moving_inbound_to_another_product_shifts_counters(tmp_path) -> None:
    async with _service(tmp_path) as (service, _):
        first = await service.create_product(ProductCreate(code="A", name="Alpha"))
        second = await service.create_product(ProductCreate(code="B", name="Beta"))
        inbound = await service.create_inbound(InboundCreate(product_id=first.id, quantity=8))

        await service.update_inbound(inbound.id, InboundUpdate(product_id=second.id, quantity=9))

    assert (first.total_in, first.remain) == (0, 0)
    assert (second.total_in, second.remain) == (9, 9)
    assert inbound.product_id == second.id


@pytest.mark.asyncio
async def test_only_completed_returns_count(tmp_path) -> None:
    async with _service(tmp_path) as (service, _):
        product = await _stocked(service, safety=0, quantity=10)
        outbound = await service.create_outbound(OutboundCreate(product_id=product.id, quantity=4))

        pending = await service.create_return(
            ReturnCreate(product_id=product.id, outbound_id=outbound.id, quantity=2, reason="wrong size")
        )
        assert product.total_return == 0

        await service.update_return(pending.id, ReturnUpdate(status=ReturnStatus.completed))
        assert (product.total_return, product.remain) == (2, 8)

        await service.delete_return(pending.id)

    assert (product.total_return, product.remain) == (0, 6)


@pytest.mark.asyncio
async def test_return_must_match_its_outbound_product(tmp_path) -> None:
    async with _service(tmp_path) as (service, _):
        shipped = await _stocked(service, code="SHIP", safety=0)
        other = await service.create_product(ProductCreate(code="OTHER", name="Other"))
        outbound = await service.create_outbound(OutboundCreate(product_id=shipped.id, quantity=1))

        with pytest.raises(StockValidationError):
            await service.create_return(
                ReturnCreate(product_id=other.id, outbound_id=outbound.id, quantity=1, reason="mixup")
            )
        with pytest.raises(MovementNotFound):
            await service.create_return(
                ReturnCreate(product_id=shipped.id, outbound_id="missing", quantity=1, reason="mixup")
            )


@pytest.mark.asyncio
async def test_raising_safety_stock_can_trigger_alert(tmp_path) -> None:
    async with _service(tmp_path) as (service, channel):
        product = await _stocked(service, safety=10, quantity=15)
        updated = await service.update_product(product.id, ProductUpdate(safety_stock=20))

    assert updated.status == ProductStatus.low
    assert len(channel.sent) == 1


@pytest.mark.asyncio
async def test_deleting_product_removes_movements_and_keeps_alert_history(tmp_path) -> None:
    async with _service(tmp_path) as (service, _):
        product = await _stocked(service)
        await service.create_outbound(OutboundCreate(product_id=product.id, quantity=10))
        inbounds, _ = await service.repository.list_movements(Inbound, product_id=product.id, limit=10, offset=0)

        await service.delete_product(product.id)

        assert await service.repository.get_movement(Inbound, inbounds[0].id) is None
        alerts = await _alerts(service)
        with pytest.raises(ProductNotFound):
            await service.update_product(product.id, ProductUpdate(name="Gone"))

    assert len(alerts) == 1
    assert alerts[0].product_id is None


@pytest.mark.asyncio
async def test_deleting_product_aborts_its_deferred_alerts(tmp_path) -> None:
    async with _service(tmp_path, clock=lambda: LATE) as (service, channel):
        product = await _stocked(service)
        await service.create_outbound(OutboundCreate(product_id=product.id, quantity=10))

        await service.delete_product(product.id)

        due = await AlertRepository(service.repository.session).list_due_alerts(
            now=datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc), limit=10
        )
        alerts = await _alerts(service)

    assert due == []
    assert channel.sent == []
    assert len(alerts) == 1
    assert alerts[0].product_id is None
    assert alerts[0].retry_at is None
    assert alerts[0].retry_reason == RetryReason.aborted
