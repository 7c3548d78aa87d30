"""Inventory domain services."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.common import lifespan_session

from .alerts import AlertDispatcher
from .errors import MovementNotFound, ProductConflict, ProductNotFound, StockValidationError
from .ledger import AdjustResult, StockLedger, resolve_status
from .metrics import ALERT_POST_COMMIT_FAILURES_TOTAL
from .models import Inbound, Outbound, Product, ProductReturn, ReturnStatus
from .repository import InventoryRepository
from .schemas import (
    InboundCreate,
    InboundUpdate,
    OutboundCreate,
    OutboundUpdate,
    ProductCreate,
    ProductUpdate,
    ReturnCreate,
    ReturnUpdate,
)
from .timeutils import utcnow

_LOGGER = logging.getLogger(__name__)

LowStockCandidates = dict[str, Product]


class LowStockNotifier:
    """Sends low-stock alerts once the business transaction has committed.

    Each product is dispatched in its own session; a failure is logged and
    counted, and never reaches the request that changed the stock.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher_factory: Callable[[AsyncSession], AlertDispatcher],
    ) -> None:
        self._session_factory = session_factory
        self._dispatcher_factory = dispatcher_factory

    async def notify(self, products: Iterable[Product]) -> None:
        for product in products:
            try:
                async with lifespan_session(self._session_factory) as session:
                    await self._dispatcher_factory(session).notify_low_stock(product)
            except Exception:
                ALERT_POST_COMMIT_FAILURES_TOTAL.inc()
                _LOGGER.exception("Low-stock alert for product %s failed after commit", product.code)


def _clean_note(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _effective_return(status: ReturnStatus, quantity: int) -> int:
    return quantity if status == ReturnStatus.completed else 0


class InventoryService:
    """Products and stock movements, with counters kept in step by the ledger."""

    def __init__(self, repository: InventoryRepository, notifier: LowStockNotifier | None = None) -> None:
        self.repository = repository
        self.ledger = StockLedger(repository)
        self.notifier = notifier

    # Products ------------------------------------------------------------------------------
    async def create_product(self, payload: ProductCreate) -> Product:
        if await self.repository.find_by_code(payload.code) is not None:
            raise ProductConflict(f"product code {payload.code} already exists")
        product = await self.repository.create_product(
            code=payload.code,
            name=payload.name,
            description=payload.description,
            unit=payload.unit,
            safety_stock=payload.safety_stock,
            disabled=payload.disabled,
            status=resolve_status(0, payload.safety_stock),
        )
        await self.repository.session.commit()
        return product

    async def update_product(self, product_id: str, payload: ProductUpdate) -> Product:
        product = await self._require_product(product_id)
        previous_status = product.status
        updates = payload.model_dump(exclude_unset=True)
        if "description" in updates:
            updates["description"] = _clean_note(updates["description"])
        await self.repository.update_product(product, updates)
        product = await self.ledger.recalculate(product_id)

        candidates: LowStockCandidates = {}
        self._collect(candidates, AdjustResult(product=product, previous_status=previous_status))
        await self._commit_and_notify(candidates)
        return product

    async def delete_product(self, product_id: str) -> None:
        product = await self._require_product(product_id)
        await self.repository.delete_product(product)
        await self.repository.session.commit()

    # Inbounds ------------------------------------------------------------------------------
    async def create_inbound(self, payload: InboundCreate) -> Inbound:
        await self._require_product(payload.product_id)
        record = await self.repository.add_movement(
            Inbound(
                product_id=payload.product_id,
                quantity=payload.quantity,
                date_in=payload.date_in or utcnow(),
                note=_clean_note(payload.note),
            )
        )
        candidates: LowStockCandidates = {}
        self._collect(candidates, await self.ledger.adjust(payload.product_id, inbound_delta=payload.quantity))
        await self._commit_and_notify(candidates)
        return record

    async def update_inbound(self, record_id: str, payload: InboundUpdate) -> Inbound:
        record = await self._require_movement(Inbound, record_id)
        previous_product_id, previous_quantity = record.product_id, record.quantity
        next_product_id = payload.product_id or record.product_id
        next_quantity = payload.quantity or record.quantity
        if next_product_id != previous_product_id:
            await self._require_product(next_product_id)

        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "note" in payload.model_fields_set:
            updates["note"] = _clean_note(payload.note)
        await self.repository.update_movement(record, updates)

        candidates: LowStockCandidates = {}
        await self._shift(
            candidates,
            "inbound_delta",
            previous=(previous_product_id, previous_quantity),
            current=(next_product_id, next_quantity),
        )
        await self._commit_and_notify(candidates)
        return record

    async def delete_inbound(self, record_id: str) -> None:
        record = await self._require_movement(Inbound, record_id)
        candidates: LowStockCandidates = {}
        self._collect(candidates, await self.ledger.adjust(record.product_id, inbound_delta=-record.quantity))
        await self.repository.delete_movement(record)
        await self._commit_and_notify(candidates)

    # Outbounds -----------------------------------------------------------------------------
    async def create_outbound(self, payload: OutboundCreate) -> Outbound:
        product = await self._require_product(payload.product_id)
        self._ensure_can_ship(product, payload.quantity)
        record = await self.repository.add_movement(
            Outbound(
                product_id=payload.product_id,
                quantity=payload.quantity,
                date_out=payload.date_out or utcnow(),
                status=payload.status,
                note=_clean_note(payload.note),
            )
        )
        candidates: LowStockCandidates = {}
        self._collect(candidates, await self.ledger.adjust(payload.product_id, outbound_delta=payload.quantity))
        await self._commit_and_notify(candidates)
        return record

    async def update_outbound(self, record_id: str, payload: OutboundUpdate) -> Outbound:
        record = await self._require_movement(Outbound, record_id)
        previous_product_id, previous_quantity = record.product_id, record.quantity
        next_product_id = payload.product_id or record.product_id
        next_quantity = payload.quantity or record.quantity

        if next_product_id != previous_product_id:
            self._ensure_can_ship(await self._require_product(next_product_id), next_quantity)
        else:
            self._ensure_can_ship(
                await self._require_product(next_product_id),
                max(next_quantity - previous_quantity, 0),
            )

        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "note" in payload.model_fields_set:
            updates["note"] = _clean_note(payload.note)
        await self.repository.update_movement(record, updates)

        candidates: LowStockCandidates = {}
        await self._shift(
            candidates,
            "outbound_delta",
            previous=(previous_product_id, previous_quantity),
            current=(next_product_id, next_quantity),
        )
        await self._commit_and_notify(candidates)
        return record

    async def delete_outbound(self, record_id: str) -> None:
        record = await self._require_movement(Outbound, record_id)
        candidates: LowStockCandidates = {}
        self._collect(candidates, await self.ledger.adjust(record.product_id, outbound_delta=-record.quantity))
        await self.repository.delete_movement(record)
        await self._commit_and_notify(candidates)

    # Returns -------------------------------------------------------------------------------
    async def create_return(self, payload: ReturnCreate) -> ProductReturn:
        product = await self._require_product(payload.product_id)
        if product.disabled:
            raise StockValidationError("returns cannot be registered for a disabled product")
        await self._check_return_outbound(payload.outbound_id, payload.product_id)

        record = await self.repository.add_movement(
            ProductReturn(
                product_id=payload.product_id,
                outbound_id=payload.outbound_id,
                quantity=payload.quantity,
                reason=payload.reason,
                status=payload.status,
                date_return=payload.date_return or utcnow(),
            )
        )
        candidates: LowStockCandidates = {}
        effective = _effective_return(payload.status, payload.quantity)
        if effective:
            self._collect(candidates, await self.ledger.adjust(payload.product_id, return_delta=effective))
        await self._commit_and_notify(candidates)
        return record

    async def update_return(self, record_id: str, payload: ReturnUpdate) -> ProductReturn:
        record = await self._require_movement(ProductReturn, record_id)
        previous_product_id = record.product_id
        previous_effective = _effective_return(record.status, record.quantity)

        next_product_id = payload.product_id or record.product_id
        next_quantity = payload.quantity or record.quantity
        next_status = payload.status or record.status
        next_effective = _effective_return(next_status, next_quantity)

        next_product = await self._require_product(next_product_id)
        if next_product.disabled and (
            next_product_id != previous_product_id or next_effective > previous_effective
        ):
            raise StockValidationError("returns cannot be registered for a disabled product")

        outbound_id = payload.outbound_id if "outbound_id" in payload.model_fields_set else record.outbound_id
        await self._check_return_outbound(outbound_id, next_product_id)

        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        updates["outbound_id"] = outbound_id
        await self.repository.update_movement(record, updates)

        candidates: LowStockCandidates = {}
        await self._shift(
            candidates,
            "return_delta",
            previous=(previous_product_id, previous_effective),
            current=(next_product_id, next_effective),
        )
        await self._commit_and_notify(candidates)
        return record

    async def delete_return(self, record_id: str) -> None:
        record = await self._require_movement(ProductReturn, record_id)
        candidates: LowStockCandidates = {}
        effective = _effective_return(record.status, record.quantity)
        if effective:
            self._collect(candidates, await self.ledger.adjust(record.product_id, return_delta=-effective))
        await self.repository.delete_movement(record)
        await self._commit_and_notify(candidates)

    # Helpers -------------------------------------------------------------------------------
    async def _require_product(self, product_id: str) -> Product:
        product = await self.repository.get_product(product_id, for_update=True)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    async def _require_movement(self, model, record_id: str):
        record = await self.repository.get_movement(model, record_id)
        if record is None:
            raise MovementNotFound(record_id)
        return record

    async def _check_return_outbound(self, outbound_id: str | None, product_id: str) -> None:
        if outbound_id is None:
            return
        outbound = await self.repository.get_movement(Outbound, outbound_id)
        if outbound is None:
            raise MovementNotFound(outbound_id)
        if outbound.product_id != product_id:
            raise StockValidationError("return product does not match the linked outbound")

    @staticmethod
    def _ensure_can_ship(product: Product, quantity: int) -> None:
        if product.disabled:
            raise StockValidationError("disabled products cannot be shipped")
        if quantity > 0 and product.remain < quantity:
            raise StockValidationError("outbound quantity exceeds remaining stock")

    async def _shift(
        self,
        candidates: LowStockCandidates,
        field: str,
        *,
        previous: tuple[str, int],
        current: tuple[str, int],
    ) -> None:
        """Move a counter contribution, reverting the old product when it changed."""

        previous_product_id, previous_amount = previous
        current_product_id, current_amount = current
        if previous_product_id == current_product_id:
            delta = current_amount - previous_amount
            if delta:
                self._collect(candidates, await self.ledger.adjust(current_product_id, **{field: delta}))
            return

        if previous_amount:
            self._collect(
                candidates, await self.ledger.adjust(previous_product_id, **{field: -previous_amount})
            )
        if current_amount:
            self._collect(candidates, await self.ledger.adjust(current_product_id, **{field: current_amount}))

    @staticmethod
    def _collect(candidates: LowStockCandidates, result: AdjustResult) -> None:
        if result.crossed_into_low:
            candidates[result.product.id] = result.product

    async def _commit_and_notify(self, candidates: LowStockCandidates) -> None:
        await self.repository.session.commit()
        if candidates and self.notifier is not None:
            await self.notifier.notify(candidates.values())
