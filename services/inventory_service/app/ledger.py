"""Stock ledger: cumulative product counters and the derived status."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from .errors import ProductNotFound
from .metrics import INVENTORY_LOW_STOCK_TRANSITIONS_TOTAL, INVENTORY_STOCK_ADJUSTMENTS_TOTAL
from .models import Product, ProductStatus
from .repository import InventoryRepository

_LOGGER = logging.getLogger(__name__)

WARN_THRESHOLD_MULTIPLIER = 1.2


def calculate_remain(total_in: int, total_out: int, total_return: int) -> int:
    return total_in - total_out + total_return


def resolve_status(remain: int, safety_stock: int) -> ProductStatus:
    """Derive the stock tier from remaining and safety stock.

    Anything at or below zero is low regardless of the safety stock; a product
    without a safety stock is otherwise always normal. The warn band covers
    the 20% above the safety stock, rounded up.
    """

    if remain <= 0:
        return ProductStatus.low
    if safety_stock <= 0:
        return ProductStatus.normal
    if remain < safety_stock:
        return ProductStatus.low
    if remain < math.ceil(safety_stock * WARN_THRESHOLD_MULTIPLIER):
        return ProductStatus.warn
    return ProductStatus.normal


def should_trigger_low_stock_alert(previous: ProductStatus, current: ProductStatus) -> bool:
    return previous != ProductStatus.low and current == ProductStatus.low


@dataclass(slots=True)
class AdjustResult:
    product: Product
    previous_status: ProductStatus

    @property
    def crossed_into_low(self) -> bool:
        return should_trigger_low_stock_alert(self.previous_status, self.product.status)


class StockLedger:
    """Applies counter deltas to products inside the caller's transaction.

    The ledger never commits; callers own the session and its transaction so
    counter writes land or roll back together with the business record that
    caused them.
    """

    def __init__(self, repository: InventoryRepository) -> None:
        self.repository = repository

    async def adjust(
        self,
        product_id: str,
        *,
        inbound_delta: int = 0,
        outbound_delta: int = 0,
        return_delta: int = 0,
    ) -> AdjustResult:
        product = await self.repository.get_product(product_id, for_update=True)
        if product is None:
            raise ProductNotFound(product_id)

        previous_status = product.status
        total_in = product.total_in + inbound_delta
        total_out = product.total_out + outbound_delta
        total_return = product.total_return + return_delta
        remain = calculate_remain(total_in, total_out, total_return)

        updated = await self.repository.update_product(
            product,
            {
                "total_in": total_in,
                "total_out": total_out,
                "total_return": total_return,
                "remain": remain,
                "status": resolve_status(remain, product.safety_stock),
            },
        )
        for kind, delta in (("inbound", inbound_delta), ("outbound", outbound_delta), ("return", return_delta)):
            if delta:
                INVENTORY_STOCK_ADJUSTMENTS_TOTAL.labels(kind=kind).inc()

        result = AdjustResult(product=updated, previous_status=previous_status)
        if result.crossed_into_low:
            INVENTORY_LOW_STOCK_TRANSITIONS_TOTAL.inc()
            _LOGGER.info(
                "Product %s dropped to low stock (remain=%s, safety=%s)",
                updated.code,
                updated.remain,
                updated.safety_stock,
            )
        return result

    async def recalculate(self, product_id: str) -> Product:
        product = await self.repository.get_product(product_id, for_update=True)
        if product is None:
            raise ProductNotFound(product_id)

        remain = calculate_remain(product.total_in, product.total_out, product.total_return)
        return await self.repository.update_product(
            product,
            {"remain": remain, "status": resolve_status(remain, product.safety_stock)},
        )
