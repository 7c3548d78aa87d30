"""Data access helpers for the inventory service."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence, TypeVar

from sqlalchemy import Select, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    DEFAULT_SETTING_ID,
    Alert,
    AlertChannel,
    AlertLevel,
    Inbound,
    NotificationSetting,
    Outbound,
    Product,
    ProductReturn,
    ProductStatus,
    RetryReason,
    TelegramTarget,
)

MovementT = TypeVar("MovementT", Inbound, Outbound, ProductReturn)

_MOVEMENT_DATE_COLUMNS = {
    Inbound: Inbound.date_in,
    Outbound: Outbound.date_out,
    ProductReturn: ProductReturn.date_return,
}


class InventoryRepository:
    """Persistence utilities for products and stock movements."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_product(self, **fields: Any) -> Product:
        product = Product(**fields)
        self.session.add(product)
        await self.session.flush()
        await self.session.refresh(product, attribute_names=["created_at", "updated_at"])
        return product

    async def get_product(self, product_id: str, *, for_update: bool = False) -> Product | None:
        stmt = select(Product).where(Product.id == product_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_code(self, code: str) -> Product | None:
        result = await self.session.execute(select(Product).where(Product.code == code))
        return result.scalar_one_or_none()

    async def list_products(
        self,
        *,
        search: str | None,
        status: ProductStatus | None,
        include_disabled: bool,
        limit: int,
        offset: int,
    ) -> tuple[list[Product], int]:
        filters = []
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(
                or_(func.lower(Product.code).like(pattern), func.lower(Product.name).like(pattern))
            )
        if status is not None:
            filters.append(Product.status == status)
        if not include_disabled:
            filters.append(Product.disabled.is_(False))

        base: Select[tuple[Product]] = select(Product).order_by(Product.created_at.desc(), Product.id)
        count: Select[tuple[int]] = select(func.count(Product.id))

        if filters:
            clause = and_(*filters)
            base = base.where(clause)
            count = count.where(clause)

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total

    async def update_product(self, product: Product, updates: dict[str, Any]) -> Product:
        for key, value in updates.items():
            setattr(product, key, value)
        await self.session.flush()
        await self.session.refresh(product, attribute_names=["updated_at"])
        return product

    async def summarize_stock(self) -> dict[str, int]:
        """Product count and movement totals across enabled products."""

        result = await self.session.execute(
            select(
                func.count(Product.id),
                func.coalesce(func.sum(Product.total_in), 0),
                func.coalesce(func.sum(Product.total_out), 0),
                func.coalesce(func.sum(Product.total_return), 0),
            ).where(Product.disabled.is_(False))
        )
        total_products, total_in, total_out, total_return = result.one()
        return {
            "total_products": total_products,
            "total_in": total_in,
            "total_out": total_out,
            "total_return": total_return,
        }

    async def list_low_stock(self, *, limit: int = 10) -> list[Product]:
        result = await self.session.execute(
            select(Product)
            .where(Product.status == ProductStatus.low, Product.disabled.is_(False))
            .order_by(Product.remain.asc(), Product.name)
            .limit(limit)
        )
        return list(result.scalars())

    async def list_stock_snapshot(self) -> list[Product]:
        result = await self.session.execute(
            select(Product).where(Product.disabled.is_(False)).order_by(Product.name.asc(), Product.id)
        )
        return list(result.scalars())

    async def delete_product(self, product: Product) -> None:
        for model in (ProductReturn, Outbound, Inbound):
            await self.session.execute(delete(model).where(model.product_id == product.id))
        await self.session.execute(
            update(Alert)
            .where(Alert.product_id == product.id, Alert.sent_at.is_(None), Alert.retry_at.is_not(None))
            .values(retry_at=None, retry_reason=RetryReason.aborted.value)
        )
        await self.session.execute(
            update(Alert).where(Alert.product_id == product.id).values(product_id=None)
        )
        await self.session.delete(product)
        await self.session.flush()

    async def add_movement(self, record: MovementT) -> MovementT:
        self.session.add(record)
        await self.session.flush()
        await self.session.refresh(record, attribute_names=["created_at"])
        return record

    async def get_movement(self, model: type[MovementT], record_id: str) -> MovementT | None:
        result = await self.session.execute(select(model).where(model.id == record_id))
        return result.scalar_one_or_none()

    async def list_movements(
        self,
        model: type[MovementT],
        *,
        product_id: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[MovementT], int]:
        date_column = _MOVEMENT_DATE_COLUMNS[model]
        base = select(model).order_by(date_column.desc(), model.id)
        count = select(func.count(model.id))
        if product_id is not None:
            base = base.where(model.product_id == product_id)
            count = count.where(model.product_id == product_id)

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total

    async def update_movement(self, record: MovementT, updates: dict[str, Any]) -> MovementT:
        for key, value in updates.items():
            setattr(record, key, value)
        await self.session.flush()
        return record

    async def delete_movement(self, record: Inbound | Outbound | ProductReturn) -> None:
        await self.session.delete(record)
        await self.session.flush()


class AlertRepository:
    """Persistence utilities for alerts and notification settings."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_alert(
        self,
        *,
        product_id: str | None,
        level: AlertLevel,
        channel: AlertChannel,
        message: str,
        dedup_key: str | None,
        sent_at: datetime | None,
        retry_at: datetime | None,
        retry_reason: str | None,
    ) -> Alert:
        alert = Alert(
            product_id=product_id,
            level=level,
            channel=channel,
            message=message,
            dedup_key=dedup_key,
            sent_at=sent_at,
            retry_at=retry_at,
            retry_reason=retry_reason,
            retry_count=0,
        )
        self.session.add(alert)
        await self.session.flush()
        await self.session.refresh(alert, attribute_names=["created_at"])
        return alert

    async def get_alert(self, alert_id: str) -> Alert | None:
        result = await self.session.execute(select(Alert).where(Alert.id == alert_id))
        return result.scalar_one_or_none()

    async def latest_sent_alert(self, *, product_id: str, channel: AlertChannel) -> Alert | None:
        result = await self.session.execute(
            select(Alert)
            .where(
                Alert.product_id == product_id,
                Alert.channel == channel,
                Alert.sent_at.is_not(None),
            )
            .order_by(Alert.sent_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_due_alerts(self, *, now: datetime, limit: int) -> list[Alert]:
        result = await self.session.execute(
            select(Alert)
            .where(
                Alert.sent_at.is_(None),
                Alert.retry_at.is_not(None),
                Alert.retry_at <= now,
            )
            .order_by(Alert.retry_at.asc())
            .limit(limit)
        )
        return list(result.scalars())

    async def list_alerts(
        self,
        *,
        product_id: str | None,
        level: AlertLevel | None,
        channel: AlertChannel | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Alert], int]:
        filters = []
        if product_id is not None:
            filters.append(Alert.product_id == product_id)
        if level is not None:
            filters.append(Alert.level == level)
        if channel is not None:
            filters.append(Alert.channel == channel)

        base: Select[tuple[Alert]] = select(Alert).order_by(Alert.created_at.desc(), Alert.id)
        count: Select[tuple[int]] = select(func.count(Alert.id))

        if filters:
            clause = and_(*filters)
            base = base.where(clause)
            count = count.where(clause)

        total = (await self.session.execute(count)).scalar_one()
        result = await self.session.execute(base.offset(offset).limit(limit))
        return list(result.scalars()), total

    async def update_alert(self, alert: Alert, **changes: Any) -> Alert:
        for key, value in changes.items():
            setattr(alert, key, value)
        await self.session.flush()
        return alert

    async def get_setting(self) -> NotificationSetting | None:
        result = await self.session.execute(
            select(NotificationSetting).where(NotificationSetting.id == DEFAULT_SETTING_ID)
        )
        return result.scalar_one_or_none()

    async def create_default_setting(self) -> NotificationSetting:
        setting = NotificationSetting(id=DEFAULT_SETTING_ID)
        self.session.add(setting)
        await self.session.flush()
        await self.session.refresh(setting)
        return setting

    async def update_setting(self, setting: NotificationSetting, updates: dict[str, Any]) -> NotificationSetting:
        for key, value in updates.items():
            setattr(setting, key, value)
        await self.session.flush()
        await self.session.refresh(setting, attribute_names=["updated_at"])
        return setting

    async def list_targets(self, setting_id: str) -> list[TelegramTarget]:
        result = await self.session.execute(
            select(TelegramTarget)
            .where(TelegramTarget.setting_id == setting_id)
            .order_by(TelegramTarget.position, TelegramTarget.id)
        )
        return list(result.scalars())

    async def replace_targets(
        self,
        setting_id: str,
        targets: Sequence[dict[str, Any]],
    ) -> list[TelegramTarget]:
        await self.session.execute(delete(TelegramTarget).where(TelegramTarget.setting_id == setting_id))
        created: list[TelegramTarget] = []
        for position, entry in enumerate(targets):
            target = TelegramTarget(setting_id=setting_id, position=position, **entry)
            self.session.add(target)
            created.append(target)
        await self.session.flush()
        return created
