"""SQLAlchemy models for the inventory service."""

from __future__ import annotations

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Integer, String, Text, false, func, true
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

DEFAULT_SETTING_ID = "default-notification-setting"


def _uuid() -> str:
    return str(uuid4())


class ProductStatus(str, enum.Enum):
    normal = "normal"
    warn = "warn"
    low = "low"


class OutboundStatus(str, enum.Enum):
    pending = "pending"
    shipped = "shipped"
    delivered = "delivered"
    returned = "returned"
    cancelled = "cancelled"


class ReturnStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"


class AlertLevel(str, enum.Enum):
    info = "info"
    warn = "warn"
    low = "low"


class AlertChannel(str, enum.Enum):
    telegram = "telegram"


class RetryReason(str, enum.Enum):
    cooldown = "cooldown"
    quiet_hours = "quiet_hours"
    error = "error"
    aborted = "aborted"


class Base(DeclarativeBase):
    """Base class for inventory ORM models."""


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit: Mapped[str] = mapped_column(String(16), nullable=False, default="EA", server_default="EA")
    safety_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_in: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_out: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_return: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    remain: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    status: Mapped[ProductStatus] = mapped_column(
        Enum(ProductStatus, name="product_status", native_enum=False),
        nullable=False,
        default=ProductStatus.low,
    )
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class Inbound(Base):
    __tablename__ = "inbounds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    date_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Outbound(Base):
    __tablename__ = "outbounds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    date_out: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[OutboundStatus] = mapped_column(
        Enum(OutboundStatus, name="outbound_status", native_enum=False),
        nullable=False,
        default=OutboundStatus.shipped,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class ProductReturn(Base):
    __tablename__ = "returns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[str] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    outbound_id: Mapped[str | None] = mapped_column(
        ForeignKey("outbounds.id", ondelete="SET NULL"), nullable=True, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ReturnStatus] = mapped_column(
        Enum(ReturnStatus, name="return_status", native_enum=False),
        nullable=False,
        default=ReturnStatus.pending,
    )
    date_return: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Alert(Base):
    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[str | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    level: Mapped[AlertLevel] = mapped_column(
        Enum(AlertLevel, name="alert_level", native_enum=False), nullable=False
    )
    channel: Mapped[AlertChannel] = mapped_column(
        Enum(AlertChannel, name="alert_channel", native_enum=False), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    dedup_key: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    retry_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class NotificationSetting(Base):
    __tablename__ = "notification_settings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=DEFAULT_SETTING_ID)
    telegram_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    telegram_bot_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    telegram_cooldown_min: Mapped[int] = mapped_column(Integer, nullable=False, default=60, server_default="60")
    telegram_quiet_hours: Mapped[str] = mapped_column(
        String(16), nullable=False, default="22-07", server_default="22-07"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class TelegramTarget(Base):
    __tablename__ = "telegram_targets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    setting_id: Mapped[str] = mapped_column(
        ForeignKey("notification_settings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    label: Mapped[str | None] = mapped_column(String(128), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
