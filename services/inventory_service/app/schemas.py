"""Pydantic schemas for inventory service."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator

from .models import AlertChannel, AlertLevel, OutboundStatus, ProductStatus, ReturnStatus
from .timeutils import ensure_utc

# Stored timestamps are UTC; SQLite hands them back naive.
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


def _strip_required(value: str, field_name: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        msg = f"{field_name} must be non-empty"
        raise ValueError(msg)
    return cleaned


def _strip_optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class ProductCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    unit: str = Field(default="EA", min_length=1, max_length=16)
    safety_stock: NonNegativeInt = Field(default=0, alias="safetyStock")
    disabled: bool = False

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("code")
    @classmethod
    def _strip_code(cls, value: str) -> str:
        return _strip_required(value, "code")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return _strip_required(value, "name")

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    unit: str | None = Field(default=None, min_length=1, max_length=16)
    safety_stock: NonNegativeInt | None = Field(default=None, alias="safetyStock")
    disabled: bool | None = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _strip_required(value, "name")


class ProductResponse(BaseModel):
    id: str
    code: str
    name: str
    description: str | None
    unit: str
    safety_stock: int = Field(alias="safetyStock")
    total_in: int = Field(alias="totalIn")
    total_out: int = Field(alias="totalOut")
    total_return: int = Field(alias="totalReturn")
    remain: int
    status: ProductStatus
    disabled: bool
    created_at: UtcDatetime = Field(alias="createdAt")
    updated_at: UtcDatetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class ProductListResponse(BaseModel):
    items: list[ProductResponse]
    total: int


class DashboardTotals(BaseModel):
    total_products: int = Field(alias="totalProducts")
    total_in: int = Field(alias="totalIn")
    total_out: int = Field(alias="totalOut")
    total_return: int = Field(alias="totalReturn")

    model_config = ConfigDict(populate_by_name=True)


class ProductSnapshot(BaseModel):
    id: str
    code: str
    name: str
    safety_stock: int = Field(alias="safetyStock")
    remain: int
    total_in: int = Field(alias="totalIn")
    total_out: int = Field(alias="totalOut")
    total_return: int = Field(alias="totalReturn")
    status: ProductStatus

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class DashboardSummaryResponse(BaseModel):
    totals: DashboardTotals
    low_stock: list[ProductSnapshot] = Field(alias="lowStock")
    stock_by_product: list[ProductSnapshot] = Field(alias="stockByProduct")

    model_config = ConfigDict(populate_by_name=True)


class InboundCreate(BaseModel):
    product_id: str = Field(alias="productId", min_length=1)
    quantity: PositiveInt
    date_in: UtcDatetime | None = Field(default=None, alias="dateIn")
    note: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class InboundUpdate(BaseModel):
    product_id: str | None = Field(default=None, alias="productId", min_length=1)
    quantity: PositiveInt | None = None
    date_in: UtcDatetime | None = Field(default=None, alias="dateIn")
    note: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class InboundResponse(BaseModel):
    id: str
    product_id: str = Field(alias="productId")
    quantity: int
    date_in: UtcDatetime = Field(alias="dateIn")
    note: str | None
    created_at: UtcDatetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class InboundListResponse(BaseModel):
    items: list[InboundResponse]
    total: int


class OutboundCreate(BaseModel):
    product_id: str = Field(alias="productId", min_length=1)
    quantity: PositiveInt
    date_out: UtcDatetime | None = Field(default=None, alias="dateOut")
    status: OutboundStatus = OutboundStatus.shipped
    note: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class OutboundUpdate(BaseModel):
    product_id: str | None = Field(default=None, alias="productId", min_length=1)
    quantity: PositiveInt | None = None
    date_out: UtcDatetime | None = Field(default=None, alias="dateOut")
    status: OutboundStatus | None = None
    note: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class OutboundResponse(BaseModel):
    id: str
    product_id: str = Field(alias="productId")
    quantity: int
    date_out: UtcDatetime = Field(alias="dateOut")
    status: OutboundStatus
    note: str | None
    created_at: UtcDatetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class OutboundListResponse(BaseModel):
    items: list[OutboundResponse]
    total: int


class ReturnCreate(BaseModel):
    product_id: str = Field(alias="productId", min_length=1)
    outbound_id: str | None = Field(default=None, alias="outboundId")
    quantity: PositiveInt
    reason: str = Field(min_length=1)
    status: ReturnStatus = ReturnStatus.pending
    date_return: UtcDatetime | None = Field(default=None, alias="dateReturn")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("reason")
    @classmethod
    def _strip_reason(cls, value: str) -> str:
        return _strip_required(value, "reason")


class ReturnUpdate(BaseModel):
    product_id: str | None = Field(default=None, alias="productId", min_length=1)
    outbound_id: str | None = Field(default=None, alias="outboundId")
    quantity: PositiveInt | None = None
    reason: str | None = Field(default=None, min_length=1)
    status: ReturnStatus | None = None
    date_return: UtcDatetime | None = Field(default=None, alias="dateReturn")

    model_config = ConfigDict(populate_by_name=True)


class ReturnResponse(BaseModel):
    id: str
    product_id: str = Field(alias="productId")
    outbound_id: str | None = Field(alias="outboundId")
    quantity: int
    reason: str
    status: ReturnStatus
    date_return: UtcDatetime = Field(alias="dateReturn")
    created_at: UtcDatetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class ReturnListResponse(BaseModel):
    items: list[ReturnResponse]
    total: int


class AlertResponse(BaseModel):
    id: str
    product_id: str | None = Field(alias="productId")
    level: AlertLevel
    channel: AlertChannel
    message: str
    dedup_key: str | None = Field(alias="dedupKey")
    sent_at: UtcDatetime | None = Field(alias="sentAt")
    retry_at: UtcDatetime | None = Field(alias="retryAt")
    retry_reason: str | None = Field(alias="retryReason")
    retry_count: int = Field(alias="retryCount")
    created_at: UtcDatetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class AlertListResponse(BaseModel):
    items: list[AlertResponse]
    total: int


class AlertSendResponse(BaseModel):
    can_send: bool = Field(alias="canSend")
    reason: str
    next_attempt_at: UtcDatetime | None = Field(default=None, alias="nextAttemptAt")
    alert: AlertResponse | None = None

    model_config = ConfigDict(populate_by_name=True)


class AlertTestRequest(BaseModel):
    requested_by: str = Field(default="admin", alias="requestedBy", min_length=1, max_length=128)

    model_config = ConfigDict(populate_by_name=True)


class CustomAlertRequest(BaseModel):
    message: str = Field(min_length=1, max_length=1000)
    requested_by: str = Field(default="admin", alias="requestedBy", min_length=1, max_length=128)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("message")
    @classmethod
    def _strip_message(cls, value: str) -> str:
        return _strip_required(value, "message")


class TelegramTargetEntry(BaseModel):
    chat_id: str = Field(alias="chatId", min_length=1, max_length=64)
    label: str | None = Field(default=None, max_length=128)
    enabled: bool = True

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("chat_id")
    @classmethod
    def _strip_chat_id(cls, value: str) -> str:
        return _strip_required(value, "chatId")

    @field_validator("label")
    @classmethod
    def _strip_label(cls, value: str | None) -> str | None:
        return _strip_optional(value)


class TelegramSettingsUpdate(BaseModel):
    enabled: bool
    bot_token: str | None = Field(default=None, alias="botToken", max_length=255)
    cooldown_minutes: int = Field(default=60, alias="cooldownMinutes", ge=1, le=1440)
    quiet_hours: str = Field(default="22-07", alias="quietHours", pattern=r"^[0-2]\d-[0-2]\d$")
    targets: list[TelegramTargetEntry] | None = Field(default=None, max_length=50)

    model_config = ConfigDict(populate_by_name=True)


class TelegramTargetResponse(BaseModel):
    chat_id: str = Field(alias="chatId")
    label: str | None
    enabled: bool

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class TelegramSettingsResponse(BaseModel):
    enabled: bool
    has_bot_token: bool = Field(alias="hasBotToken")
    cooldown_minutes: int = Field(alias="cooldownMinutes")
    quiet_hours: str = Field(alias="quietHours")
    targets: list[TelegramTargetResponse]

    model_config = ConfigDict(populate_by_name=True)
