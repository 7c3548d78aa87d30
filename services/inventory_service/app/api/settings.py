"""Notification settings endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..alert_settings import AlertSettings, NotificationSettingsService
from ..dependencies import get_settings_service
from ..schemas import TelegramSettingsResponse, TelegramSettingsUpdate, TelegramTargetResponse

router = APIRouter(prefix="/settings", tags=["settings"])


def _serialize_settings(settings: AlertSettings) -> TelegramSettingsResponse:
    return TelegramSettingsResponse(
        enabled=settings.enabled,
        has_bot_token=settings.credential is not None,
        cooldown_minutes=settings.cooldown_minutes,
        quiet_hours=settings.quiet_hours,
        targets=[TelegramTargetResponse.model_validate(target) for target in settings.targets],
    )


@router.get("/telegram", response_model=TelegramSettingsResponse)
async def get_telegram_settings(
    service: NotificationSettingsService = Depends(get_settings_service),
) -> TelegramSettingsResponse:
    return _serialize_settings(await service.get_current_settings())


@router.put("/telegram", response_model=TelegramSettingsResponse)
async def update_telegram_settings(
    payload: TelegramSettingsUpdate,
    service: NotificationSettingsService = Depends(get_settings_service),
) -> TelegramSettingsResponse:
    return _serialize_settings(await service.update_telegram_settings(payload))
