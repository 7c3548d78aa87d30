"""Notification settings: the singleton row and the read API the alert core uses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from .models import NotificationSetting
from .repository import AlertRepository
from .schemas import TelegramSettingsUpdate


@dataclass(frozen=True, slots=True)
class AlertTarget:
    chat_id: str
    enabled: bool = True
    label: str | None = None


@dataclass(frozen=True, slots=True)
class AlertSettings:
    """Immutable snapshot of the channel configuration."""

    enabled: bool = False
    bot_token: str | None = None
    cooldown_minutes: int = 60
    quiet_hours: str = "22-07"
    targets: tuple[AlertTarget, ...] = field(default_factory=tuple)

    @property
    def credential(self) -> str | None:
        token = (self.bot_token or "").strip()
        return token or None

    @property
    def active_targets(self) -> list[AlertTarget]:
        return [target for target in self.targets if target.enabled]


class SettingsProvider(Protocol):
    async def get_current_settings(self) -> AlertSettings: ...


class NotificationSettingsService:
    """Reads and updates the notification settings row."""

    def __init__(self, repository: AlertRepository) -> None:
        self.repository = repository

    async def get_current_settings(self) -> AlertSettings:
        setting = await self._ensure_setting()
        return await self._snapshot(setting)

    async def update_telegram_settings(self, payload: TelegramSettingsUpdate) -> AlertSettings:
        setting = await self._ensure_setting()
        updates: dict[str, object] = {
            "telegram_enabled": payload.enabled,
            "telegram_cooldown_min": payload.cooldown_minutes,
            "telegram_quiet_hours": payload.quiet_hours,
        }
        # An omitted token keeps the stored one; an explicit blank clears it.
        if "bot_token" in payload.model_fields_set:
            updates["telegram_bot_token"] = (payload.bot_token or "").strip() or None
        setting = await self.repository.update_setting(setting, updates)
        if payload.targets is not None:
            await self.repository.replace_targets(
                setting.id,
                [
                    {"chat_id": target.chat_id, "label": target.label, "enabled": target.enabled}
                    for target in payload.targets
                ],
            )
        return await self._snapshot(setting)

    async def _ensure_setting(self) -> NotificationSetting:
        setting = await self.repository.get_setting()
        if setting is None:
            setting = await self.repository.create_default_setting()
        return setting

    async def _snapshot(self, setting: NotificationSetting) -> AlertSettings:
        targets = await self.repository.list_targets(setting.id)
        return AlertSettings(
            enabled=setting.telegram_enabled,
            bot_token=setting.telegram_bot_token,
            cooldown_minutes=setting.telegram_cooldown_min,
            quiet_hours=setting.telegram_quiet_hours,
            targets=tuple(
                AlertTarget(chat_id=target.chat_id, enabled=target.enabled, label=target.label)
                for target in targets
            ),
        )
