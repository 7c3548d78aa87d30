"""Send policy for alerts: quiet hours first, then per-product cooldown."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Literal
from zoneinfo import ZoneInfo

from .alert_settings import SettingsProvider
from .models import AlertChannel, AlertLevel
from .quiet_hours import (
    InvalidQuietHours,
    QuietHoursWindow,
    is_within_quiet_hours,
    next_quiet_hours_exit,
    parse_quiet_hours,
)
from .repository import AlertRepository
from .timeutils import ensure_utc, utcnow

_LOGGER = logging.getLogger(__name__)

PolicyReason = Literal["ok", "cooldown", "quiet_hours"]


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    can_send: bool
    reason: PolicyReason
    next_attempt_at: datetime | None = None


class AlertPolicy:
    """Decides whether an alert may go out now.

    Decisions are read-only: nothing is written, so the same inputs always
    produce the same decision until a new alert is marked sent.
    """

    def __init__(
        self,
        repository: AlertRepository,
        settings_provider: SettingsProvider,
        *,
        timezone: tzinfo | str = "UTC",
    ) -> None:
        self.repository = repository
        self.settings_provider = settings_provider
        self.timezone = ZoneInfo(timezone) if isinstance(timezone, str) else timezone

    async def decide(
        self,
        *,
        channel: AlertChannel,
        level: AlertLevel,
        product_id: str | None = None,
        now: datetime | None = None,
    ) -> PolicyDecision:
        current = ensure_utc(now or utcnow())
        settings = await self.settings_provider.get_current_settings()

        window = self._quiet_hours_window(settings.quiet_hours)
        if window is not None:
            local_now = current.astimezone(self.timezone)
            if is_within_quiet_hours(local_now, window):
                return PolicyDecision(
                    can_send=False,
                    reason="quiet_hours",
                    next_attempt_at=ensure_utc(next_quiet_hours_exit(local_now, window)),
                )

        if product_id is not None:
            last_sent = await self.repository.latest_sent_alert(product_id=product_id, channel=channel)
            if last_sent is not None and last_sent.sent_at is not None:
                earliest = ensure_utc(last_sent.sent_at) + timedelta(minutes=settings.cooldown_minutes)
                if earliest > current:
                    return PolicyDecision(can_send=False, reason="cooldown", next_attempt_at=earliest)

        return PolicyDecision(can_send=True, reason="ok")

    @staticmethod
    def _quiet_hours_window(value: str | None) -> QuietHoursWindow | None:
        if not value or not value.strip():
            return None
        try:
            return parse_quiet_hours(value)
        except InvalidQuietHours:
            _LOGGER.warning("Ignoring malformed quiet hours setting %r", value)
            return None
