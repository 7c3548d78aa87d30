"""Alert dispatch: policy check, persistence and best-effort channel delivery."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Literal, Sequence

from services.common.tracing import get_tracer

from .alert_settings import AlertSettings, AlertTarget, SettingsProvider
from .errors import AlertDeliveryError, AlertNotFound, StockValidationError
from .messages import (
    build_custom_alert_message,
    build_low_stock_message,
    build_test_alert_message,
    mark_deferred,
    strip_deferred,
)
from .metrics import ALERT_DELIVERIES_TOTAL, ALERT_DELIVERY_FAILURES_TOTAL, ALERT_DISPATCH_TOTAL
from .models import Alert, AlertChannel, AlertLevel, Product, RetryReason
from .policy import AlertPolicy, PolicyDecision
from .repository import AlertRepository
from .telegram import ChannelClient, describe_channel_error
from .timeutils import ensure_utc, utcnow

_LOGGER = logging.getLogger(__name__)
_TRACER = get_tracer(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = timedelta(minutes=5)

PendingOutcome = Literal["sent", "rescheduled", "aborted", "skipped"]


@dataclass(frozen=True, slots=True)
class AlertTrigger:
    """What to send; ``strict`` turns soft no-ops and delivery failures into errors."""

    message: str
    level: AlertLevel
    channel: AlertChannel = AlertChannel.telegram
    product_id: str | None = None
    strict: bool = False


@dataclass(frozen=True, slots=True)
class AlertSendResult:
    decision: PolicyDecision
    alert: Alert | None = None


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def sent_dedup_key(product_id: str | None, moment: datetime) -> str | None:
    if product_id is None:
        return None
    return f"{product_id}-{_epoch_ms(moment)}"


def deferred_dedup_key(product_id: str | None, moment: datetime) -> str:
    return f"deferred-{product_id or 'general'}-{_epoch_ms(moment)}"


class AlertDispatcher:
    """Routes alerts through the send policy and the delivery channel.

    Records are written to the caller's session; committing is left to the
    caller so a dispatch can share the request transaction.
    """

    def __init__(
        self,
        repository: AlertRepository,
        policy: AlertPolicy,
        settings_provider: SettingsProvider,
        channel: ChannelClient,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        default_retry_delay: timedelta = DEFAULT_RETRY_DELAY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.policy = policy
        self.settings_provider = settings_provider
        self.channel = channel
        self.max_attempts = max_attempts
        self.default_retry_delay = default_retry_delay
        self.clock = clock

    async def dispatch(self, trigger: AlertTrigger, *, now: datetime | None = None) -> AlertSendResult:
        current = ensure_utc(now or self.clock())
        with _TRACER.start_as_current_span("alerts.dispatch") as span:
            span.set_attribute("alert.level", trigger.level.value)
            span.set_attribute("alert.channel", trigger.channel.value)
            decision = await self.policy.decide(
                channel=trigger.channel,
                level=trigger.level,
                product_id=trigger.product_id,
                now=current,
            )
            span.set_attribute("alert.decision", decision.reason)

            if not decision.can_send:
                await self.repository.create_alert(
                    product_id=trigger.product_id,
                    level=trigger.level,
                    channel=trigger.channel,
                    message=mark_deferred(trigger.message),
                    dedup_key=deferred_dedup_key(trigger.product_id, current),
                    sent_at=None,
                    retry_at=self._retry_at(decision, current),
                    retry_reason=decision.reason,
                )
                ALERT_DISPATCH_TOTAL.labels(outcome=decision.reason).inc()
                _LOGGER.info(
                    "Deferred %s alert for product %s (%s)",
                    trigger.level.value,
                    trigger.product_id or "-",
                    decision.reason,
                )
                return AlertSendResult(decision=decision)

            settings = await self.settings_provider.get_current_settings()
            targets = self._deliverable_targets(settings, strict=trigger.strict)
            alert = await self.repository.create_alert(
                product_id=trigger.product_id,
                level=trigger.level,
                channel=trigger.channel,
                message=trigger.message,
                dedup_key=sent_dedup_key(trigger.product_id, current),
                sent_at=current,
                retry_at=None,
                retry_reason=None,
            )
            ALERT_DISPATCH_TOTAL.labels(outcome="sent" if targets else "skipped").inc()
            if not targets:
                return AlertSendResult(decision=decision, alert=alert)

            failures = await self._deliver(settings, targets, trigger.channel, trigger.message)
            if failures and trigger.strict:
                raise AlertDeliveryError(
                    f"{describe_channel_error(failures[0])} ({len(failures)} of {len(targets)} targets failed)"
                )
            return AlertSendResult(decision=decision, alert=alert)

    async def process_pending_alert(self, alert_id: str, *, now: datetime | None = None) -> PendingOutcome:
        """Re-run a deferred alert through the policy and deliver it when allowed.

        Raises ``AlertNotFound`` for an unknown id and ``AlertDeliveryError``
        when any target rejects the message, leaving rescheduling to the caller.
        """

        current = ensure_utc(now or self.clock())
        alert = await self.repository.get_alert(alert_id)
        if alert is None:
            raise AlertNotFound(alert_id)
        if alert.sent_at is not None:
            return "skipped"

        if alert.retry_reason == RetryReason.aborted or alert.retry_count >= self.max_attempts:
            if alert.retry_reason != RetryReason.aborted or alert.retry_at is not None:
                await self.repository.update_alert(
                    alert, retry_at=None, retry_reason=RetryReason.aborted.value
                )
                _LOGGER.warning("Alert %s exceeded %s attempts and was aborted", alert_id, self.max_attempts)
            return "aborted"

        with _TRACER.start_as_current_span("alerts.process_pending") as span:
            span.set_attribute("alert.id", alert_id)
            decision = await self.policy.decide(
                channel=alert.channel,
                level=alert.level,
                product_id=alert.product_id,
                now=current,
            )
            if not decision.can_send:
                await self.repository.update_alert(
                    alert,
                    retry_at=self._retry_at(decision, current),
                    retry_reason=decision.reason,
                    retry_count=alert.retry_count + 1,
                )
                return "rescheduled"

            settings = await self.settings_provider.get_current_settings()
            targets = self._deliverable_targets(settings, strict=False)
            if targets:
                failures = await self._deliver(settings, targets, alert.channel, strip_deferred(alert.message))
                if failures:
                    raise AlertDeliveryError(
                        f"Alert {alert_id}: {describe_channel_error(failures[0])} "
                        f"({len(failures)} of {len(targets)} targets failed)"
                    )

            await self.repository.update_alert(
                alert,
                sent_at=current,
                retry_at=None,
                retry_reason=None,
                retry_count=alert.retry_count + 1,
            )
            return "sent"

    async def notify_low_stock(self, product: Product, *, now: datetime | None = None) -> AlertSendResult:
        return await self.dispatch(
            AlertTrigger(
                message=build_low_stock_message(product, checked_at=now or self.clock()),
                level=AlertLevel.low,
                product_id=product.id,
            ),
            now=now,
        )

    async def send_test_alert(self, requested_by: str, *, now: datetime | None = None) -> AlertSendResult:
        return await self.dispatch(
            AlertTrigger(
                message=build_test_alert_message(requested_by, requested_at=now or self.clock()),
                level=AlertLevel.info,
                strict=True,
            ),
            now=now,
        )

    async def send_custom_alert(
        self,
        requested_by: str,
        message: str,
        *,
        now: datetime | None = None,
    ) -> AlertSendResult:
        if not message.strip():
            raise StockValidationError("Alert message must not be blank")
        return await self.dispatch(
            AlertTrigger(
                message=build_custom_alert_message(requested_by, message),
                level=AlertLevel.info,
                strict=True,
            ),
            now=now,
        )

    def _retry_at(self, decision: PolicyDecision, current: datetime) -> datetime:
        if decision.next_attempt_at is not None:
            return ensure_utc(decision.next_attempt_at)
        return current + self.default_retry_delay

    @staticmethod
    def _deliverable_targets(settings: AlertSettings, *, strict: bool) -> list[AlertTarget]:
        if not settings.enabled:
            if strict:
                raise AlertDeliveryError("Telegram alerts are disabled")
            _LOGGER.info("Telegram alerts are disabled; recording alert without delivery")
            return []
        if settings.credential is None:
            if strict:
                raise AlertDeliveryError("Telegram bot token is not configured")
            _LOGGER.warning("Telegram bot token is blank; recording alert without delivery")
            return []
        targets = settings.active_targets
        if not targets:
            if strict:
                raise AlertDeliveryError("No enabled Telegram targets are configured")
            _LOGGER.warning("No enabled Telegram targets; recording alert without delivery")
        return targets

    async def _deliver(
        self,
        settings: AlertSettings,
        targets: Sequence[AlertTarget],
        channel: AlertChannel,
        text: str,
    ) -> list[Exception]:
        token = settings.credential or ""
        results = await asyncio.gather(
            *(self.channel.send_message(bot_token=token, chat_id=target.chat_id, text=text) for target in targets),
            return_exceptions=True,
        )
        failures: list[Exception] = []
        for target, result in zip(targets, results):
            if isinstance(result, Exception):
                failures.append(result)
                ALERT_DELIVERY_FAILURES_TOTAL.labels(channel=channel.value).inc()
                _LOGGER.warning("Alert delivery to chat %s failed: %s", target.chat_id, result)
            elif isinstance(result, BaseException):
                raise result
            else:
                ALERT_DELIVERIES_TOTAL.labels(channel=channel.value).inc()
        return failures
