"""Background worker that retries deferred alerts."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timedelta
from typing import Callable, Literal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.common import lifespan_session
from services.common.tracing import get_tracer

from .alerts import AlertDispatcher
from .metrics import ALERT_RETRY_ITEMS_TOTAL, ALERT_RETRY_SCANS_TOTAL
from .models import RetryReason
from .repository import AlertRepository
from .timeutils import ensure_utc, utcnow

_LOGGER = logging.getLogger(__name__)
_TRACER = get_tracer(__name__)

WorkerState = Literal["idle", "scanning"]
DispatcherFactory = Callable[[AsyncSession], AlertDispatcher]


class AlertRetryWorker:
    """Polls for due deferred alerts and drives them through the dispatcher.

    One scan runs at a time: a tick that fires while a scan is in flight is
    skipped rather than queued. ``run_once`` performs a single scan and can be
    awaited directly.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher_factory: DispatcherFactory,
        *,
        interval_seconds: float = 30.0,
        batch_size: int = 10,
        max_attempts: int = 5,
        fallback_delay: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._dispatcher_factory = dispatcher_factory
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.fallback_delay = fallback_delay
        self.clock = clock
        self._scanning = False
        self._loop_task: asyncio.Task[None] | None = None
        self._scan_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> WorkerState:
        return "scanning" if self._scanning else "idle"

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run_loop(), name="alert-retry-worker")
        _LOGGER.info("Alert retry worker started (interval=%ss, batch=%s)", self.interval_seconds, self.batch_size)

    async def stop(self) -> None:
        loop_task, self._loop_task = self._loop_task, None
        if loop_task is not None:
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
        scan_task, self._scan_task = self._scan_task, None
        if scan_task is not None and not scan_task.done():
            await scan_task
        _LOGGER.info("Alert retry worker stopped")

    async def run_once(self, now: datetime | None = None) -> int:
        """Process one batch of due alerts; returns how many were handled."""

        if self._scanning:
            ALERT_RETRY_SCANS_TOTAL.labels(outcome="skipped").inc()
            return 0

        self._scanning = True
        try:
            current = ensure_utc(now or self.clock())
            with _TRACER.start_as_current_span("alerts.retry_scan"):
                async with lifespan_session(self._session_factory) as session:
                    due = await AlertRepository(session).list_due_alerts(now=current, limit=self.batch_size)
                    alert_ids = [alert.id for alert in due]

                for alert_id in alert_ids:
                    await self._process(alert_id, current)
            ALERT_RETRY_SCANS_TOTAL.labels(outcome="completed").inc()
            return len(alert_ids)
        finally:
            self._scanning = False

    async def _run_loop(self) -> None:
        while True:
            self._tick()
            await asyncio.sleep(self.interval_seconds)

    def _tick(self) -> None:
        if self._scan_task is not None and not self._scan_task.done():
            ALERT_RETRY_SCANS_TOTAL.labels(outcome="skipped").inc()
            _LOGGER.debug("Previous alert retry scan still running; skipping tick")
            return
        self._scan_task = asyncio.create_task(self._scan())

    async def _scan(self) -> None:
        try:
            await self.run_once()
        except Exception:
            ALERT_RETRY_SCANS_TOTAL.labels(outcome="error").inc()
            _LOGGER.exception("Alert retry scan failed")

    async def _process(self, alert_id: str, current: datetime) -> None:
        try:
            async with lifespan_session(self._session_factory) as session:
                result = await self._dispatcher_factory(session).process_pending_alert(alert_id, now=current)
        except Exception:
            _LOGGER.exception("Retrying alert %s failed; rescheduling", alert_id)
            ALERT_RETRY_ITEMS_TOTAL.labels(result="error").inc()
            await self._reschedule_after_error(alert_id, current)
            return
        ALERT_RETRY_ITEMS_TOTAL.labels(result=result).inc()

    async def _reschedule_after_error(self, alert_id: str, current: datetime) -> None:
        try:
            async with lifespan_session(self._session_factory) as session:
                repository = AlertRepository(session)
                alert = await repository.get_alert(alert_id)
                if alert is None or alert.sent_at is not None:
                    return
                retry_count = alert.retry_count + 1
                if retry_count >= self.max_attempts:
                    await repository.update_alert(
                        alert,
                        retry_at=None,
                        retry_reason=RetryReason.aborted.value,
                        retry_count=retry_count,
                    )
                    ALERT_RETRY_ITEMS_TOTAL.labels(result="aborted").inc()
                    _LOGGER.error("Alert %s kept failing and was aborted after %s attempts", alert_id, retry_count)
                    return
                await repository.update_alert(
                    alert,
                    retry_at=current + self.fallback_delay,
                    retry_reason=RetryReason.error.value,
                    retry_count=retry_count,
                )
        except Exception:
            _LOGGER.exception("Could not reschedule alert %s after a failed retry", alert_id)
