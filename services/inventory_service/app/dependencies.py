"""Dependency helpers for inventory service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import timedelta

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.common import ServiceSettings, lifespan_session

from .alert_settings import NotificationSettingsService
from .alerts import AlertDispatcher
from .policy import AlertPolicy
from .repository import AlertRepository, InventoryRepository
from .services import InventoryService, LowStockNotifier
from .telegram import ChannelClient
from .worker import DispatcherFactory


def build_dispatcher_factory(channel: ChannelClient, settings: ServiceSettings) -> DispatcherFactory:
    """Bind channel and retry settings; the returned factory wires one session."""

    def factory(session: AsyncSession) -> AlertDispatcher:
        repository = AlertRepository(session)
        settings_service = NotificationSettingsService(repository)
        policy = AlertPolicy(repository, settings_service, timezone=settings.alert_timezone)
        return AlertDispatcher(
            repository,
            policy,
            settings_service,
            channel,
            max_attempts=settings.alert_retry_max_attempts,
            default_retry_delay=timedelta(seconds=settings.alert_retry_default_delay_seconds),
        )

    return factory


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session


def get_repository(session: AsyncSession = Depends(get_session)) -> InventoryRepository:
    return InventoryRepository(session)


def get_alert_repository(session: AsyncSession = Depends(get_session)) -> AlertRepository:
    return AlertRepository(session)


def get_low_stock_notifier(request: Request) -> LowStockNotifier | None:
    return getattr(request.app.state, "low_stock_notifier", None)


def get_inventory_service(
    repository: InventoryRepository = Depends(get_repository),
    notifier: LowStockNotifier | None = Depends(get_low_stock_notifier),
) -> InventoryService:
    return InventoryService(repository, notifier)


def get_dispatcher(request: Request, session: AsyncSession = Depends(get_session)) -> AlertDispatcher:
    factory: DispatcherFactory = request.app.state.dispatcher_factory
    return factory(session)


def get_settings_service(
    repository: AlertRepository = Depends(get_alert_repository),
) -> NotificationSettingsService:
    return NotificationSettingsService(repository)
