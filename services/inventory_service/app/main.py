from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from services.common import (
    DEFAULT_APP_NAME,
    ServiceSettings,
    build_app,
    configure_logging,
    create_schema,
    dispose_engines,
    get_session_factory,
    resolve_database_url,
)

from .api.alerts import router as alerts_router
from .api.dashboard import router as dashboard_router
from .api.health import router as health_router
from .api.inbounds import router as inbounds_router
from .api.outbounds import router as outbounds_router
from .api.products import router as products_router
from .api.returns import router as returns_router
from .api.settings import router as settings_router
from .dependencies import build_dispatcher_factory
from .models import Base
from .services import LowStockNotifier
from .telegram import TelegramClient, build_http_client
from .worker import AlertRetryWorker

SERVICE_NAME = "Inventory Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./inventory_service.db"


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Inventory Service FastAPI application."""

    resolved_settings = settings or ServiceSettings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        telegram_client: TelegramClient | None = None
        worker: AlertRetryWorker | None = None
        app.state.session_factory = session_factory
        try:
            await create_schema(database_url, Base.metadata)
            telegram_client = TelegramClient(
                build_http_client(resolved_settings.telegram_timeout_seconds),
                base_url=resolved_settings.telegram_api_base_url,
                max_attempts=resolved_settings.telegram_max_attempts,
                backoff_base=resolved_settings.telegram_backoff_base_seconds,
            )
            dispatcher_factory = build_dispatcher_factory(telegram_client, resolved_settings)
            app.state.telegram_client = telegram_client
            app.state.dispatcher_factory = dispatcher_factory
            app.state.low_stock_notifier = LowStockNotifier(session_factory, dispatcher_factory)
            if resolved_settings.alert_retry_enabled:
                worker = AlertRetryWorker(
                    session_factory,
                    dispatcher_factory,
                    interval_seconds=resolved_settings.alert_retry_interval_seconds,
                    batch_size=resolved_settings.alert_retry_batch_size,
                    max_attempts=resolved_settings.alert_retry_max_attempts,
                    fallback_delay=timedelta(seconds=resolved_settings.alert_retry_default_delay_seconds),
                )
                worker.start()
            app.state.alert_worker = worker
            yield
        finally:
            if worker is not None:
                await worker.stop()
            if telegram_client is not None:
                await telegram_client.close()
            app.state.session_factory = None  # type: ignore[assignment]
            app.state.dispatcher_factory = None
            app.state.low_stock_notifier = None
            app.state.telegram_client = None
            app.state.alert_worker = None
            await dispose_engines()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(products_router)
    app.include_router(inbounds_router)
    app.include_router(outbounds_router)
    app.include_router(returns_router)
    app.include_router(alerts_router)
    app.include_router(settings_router)
    app.include_router(dashboard_router)
    return app


app = create_app()
