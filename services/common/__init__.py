"""Shared utilities for the inventory services."""

from .config import DEFAULT_APP_NAME, ServiceSettings, get_settings
from .instrumentation import build_app, instrument_app
from .logging import configure_logging
from .database import (
    create_engine,
    create_schema,
    dispose_engines,
    get_session_factory,
    lifespan_session,
    resolve_database_url,
)

__all__ = [
    "ServiceSettings",
    "get_settings",
    "build_app",
    "instrument_app",
    "configure_logging",
    "DEFAULT_APP_NAME",
    "create_engine",
    "create_schema",
    "dispose_engines",
    "get_session_factory",
    "lifespan_session",
    "resolve_database_url",
]
