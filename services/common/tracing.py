import logging
import re

import httpx
from fastapi import FastAPI

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # type: ignore[attr-defined]
    OTLPSpanExporter as OTLPGrpcExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[attr-defined]
    OTLPSpanExporter as OTLPHttpExporter,
)
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import Span
from opentelemetry.trace import TracerProvider as APITracerProvider

from .config import ServiceSettings

_LOGGER = logging.getLogger(__name__)
_INSTRUMENTED_APPS: set[int] = set()
_HTTPX_INSTRUMENTED = False

# Telegram Bot API paths carry the token: /bot<token>/<method>.
_BOT_TOKEN_PATTERN = re.compile(r"/bot[^/]+/")
_URL_ATTRIBUTES = ("http.url", "url.full")


def redact_bot_token(url: str) -> str:
    return _BOT_TOKEN_PATTERN.sub("/bot<redacted>/", url)


def _redact_request_url(span: Span, request) -> None:
    if span is None or not span.is_recording():
        return
    url = getattr(request, "url", None)
    if not isinstance(url, httpx.URL):
        return
    redacted = redact_bot_token(str(url))
    for attribute in _URL_ATTRIBUTES:
        span.set_attribute(attribute, redacted)


def _create_exporter(settings: ServiceSettings):
    if settings.tracing_endpoint is None:
        return None
    if settings.tracing_protocol == "grpc":
        return OTLPGrpcExporter(endpoint=settings.tracing_endpoint, insecure=settings.tracing_insecure)
    return OTLPHttpExporter(endpoint=settings.tracing_endpoint)


def _install_provider(settings: ServiceSettings) -> APITracerProvider:
    current = trace.get_tracer_provider()
    if isinstance(current, TracerProvider):
        return current

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.app_name,
                "deployment.environment": settings.environment,
            }
        ),
        sampler=TraceIdRatioBased(settings.tracing_sample_rate),
    )
    exporter = _create_exporter(settings)
    if exporter is None:
        _LOGGER.warning("No OTLP endpoint for %s; alert and HTTP spans are not exported", settings.app_name)
    else:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return trace.get_tracer_provider()


def _instrument_telegram_client(provider: APITracerProvider) -> None:
    global _HTTPX_INSTRUMENTED
    if _HTTPX_INSTRUMENTED:
        return
    HTTPXClientInstrumentor().instrument(
        tracer_provider=provider,
        request_hook=_redact_request_url,
        async_request_hook=_async_redact_request_url,
    )
    _HTTPX_INSTRUMENTED = True


async def _async_redact_request_url(span: Span, request) -> None:
    _redact_request_url(span, request)


def configure_tracing(app: FastAPI, settings: ServiceSettings) -> None:
    """Install the tracer provider and instrument the API and the Telegram HTTP client.

    Safe to call repeatedly: the provider is installed once per process and
    each app is instrumented once.
    """

    if not settings.enable_tracing:
        return

    provider = _install_provider(settings)
    if id(app) not in _INSTRUMENTED_APPS:
        FastAPIInstrumentor().instrument_app(app, tracer_provider=provider)
        _INSTRUMENTED_APPS.add(id(app))
    _instrument_telegram_client(provider)


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer bound to whichever provider is currently installed."""

    return trace.get_tracer(name)
