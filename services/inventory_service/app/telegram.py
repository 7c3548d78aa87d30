"""Telegram Bot API adapter with bounded retries for transient failures."""

from __future__ import annotations

import asyncio
import json
import logging
from time import perf_counter
from typing import Awaitable, Callable, Protocol

import httpx

from .metrics import TELEGRAM_SEND_ATTEMPTS_TOTAL, TELEGRAM_SEND_LATENCY_SECONDS

_LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_SECONDS = 0.5

# Connection refused/reset, DNS failures and unreachable hosts all surface as
# httpx.NetworkError subclasses (ConnectError, ReadError, ...).
_TRANSIENT_ERRORS: tuple[type[httpx.HTTPError], ...] = (httpx.TimeoutException, httpx.NetworkError)
_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "eai_again",
    "temporary failure in name resolution",
)
_TLS_MARKERS = ("certificate", "ssl")


class ChannelError(Exception):
    """Base class for channel delivery failures."""


class ChannelNetworkError(ChannelError):
    """The remote endpoint could not be reached."""


class ChannelTimeoutError(ChannelError):
    """The remote endpoint did not answer within the timeout."""


class ChannelRemoteError(ChannelError):
    """The remote endpoint answered with a non-success status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Telegram API responded with {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class ChannelClient(Protocol):
    async def send_message(self, *, bot_token: str, chat_id: str, text: str) -> None: ...


class TelegramClient:
    """Delivers a single message to one chat, retrying transient failures."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str = DEFAULT_BASE_URL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._max_attempts = max(max_attempts, 1)
        self._backoff_base = max(backoff_base, 0.0)
        self._sleep = sleep

    async def close(self) -> None:
        await self._client.aclose()

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given 1-based failed attempt."""

        return self._backoff_base * 2 ** (attempt - 1)

    async def send_message(self, *, bot_token: str, chat_id: str, text: str) -> None:
        url = f"{self._base_url}/bot{bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "disable_notification": False,
            "disable_web_page_preview": True,
        }
        started = perf_counter()
        try:
            await self._send_with_retry(url, payload, chat_id)
        finally:
            TELEGRAM_SEND_LATENCY_SECONDS.observe(perf_counter() - started)

    async def _send_with_retry(self, url: str, payload: dict[str, object], chat_id: str) -> None:
        attempt = 1
        while True:
            try:
                response = await self._client.post(url, json=payload)
            except _TRANSIENT_ERRORS as exc:
                TELEGRAM_SEND_ATTEMPTS_TOTAL.labels(outcome="transient_error").inc()
                if attempt >= self._max_attempts:
                    _LOGGER.error(
                        "Telegram send to chat %s failed after %s attempts: %s", chat_id, attempt, exc
                    )
                    raise self._wrap_transient(exc) from exc
                delay = self.backoff_delay(attempt)
                _LOGGER.warning(
                    "Telegram send to chat %s failed (attempt %s/%s), retrying in %.2fs: %s",
                    chat_id,
                    attempt,
                    self._max_attempts,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                attempt += 1
                continue
            except httpx.HTTPError as exc:
                TELEGRAM_SEND_ATTEMPTS_TOTAL.labels(outcome="error").inc()
                raise ChannelNetworkError(f"Telegram request failed: {exc}") from exc

            if response.is_success:
                TELEGRAM_SEND_ATTEMPTS_TOTAL.labels(outcome="success").inc()
                return

            TELEGRAM_SEND_ATTEMPTS_TOTAL.labels(outcome="rejected").inc()
            raise ChannelRemoteError(response.status_code, response.text)

    @staticmethod
    def _wrap_transient(exc: httpx.HTTPError) -> ChannelError:
        if isinstance(exc, httpx.TimeoutException):
            return ChannelTimeoutError(f"Telegram request timed out: {exc}")
        return ChannelNetworkError(f"Telegram API unreachable: {exc}")


def describe_channel_error(exc: Exception) -> str:
    """Operator-facing summary of a delivery failure."""

    if isinstance(exc, ChannelTimeoutError):
        return "Telegram did not answer in time; check the network path to api.telegram.org"
    if isinstance(exc, ChannelNetworkError):
        detail = str(exc.__cause__ or exc).lower()
        if any(marker in detail for marker in _DNS_MARKERS):
            return "Cannot resolve the Telegram API host; check DNS settings"
        if any(marker in detail for marker in _TLS_MARKERS):
            return "TLS handshake with the Telegram API failed; check the certificate store"
        return "Telegram API is unreachable; check the network or proxy settings"
    if isinstance(exc, ChannelRemoteError):
        return f"Telegram rejected the message (HTTP {exc.status_code}): {_remote_description(exc.body)}"
    return f"Telegram delivery failed: {exc}"


def _remote_description(body: str) -> str:
    try:
        payload = json.loads(body)
    except ValueError:
        return body
    if isinstance(payload, dict) and payload.get("description"):
        return str(payload["description"])
    return body


def build_http_client(timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout_seconds)
