import json

import httpx
import pytest
from prometheus_client import REGISTRY

from services.inventory_service.app.telegram import (
    ChannelError,
    ChannelNetworkError,
    ChannelRemoteError,
    ChannelTimeoutError,
    TelegramClient,
    describe_channel_error,
)


class _MetricTracker:
    def __init__(self, name: str, labels: dict[str, str] | None = None) -> None:
        self.name = name
        self.labels = labels or {}
        baseline = REGISTRY.get_sample_value(name, self.labels)
        self._baseline = baseline if baseline is not None else 0.0

    def delta(self) -> float:
        current = REGISTRY.get_sample_value(self.name, self.labels)
        value = current if current is not None else 0.0
        return value - self._baseline


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _client(handler, sleep: _RecordingSleep, **kwargs) -> TelegramClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelegramClient(http_client, base_url="https://telegram.test", sleep=sleep, **kwargs)


@pytest.mark.asyncio
async def test_send_message_posts_expected_payload() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True})

    sleep = _RecordingSleep()
    successes = _MetricTracker("telegram_send_attempts_total", {"outcome": "success"})
    client = _client(handler, sleep)
    try:
        await client.send_message(bot_token="123:abc", chat_id="-100", text="hello")
    finally:
        await client.close()

    assert len(requests) == 1
    assert str(requests[0].url) == "https://telegram.test/bot123:abc/sendMessage"
    assert json.loads(requests[0].content) == {
        "chat_id": "-100",
        "text": "hello",
        "disable_notification": False,
        "disable_web_page_preview": True,
    }
    assert sleep.delays == []
    assert successes.delta() == 1


@pytest.mark.asyncio
async def test_transient_failures_retry_with_exponential_backoff() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"ok": True})

    sleep = _RecordingSleep()
    client = _client(handler, sleep)
    try:
        await client.send_message(bot_token="t", chat_id="1", text="retry me")
    finally:
        await client.close()

    assert attempts == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_timeouts_exhaust_attempts_without_trailing_sleep() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        raise httpx.ReadTimeout("timed out", request=request)

    sleep = _RecordingSleep()
    client = _client(handler, sleep)
    try:
        with pytest.raises(ChannelTimeoutError):
            await client.send_message(bot_token="t", chat_id="1", text="slow")
    finally:
        await client.close()

    assert attempts == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_network_errors_surface_as_network_error_after_ceiling() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadError("connection reset", request=request)

    sleep = _RecordingSleep()
    client = _client(handler, sleep, max_attempts=2, backoff_base=0.25)
    try:
        with pytest.raises(ChannelNetworkError) as excinfo:
            await client.send_message(bot_token="t", chat_id="1", text="reset")
    finally:
        await client.close()

    assert isinstance(excinfo.value, ChannelError)
    assert sleep.delays == [0.25]


@pytest.mark.asyncio
async def test_remote_rejection_is_not_retried() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})

    sleep = _RecordingSleep()
    rejected = _MetricTracker("telegram_send_attempts_total", {"outcome": "rejected"})
    client = _client(handler, sleep)
    try:
        with pytest.raises(ChannelRemoteError) as excinfo:
            await client.send_message(bot_token="t", chat_id="404", text="nobody")
    finally:
        await client.close()

    assert attempts == 1
    assert sleep.delays == []
    assert excinfo.value.status_code == 400
    assert "chat not found" in excinfo.value.body
    assert rejected.delta() == 1


def test_backoff_delay_doubles_per_attempt() -> None:
    client = TelegramClient(httpx.AsyncClient(), backoff_base=0.5)

    assert [client.backoff_delay(attempt) for attempt in (1, 2, 3, 4)] == [0.5, 1.0, 2.0, 4.0]


def _network_error(message: str) -> ChannelNetworkError:
    error = ChannelNetworkError(f"Telegram API unreachable: {message}")
    error.__cause__ = httpx.ConnectError(message)
    return error


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ChannelTimeoutError("Telegram request timed out"), "Telegram did not answer in time"),
        (_network_error("[Errno -2] Name or service not known"), "Cannot resolve the Telegram API host"),
        (_network_error("[Errno -3] Temporary failure in name resolution"), "Cannot resolve the Telegram API host"),
        (_network_error("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed"), "TLS handshake"),
        (_network_error("[Errno 111] Connection refused"), "Telegram API is unreachable"),
        (
            ChannelRemoteError(400, json.dumps({"ok": False, "description": "Bad Request: chat not found"})),
            "Telegram rejected the message (HTTP 400): Bad Request: chat not found",
        ),
        (
            ChannelRemoteError(502, "<html>Bad Gateway</html>"),
            "Telegram rejected the message (HTTP 502): <html>Bad Gateway</html>",
        ),
        (RuntimeError("boom"), "Telegram delivery failed: boom"),
    ],
)
def test_describe_channel_error_gives_operator_hint(error: Exception, expected: str) -> None:
    assert describe_channel_error(error).startswith(expected)


@pytest.mark.asyncio
async def test_unreachable_host_is_described_from_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

    client = _client(handler, _RecordingSleep(), max_attempts=1)
    try:
        with pytest.raises(ChannelNetworkError) as raised:
            await client.send_message(bot_token="123:abc", chat_id="-100", text="hello")
    finally:
        await client.close()

    assert describe_channel_error(raised.value) == "Cannot resolve the Telegram API host; check DNS settings"
