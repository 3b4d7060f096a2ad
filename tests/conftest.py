"""
Pytest Configuration and Fixtures

Shared fixtures and in-memory fakes for the client socket and the upstream
connection.
"""

import asyncio
from typing import Any

import pytest
from fastapi.websockets import WebSocketState

from noirrelay.config import Settings
from noirrelay.relay import UpstreamConfigError

_CLOSED = object()


# ══════════════════════════════════════════════════════════════
# Fakes
# ══════════════════════════════════════════════════════════════


class FakeClientWebSocket:
    """Stands in for a Starlette WebSocket on the client side of a session."""

    def __init__(self) -> None:
        self._incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[tuple[str, Any]] = []
        self.closed_with: tuple[int, str] | None = None
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    def push(self, frame: str | bytes) -> None:
        key = "bytes" if isinstance(frame, bytes) else "text"
        self._incoming.put_nowait({"type": "websocket.receive", key: frame})

    def disconnect(self, code: int = 1000) -> None:
        self._incoming.put_nowait({"type": "websocket.disconnect", "code": code})

    async def receive(self) -> dict[str, Any]:
        message = await self._incoming.get()
        if message["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return message

    async def send_text(self, data: str) -> None:
        self.sent.append(("text", data))

    async def send_bytes(self, data: bytes) -> None:
        self.sent.append(("bytes", data))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_with = (code, reason or "")
        self.application_state = WebSocketState.DISCONNECTED


class FakeUpstream:
    """In-memory upstream connection with the websockets client interface."""

    def __init__(self, echo: bool = False) -> None:
        self.sent: list[str | bytes] = []
        self.closed = False
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self._incoming: asyncio.Queue = asyncio.Queue()
        self._echo = echo

    def feed(self, frame: str | bytes) -> None:
        self._incoming.put_nowait(frame)

    def finish(self, code: int = 1000, reason: str = "") -> None:
        self.close_code = code
        self.close_reason = reason
        self._incoming.put_nowait(_CLOSED)

    def fail(self, error: Exception) -> None:
        self._incoming.put_nowait(error)

    async def send(self, frame: str | bytes) -> None:
        # Yield so client frames can arrive mid-flush
        await asyncio.sleep(0)
        self.sent.append(frame)
        if self._echo:
            self.feed(frame)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSED)

    def __aiter__(self) -> "FakeUpstream":
        return self

    async def __anext__(self) -> str | bytes:
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeConnector:
    """Upstream connector whose handshake completes when ``ready`` is set."""

    def __init__(
        self,
        upstream: FakeUpstream | None = None,
        api_key: str | None = "test-key",
        ready: bool = False,
    ) -> None:
        self.upstream = upstream or FakeUpstream()
        self.api_key = api_key
        self.ready = asyncio.Event()
        if ready:
            self.ready.set()
        self.error: Exception | None = None
        self.build_calls = 0
        self.open_calls = 0

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_url(self) -> str:
        self.build_calls += 1
        if not self.api_key:
            raise UpstreamConfigError("GEMINI_API_KEY is not configured")
        return f"wss://upstream.test/live?key={self.api_key}"

    async def open(self, url: str) -> FakeUpstream:
        self.open_calls += 1
        await self.ready.wait()
        if self.error is not None:
            raise self.error
        return self.upstream


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ══════════════════════════════════════════════════════════════
# Settings Fixtures
# ══════════════════════════════════════════════════════════════


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with a shared secret and an upstream key."""
    return Settings(
        _env_file=None,
        app_env="development",
        debug=True,
        app_password="case221",
        gemini_api_key="test-key",
        upstream_url="wss://upstream.test/live",
        static_dir=str(tmp_path / "no-static"),
    )


@pytest.fixture
def open_settings(test_settings) -> Settings:
    """Settings without a shared secret (open mode)."""
    return test_settings.model_copy(update={"app_password": None})


# ══════════════════════════════════════════════════════════════
# Fake Fixtures
# ══════════════════════════════════════════════════════════════


@pytest.fixture
def client_ws() -> FakeClientWebSocket:
    return FakeClientWebSocket()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def make_connector():
    """Factory for connectors with a custom upstream, key or readiness."""
    return FakeConnector


@pytest.fixture
def make_upstream():
    """Factory for fake upstream connections."""
    return FakeUpstream


@pytest.fixture
def settle_tasks():
    """Coroutine function that lets pending tasks run."""
    return settle
