from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable

import pytest

from skillchat.core.config import ServiceEndpoints, Settings
from skillchat.transport.connection import Connection

_CLOSE = object()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        token="tok-test",
        domain="chat.test",
        skill_id=None,
        partner_id=None,
        local=False,
        handshake_timeout_sec=2,
    )


@pytest.fixture
def endpoints() -> ServiceEndpoints:
    return ServiceEndpoints.for_domain("chat.test")


class FakeSocket:
    """In-memory stand-in for a client WebSocket."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def push(self, payload: Any) -> None:
        self._queue.put_nowait(payload if isinstance(payload, (str, bytes)) else json.dumps(payload))

    def drop(self, error: BaseException | None = None) -> None:
        self._queue.put_nowait(error if error is not None else _CLOSE)

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(_CLOSE)


class FakeConnector:
    """Connector returning a prepared FakeSocket and recording the URL."""

    def __init__(self, socket: FakeSocket | None = None) -> None:
        self.socket = socket or FakeSocket()
        self.urls: list[str] = []

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        return self.socket


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
async def connection(endpoints, connector):
    connector.socket.push({"sessionId": "s1"})
    conn = Connection(endpoints, "tok-test", connector=connector, handshake_timeout_sec=2)
    await conn.open()
    yield conn
    await conn.close()


def fragment(index: int, delta: str, request_id: str) -> str:
    return json.dumps({"index": index, "delta": delta, "requestId": request_id})


async def wait_until(predicate: Callable[[], bool], timeout: float = 2) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("Timed out waiting for condition")
