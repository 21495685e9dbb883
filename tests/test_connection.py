from __future__ import annotations

import pytest
from websockets.exceptions import ConnectionClosedError, InvalidURI

from conftest import FakeConnector, fragment, wait_until
from skillchat.core.config import ServiceEndpoints
from skillchat.transport.base import ChatConnectionError, TransportError
from skillchat.transport.connection import Connection


@pytest.mark.anyio
async def test_open_resolves_on_handshake_and_encodes_token(connector):
    connector.socket.push({"sessionId": "s1"})
    conn = Connection(
        ServiceEndpoints.for_domain("chat.test"), "a b/c&d", connector=connector
    )

    session_id = await conn.open()

    assert session_id == "s1"
    assert conn.session_id == "s1"
    assert conn.is_open
    assert connector.urls == ["wss://ws.chat.test/?stream=1&token=a%20b%2Fc%26d"]
    await conn.close()


@pytest.mark.anyio
async def test_open_ignores_fragments_before_handshake(endpoints, connector):
    connector.socket.push(fragment(0, "early", "r0"))
    connector.socket.push({"hello": "world"})
    connector.socket.push({"sessionId": "s2"})
    conn = Connection(endpoints, "tok", connector=connector)

    assert await conn.open() == "s2"
    await conn.close()


@pytest.mark.anyio
async def test_open_does_not_resolve_without_handshake(endpoints, connector):
    connector.socket.push(fragment(0, "only a fragment", "r0"))
    conn = Connection(endpoints, "tok", connector=connector, handshake_timeout_sec=0.2)

    with pytest.raises(ChatConnectionError) as exc_info:
        await conn.open()

    assert exc_info.value.code == "HANDSHAKE_TIMEOUT"
    assert connector.socket.closed
    assert conn.session_id is None


@pytest.mark.anyio
async def test_socket_closed_before_handshake_fails_open(endpoints, connector):
    connector.socket.drop(ConnectionClosedError(None, None))
    conn = Connection(endpoints, "tok", connector=connector)

    with pytest.raises(ChatConnectionError) as exc_info:
        await conn.open()

    assert exc_info.value.code == "STREAM_CLOSED"


@pytest.mark.anyio
async def test_transport_failure_on_connect_raises_connection_error(endpoints):
    async def refuse(url: str):
        raise ConnectionRefusedError("refused")

    conn = Connection(endpoints, "tok", connector=refuse)

    with pytest.raises(ChatConnectionError) as exc_info:
        await conn.open()

    assert exc_info.value.code == "STREAM_CONNECT_FAILED"
    assert "tok" not in exc_info.value.message


@pytest.mark.anyio
async def test_connect_failure_message_does_not_leak_the_token(endpoints):
    async def reject(url: str):
        raise InvalidURI(url, "bad scheme")

    conn = Connection(endpoints, "very-secret-token", connector=reject)

    with pytest.raises(ChatConnectionError) as exc_info:
        await conn.open()

    assert "very-secret-token" not in exc_info.value.message
    assert "token=***" in exc_info.value.message


@pytest.mark.anyio
async def test_fragments_reach_only_their_listener(connection, connector):
    seen: dict[str, list[str]] = {"a": [], "b": []}
    connection.register("a", lambda frag: seen["a"].append(frag.delta))
    connection.register("b", lambda frag: seen["b"].append(frag.delta))

    connector.socket.push(fragment(0, "a0", "a"))
    connector.socket.push(fragment(0, "b0", "b"))
    connector.socket.push(fragment(1, "a1", "a"))
    connector.socket.push(fragment(0, "x0", "unknown"))
    await wait_until(lambda: len(seen["a"]) == 2 and len(seen["b"]) == 1)

    assert seen == {"a": ["a0", "a1"], "b": ["b0"]}


@pytest.mark.anyio
async def test_reader_survives_malformed_messages_and_failing_listeners(connection, connector):
    received: list[str] = []

    def explode(frag):
        raise RuntimeError("listener bug")

    connection.register("bad", explode)
    connection.register("good", lambda frag: received.append(frag.delta))

    connector.socket.push("not json")
    connector.socket.push("[1, 2, 3]")
    connector.socket.push({"index": "zero", "delta": 5})
    connector.socket.push(fragment(0, "boom", "bad"))
    connector.socket.push(fragment(0, "ok", "good"))
    await wait_until(lambda: received == ["ok"])

    assert connection.is_open


@pytest.mark.anyio
async def test_repeated_handshake_is_ignored(connection, connector):
    received: list[str] = []
    connection.register("r1", lambda frag: received.append(frag.delta))

    connector.socket.push({"sessionId": "other"})
    connector.socket.push(fragment(0, "still here", "r1"))
    await wait_until(lambda: received == ["still here"])

    assert connection.session_id == "s1"


@pytest.mark.anyio
async def test_disconnect_after_handshake_is_reported(endpoints):
    connector = FakeConnector()
    connector.socket.push({"sessionId": "s1"})
    reported = []
    conn = Connection(endpoints, "tok", connector=connector, on_disconnect=reported.append)
    await conn.open()

    connector.socket.drop(ConnectionClosedError(None, None))
    await wait_until(lambda: bool(reported))

    assert isinstance(conn.error, TransportError)
    assert reported == [conn.error]
    assert not conn.is_open
    await conn.close()


@pytest.mark.anyio
async def test_close_by_caller_is_not_reported(endpoints):
    connector = FakeConnector()
    connector.socket.push({"sessionId": "s1"})
    reported = []
    conn = Connection(endpoints, "tok", connector=connector, on_disconnect=reported.append)
    await conn.open()

    await conn.close()
    await conn.close()

    assert connector.socket.closed
    assert reported == []
    assert conn.error is None


def test_late_fragment_after_unregister_is_dropped(endpoints):
    conn = Connection(endpoints, "tok")
    received = []
    unregister = conn.register("r1", received.append)

    conn.handle_message(fragment(0, "live", "r1"))
    unregister()
    unregister()
    conn.handle_message(fragment(1, "late", "r1"))

    assert [frag.delta for frag in received] == ["live"]
    assert "r1" not in conn.registry


def test_handle_message_accepts_bytes(endpoints):
    conn = Connection(endpoints, "tok")
    received = []
    conn.register("r1", received.append)

    conn.handle_message(fragment(3, "bytes", "r1").encode("utf-8"))

    assert received[0].index == 3
    assert received[0].request_id == "r1"
