from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import websockets
from pydantic import ValidationError
from websockets.exceptions import WebSocketException

from skillchat.core.config import ServiceEndpoints
from skillchat.core.security import redact_secrets
from skillchat.schemas.chat import Fragment
from skillchat.transport.base import ChatConnectionError, ChatError, TransportError
from skillchat.transport.registry import CorrelationRegistry, FragmentListener

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]
DisconnectCallback = Callable[[ChatError], None]


async def connect_websocket(url: str) -> Any:
    """Open the streaming socket with keepalive pings."""

    return await websockets.connect(url, ping_interval=30, ping_timeout=10)


class Connection:
    """Own the streaming socket and route fragments to request listeners.

    The socket is opened once per client. The first message carrying a
    ``sessionId`` completes the handshake; every other message is treated as a
    fragment and handed to the listener registered for its ``requestId``.
    Fragments nobody listens for are dropped.

    Losing the socket after the handshake is reported through ``error`` and
    ``on_disconnect`` only. Reconnecting is left to the caller.
    """

    def __init__(
        self,
        endpoints: ServiceEndpoints,
        token: str,
        *,
        connector: Optional[Connector] = None,
        handshake_timeout_sec: float = 30,
        on_disconnect: Optional[DisconnectCallback] = None,
        registry: Optional[CorrelationRegistry] = None,
    ) -> None:
        self._endpoints = endpoints
        self._token = token
        self._connector = connector or connect_websocket
        self._handshake_timeout = handshake_timeout_sec
        self._on_disconnect = on_disconnect
        self._registry = registry or CorrelationRegistry()
        self._ws: Any = None
        self._reader: Optional[asyncio.Task] = None
        self._handshake: Optional[asyncio.Future[str]] = None
        self._closing = False
        self.session_id: Optional[str] = None
        self.error: Optional[ChatError] = None

    @property
    def registry(self) -> CorrelationRegistry:
        return self._registry

    @property
    def is_open(self) -> bool:
        return (
            self.session_id is not None
            and self._reader is not None
            and not self._reader.done()
        )

    async def open(self) -> str:
        """Connect and wait for the handshake; return the session id."""

        if self.is_open:
            return self.session_id  # type: ignore[return-value]

        self._closing = False
        self.error = None
        self.session_id = None
        url = self._endpoints.stream_url(self._token)
        logger.info("Connecting to %s", self._endpoints.stream_base)
        try:
            self._ws = await self._connector(url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise ChatConnectionError(
                "STREAM_CONNECT_FAILED",
                f"Could not connect to {self._endpoints.stream_base}: {redact_secrets(str(exc))}",
                retryable=True,
            ) from exc

        self._handshake = asyncio.get_running_loop().create_future()
        self._reader = asyncio.create_task(self._read_loop(self._ws))
        try:
            session_id = await asyncio.wait_for(self._handshake, self._handshake_timeout)
        except asyncio.TimeoutError as exc:
            await self.close()
            raise ChatConnectionError(
                "HANDSHAKE_TIMEOUT",
                "Stream did not send a session id in time.",
                retryable=True,
            ) from exc
        except ChatConnectionError:
            await self.close()
            raise
        logger.info("Stream session %s established", session_id)
        return session_id

    def register(self, request_id: str, on_fragment: FragmentListener) -> Callable[[], None]:
        """Route fragments for ``request_id`` to ``on_fragment`` until deregistered."""

        return self._registry.register(request_id, on_fragment)

    def handle_message(self, raw: Union[str, bytes]) -> None:
        """Dispatch one inbound socket message."""

        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Dropping stream message that is not JSON")
            return
        if not isinstance(payload, dict):
            logger.warning("Dropping stream message that is not an object")
            return

        session_id = payload.get("sessionId")
        if session_id:
            self._accept_handshake(str(session_id))
            return

        try:
            fragment = Fragment.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Dropping malformed fragment: %s", exc.errors(include_url=False))
            return

        listener = self._registry.get(fragment.request_id)
        if listener is None:
            logger.debug(
                "Dropping fragment %s for unknown request %s", fragment.index, fragment.request_id
            )
            return
        try:
            listener(fragment)
        except Exception:  # noqa: BLE001
            logger.exception("Fragment listener for request %s failed", fragment.request_id)

    async def close(self) -> None:
        """Stop reading and close the socket."""

        self._closing = True
        handshake, reader, ws = self._handshake, self._reader, self._ws
        self._reader = None
        self._ws = None
        if handshake is not None and not handshake.done():
            handshake.set_exception(
                ChatConnectionError("STREAM_CLOSED", "Connection closed before handshake.")
            )
        if reader is not None and not reader.done():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        if ws is not None:
            await ws.close()

    async def _read_loop(self, ws: Any) -> None:
        error: Optional[BaseException] = None
        try:
            async for raw in ws:
                self.handle_message(raw)
        except (OSError, WebSocketException) as exc:
            error = exc
        self._socket_closed(error)

    def _accept_handshake(self, session_id: str) -> None:
        if self._handshake is None or self._handshake.done():
            logger.debug("Ignoring repeated handshake for session %s", session_id)
            return
        self.session_id = session_id
        self._handshake.set_result(session_id)

    def _socket_closed(self, error: Optional[BaseException]) -> None:
        if self._handshake is not None and not self._handshake.done():
            detail = f": {error}" if error else ""
            self._handshake.set_exception(
                ChatConnectionError(
                    "STREAM_CLOSED",
                    f"Stream closed before handshake{detail}",
                    retryable=True,
                )
            )
            return
        if self._closing:
            return
        detail = f": {error}" if error else " by the service"
        self.error = TransportError("STREAM_CLOSED", f"Stream connection lost{detail}", retryable=True)
        logger.warning("%s", self.error.message)
        if self._on_disconnect:
            self._on_disconnect(self.error)
