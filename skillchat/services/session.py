from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from skillchat.core.config import ServiceEndpoints
from skillchat.schemas.chat import ChatOptions, Fragment, Turn
from skillchat.transport.base import ChatConnectionError, ProtocolError
from skillchat.transport.connection import Connection
from skillchat.transport.http import ChatHTTPClient

logger = logging.getLogger(__name__)


def new_request_id() -> str:
    """Return a random request id.

    Uniqueness only has to hold for the lifetime of one connection; the id is
    not a secret and is not generated for cryptographic use.
    """

    return uuid.uuid4().hex


class ChatSession:
    """One chat thread and its transcript.

    Each ``send`` posts the whole transcript over HTTP while the answer is
    streamed back as fragments over the shared connection. Fragments grow a
    placeholder assistant turn; the HTTP answer then replaces it with the
    authoritative message.

    Calls to ``send`` on the same session are serialized: a second call waits
    until the first turn is reconciled or failed.
    """

    def __init__(
        self,
        connection: Connection,
        http: ChatHTTPClient,
        endpoints: ServiceEndpoints,
        token: str,
        options: Optional[ChatOptions] = None,
        id_factory: Callable[[], str] = new_request_id,
    ) -> None:
        self._connection = connection
        self._http = http
        self._endpoints = endpoints
        self._token = token
        self._id_factory = id_factory
        self._send_lock = asyncio.Lock()
        self.options = options or ChatOptions()
        self.messages: List[Turn] = []

    @property
    def pending(self) -> bool:
        """True while a turn is awaiting its HTTP answer."""

        return self._send_lock.locked()

    async def send(self, text: str) -> Turn:
        """Send a user turn and return the finalized assistant turn.

        Raises ``ProtocolError`` for a bad status or body and
        ``TransportError`` for network failures, and ``ChatConnectionError``
        when the connection has no session id yet. On error the placeholder
        turn is left in ``messages`` as is.
        """

        async with self._send_lock:
            return await self._send(text)

    async def _send(self, text: str) -> Turn:
        if self._connection.session_id is None:
            raise ChatConnectionError(
                "STREAM_NOT_CONNECTED", "Connect before sending; no stream session id yet."
            )
        request_id = self._id_factory()
        placeholder = Turn(role="assistant", content="", request_id=request_id)
        fragment_count = 0

        def on_fragment(fragment: Fragment) -> None:
            nonlocal fragment_count
            placeholder.content += fragment.delta
            fragment_count += 1
            self._notify(placeholder.model_copy(deep=True), fragment)

        unregister = self._connection.register(request_id, on_fragment)
        try:
            self.messages.append(Turn(role="user", content=text))
            self.messages.append(placeholder)
            payload = self._build_payload(request_id)
            url = self._endpoints.chat_url(self.options.skill_id)
            data = await self._http.post_json(url, self._token, payload)
        finally:
            unregister()

        final = self._parse_message(data)
        final.request_id = None
        logger.debug(
            "Request %s answered after %s streamed fragments", request_id, fragment_count
        )
        if fragment_count == 0:
            synthesized = Fragment(index=0, delta=final.content, request_id=request_id)
            self._notify(final.model_copy(deep=True), synthesized)

        placeholder.role = final.role
        placeholder.content = final.content
        placeholder.sources = final.sources
        placeholder.request_id = None
        self._notify(placeholder.model_copy(deep=True), None)
        return final

    def _build_payload(self, request_id: str) -> dict[str, Any]:
        payload = self.options.to_wire()
        payload.update(
            {
                "requestId": request_id,
                "sessionId": self._connection.session_id,
                "messages": [turn.to_wire() for turn in self.messages],
            }
        )
        return payload

    @staticmethod
    def _parse_message(data: dict[str, Any]) -> Turn:
        message = data.get("message")
        if not isinstance(message, dict):
            raise ProtocolError("CHAT_PARSE_ERROR", "Chat response has no message.")
        try:
            return Turn.model_validate(message)
        except ValidationError as exc:
            raise ProtocolError("CHAT_PARSE_ERROR", f"Malformed chat message: {exc}") from exc

    def _notify(self, turn: Turn, fragment: Optional[Fragment]) -> None:
        if self.options.on_response:
            self.options.on_response(turn, fragment)
