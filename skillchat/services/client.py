from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import httpx

from skillchat.core.config import ServiceEndpoints, Settings, get_settings, resolve_endpoints
from skillchat.schemas.chat import ChatOptions
from skillchat.services.session import ChatSession, new_request_id
from skillchat.transport.base import ChatConnectionError
from skillchat.transport.connection import Connection, Connector, DisconnectCallback
from skillchat.transport.http import ChatHTTPClient

logger = logging.getLogger(__name__)


class ChatClient:
    """Entry point: one streaming connection shared by any number of chats."""

    def __init__(
        self,
        domain: Optional[str] = None,
        token: Optional[str] = None,
        *,
        endpoints: Optional[ServiceEndpoints] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        connector: Optional[Connector] = None,
        on_disconnect: Optional[DisconnectCallback] = None,
        settings: Optional[Settings] = None,
        id_factory: Callable[[], str] = new_request_id,
    ) -> None:
        self._settings = settings or get_settings()
        token = token or self._settings.token
        if not token:
            raise ChatConnectionError("TOKEN_REQUIRED", "An auth token is required.")
        if endpoints is None:
            if domain:
                endpoints = ServiceEndpoints.for_domain(
                    domain,
                    api_subdomain=self._settings.api_subdomain,
                    ws_subdomain=self._settings.ws_subdomain,
                )
            else:
                endpoints = resolve_endpoints(self._settings)
        self.token = token
        self.endpoints = endpoints
        self._id_factory = id_factory
        self._http = ChatHTTPClient(self._settings.http_timeout_sec, http_client)
        self.connection = Connection(
            endpoints,
            token,
            connector=connector,
            handshake_timeout_sec=self._settings.handshake_timeout_sec,
            on_disconnect=on_disconnect,
        )

    @property
    def session_id(self) -> Optional[str]:
        return self.connection.session_id

    async def connect(self) -> str:
        """Open the stream and return the service session id."""

        return await self.connection.open()

    def new_chat(self, options: Optional[ChatOptions] = None, **overrides: Any) -> ChatSession:
        """Start a chat thread.

        Keyword overrides use option field names, e.g.
        ``new_chat(skill_id="abc", on_response=render)``. A skill id or
        partner id configured in settings is used when none is given.
        """

        base = options or ChatOptions()
        defaults = {}
        if base.skill_id is None and self._settings.skill_id:
            defaults["skill_id"] = self._settings.skill_id
        if base.partner_id is None and self._settings.partner_id:
            defaults["partner_id"] = self._settings.partner_id
        merged = ChatOptions.model_validate(
            {
                **base.model_dump(exclude_none=True),
                "on_response": base.on_response,
                **defaults,
                **overrides,
            }
        )
        return ChatSession(
            self.connection,
            self._http,
            self.endpoints,
            self.token,
            options=merged,
            id_factory=self._id_factory,
        )

    async def close(self) -> None:
        await self.connection.close()

    async def __aenter__(self) -> ChatClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
