from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from skillchat.transport.base import ProtocolError, TransportError, build_status_error

logger = logging.getLogger(__name__)


class ChatHTTPClient:
    """POST chat turns to the service and decode the JSON answer."""

    def __init__(
        self, timeout_sec: float = 90, http_client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self._timeout = timeout_sec
        self._client = http_client

    async def post_json(self, url: str, token: str, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        response = await self._request("POST", url, headers=headers, json=payload)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProtocolError("CHAT_PARSE_ERROR", "Invalid JSON from chat service.") from exc
        if not isinstance(data, dict):
            raise ProtocolError("CHAT_PARSE_ERROR", "Chat service returned invalid JSON payload.")
        return data

    async def _request(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        logger.debug("%s %s", method, url)
        try:
            if self._client:
                response = await self._client.request(
                    method, url, headers=headers, json=json, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.request(method, url, headers=headers, json=json)
        except httpx.TimeoutException as exc:
            raise TransportError(
                "CHAT_TIMEOUT", "Chat request timed out.", retryable=True
            ) from exc
        except httpx.RequestError as exc:
            raise TransportError(
                "CHAT_CONNECTION_ERROR",
                "Chat service connection failed.",
                retryable=True,
            ) from exc
        if not response.is_success:
            raise build_status_error(response)
        return response
