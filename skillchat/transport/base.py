from __future__ import annotations

from typing import Any

import httpx

from skillchat.core.security import redact_secrets

MAX_ERROR_DETAIL_CHARS = 300


class ChatError(RuntimeError):
    """Base error raised by the chat client."""

    def __init__(
        self,
        code: str,
        message: str,
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable
        self.status_code = status_code


class ChatConnectionError(ChatError):
    """Raised when the streaming socket cannot produce a usable session."""


class TransportError(ChatError):
    """Raised on a network failure after the session was established."""


class ProtocolError(ChatError):
    """Raised when the service answers with an unexpected payload or status."""


class CorrelationCollisionError(ChatError):
    """Raised when a request id already has a different listener."""


def build_status_error(response: httpx.Response) -> ProtocolError:
    """Build a normalized error from a non-success HTTP response."""

    status = response.status_code
    message = _extract_response_message(response)
    formatted = f"Chat service returned {status}: {message}"
    if status in {401, 403}:
        return ProtocolError("CHAT_UNAUTHORIZED", formatted, status_code=status)
    if status in {408, 429}:
        code = "CHAT_TIMEOUT" if status == 408 else "CHAT_RATE_LIMIT"
        return ProtocolError(code, formatted, retryable=True, status_code=status)
    if status >= 500:
        return ProtocolError("CHAT_UPSTREAM", formatted, retryable=True, status_code=status)
    return ProtocolError("CHAT_BAD_STATUS", formatted, status_code=status)


def _extract_response_message(response: httpx.Response) -> str:
    """Summarize an error body as one short line with credentials masked.

    Gateways in front of the chat service answer with HTML pages or echo the
    request back, so the body is flattened and redacted before it reaches an
    exception message.
    """

    detail = _json_error_detail(response) or response.text
    summary = " ".join(redact_secrets(detail or "").split())
    if not summary:
        return "Unknown error from chat service."
    if len(summary) > MAX_ERROR_DETAIL_CHARS:
        summary = summary[: MAX_ERROR_DETAIL_CHARS - 3] + "..."
    return summary


def _json_error_detail(response: httpx.Response) -> str | None:
    try:
        payload: Any = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        error = error.get("message") or error.get("code")
    for detail in (error, payload.get("message"), payload.get("detail")):
        if isinstance(detail, str) and detail.strip():
            return detail
    return None
