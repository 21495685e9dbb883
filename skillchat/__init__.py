"""Streaming chat client for skill-based assistants."""

from skillchat.core.config import ServiceEndpoints, Settings
from skillchat.schemas.chat import ChatOptions, Fragment, Source, Turn
from skillchat.services.client import ChatClient
from skillchat.services.session import ChatSession
from skillchat.transport.base import (
    ChatConnectionError,
    ChatError,
    CorrelationCollisionError,
    ProtocolError,
    TransportError,
)
from skillchat.transport.connection import Connection

__version__ = "0.1.0"

__all__ = [
    "ChatClient",
    "ChatConnectionError",
    "ChatError",
    "ChatOptions",
    "ChatSession",
    "Connection",
    "CorrelationCollisionError",
    "Fragment",
    "ProtocolError",
    "ServiceEndpoints",
    "Settings",
    "Source",
    "Turn",
    "TransportError",
]
