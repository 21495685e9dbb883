from __future__ import annotations

from typing import Callable, List, Literal, Optional

from pydantic import ConfigDict, Field

from skillchat.schemas.common import WireModel


class Source(WireModel):
    """A source cited by an assistant turn.

    ``data`` is opaque to the client and must be sent back unchanged whenever
    the owning turn is part of a later request.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    url: Optional[str] = Field(default=None)
    data: str


class Turn(WireModel):
    """One message of a chat transcript."""

    role: Literal["user", "assistant"]
    content: str
    request_id: Optional[str] = Field(default=None, alias="requestId")
    sources: Optional[List[Source]] = Field(default=None)


class Fragment(WireModel):
    """Incremental piece of an assistant response delivered over the socket."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    index: int
    delta: str
    request_id: str = Field(alias="requestId")


ResponseCallback = Callable[[Turn, Optional[Fragment]], None]


class ChatOptions(WireModel):
    """Per-thread options merged into every chat request.

    ``on_response`` is called with the growing turn and the fragment that
    grew it, and once more with the finalized turn and ``None``.
    """

    skill_id: Optional[str] = Field(default=None, alias="skillId")
    prompt: Optional[str] = Field(default=None)
    append_prompt: Optional[bool] = Field(default=None, alias="appendPrompt")
    partner_id: Optional[str] = Field(default=None, alias="partnerId")
    model: Optional[str] = Field(default=None)
    output_tokens: Optional[int] = Field(default=None, alias="outputTokens", ge=1)
    on_response: Optional[ResponseCallback] = Field(default=None, exclude=True)
