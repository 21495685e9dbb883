from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from skillchat.schemas.chat import Fragment
from skillchat.transport.base import CorrelationCollisionError

FragmentListener = Callable[[Fragment], None]


@dataclass(frozen=True)
class ListenerEntry:
    """A listener bound to one request id."""

    request_id: str
    callback: FragmentListener


class CorrelationRegistry:
    """Map request ids to the listener awaiting their fragments."""

    def __init__(self) -> None:
        self._entries: dict[str, ListenerEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def register(self, request_id: str, callback: FragmentListener) -> Callable[[], None]:
        """Bind ``callback`` to ``request_id`` and return its deregistration.

        Registering the same callback twice is a no-op; a different callback
        for an id that is still registered raises ``CorrelationCollisionError``.
        """

        existing = self._entries.get(request_id)
        if existing is not None:
            if existing.callback != callback:
                raise CorrelationCollisionError(
                    "CORRELATION_COLLISION",
                    f"Request id {request_id} already has a listener.",
                )
            entry = existing
        else:
            entry = ListenerEntry(request_id=request_id, callback=callback)
            self._entries[request_id] = entry

        def unregister() -> None:
            # Only remove our own entry; the id may have been reused since.
            if self._entries.get(request_id) is entry:
                del self._entries[request_id]

        return unregister

    def get(self, request_id: str) -> Optional[FragmentListener]:
        entry = self._entries.get(request_id)
        return entry.callback if entry else None
