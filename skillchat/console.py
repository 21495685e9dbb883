from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional, TextIO

from skillchat.core.config import Settings, get_settings
from skillchat.core.logging import setup_logging
from skillchat.core.security import sanitize_text
from skillchat.schemas.chat import Fragment, Turn
from skillchat.services.client import ChatClient
from skillchat.transport.base import ChatError

logger = logging.getLogger(__name__)

PROMPT = "> "


class ConsoleRenderer:
    """Response callback that streams a chat to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream or sys.stdout

    def __call__(self, turn: Turn, fragment: Optional[Fragment] = None) -> None:
        if fragment is not None:
            self._stream.write(fragment.delta)

        # Sources only arrive with the final message.
        if fragment is None and turn.sources:
            self._stream.write("\n---\n")
            for source in turn.sources:
                self._stream.write(f"Source: {source.title} {source.url or ''}".rstrip() + "\n")

        if fragment is None:
            self._stream.write(f"\n\n{PROMPT}")
        self._stream.flush()


async def run_console(
    settings: Settings,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    client: Optional[ChatClient] = None,
) -> None:
    """Chat interactively until ``exit`` or end of input."""

    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    client = client or ChatClient(settings=settings)
    async with client:
        chat = client.new_chat(on_response=ConsoleRenderer(stdout))
        stdout.write(f"Chat with the assistant. Type 'exit' to quit.\n\n{PROMPT}")
        stdout.flush()
        while True:
            line = await asyncio.to_thread(stdin.readline)
            if not line:
                break
            text = sanitize_text(line, settings.max_input_chars)
            if text == "exit":
                break
            if not text:
                stdout.write(PROMPT)
                stdout.flush()
                continue
            stdout.write("\n")
            try:
                await chat.send(text)
            except ChatError as exc:
                logger.error("Chat turn failed (%s): %s", exc.code, exc.message)
                stdout.write(f"\n{PROMPT}")
                stdout.flush()


def main() -> None:
    """Run the interactive console chat configured from the environment."""

    settings = get_settings()
    setup_logging(settings.log_level)
    if not settings.token or not settings.skill_id:
        print("Please set TOKEN and SKILL_ID environment variables", file=sys.stderr)
        sys.exit(1)
    try:
        asyncio.run(run_console(settings))
    except ChatError as exc:
        logger.error("%s", exc.message)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
