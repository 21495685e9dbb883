from __future__ import annotations

import logging

from skillchat.core.security import redact_secrets


class RedactionFilter(logging.Filter):
    """Log filter that redacts auth tokens before output."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(str(record.msg))
        # Only strings can carry a token; other args must keep their type for %d and friends.
        if isinstance(record.args, dict):
            record.args = {key: _redact_arg(value) for key, value in record.args.items()}
        elif record.args:
            record.args = tuple(_redact_arg(arg) for arg in record.args)
        return True


def setup_logging(level: str) -> None:
    """Configure process logging with token redaction."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    redaction = RedactionFilter()
    root = logging.getLogger()
    root.addFilter(redaction)
    # Records from library loggers propagate to root handlers, not root filters.
    for handler in root.handlers:
        handler.addFilter(redaction)


def _redact_arg(arg: object) -> object:
    return redact_secrets(arg) if isinstance(arg, str) else arg
