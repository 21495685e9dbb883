from __future__ import annotations

import re

TOKEN_QUERY_PATTERN = re.compile(r"(token=)[^&\s'\"]+")
BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+")


def redact_secrets(text: str) -> str:
    """Redact auth tokens carried in URLs or authorization headers."""

    text = TOKEN_QUERY_PATTERN.sub(r"\1***", text)
    return BEARER_PATTERN.sub(r"\1***", text)


def sanitize_text(text: str, max_length: int) -> str:
    """Trim and clamp user-provided text to a safe length."""

    cleaned = text.strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned
