"""Logging setup for gcal-auth.

Modules log through ``logging.getLogger("gcal_auth.<module>")``; this module
attaches a rich console handler to the ``gcal_auth`` logger and, optionally,
a filter that redacts credential material before records are emitted.
"""

from __future__ import annotations

import logging
import re

from rich.logging import RichHandler

REDACTED = "[REDACTED]"

_SENSITIVE_PATTERNS = [
    re.compile(r"\bBearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(
        r"\b(access_token|refresh_token|client_secret|code_verifier|code|id_token)"
        r"(['\"]?\s*[:=]\s*['\"]?)[^\s&'\",}]+",
        re.IGNORECASE,
    ),
    re.compile(r"\bya29\.[A-Za-z0-9\-_.]+"),  # Google access tokens
    re.compile(r"\b1//[A-Za-z0-9\-_]+"),  # Google refresh tokens
    re.compile(r"\b[A-Za-z0-9\-_]{40,}\b"),  # long opaque strings
]


def sanitize_text(text: str) -> str:
    """Redact tokens, secrets and long opaque strings from ``text``."""
    for pattern in _SENSITIVE_PATTERNS:
        if pattern.groups >= 2:
            text = pattern.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", text)
        else:
            text = pattern.sub(REDACTED, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """Rewrites each record's message with :func:`sanitize_text`."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        sanitized = sanitize_text(message)
        if sanitized != message:
            record.msg = sanitized
            record.args = None
        return True


def configure_logging(level: str = "INFO", *, sanitize: bool = True) -> logging.Logger:
    """Attach a rich handler to the ``gcal_auth`` logger.

    Calling it again replaces the handler instead of stacking another one.
    """
    logger = logging.getLogger("gcal_auth")
    logger.setLevel(level.upper())
    for handler in list(logger.handlers):
        if getattr(handler, "_gcal_auth", False):
            logger.removeHandler(handler)

    handler = RichHandler(rich_tracebacks=False, show_path=False, markup=False)
    handler._gcal_auth = True  # type: ignore[attr-defined]
    if sanitize:
        handler.addFilter(SensitiveDataFilter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
