"""Logging setup with secret redaction and the optional debug.log file.

Set ``EASIARR_DEBUG=1`` (or ``true``) to append every debug record to
``debug.log`` in the config directory. Request bodies logged by the clients
pass through :func:`sanitize_message` first, so credentials never reach disk.
"""
from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from .constants import DEBUG_LOG_NAME, ENV_DEBUG

SENSITIVE_KEYS = (
    "password",
    "passwordConfirmation",
    "Password",
    "Pw",
    "apiKey",
    "api_key",
    "ApiKey",
    "token",
    "accessToken",
    "refreshToken",
    "secret",
    "secretKey",
    "client_secret",
    "privateKey",
    "WIREGUARD_PRIVATE_KEY",
    "TUNNEL_TOKEN",
)

_SENSITIVE_PATTERN = re.compile(
    r'("(?:' + "|".join(re.escape(key) for key in SENSITIVE_KEYS) + r')"\s*:\s*)"(?:[^"\\]|\\.)*"'
)

REDACTED = "[REDACTED]"


def sanitize_message(message: str) -> str:
    """Replace JSON string values of sensitive keys with ``[REDACTED]``."""
    return _SENSITIVE_PATTERN.sub(lambda match: f'{match.group(1)}"{REDACTED}"', message)


def is_debug_enabled() -> bool:
    return os.environ.get(ENV_DEBUG, "").lower() in {"1", "true"}


class RedactingFilter(logging.Filter):
    """Rewrites each record's rendered message through sanitize_message."""

    def filter(self, record: logging.LogRecord) -> bool:
        rendered = record.getMessage()
        cleaned = sanitize_message(rendered)
        if cleaned != rendered:
            record.msg = cleaned
            record.args = ()
        return True


class DebugFileFormatter(logging.Formatter):
    """``[2024-01-01T00:00:00.000Z] [category] message`` lines."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        iso = stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{stamp.microsecond // 1000:03d}Z"
        category = record.name.rsplit(".", 1)[-1]
        line = f"[{iso}] [{category}] {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(config_dir: Optional[Path] = None, verbose: bool = False) -> None:
    """Install console and debug-file handlers on the ``easiarr`` logger."""
    logger = logging.getLogger("easiarr")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    redacting = RedactingFilter()

    console = RichHandler(show_path=False, rich_tracebacks=False)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.addFilter(redacting)
    logger.addHandler(console)

    if is_debug_enabled() and config_dir is not None:
        config_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config_dir / DEBUG_LOG_NAME, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(DebugFileFormatter())
        file_handler.addFilter(redacting)
        logger.addHandler(file_handler)
