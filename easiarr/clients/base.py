"""Base client definitions for managed apps."""
from __future__ import annotations

import json
import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

import httpx

from ..constants import HTTP_CONNECT_TIMEOUT, HTTP_TIMEOUT
from ..logs import sanitize_message

log = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when an app rejects every credential we know of."""


@dataclass
class SetupOptions:
    """Credentials and ``.env`` values handed to ``setup``."""

    username: str
    password: str
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class SetupResult:
    """Outcome of an app's first-run setup.

    ``env_updates`` are persisted to ``.env`` by the caller.
    """

    success: bool
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    env_updates: Dict[str, str] = field(default_factory=dict)


class ServiceClient(Protocol):
    """Protocol shared by every app client that supports auto-setup."""

    def is_healthy(self) -> bool:
        ...

    def is_initialized(self) -> bool:
        ...

    def setup(self, options: SetupOptions) -> SetupResult:
        ...


def build_http_client(
    base_url: str,
    *,
    headers: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.BaseTransport] = None,
    follow_redirects: bool = False,
) -> httpx.Client:
    return httpx.Client(
        base_url=base_url.rstrip("/"),
        timeout=httpx.Timeout(HTTP_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
        headers=dict(headers or {}),
        transport=transport,
        follow_redirects=follow_redirects,
    )


def log_request(category: str, method: str, url: str, body: Any = None) -> None:
    log.debug("[%s] %s %s", category, method, url)
    if body is not None:
        # Redaction matches JSON keys, so never log a dict repr
        text = body if isinstance(body, str) else json.dumps(body, default=str)
        log.debug("[%s] Request Body: %s", category, sanitize_message(text))


def decode_json(response: httpx.Response) -> Any:
    """JSON body of ``response``; ``{}`` when empty, raw text when not JSON."""
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpServiceClient(AbstractContextManager):
    """Owns one ``httpx.Client`` for an app's base URL."""

    category = "HTTP"

    def __init__(
        self,
        base_url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        follow_redirects: bool = False,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = build_http_client(
            self.base_url,
            headers=headers,
            transport=transport,
            follow_redirects=follow_redirects,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()
