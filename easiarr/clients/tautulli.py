"""Tautulli client. Plex must be linked through its web wizard by hand."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .base import HttpServiceClient, SetupOptions, SetupResult

log = logging.getLogger(__name__)


class TautulliClient(HttpServiceClient):
    category = "Tautulli"

    def __init__(
        self,
        host: str,
        port: int = 8181,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}", transport=transport)
        self.api_key = api_key

    def command(self, cmd: str, **params: str) -> Optional[Dict[str, Any]]:
        """Run an ``api/v2`` command; None without an API key or on a failed result."""
        if not self.api_key:
            return None
        query = {"cmd": cmd, "apikey": self.api_key, **params}
        response = self._client.get("/api/v2", params=query)
        response.raise_for_status()
        body = response.json().get("response") or {}
        if body.get("result") != "success":
            log.debug("[%s] %s returned %s", self.category, cmd, body.get("message"))
            return None
        return body.get("data")

    def _status_page(self) -> Optional[httpx.Response]:
        try:
            response = self._client.get("/status")
        except httpx.RequestError:
            return None
        return response if response.is_success else None

    def is_healthy(self) -> bool:
        return self._status_page() is not None

    def is_initialized(self) -> bool:
        response = self._status_page()
        if response is None:
            return False
        text = response.text
        return "setup" not in text and "wizard" not in text

    def get_server_info(self) -> Optional[Dict[str, Any]]:
        return self.command("get_server_info")

    def get_settings(self) -> Optional[Dict[str, Any]]:
        return self.command("get_settings")

    def setup(self, options: SetupOptions) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Tautulli not reachable")
        if self.is_initialized():
            return SetupResult(success=True, message="Already configured")
        return SetupResult(
            success=True,
            message="Reachable",
            data={"requiresWizard": True},
        )
