"""Overseerr automation client (Plex token sign-in)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List
from urllib.parse import urlparse

from ..constants import api_key_env
from .base import SetupOptions, SetupResult
from .seerr import SeerrApiError, SeerrClient

log = logging.getLogger(__name__)

PLEX_DEFAULT_PORT = 32400


class OverseerrClient(SeerrClient):
    category = "Overseerr"

    def authenticate_with_plex(self, plex_token: str) -> Dict[str, Any]:
        """First sign-in with a Plex token creates the admin user."""
        user = self.request("POST", "/auth/plex", json={"authToken": plex_token})
        log.debug("[%s] Authenticated as %s", self.category, user.get("email") or user.get("plexUsername"))
        return user

    def get_plex_servers(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/settings/plex/devices/servers") or []

    def update_plex_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/settings/plex", json=settings)

    def sync_plex_libraries(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/settings/plex/library", params={"sync": "true"})

    def start_plex_scan(self) -> None:
        self.request("POST", "/settings/plex/sync", json={"start": True})

    def configure_first_plex_server(self) -> bool:
        """Point Overseerr at the first Plex server, preferring a local connection."""
        servers = self.get_plex_servers()
        if not servers:
            return False
        server = servers[0]
        connections = server.get("connection") or []
        connection = next((conn for conn in connections if conn.get("local")), None)
        if connection is None and connections:
            connection = connections[0]
        if connection is None:
            return False
        url = urlparse(connection["uri"])
        self.update_plex_settings(
            {"name": server.get("name"), "ip": url.hostname, "port": url.port or PLEX_DEFAULT_PORT}
        )
        return True

    def setup(self, options: SetupOptions) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Overseerr not reachable")
        if self.is_initialized():
            api_key = self.get_main_settings().get("apiKey", "")
            env = {api_key_env("overseerr"): api_key} if api_key else {}
            return SetupResult(success=True, message="Already configured", env_updates=env)

        plex_token = options.env.get("PLEX_TOKEN")
        if not plex_token:
            return SetupResult(success=False, message="No PLEX_TOKEN in .env")
        try:
            self.authenticate_with_plex(plex_token)
        except SeerrApiError as exc:
            log.debug("[%s] Plex auth failed", self.category, exc_info=True)
            return SetupResult(success=False, message=f"Failed to authenticate with Plex ({exc.status_code})")

        self.configure_first_plex_server()
        self.sync_plex_libraries()
        self.initialize()
        api_key = self.get_main_settings().get("apiKey", "")
        self.start_plex_scan()
        env = {api_key_env("overseerr"): api_key} if api_key else {}
        return SetupResult(success=True, message="Overseerr configured", data={"apiKey": api_key}, env_updates=env)
