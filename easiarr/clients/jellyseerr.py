"""Jellyseerr automation client."""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..constants import api_key_env
from .base import SetupOptions, SetupResult
from .seerr import SeerrApiError, SeerrClient

log = logging.getLogger(__name__)


class JellyseerrClient(SeerrClient):
    """Signs in through Jellyfin, which also creates the Jellyseerr admin."""

    category = "Jellyseerr"

    def authenticate_jellyfin(self, username: str, password: str, hostname: str, port: int) -> Dict[str, Any]:
        return self.request(
            "POST",
            "/auth/jellyfin",
            json={
                "username": username,
                "password": password,
                "hostname": hostname,
                "port": port,
                "urlBase": "",
                "email": f"{username}@local",
            },
        )

    def update_jellyfin_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/settings/jellyfin", json=settings)

    def sync_jellyfin_libraries(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/settings/jellyfin/library", params={"sync": "true"}) or []

    def enable_libraries(self, library_ids: List[str]) -> List[Dict[str, Any]]:
        return self.request("GET", "/settings/jellyfin/library", params={"enable": ",".join(library_ids)})

    def run_jellyfin_setup(self, jellyfin_host: str, jellyfin_port: int, username: str, password: str) -> str:
        """Connect Jellyfin, enable every library and return the Jellyseerr API key."""
        self.authenticate_jellyfin(username, password, jellyfin_host, jellyfin_port)
        self.update_jellyfin_settings(
            {
                "hostname": f"http://{jellyfin_host}:{jellyfin_port}",
                "adminUser": username,
                "adminPass": password,
            }
        )
        libraries = self.sync_jellyfin_libraries()
        library_ids = [library["id"] for library in libraries if library.get("id")]
        if library_ids:
            self.enable_libraries(library_ids)
        return self.get_main_settings().get("apiKey", "")

    def setup(self, options: SetupOptions, jellyfin_host: str = "jellyfin", jellyfin_port: int = 8096) -> SetupResult:
        if self.is_initialized():
            api_key = self.get_main_settings().get("apiKey", "")
            env = {api_key_env("jellyseerr"): api_key} if api_key else {}
            return SetupResult(success=True, message="Already configured", env_updates=env)
        try:
            api_key = self.run_jellyfin_setup(jellyfin_host, jellyfin_port, options.username, options.password)
        except SeerrApiError as exc:
            if exc.status_code in (401, 403):
                return SetupResult(success=False, message="Jellyfin rejected the configured credentials")
            raise
        self.initialize()
        env = {api_key_env("jellyseerr"): api_key} if api_key else {}
        return SetupResult(success=True, message="Connected to Jellyfin", data={"apiKey": api_key}, env_updates=env)
