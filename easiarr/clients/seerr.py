"""Shared client for the Overseerr family of request managers."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import HttpServiceClient, decode_json, log_request

log = logging.getLogger(__name__)


class SeerrApiError(Exception):
    """Non-2xx answer from an Overseerr/Jellyseerr API."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Seerr request failed: {status_code} - {body}")


class SeerrClient(HttpServiceClient):
    """Session-cookie client for ``/api/v1``; the cookie jar keeps the login."""

    category = "Seerr"

    def __init__(
        self,
        host: str,
        port: int,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["X-Api-Key"] = api_key
        super().__init__(f"http://{host}:{port}/api/v1", headers=headers, transport=transport)

    def request(self, method: str, endpoint: str, *, json: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        response = self._client.request(method, endpoint, json=json, params=params)
        log.debug("[%s] Response %s from %s", self.category, response.status_code, endpoint)
        if not response.is_success:
            raise SeerrApiError(response.status_code, response.text)
        return decode_json(response)

    # Status --------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return self.request("GET", "/status")

    def is_healthy(self) -> bool:
        try:
            self.get_status()
        except (SeerrApiError, httpx.HTTPError):
            return False
        return True

    def is_initialized(self) -> bool:
        try:
            return self.request("GET", "/settings/public").get("initialized") is True
        except (SeerrApiError, httpx.HTTPError):
            return False

    # Main settings -------------------------------------------------------

    def get_main_settings(self) -> Dict[str, Any]:
        return self.request("GET", "/settings/main")

    def update_main_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/settings/main", json=settings)

    def set_application_url(self, application_url: str) -> None:
        log.debug("[%s] Setting applicationUrl to %s", self.category, application_url)
        self.update_main_settings({"applicationUrl": application_url})

    def initialize(self) -> None:
        self.request("POST", "/settings/initialize")

    # Radarr / Sonarr -----------------------------------------------------

    def get_servers(self, kind: str) -> List[Dict[str, Any]]:
        return self.request("GET", f"/settings/{kind}")

    def test_server(self, kind: str, hostname: str, port: int, api_key: str) -> Dict[str, Any]:
        """Ask the request manager to reach an *arr; the answer lists its profiles."""
        return self.request(
            "POST",
            f"/settings/{kind}/test",
            json={"hostname": hostname, "port": port, "apiKey": api_key, "useSsl": False},
        )

    def add_server(self, kind: str, settings: Dict[str, Any]) -> Dict[str, Any]:
        log.debug("[%s] Adding %s server %s", self.category, kind, settings.get("name"))
        return self.request("POST", f"/settings/{kind}", json=settings)

    def configure_server(
        self,
        kind: str,
        hostname: str,
        port: int,
        api_key: str,
        root_folder: str,
        external_url: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Link Radarr or Sonarr using its first quality profile.

        Returns the existing entry when one of the same name is already
        linked and None when the *arr has no quality profiles yet.
        """
        name = kind.capitalize()
        for server in self.get_servers(kind):
            if server.get("name") == name:
                return server
        profiles = self.test_server(kind, hostname, port, api_key).get("profiles") or []
        if not profiles:
            log.warning("[%s] %s has no quality profiles to link", self.category, name)
            return None
        profile = profiles[0]
        settings: Dict[str, Any] = {
            "name": name,
            "hostname": hostname,
            "port": port,
            "apiKey": api_key,
            "useSsl": False,
            "activeProfileId": profile["id"],
            "activeProfileName": profile["name"],
            "activeDirectory": root_folder,
            "is4k": False,
            "isDefault": True,
            "externalUrl": external_url or "",
        }
        if kind == "radarr":
            settings["minimumAvailability"] = "announced"
        else:
            settings["enableSeasonFolders"] = True
        return self.add_server(kind, settings)

    def configure_radarr(self, hostname: str, port: int, api_key: str, root_folder: str, external_url: Optional[str] = None):
        return self.configure_server("radarr", hostname, port, api_key, root_folder, external_url)

    def configure_sonarr(self, hostname: str, port: int, api_key: str, root_folder: str, external_url: Optional[str] = None):
        return self.configure_server("sonarr", hostname, port, api_key, root_folder, external_url)
