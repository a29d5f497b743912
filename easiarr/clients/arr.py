"""Common client for the *arr HTTP APIs (Radarr, Sonarr, Lidarr, Readarr, Whisparr)."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..categories import get_category_field_name, get_category_for_app
from ..constants import CONTAINER_PATHS
from ..trash import TRASH_NAMING_CONFIG
from .base import HttpServiceClient, decode_json, log_request
from .retry import DEFAULT_MAX_RETRIES, IDEMPOTENT_METHODS, retry_request

log = logging.getLogger(__name__)


class ArrApiError(Exception):
    """Non-2xx answer from an *arr API."""

    def __init__(self, status_code: int, reason: str, body: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"API request failed: {status_code} {reason} - {body}")


def qbittorrent_download_client(
    host: str,
    port: int,
    username: str,
    password: str,
    app_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Download client definition pointing an *arr app at qBittorrent."""
    category = get_category_for_app(app_id) if app_id else "default"
    category_field = get_category_field_name(app_id) if app_id else "category"
    return {
        "name": "qBittorrent",
        "implementation": "QBittorrent",
        "configContract": "QBittorrentSettings",
        "enable": True,
        "priority": 1,
        "fields": [
            {"name": "host", "value": host},
            {"name": "port", "value": port},
            {"name": "username", "value": username},
            {"name": "password", "value": password},
            {"name": category_field, "value": category},
            {"name": "savePath", "value": CONTAINER_PATHS["torrents"]},
            {"name": "recentMoviePriority", "value": 0},
            {"name": "olderMoviePriority", "value": 0},
            {"name": "initialState", "value": 0},
            {"name": "sequentialOrder", "value": False},
            {"name": "firstAndLast", "value": False},
        ],
    }


def sabnzbd_download_client(
    host: str,
    port: int,
    api_key: str,
    app_id: Optional[str] = None,
) -> Dict[str, Any]:
    category = get_category_for_app(app_id) if app_id else "default"
    category_field = get_category_field_name(app_id) if app_id else "category"
    return {
        "name": "SABnzbd",
        "implementation": "Sabnzbd",
        "configContract": "SabnzbdSettings",
        "enable": True,
        "priority": 1,
        "fields": [
            {"name": "host", "value": host},
            {"name": "port", "value": port},
            {"name": "apiKey", "value": api_key},
            {"name": category_field, "value": category},
            {"name": "savePath", "value": CONTAINER_PATHS["usenet"]},
            {"name": "recentMoviePriority", "value": -100},
            {"name": "olderMoviePriority", "value": -100},
        ],
    }


class ArrApiClient(HttpServiceClient):
    """Thin wrapper around an *arr API endpoint."""

    category = "ArrAPI"

    def __init__(
        self,
        host: str,
        port: int,
        api_key: str,
        api_version: str = "v3",
        *,
        transport: Optional[httpx.BaseTransport] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self.api_version = api_version
        self.max_retries = max_retries
        super().__init__(
            f"http://{host}:{port}/api/{api_version}",
            headers={"X-Api-Key": api_key, "Content-Type": "application/json"},
            transport=transport,
        )

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        max_retries: Optional[int] = None,
    ) -> Any:
        """Send a request and decode the JSON answer; raise ArrApiError on non-2xx."""
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        response = retry_request(
            self._client.request,
            method,
            endpoint,
            json=json,
            params=params,
            max_retries=self.max_retries if max_retries is None else max_retries,
            idempotent=method.upper() in IDEMPOTENT_METHODS,
        )
        log.debug("[%s] Response %s from %s", self.category, response.status_code, endpoint)
        if not response.is_success:
            raise ArrApiError(response.status_code, response.reason_phrase, response.text)
        return decode_json(response)

    def get_json(self, endpoint: str, **kwargs: Any) -> Any:
        return self.request("GET", endpoint, **kwargs)

    def post_json(self, endpoint: str, json: Any) -> Any:
        return self.request("POST", endpoint, json=json)

    def put_json(self, endpoint: str, json: Any) -> Any:
        return self.request("PUT", endpoint, json=json)

    def delete(self, endpoint: str) -> None:
        self.request("DELETE", endpoint)

    # Status --------------------------------------------------------------

    def get_system_status(self) -> Dict[str, Any]:
        return self.get_json("/system/status")

    def is_healthy(self) -> bool:
        try:
            self.request("GET", "/system/status", max_retries=0)
        except (ArrApiError, httpx.HTTPError):
            log.debug("[%s] health check failed", self.category, exc_info=True)
            return False
        return True

    # Root folders --------------------------------------------------------

    def get_root_folders(self) -> List[Dict[str, Any]]:
        return self.get_json("/rootfolder")

    def add_root_folder(self, path: str, **extra: Any) -> Dict[str, Any]:
        """Add a root folder; Lidarr also needs name and default profile ids."""
        return self.post_json("/rootfolder", {"path": path, **extra})

    def get_metadata_profiles(self) -> List[Dict[str, Any]]:
        try:
            return self.get_json("/metadataprofile")
        except ArrApiError:
            log.debug("[%s] metadata profiles unavailable", self.category, exc_info=True)
            return []

    def get_quality_profiles(self) -> List[Dict[str, Any]]:
        try:
            return self.get_json("/qualityprofile")
        except ArrApiError:
            log.debug("[%s] quality profiles unavailable", self.category, exc_info=True)
            return []

    # Download clients ----------------------------------------------------

    def get_download_clients(self) -> List[Dict[str, Any]]:
        return self.get_json("/downloadclient")

    def add_download_client(self, definition: Dict[str, Any]) -> Dict[str, Any]:
        return self.post_json("/downloadclient", definition)

    # Host config ---------------------------------------------------------

    def get_host_config(self) -> Dict[str, Any]:
        return self.get_json("/config/host")

    def update_host_config(
        self, username: str, password: str, override: bool = False
    ) -> Optional[Dict[str, Any]]:
        """Enable forms authentication. Returns None when a password is already set."""
        current = self.get_host_config()
        if current.get("password") and not override:
            return None
        updated = {
            **current,
            "authenticationMethod": "forms",
            "authenticationRequired": "enabled",
            "username": username,
            "password": password,
            "passwordConfirmation": password,
        }
        # The id travels in the body, not the path
        return self.put_json("/config/host", updated)

    def set_application_url(self, application_url: str) -> Dict[str, Any]:
        current = self.get_host_config()
        log.debug("[%s] Setting applicationUrl to: %s", self.category, application_url)
        return self.put_json("/config/host", {**current, "applicationUrl": application_url})

    # Naming --------------------------------------------------------------

    def get_naming_config(self) -> Dict[str, Any]:
        return self.get_json("/config/naming")

    def configure_trash_naming(self, app: str) -> Dict[str, Any]:
        """Apply the TRaSH naming scheme on top of the current naming config."""
        preset = TRASH_NAMING_CONFIG.get(app)
        if preset is None:
            raise ValueError(f"No TRaSH naming scheme for {app}")
        current = self.get_naming_config()
        return self.put_json("/config/naming", {**current, **preset})


def wait_for_http_ready(
    url: str,
    timeout: float = 120.0,
    interval: float = 5.0,
    verify: bool = False,
) -> tuple[bool, str]:
    """Poll an HTTP endpoint until it responds or timeout expires."""
    deadline = time.monotonic() + timeout
    last_error: Optional[str] = None
    while time.monotonic() < deadline:
        try:
            response = httpx.get(url, timeout=5.0, verify=verify)
            if response.status_code < 500:
                return True, f"{url} ready ({response.status_code})"
            last_error = f"HTTP {response.status_code}"
        except httpx.RequestError as exc:
            last_error = str(exc)
        time.sleep(interval)
    return False, f"timeout waiting for {url}: {last_error or 'no response'}"
