"""Jellyfin automation client: startup wizard, libraries and API keys."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..constants import api_key_env
from .base import HttpServiceClient, SetupOptions, SetupResult, decode_json, log_request

log = logging.getLogger(__name__)

DEFAULT_LIBRARIES = [
    {"name": "Movies", "collection_type": "movies", "paths": ["/data/media/movies"]},
    {"name": "TV Shows", "collection_type": "tvshows", "paths": ["/data/media/tv"]},
    {"name": "Music", "collection_type": "music", "paths": ["/data/media/music"]},
]

API_KEY_APP_NAME = "easiarr"


class JellyfinClient(HttpServiceClient):
    category = "JellyfinAPI"

    def __init__(
        self,
        host: str,
        port: int,
        access_token: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}", transport=transport)
        self.access_token = access_token

    def _auth_header(self) -> str:
        value = 'MediaBrowser Client="easiarr", Device="Server", DeviceId="easiarr-setup", Version="1.0.0"'
        if self.access_token:
            value += f', Token="{self.access_token}"'
        return value

    def request(self, method: str, endpoint: str, *, json: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        response = self._client.request(
            method,
            endpoint,
            json=json,
            params=params,
            headers={"X-Emby-Authorization": self._auth_header()},
        )
        log.debug("[%s] Response %s from %s", self.category, response.status_code, endpoint)
        response.raise_for_status()
        return decode_json(response)

    # Health --------------------------------------------------------------

    def get_public_system_info(self) -> Dict[str, Any]:
        return self.request("GET", "/System/Info/Public")

    def is_healthy(self) -> bool:
        try:
            self.get_public_system_info()
        except httpx.HTTPError:
            return False
        return True

    def is_startup_complete(self) -> bool:
        try:
            return self.get_public_system_info().get("StartupWizardCompleted") is True
        except httpx.HTTPError:
            return False

    def is_initialized(self) -> bool:
        return self.is_startup_complete()

    # Startup wizard ------------------------------------------------------

    def set_startup_configuration(self, ui_culture: str = "en-US", country: str = "US", language: str = "en") -> None:
        self.request(
            "POST",
            "/Startup/Configuration",
            json={"UICulture": ui_culture, "MetadataCountryCode": country, "PreferredMetadataLanguage": language},
        )

    def create_admin_user(self, name: str, password: str) -> None:
        # GET initialises the first user before it can be renamed
        self.request("GET", "/Startup/FirstUser")
        self.request("POST", "/Startup/User", json={"Name": name, "Password": password})

    def set_remote_access(self, enable_remote: bool = True, enable_upnp: bool = False) -> None:
        self.request(
            "POST",
            "/Startup/RemoteAccess",
            json={"EnableRemoteAccess": enable_remote, "EnableAutomaticPortMapping": enable_upnp},
        )

    def complete_startup(self) -> None:
        self.request("POST", "/Startup/Complete")

    def run_setup_wizard(self, admin_name: str, admin_password: str) -> None:
        self.set_startup_configuration()
        self.create_admin_user(admin_name, admin_password)
        self.set_remote_access()
        self.complete_startup()

    # Authentication ------------------------------------------------------

    def authenticate(self, username: str, password: str) -> Dict[str, Any]:
        result = self.request("POST", "/Users/AuthenticateByName", json={"Username": username, "Pw": password})
        self.access_token = result.get("AccessToken")
        return result

    # Libraries -----------------------------------------------------------

    def get_virtual_folders(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/Library/VirtualFolders")

    def add_virtual_folder(self, name: str, collection_type: str, paths: List[str], refresh: bool = True) -> None:
        self.request(
            "POST",
            "/Library/VirtualFolders",
            params={"name": name, "collectionType": collection_type, "refreshLibrary": str(refresh).lower()},
            json={"LibraryOptions": {"PathInfos": [{"Path": path} for path in paths]}},
        )

    def add_default_libraries(self) -> int:
        """Add the movies, tvshows and music libraries that are missing."""
        existing = {folder.get("Name") for folder in self.get_virtual_folders()}
        added = 0
        for library in DEFAULT_LIBRARIES:
            if library["name"] in existing:
                continue
            self.add_virtual_folder(library["name"], library["collection_type"], library["paths"])
            added += 1
        return added

    # API keys ------------------------------------------------------------

    def get_api_keys(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/Auth/Keys").get("Items") or []

    def create_api_key(self, app_name: str = API_KEY_APP_NAME) -> str:
        for key in self.get_api_keys():
            if key.get("AppName") == app_name:
                return key.get("AccessToken", "")
        self.request("POST", "/Auth/Keys", params={"app": app_name})
        for key in self.get_api_keys():
            if key.get("AppName") == app_name:
                return key.get("AccessToken", "")
        return ""

    # Auto-setup ----------------------------------------------------------

    def setup(self, options: SetupOptions) -> SetupResult:
        wizard_ran = False
        if not self.is_startup_complete():
            self.run_setup_wizard(options.username, options.password)
            wizard_ran = True
        try:
            self.authenticate(options.username, options.password)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                return SetupResult(success=False, message="Already configured with different credentials")
            raise
        added = self.add_default_libraries()
        api_key = self.create_api_key()
        env_updates = {api_key_env("jellyfin"): api_key} if api_key else {}
        parts = ["wizard completed" if wizard_ran else "already initialized", f"{added} libraries added"]
        return SetupResult(
            success=True,
            message=", ".join(parts),
            data={"access_token": self.access_token},
            env_updates=env_updates,
        )
