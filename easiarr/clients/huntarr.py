"""Huntarr client: owner account, session login and *arr instances."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .base import AuthenticationError, HttpServiceClient, SetupOptions, SetupResult, decode_json, log_request

log = logging.getLogger(__name__)

# App types Huntarr keeps an instance list for
HUNTARR_APP_TYPES = ("sonarr", "radarr", "lidarr", "readarr", "whisparr")
SESSION_COOKIE = "huntarr_session"


class HuntarrClient(HttpServiceClient):
    category = "Huntarr"

    def __init__(
        self,
        host: str,
        port: int = 9705,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}", transport=transport)

    def request(self, method: str, endpoint: str, *, json: Any = None) -> Any:
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        response = self._client.request(method, endpoint, json=json)
        response.raise_for_status()
        return decode_json(response)

    def is_healthy(self) -> bool:
        try:
            return self._client.get("/health").is_success
        except httpx.RequestError:
            return False

    def user_exists(self) -> bool:
        status = self.request("GET", "/api/setup/status")
        return bool(isinstance(status, dict) and status.get("user_exists"))

    def is_initialized(self) -> bool:
        try:
            return self.user_exists()
        except httpx.HTTPError:
            return False

    @property
    def has_session(self) -> bool:
        return SESSION_COOKIE in self._client.cookies

    def create_user(self, username: str, password: str) -> None:
        """Create the owner account and mark the setup wizard finished."""
        response = self._client.post(
            "/setup",
            json={"username": username, "password": password, "confirm_password": password},
        )
        if not response.is_success:
            raise AuthenticationError(f"Huntarr user creation failed: {response.status_code}")
        self.request(
            "POST",
            "/api/setup/progress",
            json={
                "progress": {
                    "current_step": 6,
                    "completed_steps": [1, 2, 3, 4, 5],
                    "account_created": True,
                    "two_factor_enabled": False,
                    "plex_setup_done": False,
                    "auth_mode_selected": False,
                    "recovery_key_generated": True,
                    "username": username,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            },
        )
        self.request("POST", "/api/setup/clear")

    def login(self, username: str, password: str) -> None:
        response = self._client.post("/login", json={"username": username, "password": password})
        if not response.is_success:
            raise AuthenticationError(f"Huntarr login failed: {response.status_code}")

    def get_version(self) -> Optional[str]:
        result = self.request("GET", "/api/version")
        return result.get("version") if isinstance(result, dict) else None

    def get_settings(self, app_type: str) -> Dict[str, Any]:
        settings = self.request("GET", f"/api/settings/{app_type}")
        return settings if isinstance(settings, dict) else {}

    def add_instance(self, app_type: str, name: str, api_url: str, api_key: str) -> bool:
        """Add an instance unless one with this URL and a key exists. True when saved."""
        settings = self.get_settings(app_type)
        instances: List[Dict[str, Any]] = list(settings.get("instances") or [])
        for instance in instances:
            if instance.get("api_url") == api_url and instance.get("api_key"):
                return False
        entry = {"name": name, "api_url": api_url, "api_key": api_key, "enabled": True}
        # A fresh install ships one blank instance per app
        blank = next((i for i, inst in enumerate(instances) if not inst.get("api_url")), None)
        if blank is None:
            instances.append(entry)
        else:
            instances[blank] = {**instances[blank], **entry}
        settings["instances"] = instances
        self.request("POST", f"/api/settings/{app_type}", json=settings)
        return True

    def setup(self, options: SetupOptions) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Huntarr not reachable")
        created = False
        try:
            if self.user_exists():
                self.login(options.username, options.password)
            else:
                self.create_user(options.username, options.password)
                created = True
                if not self.has_session:
                    self.login(options.username, options.password)
        except AuthenticationError as exc:
            log.debug("[%s] %s", self.category, exc)
            return SetupResult(success=False, message="Auth failed")
        version = self.get_version()
        return SetupResult(
            success=True,
            message="User created" if created else "Logged in",
            data={"version": version} if version else {},
        )
