"""Bazarr settings client; writes go through the form-encoded settings endpoint."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..constants import api_key_env
from .base import HttpServiceClient, SetupOptions, SetupResult, decode_json, log_request

log = logging.getLogger(__name__)


class BazarrClient(HttpServiceClient):
    category = "Bazarr"

    def __init__(
        self,
        host: str,
        port: int,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}/api", headers={"Accept": "application/json"}, transport=transport)
        self.api_key = api_key

    def _params(self) -> Dict[str, str]:
        return {"apikey": self.api_key} if self.api_key else {}

    def get(self, endpoint: str) -> Any:
        log_request(self.category, "GET", f"{self.base_url}{endpoint}")
        response = self._client.get(endpoint, params=self._params())
        response.raise_for_status()
        return decode_json(response)

    def post_form(self, endpoint: str, data: Dict[str, str]) -> None:
        log_request(self.category, "POST", f"{self.base_url}{endpoint}", data)
        response = self._client.post(endpoint, params=self._params(), data=data)
        response.raise_for_status()

    def is_healthy(self) -> bool:
        try:
            self.get("/system/status")
        except httpx.HTTPError:
            return False
        return True

    def get_settings(self) -> Dict[str, Any]:
        return self.get("/system/settings")

    def get_api_key(self) -> Optional[str]:
        auth = self.get_settings().get("auth") or {}
        return auth.get("apikey") or None

    def _auth_type(self) -> Optional[str]:
        auth = self.get_settings().get("auth") or {}
        auth_type = auth.get("type")
        return None if auth_type in (None, "None") else auth_type

    def is_initialized(self) -> bool:
        try:
            return self._auth_type() is not None
        except httpx.HTTPError:
            return False

    def enable_form_auth(self, username: str, password: str, override: bool = False) -> bool:
        """Switch on form login. Returns False when auth was already configured."""
        current = self._auth_type()
        if current is not None and not override:
            log.debug("[%s] Auth already configured (type: %s)", self.category, current)
            return False
        self.post_form(
            "/system/settings",
            {
                "settings-auth-type": "form",
                "settings-auth-username": username,
                "settings-auth-password": password,
            },
        )
        return True

    def set_base_url(self, base_url: str) -> None:
        self.post_form("/system/settings", {"settings-general-base_url": base_url})

    def _configure_arr(self, kind: str, host: str, port: int, api_key: str) -> None:
        log.debug("[%s] Configuring %s connection %s:%s", self.category, kind, host, port)
        self.post_form(
            "/system/settings",
            {
                f"settings-{kind}-ip": host,
                f"settings-{kind}-port": str(port),
                f"settings-{kind}-apikey": api_key,
                f"settings-{kind}-base_url": "",
                f"settings-{kind}-ssl": "false",
                f"settings-general-use_{kind}": "true",
            },
        )

    def configure_radarr(self, host: str, port: int, api_key: str) -> None:
        self._configure_arr("radarr", host, port, api_key)

    def configure_sonarr(self, host: str, port: int, api_key: str) -> None:
        self._configure_arr("sonarr", host, port, api_key)

    def setup(self, options: SetupOptions) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Bazarr not reachable")
        api_key = self.get_api_key()
        if api_key:
            self.api_key = api_key
        initialized = self.is_initialized()
        auth_configured = False if initialized else self.enable_form_auth(options.username, options.password)
        if initialized:
            message = "Already configured"
        else:
            message = "Auth enabled" if auth_configured else "Ready"
        return SetupResult(
            success=True,
            message=message,
            data={"apiKey": api_key, "authConfigured": auth_configured},
            env_updates={api_key_env("bazarr"): api_key} if api_key else {},
        )
