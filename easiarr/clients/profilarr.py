"""Profilarr client: first-user setup, API key and *arr connections."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..constants import api_key_env
from .base import AuthenticationError, HttpServiceClient, SetupOptions, SetupResult, decode_json, log_request

log = logging.getLogger(__name__)


class ProfilarrClient(HttpServiceClient):
    category = "Profilarr"

    def __init__(
        self,
        host: str,
        port: int = 6868,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}/api", transport=transport)
        self.api_key = api_key

    def request(self, method: str, endpoint: str, *, json: Any = None) -> Any:
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        headers = {"X-Api-Key": self.api_key} if self.api_key else {}
        response = self._client.request(method, endpoint, json=json, headers=headers)
        response.raise_for_status()
        return decode_json(response)

    def _setup_status(self) -> Optional[httpx.Response]:
        try:
            return self._client.get("/auth/setup")
        except httpx.RequestError:
            return None

    def is_healthy(self) -> bool:
        response = self._setup_status()
        return response is not None and response.status_code in (200, 400)

    def is_initialized(self) -> bool:
        response = self._setup_status()
        if response is None:
            return False
        # 400 means auth is already configured
        if response.status_code == 400:
            return True
        if response.status_code == 200:
            return not response.json().get("needs_setup")
        return False

    def authenticate(self, username: str, password: str) -> str:
        """Create the first user or log in; returns the API key either way."""
        if not self.is_initialized():
            result = self.request("POST", "/auth/setup", json={"username": username, "password": password})
            self.api_key = result["api_key"]
            return self.api_key

        response = self._client.post("/auth/authenticate", json={"username": username, "password": password})
        if not response.is_success:
            raise AuthenticationError(f"Profilarr login failed: {response.status_code}")
        # The session cookie now lives in the client's jar
        settings = self.request("GET", "/settings/general")
        self.api_key = settings["api_key"]
        return self.api_key

    def get_configs(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/arr/config")

    def add_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", "/arr/config", json=config)

    def configure_arr(self, kind: str, hostname: str, port: int, api_key: str) -> Dict[str, Any]:
        for config in self.get_configs():
            if config.get("type") == kind:
                return config
        return self.add_config(
            {
                "name": kind.capitalize(),
                "type": kind,
                "tags": [],
                "arrServer": f"http://{hostname}:{port}",
                "apiKey": api_key,
                "sync_method": "manual",
                "sync_interval": 60,
                "import_as_unique": False,
                "data_to_sync": {"profiles": [], "customFormats": []},
            }
        )

    def configure_radarr(self, hostname: str, port: int, api_key: str) -> Dict[str, Any]:
        return self.configure_arr("radarr", hostname, port, api_key)

    def configure_sonarr(self, hostname: str, port: int, api_key: str) -> Dict[str, Any]:
        return self.configure_arr("sonarr", hostname, port, api_key)

    def setup(self, options: SetupOptions) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Profilarr not reachable")
        try:
            api_key = self.authenticate(options.username, options.password)
        except AuthenticationError as exc:
            return SetupResult(success=False, message=str(exc))
        return SetupResult(
            success=True,
            message="Profilarr configured",
            data={"apiKey": api_key},
            env_updates={api_key_env("profilarr"): api_key},
        )
