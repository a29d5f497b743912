"""Grafana client: admin password, Prometheus data source and API key."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..constants import api_key_env
from .base import AuthenticationError, HttpServiceClient, SetupOptions, SetupResult, decode_json, log_request

log = logging.getLogger(__name__)

DEFAULT_CREDENTIALS = ("admin", "admin")
API_KEY_NAME = "easiarr-api-key"
PROMETHEUS_URL = "http://prometheus:9090"


class GrafanaApiError(Exception):
    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Grafana API request failed: {status_code} - {body}")


class GrafanaClient(HttpServiceClient):
    category = "Grafana"

    def __init__(
        self,
        host: str,
        port: int = 3000,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}", transport=transport)
        self.auth: Tuple[str, str] = DEFAULT_CREDENTIALS

    def request(self, method: str, endpoint: str, *, json: Any = None) -> httpx.Response:
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        return self._client.request(method, endpoint, json=json, auth=self.auth)

    def is_healthy(self) -> bool:
        try:
            return self._client.get("/api/health").is_success
        except httpx.RequestError:
            return False

    def is_initialized(self) -> bool:
        """True once the stock admin/admin login stops working."""
        try:
            response = self._client.get("/api/user", auth=DEFAULT_CREDENTIALS)
        except httpx.RequestError:
            return False
        return not response.is_success

    def change_default_password(self, new_password: str) -> None:
        self.auth = DEFAULT_CREDENTIALS
        response = self.request(
            "PUT",
            "/api/user/password",
            json={"oldPassword": DEFAULT_CREDENTIALS[1], "newPassword": new_password},
        )
        if not response.is_success:
            raise GrafanaApiError(response.status_code, response.text)

    def login(self, username: str, password: str) -> None:
        self.auth = (username, password)
        response = self.request("GET", "/api/user")
        if not response.is_success:
            raise AuthenticationError(f"Grafana login failed: {response.status_code}")

    def get_datasources(self) -> List[Dict[str, Any]]:
        response = self.request("GET", "/api/datasources")
        if not response.is_success:
            raise GrafanaApiError(response.status_code, response.text)
        return decode_json(response) or []

    def add_prometheus(self, url: str = PROMETHEUS_URL) -> bool:
        """Add Prometheus as the default data source. False when it already exists."""
        if any(source.get("name") == "Prometheus" for source in self.get_datasources()):
            return False
        response = self.request(
            "POST",
            "/api/datasources",
            json={
                "name": "Prometheus",
                "type": "prometheus",
                "access": "proxy",
                "url": url,
                "isDefault": True,
                "jsonData": {"httpMethod": "POST", "timeInterval": "15s"},
            },
        )
        if response.status_code == 409:
            return False
        if not response.is_success:
            raise GrafanaApiError(response.status_code, response.text)
        return True

    def create_api_key(self, name: str = API_KEY_NAME) -> Optional[str]:
        """Create an admin API key; None when one with ``name`` already exists."""
        response = self.request("POST", "/api/auth/keys", json={"name": name, "role": "Admin", "secondsToLive": 0})
        if response.status_code == 409:
            log.debug("[%s] API key %s already exists", self.category, name)
            return None
        if not response.is_success:
            raise GrafanaApiError(response.status_code, response.text)
        return decode_json(response).get("key")

    def setup(self, options: SetupOptions, prometheus: bool = False) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Grafana not reachable")
        changed = not self.is_initialized()
        # A fresh install keeps the admin login name; only the password changes
        username = DEFAULT_CREDENTIALS[0] if changed else options.username
        if changed:
            self.change_default_password(options.password)
        try:
            self.login(username, options.password)
        except AuthenticationError as exc:
            return SetupResult(success=False, message=str(exc))

        added = self.add_prometheus() if prometheus else False
        env_updates: Dict[str, str] = {}
        if not options.env.get(api_key_env("grafana")):
            api_key = self.create_api_key()
            if api_key:
                env_updates[api_key_env("grafana")] = api_key

        parts = []
        if changed:
            parts.append("Password changed")
        if added:
            parts.append("Prometheus added")
        return SetupResult(
            success=True,
            message=", ".join(parts) or "Configured",
            env_updates=env_updates,
        )
