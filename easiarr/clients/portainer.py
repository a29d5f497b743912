"""Portainer client: admin bootstrap, API keys and container control."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..constants import api_key_env
from ..passwords import ensure_min_password_length
from .base import AuthenticationError, HttpServiceClient, SetupOptions, SetupResult, decode_json, log_request

log = logging.getLogger(__name__)

PORTAINER_MIN_PASSWORD_LENGTH = 12
API_KEY_DESCRIPTION = "easiarr-api-key"


class PortainerApiError(Exception):
    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Portainer API request failed: {status_code} - {body}")


class PortainerClient(HttpServiceClient):
    category = "Portainer"

    def __init__(
        self,
        host: str,
        port: int = 9000,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}/api", transport=transport)
        self.api_key = api_key
        self.jwt: Optional[str] = None

    def _auth_headers(self) -> Dict[str, str]:
        if self.api_key:
            return {"X-API-Key": self.api_key}
        if self.jwt:
            return {"Authorization": f"Bearer {self.jwt}"}
        return {}

    def request(self, method: str, endpoint: str, *, json: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        response = self._client.request(method, endpoint, json=json, params=params, headers=self._auth_headers())
        if not response.is_success:
            raise PortainerApiError(response.status_code, response.text)
        return decode_json(response)

    # Bootstrap -----------------------------------------------------------

    def needs_initialization(self) -> bool:
        try:
            response = self._client.get("/users/admin/check")
        except httpx.RequestError:
            return False
        return response.status_code == 404

    def login(self, username: str, password: str) -> str:
        safe_password = ensure_min_password_length(password, PORTAINER_MIN_PASSWORD_LENGTH)
        try:
            result = self.request("POST", "/auth", json={"username": username, "password": safe_password})
        except PortainerApiError as exc:
            if exc.status_code in (401, 422):
                raise AuthenticationError("Portainer rejected the configured credentials") from exc
            raise
        self.jwt = result["jwt"]
        return self.jwt

    def initialize_admin(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        """Create the admin user. None when Portainer already has one."""
        if not self.needs_initialization():
            return None
        safe_password = ensure_min_password_length(password, PORTAINER_MIN_PASSWORD_LENGTH)
        padded = safe_password != password
        if padded:
            log.info("Portainer password padded to %d characters", PORTAINER_MIN_PASSWORD_LENGTH)
        user = self.request("POST", "/users/admin/init", json={"Username": username, "Password": safe_password})
        self.login(username, safe_password)
        return {"user": user, "actual_password": safe_password, "password_was_padded": padded}

    def generate_api_key(self, password: str, description: str = API_KEY_DESCRIPTION, user_id: int = 1) -> str:
        if not self.jwt:
            raise AuthenticationError("Log in before generating a Portainer API key")
        safe_password = ensure_min_password_length(password, PORTAINER_MIN_PASSWORD_LENGTH)
        result = self.request(
            "POST",
            f"/users/{user_id}/tokens",
            json={"password": safe_password, "description": description},
        )
        return result["rawAPIKey"]

    # Status --------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return self.request("GET", "/status")

    def is_healthy(self) -> bool:
        try:
            self.get_status()
        except (PortainerApiError, httpx.HTTPError):
            return False
        return True

    def is_initialized(self) -> bool:
        return not self.needs_initialization()

    # Environments and containers ----------------------------------------

    def get_endpoints(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/endpoints")

    def get_local_endpoint_id(self) -> Optional[int]:
        """Prefer the docker socket endpoint, then one named ``local``, then the first."""
        endpoints = self.get_endpoints()
        for endpoint in endpoints:
            if "docker.sock" in (endpoint.get("URL") or ""):
                return endpoint["Id"]
        for endpoint in endpoints:
            if (endpoint.get("Name") or "").lower() == "local":
                return endpoint["Id"]
        return endpoints[0]["Id"] if endpoints else None

    # Auto-setup ----------------------------------------------------------

    def setup(self, options: SetupOptions) -> SetupResult:
        """Create or log in as the admin, then mint an API key unless one is stored."""
        env_key = api_key_env("portainer")
        initialized = self.initialize_admin(options.username, options.password)
        if initialized is None:
            try:
                self.login(options.username, options.password)
            except AuthenticationError as exc:
                return SetupResult(success=False, message=str(exc))
        env_updates: Dict[str, str] = {}
        if not options.env.get(env_key):
            env_updates[env_key] = self.generate_api_key(options.password)
        if initialized and initialized["password_was_padded"]:
            env_updates["PASSWORD_PORTAINER"] = initialized["actual_password"]
        message = "Admin created" if initialized else "Logged in"
        if env_updates.get(env_key):
            message += ", API key generated"
        return SetupResult(success=True, message=message, env_updates=env_updates)
