"""Homarr client: first user and one app tile per enabled service."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..models import AppConfig
from ..registry import get_app
from .base import HttpServiceClient, SetupOptions, SetupResult, decode_json, log_request

log = logging.getLogger(__name__)

ICON_URL = "https://cdn.jsdelivr.net/gh/walkxcode/dashboard-icons/png/{}.png"


class HomarrClient(HttpServiceClient):
    category = "Homarr"

    def __init__(
        self,
        host: str,
        port: int = 7575,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}", transport=transport)
        self.api_key = api_key

    def request(self, method: str, endpoint: str, *, json: Any = None) -> Any:
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        headers = {"ApiKey": self.api_key} if self.api_key else {}
        response = self._client.request(method, endpoint, json=json, headers=headers)
        response.raise_for_status()
        return decode_json(response)

    def is_healthy(self) -> bool:
        try:
            return self._client.get("/").is_success
        except httpx.RequestError:
            return False

    def get_users(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/api/users") or []

    def is_initialized(self) -> bool:
        try:
            return bool(self.get_users())
        except httpx.HTTPError:
            return False

    def create_user(self, username: str, password: str, email: str = "") -> None:
        self.request(
            "POST",
            "/api/users",
            json={
                "username": username,
                "password": password,
                "confirmPassword": password,
                "email": email,
                "groupIds": [],
            },
        )

    def get_apps(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/api/apps") or []

    def add_app(self, name: str, app_id: str, url: str, description: str = "") -> Optional[str]:
        result = self.request(
            "POST",
            "/api/apps",
            json={
                "name": name,
                "description": description,
                "iconUrl": ICON_URL.format(app_id),
                "href": url,
                "pingUrl": url,
            },
        )
        return result.get("appId") if isinstance(result, dict) else None

    def add_easiarr_apps(self, apps: Iterable[AppConfig]) -> int:
        """Add a tile for each enabled app with a web port; existing names are kept."""
        existing = {app.get("name") for app in self.get_apps()}
        added = 0
        for app in apps:
            definition = get_app(app.id)
            if not app.enabled or definition is None or app.id == "homarr":
                continue
            if definition.default_port == 0 or definition.name in existing:
                continue
            port = definition.internal_port or app.port or definition.default_port
            self.add_app(definition.name, app.id, f"http://{app.id}:{port}", definition.description)
            added += 1
        return added

    def setup(self, options: SetupOptions) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Homarr not reachable")
        if self.is_initialized():
            return SetupResult(success=True, message="Ready - add apps via UI or API")
        self.create_user(options.username, options.password)
        return SetupResult(success=True, message="User created, ready", data={"userCreated": True})
