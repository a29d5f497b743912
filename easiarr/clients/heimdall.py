"""Heimdall client: pinned tiles for the enabled apps."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..models import AppConfig
from ..registry import get_app
from .base import HttpServiceClient, SetupOptions, SetupResult, decode_json, log_request

log = logging.getLogger(__name__)

CATEGORY_COLOURS: Dict[str, str] = {
    "servarr": "#ffc107",
    "indexer": "#17a2b8",
    "downloader": "#28a745",
    "mediaserver": "#6c5ce7",
    "request": "#e17055",
    "monitoring": "#00cec9",
    "infrastructure": "#636e72",
    "vpn": "#fd79a8",
    "utility": "#74b9ff",
}
DEFAULT_COLOUR = "#6c757d"


class HeimdallClient(HttpServiceClient):
    category = "Heimdall"

    def __init__(
        self,
        host: str,
        port: int = 80,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}", transport=transport)

    def request(self, method: str, endpoint: str, *, json: Any = None) -> Optional[Any]:
        """JSON body, or None when this Heimdall build has no item API."""
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        response = self._client.request(method, endpoint, json=json)
        if response.status_code in (401, 403, 404):
            log.debug("[%s] %s %s unavailable: %s", self.category, method, endpoint, response.status_code)
            return None
        response.raise_for_status()
        return decode_json(response)

    def is_healthy(self) -> bool:
        try:
            return self._client.get("/").is_success
        except httpx.RequestError:
            return False

    def is_initialized(self) -> bool:
        # Heimdall has no first-run wizard
        return self.is_healthy()

    def get_items(self) -> Optional[List[Dict[str, Any]]]:
        items = self.request("GET", "/api/items")
        return items if isinstance(items, list) else None

    def add_item(self, title: str, url: str, description: str = "", colour: str = DEFAULT_COLOUR) -> bool:
        result = self.request(
            "POST",
            "/api/items",
            json={"title": title, "url": url, "appdescription": description, "pinned": True, "colour": colour},
        )
        return result is not None

    def add_easiarr_apps(self, apps: Iterable[AppConfig]) -> int:
        items = self.get_items()
        if items is None:
            return 0
        existing = {item.get("title") for item in items}
        added = 0
        for app in apps:
            definition = get_app(app.id)
            if not app.enabled or definition is None or app.id == "heimdall":
                continue
            if definition.default_port == 0 or definition.name in existing:
                continue
            port = definition.internal_port or app.port or definition.default_port
            colour = CATEGORY_COLOURS.get(definition.category, DEFAULT_COLOUR)
            if self.add_item(definition.name, f"http://{app.id}:{port}", definition.description, colour):
                added += 1
        return added

    def setup(self, options: SetupOptions) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Heimdall not reachable")
        return SetupResult(success=True, message="Ready - add tiles via UI")
