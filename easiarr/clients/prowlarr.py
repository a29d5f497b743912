"""Prowlarr automation client: tags, indexer proxies, sync profiles and app links."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..constants import ARR_APP_TYPES
from .arr import ArrApiClient, ArrApiError
from .retry import DEFAULT_MAX_RETRIES

log = logging.getLogger(__name__)

LIMITED_API_SYNC_PROFILES = [
    {
        "name": "Automatic Search",
        "enableRss": False,
        "enableInteractiveSearch": True,
        "enableAutomaticSearch": True,
        "minimumSeeders": 1,
    },
    {
        "name": "Interactive Search",
        "enableRss": False,
        "enableInteractiveSearch": True,
        "enableAutomaticSearch": False,
        "minimumSeeders": 1,
    },
]


class ProwlarrClient(ArrApiClient):
    """Provision and link Prowlarr applications."""

    category = "Prowlarr"

    def __init__(
        self,
        host: str,
        port: int,
        api_key: str,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        super().__init__(host, port, api_key, "v1", transport=transport, max_retries=max_retries)

    def is_healthy(self) -> bool:
        try:
            self.get_json("/health")
        except (ArrApiError, httpx.HTTPError):
            log.debug("Prowlarr health check failed", exc_info=True)
            return False
        return True

    # Tags ----------------------------------------------------------------

    def get_tags(self) -> List[Dict[str, Any]]:
        return self.get_json("/tag")

    def create_tag(self, label: str) -> Dict[str, Any]:
        return self.post_json("/tag", {"label": label})

    def get_or_create_tag(self, label: str) -> Dict[str, Any]:
        for tag in self.get_tags():
            if tag.get("label", "").lower() == label.lower():
                return tag
        return self.create_tag(label)

    # Indexer proxies -----------------------------------------------------

    def get_indexer_proxies(self) -> List[Dict[str, Any]]:
        return self.get_json("/indexerproxy")

    def _add_proxy(self, name: str, implementation: str, fields: List[Dict[str, Any]], tags: List[int]) -> Dict[str, Any]:
        return self.post_json(
            "/indexerproxy",
            {
                "name": name,
                "tags": tags,
                "implementation": implementation,
                "configContract": f"{implementation}Settings",
                "fields": fields,
            },
        )

    def add_flaresolverr(
        self, name: str, host: str, tags: Optional[List[int]] = None, request_timeout: int = 60
    ) -> Dict[str, Any]:
        fields = [{"name": "host", "value": host}, {"name": "requestTimeout", "value": request_timeout}]
        return self._add_proxy(name, "FlareSolverr", fields, tags or [])

    def configure_flaresolverr(self, flaresolverr_url: str) -> bool:
        """Add a tagged FlareSolverr proxy unless one exists. Returns True if added."""
        tag = self.get_or_create_tag("flaresolverr")
        for proxy in self.get_indexer_proxies():
            if proxy.get("implementation") == "FlareSolverr":
                return False
        self.add_flaresolverr("FlareSolverr", flaresolverr_url, [tag["id"]])
        return True

    # Sync profiles -------------------------------------------------------

    def get_sync_profiles(self) -> List[Dict[str, Any]]:
        return self.get_json("/appsyncprofile")

    def create_sync_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        return self.post_json("/appsyncprofile", profile)

    def create_limited_api_sync_profiles(self) -> Dict[str, Dict[str, Any]]:
        """Ensure the TRaSH sync profiles for indexers with API limits exist."""
        existing = {profile.get("name"): profile for profile in self.get_sync_profiles()}
        result = {}
        for template in LIMITED_API_SYNC_PROFILES:
            profile = existing.get(template["name"]) or self.create_sync_profile(dict(template))
            key = "automatic" if template["enableAutomaticSearch"] else "interactive"
            result[key] = profile
        return result

    # Applications --------------------------------------------------------

    def get_applications(self) -> List[Dict[str, Any]]:
        return self.get_json("/applications")

    def add_application(
        self,
        implementation: str,
        name: str,
        prowlarr_url: str,
        app_url: str,
        app_api_key: str,
        sync_level: str = "fullSync",
        sync_categories: Optional[List[int]] = None,
    ) -> Dict[str, Any]:
        return self.post_json(
            "/applications",
            {
                "name": name,
                "syncLevel": sync_level,
                "implementation": implementation,
                "configContract": f"{implementation}Settings",
                "fields": [
                    {"name": "prowlarrUrl", "value": prowlarr_url},
                    {"name": "baseUrl", "value": app_url},
                    {"name": "apiKey", "value": app_api_key},
                    {"name": "syncCategories", "value": sync_categories or []},
                ],
                "tags": [],
            },
        )

    def sync_applications(self) -> None:
        # The endpoint rejects an empty body
        self.post_json("/applications/action/sync", {})

    def add_arr_app(
        self,
        app_id: str,
        host: str,
        port: int,
        api_key: str,
        prowlarr_host: str,
        prowlarr_port: int,
        sync_categories: Optional[List[int]] = None,
    ) -> Dict[str, Any]:
        """Link an *arr app, returning the existing link of the same kind if present."""
        implementation = ARR_APP_TYPES.get(app_id)
        if implementation is None:
            raise ValueError(f"{app_id} cannot be linked to Prowlarr")
        for application in self.get_applications():
            if application.get("implementation") == implementation:
                return application
        return self.add_application(
            implementation,
            implementation,
            f"http://{prowlarr_host}:{prowlarr_port}",
            f"http://{host}:{port}",
            api_key,
            "fullSync",
            sync_categories,
        )
