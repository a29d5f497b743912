"""Custom format management with TRaSH Guides import."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..trash import trash_cf_url
from .arr import ArrApiClient, ArrApiError
from .base import build_http_client

log = logging.getLogger(__name__)


class CustomFormatClient(ArrApiClient):
    category = "CustomFormat"

    def get_custom_formats(self) -> List[Dict[str, Any]]:
        return self.get_json("/customformat")

    def create_custom_format(self, custom_format: Dict[str, Any]) -> Dict[str, Any]:
        return self.post_json("/customformat", custom_format)

    def update_custom_format(self, cf_id: int, custom_format: Dict[str, Any]) -> Dict[str, Any]:
        return self.put_json(f"/customformat/{cf_id}", {**custom_format, "id": cf_id})

    def import_custom_format(self, custom_format: Dict[str, Any]) -> Dict[str, Any]:
        """Update the custom format with the same name, or create it."""
        for existing in self.get_custom_formats():
            if existing.get("name") == custom_format.get("name"):
                return self.update_custom_format(existing["id"], custom_format)
        return self.create_custom_format(custom_format)

    def import_custom_formats(self, custom_formats: List[Dict[str, Any]]) -> Dict[str, int]:
        success = 0
        failed = 0
        for custom_format in custom_formats:
            try:
                self.import_custom_format(custom_format)
            except (ArrApiError, httpx.HTTPError):
                log.debug("Failed to import custom format %s", custom_format.get("name"), exc_info=True)
                failed += 1
            else:
                success += 1
        return {"success": success, "failed": failed}


def fetch_trash_custom_format(
    app: str,
    cf_name: str,
    transport: Optional[httpx.BaseTransport] = None,
) -> Optional[Dict[str, Any]]:
    """Download one custom format JSON from the TRaSH Guides repository."""
    url = trash_cf_url(app, cf_name)
    with build_http_client(url, transport=transport) as client:
        try:
            response = client.get(url)
        except httpx.HTTPError:
            log.debug("Failed to fetch %s", url, exc_info=True)
            return None
    if not response.is_success:
        return None
    return response.json()


def fetch_trash_custom_formats(
    app: str,
    cf_names: List[str],
    transport: Optional[httpx.BaseTransport] = None,
) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Return ``(custom_formats, failed_names)``."""
    custom_formats: List[Dict[str, Any]] = []
    failed: List[str] = []
    for name in cf_names:
        custom_format = fetch_trash_custom_format(app, name, transport=transport)
        if custom_format:
            custom_formats.append(custom_format)
        else:
            failed.append(name)
    return custom_formats, failed
