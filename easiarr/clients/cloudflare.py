"""Cloudflare API client for the tunnel, its DNS record and Access policy."""
from __future__ import annotations

import base64
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .base import HttpServiceClient, decode_json, log_request

log = logging.getLogger(__name__)

CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"
TUNNEL_NAME = "easiarr"
TUNNEL_SERVICE = "http://traefik:80"


class CloudflareApiError(Exception):
    """Raised when the API answers ``success: false``."""


@dataclass
class TunnelSetup:
    tunnel_id: str
    tunnel_token: str
    account_id: str


class CloudflareClient(HttpServiceClient):
    category = "Cloudflare"

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = CLOUDFLARE_API_BASE,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(base_url, headers={"Authorization": f"Bearer {api_token}"}, transport=transport)
        self._account_id: Optional[str] = None

    def request(self, method: str, endpoint: str, *, json: Any = None, params: Optional[Dict[str, str]] = None) -> Any:
        log_request(self.category, method, f"{self.base_url}{endpoint}", json)
        response = self._client.request(method, endpoint, json=json, params=params)
        data = decode_json(response)
        if not isinstance(data, dict) or not data.get("success"):
            errors = data.get("errors") if isinstance(data, dict) else None
            detail = ", ".join(error.get("message", "") for error in errors or []) or response.text
            raise CloudflareApiError(f"Cloudflare API error ({response.status_code}): {detail}")
        return data.get("result")

    # Account and zones ---------------------------------------------------

    @property
    def account_id(self) -> str:
        if self._account_id is None:
            accounts = self.request("GET", "/accounts")
            if not accounts:
                raise CloudflareApiError(
                    "No Cloudflare accounts found. The API token needs the Account Settings:Read permission"
                )
            self._account_id = accounts[0]["id"]
        return self._account_id

    def get_zone_id(self, domain: str) -> str:
        zones = self.request("GET", "/zones", params={"name": domain})
        if not zones:
            raise CloudflareApiError(f"Zone not found for domain: {domain}")
        return zones[0]["id"]

    # Tunnels -------------------------------------------------------------

    def list_tunnels(self) -> List[Dict[str, Any]]:
        return self.request("GET", f"/accounts/{self.account_id}/cfd_tunnel") or []

    def get_tunnel_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        return next((tunnel for tunnel in self.list_tunnels() if tunnel.get("name") == name), None)

    def create_tunnel(self, name: str) -> Dict[str, Any]:
        secret = base64.b64encode(secrets.token_bytes(32)).decode()
        return self.request(
            "POST",
            f"/accounts/{self.account_id}/cfd_tunnel",
            json={"name": name, "tunnel_secret": secret, "config_src": "cloudflare"},
        )

    def get_tunnel_token(self, tunnel_id: str) -> str:
        return self.request("GET", f"/accounts/{self.account_id}/cfd_tunnel/{tunnel_id}/token")

    def configure_tunnel(self, tunnel_id: str, ingress: List[Dict[str, Any]]) -> None:
        """Replace the ingress rules; a 404 catch-all is appended when missing."""
        rules = list(ingress)
        if all(rule.get("hostname") for rule in rules):
            rules.append({"service": "http_status:404"})
        self.request(
            "PUT",
            f"/accounts/{self.account_id}/cfd_tunnel/{tunnel_id}/configurations",
            json={"config": {"ingress": rules, "warp-routing": {"enabled": False}}},
        )

    def upsert_cname(self, zone_id: str, name: str, tunnel_id: str, proxied: bool = True) -> Dict[str, Any]:
        record = {"type": "CNAME", "name": name, "content": f"{tunnel_id}.cfargotunnel.com", "proxied": proxied}
        existing = self.request("GET", f"/zones/{zone_id}/dns_records", params={"type": "CNAME", "name": name})
        if existing:
            return self.request("PATCH", f"/zones/{zone_id}/dns_records/{existing[0]['id']}", json=record)
        return self.request("POST", f"/zones/{zone_id}/dns_records", json=record)

    def setup_tunnel(self, domain: str, name: str = TUNNEL_NAME) -> TunnelSetup:
        """Create or reuse the tunnel, route ``*.domain`` to Traefik and point DNS at it."""
        tunnel = self.get_tunnel_by_name(name) or self.create_tunnel(name)
        tunnel_id = tunnel["id"]
        token = self.get_tunnel_token(tunnel_id)
        self.configure_tunnel(tunnel_id, [{"hostname": f"*.{domain}", "service": TUNNEL_SERVICE, "originRequest": {}}])
        self.upsert_cname(self.get_zone_id(domain), f"*.{domain}", tunnel_id)
        return TunnelSetup(tunnel_id=tunnel_id, tunnel_token=token, account_id=self.account_id)

    # Access --------------------------------------------------------------

    def create_access_application(self, domain: str, name: str = TUNNEL_NAME, session_duration: str = "24h") -> str:
        apps = self.request("GET", f"/accounts/{self.account_id}/access/apps") or []
        for app in apps:
            if app.get("name") == name or app.get("domain") == f"*.{domain}":
                return app["id"]
        created = self.request(
            "POST",
            f"/accounts/{self.account_id}/access/apps",
            json={
                "name": name,
                "domain": f"*.{domain}",
                "type": "self_hosted",
                "session_duration": session_duration,
                "auto_redirect_to_identity": True,
            },
        )
        return created["id"]

    def create_access_policy(self, app_id: str, emails: List[str], name: str = "Allow Emails") -> str:
        endpoint = f"/accounts/{self.account_id}/access/apps/{app_id}/policies"
        for policy in self.request("GET", endpoint) or []:
            if policy.get("name") == name:
                return policy["id"]
        created = self.request(
            "POST",
            endpoint,
            json={"name": name, "decision": "allow", "include": [{"email": {"email": emails}}], "precedence": 1},
        )
        return created["id"]

    def setup_access_protection(self, domain: str, emails: List[str], name: str = TUNNEL_NAME) -> str:
        return self.create_access_policy(self.create_access_application(domain, name), emails)
