"""Plex Media Server client: server claim and default libraries."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import HttpServiceClient, SetupOptions, SetupResult, decode_json, log_request

log = logging.getLogger(__name__)

PLEX_CLAIM = "PLEX_CLAIM"
PLEX_HEADERS = {
    "Accept": "application/json",
    "X-Plex-Client-Identifier": "easiarr",
    "X-Plex-Product": "Easiarr",
    "X-Plex-Version": "1.0.0",
    "X-Plex-Device": "Server",
}
LIBRARY_AGENTS = {
    "movie": ("tv.plex.agents.movie", "Plex Movie"),
    "show": ("tv.plex.agents.series", "Plex TV Series"),
    "artist": ("tv.plex.agents.music", "Plex Music"),
}
DEFAULT_LIBRARIES = (
    ("Movies", "movie", "/data/media/movies"),
    ("TV Shows", "show", "/data/media/tv"),
    ("Music", "artist", "/data/media/music"),
)


class PlexApiError(Exception):
    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Plex request failed: {status_code} - {body}")


class PlexClient(HttpServiceClient):
    category = "Plex"

    def __init__(
        self,
        host: str,
        port: int = 32400,
        token: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(f"http://{host}:{port}", headers=PLEX_HEADERS, transport=transport)
        self.token = token

    def request(self, method: str, endpoint: str, *, params: Optional[Dict[str, str]] = None) -> Any:
        log_request(self.category, method, f"{self.base_url}{endpoint}")
        headers = {"X-Plex-Token": self.token} if self.token else {}
        response = self._client.request(method, endpoint, params=params, headers=headers)
        if not response.is_success:
            raise PlexApiError(response.status_code, response.text)
        return decode_json(response)

    def is_healthy(self) -> bool:
        try:
            return self._client.get("/identity").is_success
        except httpx.RequestError:
            return False

    def get_server_info(self) -> Dict[str, Any]:
        container = self.request("GET", "/").get("MediaContainer") or {}
        return {
            "machineIdentifier": container.get("machineIdentifier"),
            "version": container.get("version"),
            "claimed": container.get("myPlex") is True or bool(container.get("myPlexUsername")),
        }

    def is_initialized(self) -> bool:
        try:
            return self.get_server_info()["claimed"]
        except (PlexApiError, httpx.RequestError):
            return False

    def claim_server(self, claim_token: str) -> None:
        """Claim with a plex.tv/claim token; those expire after four minutes."""
        token = claim_token if claim_token.startswith("claim-") else f"claim-{claim_token}"
        self.request("POST", "/myplex/claim", params={"token": token})
        log.info("[%s] Server claimed", self.category)

    def get_library_sections(self) -> List[Dict[str, Any]]:
        return (self.request("GET", "/library/sections").get("MediaContainer") or {}).get("Directory") or []

    def library_exists_for_path(self, path: str) -> bool:
        for section in self.get_library_sections():
            if any(location.get("path") == path for location in section.get("Location") or []):
                return True
        return False

    def create_library(self, name: str, kind: str, path: str, language: str = "en-US") -> None:
        if kind not in LIBRARY_AGENTS:
            raise ValueError(f"Unknown library type: {kind}")
        agent, scanner = LIBRARY_AGENTS[kind]
        self.request(
            "POST",
            "/library/sections",
            params={
                "name": name,
                "type": kind,
                "agent": agent,
                "scanner": scanner,
                "language": language,
                "location[0]": path,
            },
        )

    def create_default_libraries(self) -> int:
        created = 0
        for name, kind, path in DEFAULT_LIBRARIES:
            if self.library_exists_for_path(path):
                continue
            try:
                self.create_library(name, kind, path)
            except PlexApiError as exc:
                # Plex rejects libraries whose folder does not exist yet
                log.debug("[%s] Could not create library %s: %s", self.category, name, exc)
                continue
            created += 1
        return created

    def setup(self, options: SetupOptions) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Plex server not reachable")
        if self.is_initialized():
            return SetupResult(success=True, message="Already claimed")
        claim_token = options.env.get(PLEX_CLAIM)
        if not claim_token:
            return SetupResult(
                success=False,
                message=f"No {PLEX_CLAIM} token. Get one from https://plex.tv/claim (4-min expiry)",
            )
        self.claim_server(claim_token)
        created = self.create_default_libraries()
        return SetupResult(
            success=True,
            message="Server claimed, libraries configured",
            data={"librariesCreated": created},
        )
