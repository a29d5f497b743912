"""qBittorrent WebUI API v2 client."""
from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from ..categories import CategoryInfo
from ..constants import CONTAINER_PATHS
from .base import AuthenticationError, HttpServiceClient, SetupOptions, SetupResult

log = logging.getLogger(__name__)

TEMP_PASSWORD_PATTERN = re.compile(
    r"temporary password (?:is provided )?for this session: (?P<password>\S+)",
    re.IGNORECASE,
)


def fetch_temporary_password(container: str = "qbittorrent") -> Optional[str]:
    """Read docker logs to capture the session temporary password."""
    try:
        result = subprocess.run(
            ["docker", "logs", container, "--tail", "200"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        log.debug("Unable to read qBittorrent logs: %s", exc, exc_info=True)
        return None

    if result.returncode != 0:
        log.debug(
            "docker logs %s exited with %s: %s",
            container,
            result.returncode,
            result.stderr.strip(),
        )
        return None

    # The password is printed on stdout or stderr depending on the image
    for line in reversed((result.stdout + "\n" + result.stderr).splitlines()):
        match = TEMP_PASSWORD_PATTERN.search(line)
        if match:
            log.debug("Captured qBittorrent temporary password from logs")
            return match.group("password").strip()
    return None


class QBittorrentClient(HttpServiceClient):
    """Configure qBittorrent using its Web API."""

    category = "qBittorrent"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        base_url = f"http://{host}:{port}"
        super().__init__(
            base_url,
            headers={"Referer": f"{base_url}/", "Origin": base_url},
            transport=transport,
            follow_redirects=True,
        )
        self.username = username
        self.password = password

    # Session -------------------------------------------------------------

    def login(self, username: Optional[str] = None, password: Optional[str] = None) -> bool:
        """POST /api/v2/auth/login; success is an SID cookie or the body ``Ok.``."""
        user = username if username is not None else self.username
        secret = password if password is not None else self.password
        log.debug("[%s] Logging in to %s as %s", self.category, self.base_url, user)
        try:
            response = self._client.post("/api/v2/auth/login", data={"username": user, "password": secret})
        except httpx.RequestError:
            log.debug("[%s] Login error", self.category, exc_info=True)
            return False
        if not response.is_success:
            log.debug("[%s] Login failed: %s", self.category, response.status_code)
            return False
        if response.cookies.get("SID"):
            return True
        return response.text.strip() == "Ok."

    def authenticate(self, candidates: Iterable[Tuple[str, str]]) -> Tuple[str, str]:
        """Log in with the first working pair; raises AuthenticationError otherwise."""
        for username, password in candidates:
            if not password:
                continue
            if self.login(username, password):
                return username, password
        raise AuthenticationError("qBittorrent rejected every known credential")

    def login_candidates(self, temp_password: Optional[str] = None) -> List[Tuple[str, str]]:
        candidates: List[Tuple[str, str]] = [(self.username, self.password)]
        if temp_password:
            candidates.append(("admin", temp_password))
        for pair in ((self.username, "adminadmin"), ("admin", "adminadmin")):
            if pair not in candidates:
                candidates.append(pair)
        return candidates

    def is_healthy(self) -> bool:
        """The WebUI answers (even 403 before login means it is up)."""
        try:
            response = self._client.get("/api/v2/app/version")
        except httpx.RequestError:
            return False
        return response.status_code < 500

    def is_initialized(self) -> bool:
        return self.login()

    # Preferences ---------------------------------------------------------

    def set_preferences(self, preferences: Dict[str, Any]) -> None:
        response = self._client.post("/api/v2/app/setPreferences", data={"json": json.dumps(preferences)})
        response.raise_for_status()

    # Categories ----------------------------------------------------------

    def create_category(self, name: str, save_path: str) -> bool:
        """Create a category. Returns False when it already existed (409)."""
        response = self._client.post(
            "/api/v2/torrents/createCategory",
            data={"category": name, "savePath": save_path},
        )
        if response.status_code == 409:
            return False
        response.raise_for_status()
        return True

    def edit_category(self, name: str, save_path: str) -> None:
        response = self._client.post(
            "/api/v2/torrents/editCategory",
            data={"category": name, "savePath": save_path},
        )
        response.raise_for_status()

    def ensure_category(self, name: str, save_path: str) -> bool:
        if self.create_category(name, save_path):
            return True
        self.edit_category(name, save_path)
        return False

    def configure_trash_compliant(
        self,
        categories: Iterable[CategoryInfo] = (),
        auth: Optional[Tuple[str, str]] = None,
    ) -> None:
        """Single /data/torrents save path, automatic torrent management, one category per *arr app."""
        preferences: Dict[str, Any] = {
            "save_path": CONTAINER_PATHS["torrents"],
            "temp_path_enabled": False,
            "auto_tmm_enabled": True,
            "category_changed_tmm_enabled": True,
            "save_path_changed_tmm_enabled": True,
        }
        if auth:
            log.debug("[%s] Setting WebUI username/password", self.category)
            preferences["web_ui_username"], preferences["web_ui_password"] = auth
        self.set_preferences(preferences)

        for info in categories:
            log.debug("[%s] Creating category: %s -> %s", self.category, info.name, info.save_path)
            self.ensure_category(info.name, info.save_path)

    # Auto-setup ----------------------------------------------------------

    def setup(self, options: SetupOptions, categories: Iterable[CategoryInfo] = ()) -> SetupResult:
        """Log in with any known credential, then enforce ours and the TRaSH layout."""
        try:
            self.authenticate(self.login_candidates(fetch_temporary_password()))
        except AuthenticationError as exc:
            return SetupResult(success=False, message=str(exc))
        categories = list(categories)
        self.configure_trash_compliant(categories, auth=(self.username, self.password))
        return SetupResult(
            success=True,
            message=f"{len(categories)} categories",
            data={"categories": [info.name for info in categories]},
        )
