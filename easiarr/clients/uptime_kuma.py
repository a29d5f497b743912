"""Uptime Kuma client over Socket.IO: admin setup, login and HTTP monitors."""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

import httpx
import socketio

from ..constants import HTTP_CONNECT_TIMEOUT, HTTP_TIMEOUT
from ..models import AppConfig
from ..registry import get_app
from .base import AuthenticationError, SetupOptions, SetupResult

log = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10
CALL_TIMEOUT = 15
MONITOR_LIST_TIMEOUT = 5
MONITOR_PREFIX = "Easiarr - "


class UptimeKumaClient:
    category = "UptimeKuma"

    def __init__(self, host: str, port: int = 3001, *, sio: Optional[socketio.Client] = None) -> None:
        self.base_url = f"http://{host}:{port}"
        self.sio = sio or socketio.Client(reconnection=False)
        self.authenticated = False
        self._monitors: Dict[str, Dict[str, Any]] = {}
        self._monitor_event = threading.Event()
        self.sio.on("monitorList", self._on_monitor_list)

    def _on_monitor_list(self, data: Dict[str, Dict[str, Any]]) -> None:
        self._monitors = dict(data or {})
        self._monitor_event.set()

    def __enter__(self) -> "UptimeKumaClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def connect(self) -> None:
        if self.sio.connected:
            return
        log.debug("[%s] Connecting to %s", self.category, self.base_url)
        self.sio.connect(self.base_url, transports=["websocket"], wait_timeout=CONNECT_TIMEOUT)

    def disconnect(self) -> None:
        if self.sio.connected:
            self.sio.disconnect()
        self.authenticated = False

    def call(self, event: str, data: Any = None) -> Any:
        self.connect()
        log.debug("[%s] emit %s", self.category, event)
        return self.sio.call(event, data, timeout=CALL_TIMEOUT)

    # Health --------------------------------------------------------------

    def is_healthy(self) -> bool:
        timeout = httpx.Timeout(HTTP_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT)
        try:
            response = httpx.get(f"{self.base_url}/api/status-page/heartbeat/main", timeout=timeout)
        except httpx.RequestError:
            return False
        return response.status_code not in (502, 503)

    def needs_setup(self) -> bool:
        response = self.call("needSetup")
        if isinstance(response, dict):
            return bool(response.get("needSetup"))
        return bool(response)

    def is_initialized(self) -> bool:
        try:
            return not self.needs_setup()
        except (socketio.exceptions.SocketIOError, OSError):
            log.debug("[%s] needSetup check failed", self.category, exc_info=True)
            return True
        finally:
            self.disconnect()

    # Authentication ------------------------------------------------------

    def setup_admin(self, username: str, password: str) -> Dict[str, Any]:
        response = self.call("setup", (username, password)) or {}
        if response.get("ok"):
            self.authenticated = True
        return response

    def login(self, username: str, password: str) -> bool:
        response = self.call("login", {"username": username, "password": password, "token": ""}) or {}
        self.authenticated = bool(response.get("ok"))
        return self.authenticated

    # Monitors ------------------------------------------------------------

    def add_monitor(
        self,
        name: str,
        url: str,
        monitor_type: str = "http",
        interval: int = 60,
        timeout: int = 30,
        maxretries: int = 2,
    ) -> Optional[int]:
        if not self.authenticated:
            raise AuthenticationError("Not logged in to Uptime Kuma")
        payload = {
            "type": monitor_type,
            "name": name,
            "url": url,
            "interval": interval,
            "timeout": timeout,
            "maxretries": maxretries,
            "active": True,
            "accepted_statuscodes": ["200-299"],
        }
        response = self.call("add", payload) or {}
        if response.get("ok"):
            return response.get("monitorID")
        log.debug("[%s] add %s failed: %s", self.category, name, response.get("msg"))
        return None

    def get_monitors(self) -> List[Dict[str, Any]]:
        """Request the monitor list; empty when the server does not answer in time."""
        if not self.authenticated:
            raise AuthenticationError("Not logged in to Uptime Kuma")
        self._monitor_event.clear()
        self.sio.emit("getMonitorList")
        if not self._monitor_event.wait(MONITOR_LIST_TIMEOUT):
            log.debug("[%s] No monitorList within %ss", self.category, MONITOR_LIST_TIMEOUT)
        return list(self._monitors.values())

    def setup_easiarr_monitors(self, apps: Iterable[AppConfig]) -> int:
        """Add one HTTP monitor per enabled app with a port. Returns how many were added."""
        existing = {monitor.get("name") for monitor in self.get_monitors()}
        added = 0
        for app in apps:
            if not app.enabled:
                continue
            definition = get_app(app.id)
            if definition is None or definition.default_port == 0:
                continue
            name = f"{MONITOR_PREFIX}{definition.name}"
            if name in existing:
                continue
            internal_port = definition.internal_port or app.port or definition.default_port
            if self.add_monitor(name, f"http://{app.id}:{internal_port}"):
                added += 1
        return added

    # Auto-setup ----------------------------------------------------------

    def setup(self, options: SetupOptions) -> SetupResult:
        if not self.is_healthy():
            return SetupResult(success=False, message="Uptime Kuma not reachable")
        initialized = self.is_initialized()
        try:
            if not initialized:
                response = self.setup_admin(options.username, options.password)
                if not response.get("ok"):
                    return SetupResult(success=False, message=f"Setup failed: {response.get('msg')}")
            elif not self.login(options.username, options.password):
                return SetupResult(success=False, message="Login failed - check credentials")
        finally:
            self.disconnect()
        return SetupResult(
            success=True,
            message="Logged in" if initialized else "Admin created",
            data={"adminCreated": not initialized},
        )
