"""Tests for media server, request manager and companion app clients."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs

import httpx
import pytest

from easiarr.clients.base import SetupOptions
from easiarr.clients.bazarr import BazarrClient
from easiarr.clients.cloudflare import CloudflareApiError, CloudflareClient
from easiarr.clients.grafana import GrafanaClient
from easiarr.clients.heimdall import HeimdallClient
from easiarr.clients.huntarr import HuntarrClient
from easiarr.clients.jellyfin import JellyfinClient
from easiarr.clients.jellyseerr import JellyseerrClient
from easiarr.clients.overseerr import OverseerrClient
from easiarr.clients.plex import PlexClient
from easiarr.clients.portainer import PortainerClient
from easiarr.clients.profilarr import ProfilarrClient
from easiarr.clients.seerr import SeerrClient
from easiarr.clients.tautulli import TautulliClient
from easiarr.clients.uptime_kuma import UptimeKumaClient
from easiarr.clients.util import read_api_key
from easiarr.models import AppConfig
from easiarr.registry import get_app


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def body(request: httpx.Request) -> Any:
    return json.loads(request.content)


def form(request: httpx.Request) -> dict:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


OPTIONS = SetupOptions("admin", "password123")


class TestJellyfinClient:
    """Tests for the Jellyfin startup wizard and API key flow."""

    def test_wizard_libraries_and_api_key(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/System/Info/Public":
                return json_response({"StartupWizardCompleted": False})
            if path == "/Users/AuthenticateByName":
                return json_response({"AccessToken": "tok"})
            if path == "/Library/VirtualFolders" and request.method == "GET":
                return json_response([{"Name": "Movies"}])
            if path == "/Auth/Keys" and request.method == "GET":
                return json_response({"Items": [{"AppName": "easiarr", "AccessToken": "jf-key"}]})
            return httpx.Response(204)

        transport, seen = recorder(handler)
        with JellyfinClient("localhost", 8096, transport=transport) as client:
            result = client.setup(OPTIONS)

        assert result.success
        assert result.message == "wizard completed, 2 libraries added"
        assert result.env_updates == {"API_KEY_JELLYFIN": "jf-key"}
        paths = [request.url.path for request in seen]
        assert paths.index("/Startup/FirstUser") < paths.index("/Startup/User") < paths.index("/Startup/Complete")
        assert 'Token="tok"' in seen[-1].headers["X-Emby-Authorization"]

    def test_different_credentials(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/System/Info/Public":
                return json_response({"StartupWizardCompleted": True})
            return httpx.Response(401)

        transport, seen = recorder(handler)
        with JellyfinClient("localhost", 8096, transport=transport) as client:
            result = client.setup(OPTIONS)
        assert not result.success
        assert result.message == "Already configured with different credentials"
        assert not any(request.url.path.startswith("/Startup") for request in seen)


class TestSeerrClients:
    """Tests for the Jellyseerr and Overseerr request managers."""

    def test_jellyseerr_already_initialized(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/v1/settings/public":
                return json_response({"initialized": True})
            return json_response({"apiKey": "js"})

        transport, seen = recorder(handler)
        with JellyseerrClient("localhost", 5055, "js", transport=transport) as client:
            result = client.setup(OPTIONS)
        assert result.message == "Already configured"
        assert result.env_updates == {"API_KEY_JELLYSEERR": "js"}
        assert seen[-1].headers["X-Api-Key"] == "js"

    def test_jellyseerr_fresh_setup(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/api/v1/settings/public":
                return json_response({"initialized": False})
            if path == "/api/v1/settings/jellyfin/library" and "sync" in request.url.params:
                return json_response([{"id": "a"}, {"id": "b"}, {"name": "no id"}])
            if path == "/api/v1/settings/main":
                return json_response({"apiKey": "js"})
            return json_response({})

        transport, seen = recorder(handler)
        with JellyseerrClient("localhost", 5055, transport=transport) as client:
            result = client.setup(OPTIONS, "jellyfin", 8096)

        assert result.success
        assert result.message == "Connected to Jellyfin"
        assert result.env_updates == {"API_KEY_JELLYSEERR": "js"}
        auth = next(request for request in seen if request.url.path == "/api/v1/auth/jellyfin")
        assert body(auth)["hostname"] == "jellyfin"
        assert body(auth)["email"] == "admin@local"
        enable = next(request for request in seen if "enable" in request.url.params)
        assert enable.url.params["enable"] == "a,b"
        assert seen[-1].url.path == "/api/v1/settings/initialize"

    def test_jellyseerr_rejected_credentials(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/v1/settings/public":
                return json_response({"initialized": False})
            return httpx.Response(401, text="unauthorized")

        transport, _ = recorder(handler)
        with JellyseerrClient("localhost", 5055, transport=transport) as client:
            result = client.setup(OPTIONS)
        assert not result.success

    def test_configure_server_returns_existing(self, recorder):
        transport, seen = recorder(lambda request: json_response([{"id": 0, "name": "Radarr"}]))
        with SeerrClient("localhost", 5055, transport=transport) as client:
            server = client.configure_radarr("radarr", 7878, "rk", "/data/media/movies")
        assert server == {"id": 0, "name": "Radarr"}
        assert len(seen) == 1

    def test_configure_server_without_profiles(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/test"):
                return json_response({"profiles": []})
            return json_response([])

        transport, seen = recorder(handler)
        with SeerrClient("localhost", 5055, transport=transport) as client:
            assert client.configure_sonarr("sonarr", 8989, "sk", "/data/media/tv") is None
        assert not any(request.url.path == "/api/v1/settings/sonarr" and request.method == "POST" for request in seen)

    def test_configure_radarr_uses_first_profile(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/test"):
                return json_response({"profiles": [{"id": 4, "name": "HD-1080p"}, {"id": 5, "name": "UHD"}]})
            if request.method == "POST":
                return json_response(body(request))
            return json_response([])

        transport, seen = recorder(handler)
        with SeerrClient("localhost", 5055, transport=transport) as client:
            client.configure_radarr("radarr", 7878, "rk", "/data/media/movies", "http://10.0.0.2:7878")
        sent = body(seen[-1])
        assert sent["activeProfileId"] == 4
        assert sent["activeDirectory"] == "/data/media/movies"
        assert sent["minimumAvailability"] == "announced"
        assert sent["externalUrl"] == "http://10.0.0.2:7878"

    def test_overseerr_needs_plex_token(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/v1/settings/public":
                return json_response({"initialized": False})
            return json_response({"version": "1.33"})

        transport, seen = recorder(handler)
        with OverseerrClient("localhost", 5055, transport=transport) as client:
            result = client.setup(OPTIONS)
        assert not result.success
        assert result.message == "No PLEX_TOKEN in .env"
        assert not any(request.url.path == "/api/v1/auth/plex" for request in seen)

    def test_overseerr_prefers_local_connection(self, recorder):
        servers = [
            {
                "name": "Home",
                "connection": [
                    {"uri": "https://remote.plex.direct:443", "local": False},
                    {"uri": "http://192.168.1.5:32400", "local": True},
                ],
            }
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/devices/servers"):
                return json_response(servers)
            return json_response(body(request))

        transport, seen = recorder(handler)
        with OverseerrClient("localhost", 5055, transport=transport) as client:
            assert client.configure_first_plex_server()
        assert body(seen[-1]) == {"name": "Home", "ip": "192.168.1.5", "port": 32400}


class TestBazarrClient:
    """Tests for Bazarr form settings."""

    def settings_handler(self, auth_type: str):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(204)
            if request.url.path == "/api/system/settings":
                return json_response({"auth": {"apikey": "bz", "type": auth_type}})
            return json_response({})

        return handler

    def test_setup_enables_form_auth(self, recorder):
        transport, seen = recorder(self.settings_handler("None"))
        with BazarrClient("localhost", 6767, transport=transport) as client:
            result = client.setup(OPTIONS)
        assert result.message == "Auth enabled"
        assert result.env_updates == {"API_KEY_BAZARR": "bz"}
        post = next(request for request in seen if request.method == "POST")
        assert form(post)["settings-auth-type"] == "form"
        assert post.url.params["apikey"] == "bz"

    def test_existing_auth_kept(self, recorder):
        transport, seen = recorder(self.settings_handler("form"))
        with BazarrClient("localhost", 6767, "bz", transport=transport) as client:
            result = client.setup(OPTIONS)
            assert client.enable_form_auth("admin", "other") is False
        assert result.message == "Already configured"
        assert not any(request.method == "POST" for request in seen)

    def test_configure_sonarr_form(self, recorder):
        transport, seen = recorder(lambda request: httpx.Response(204))
        with BazarrClient("localhost", 6767, "bz", transport=transport) as client:
            client.configure_sonarr("sonarr", 8989, "sk")
        sent = form(seen[0])
        assert sent["settings-sonarr-ip"] == "sonarr"
        assert sent["settings-sonarr-port"] == "8989"
        assert sent["settings-general-use_sonarr"] == "true"


class TestTautulliClient:
    """Tests for the Tautulli wizard detection."""

    def test_wizard_still_pending(self, recorder):
        transport, _ = recorder(lambda request: httpx.Response(200, text="<html>setup wizard</html>"))
        with TautulliClient("localhost", 8181, transport=transport) as client:
            result = client.setup(OPTIONS)
        assert result.success
        assert result.data == {"requiresWizard": True}

    def test_command_needs_api_key(self, recorder):
        transport, seen = recorder(lambda request: json_response({}))
        with TautulliClient("localhost", 8181, transport=transport) as client:
            assert client.get_server_info() is None
        assert seen == []


class TestPortainerClient:
    """Tests for the Portainer admin bootstrap."""

    def test_admin_created_with_padded_password(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/api/users/admin/check":
                return httpx.Response(404)
            if path == "/api/users/admin/init":
                return json_response({"Id": 1})
            if path == "/api/auth":
                return json_response({"jwt": "j"})
            if path == "/api/users/1/tokens":
                return json_response({"rawAPIKey": "ptr"})
            return httpx.Response(404)

        transport, seen = recorder(handler)
        with PortainerClient("localhost", 9000, transport=transport) as client:
            result = client.setup(SetupOptions("admin", "short"))

        assert result.success
        assert result.message == "Admin created, API key generated"
        assert result.env_updates == {"API_KEY_PORTAINER": "ptr", "PASSWORD_PORTAINER": "shortshortsh"}
        init = next(request for request in seen if request.url.path == "/api/users/admin/init")
        assert body(init)["Password"] == "shortshortsh"
        assert seen[-1].headers["Authorization"] == "Bearer j"

    def test_existing_key_not_regenerated(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/users/admin/check":
                return httpx.Response(204)
            return json_response({"jwt": "j"})

        transport, seen = recorder(handler)
        with PortainerClient("localhost", 9000, transport=transport) as client:
            result = client.setup(SetupOptions("admin", "password1234", {"API_KEY_PORTAINER": "old"}))
        assert result.message == "Logged in"
        assert result.env_updates == {}
        assert not any("tokens" in request.url.path for request in seen)

    def test_rejected_login(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/users/admin/check":
                return httpx.Response(204)
            return httpx.Response(422, text="Invalid credentials")

        transport, _ = recorder(handler)
        with PortainerClient("localhost", 9000, transport=transport) as client:
            result = client.setup(OPTIONS)
        assert not result.success

    def test_local_endpoint_prefers_socket(self, recorder):
        endpoints = [{"Id": 2, "Name": "remote", "URL": "tcp://10.0.0.3:2375"}, {"Id": 3, "URL": "unix:///var/run/docker.sock"}]
        transport, _ = recorder(lambda request: json_response(endpoints))
        with PortainerClient("localhost", 9000, "key", transport=transport) as client:
            assert client.get_local_endpoint_id() == 3


class TestProfilarrClient:
    """Tests for Profilarr first-user setup and *arr configs."""

    def test_first_user_setup(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return json_response({"needs_setup": True})
            return json_response({"api_key": "pf"})

        transport, seen = recorder(handler)
        with ProfilarrClient("localhost", 6868, transport=transport) as client:
            result = client.setup(OPTIONS)
        assert result.env_updates == {"API_KEY_PROFILARR": "pf"}
        assert body(seen[-1]) == {"username": "admin", "password": "password123"}

    def test_configure_arr_is_idempotent(self, recorder):
        transport, seen = recorder(lambda request: json_response([{"id": 1, "type": "radarr"}]))
        with ProfilarrClient("localhost", 6868, "pf", transport=transport) as client:
            assert client.configure_radarr("radarr", 7878, "rk") == {"id": 1, "type": "radarr"}
        assert [request.method for request in seen] == ["GET"]
        assert seen[0].headers["X-Api-Key"] == "pf"


class TestUptimeKumaClient:
    """Tests for the Socket.IO based Uptime Kuma client."""

    def make_client(self) -> UptimeKumaClient:
        sio = MagicMock()
        sio.connected = True
        return UptimeKumaClient("localhost", 3001, sio=sio)

    def test_setup_creates_admin(self):
        client = self.make_client()
        client.sio.call.side_effect = lambda event, data, timeout: {"needSetup": True, "setup": {"ok": True}}[event]
        with patch.object(UptimeKumaClient, "is_healthy", return_value=True):
            result = client.setup(OPTIONS)
        assert result.message == "Admin created"
        client.sio.call.assert_any_call("setup", ("admin", "password123"), timeout=15)
        client.sio.disconnect.assert_called()

    def test_login_failure(self):
        client = self.make_client()
        client.sio.call.side_effect = lambda event, data, timeout: {"needSetup": False, "login": {"ok": False}}[event]
        with patch.object(UptimeKumaClient, "is_healthy", return_value=True):
            result = client.setup(OPTIONS)
        assert not result.success

    def test_monitors_skip_existing_and_disabled(self):
        client = self.make_client()
        client.authenticated = True
        client.sio.emit.side_effect = lambda event: client._on_monitor_list({"1": {"name": "Easiarr - Radarr"}})
        client.sio.call.return_value = {"ok": True, "monitorID": 5}
        apps = [AppConfig(id="radarr"), AppConfig(id="sonarr"), AppConfig(id="bazarr", enabled=False)]
        assert client.setup_easiarr_monitors(apps) == 1
        payload = client.sio.call.call_args.args[1]
        assert payload["name"] == "Easiarr - Sonarr"
        assert payload["url"] == "http://sonarr:8989"


class TestGrafanaClient:
    """Tests for the Grafana password, data source and API key flow."""

    def test_existing_install_with_wrong_password(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/health":
                return json_response({"database": "ok"})
            return httpx.Response(401)

        transport, seen = recorder(handler)
        with GrafanaClient("localhost", 3000, transport=transport) as client:
            result = client.setup(OPTIONS)
        assert not result.success
        assert result.message == "Grafana login failed: 401"
        assert not any(request.method == "PUT" for request in seen)

    def test_existing_api_key_is_kept(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            # admin/admin no longer works; the real credentials do
            if request.url.path == "/api/user" and request.headers["Authorization"] == "Basic YWRtaW46YWRtaW4=":
                return httpx.Response(401)
            if request.url.path == "/api/auth/keys":
                return httpx.Response(409)
            return json_response([{"name": "Prometheus"}] if request.url.path == "/api/datasources" else {})

        transport, seen = recorder(handler)
        with GrafanaClient("localhost", 3000, transport=transport) as client:
            result = client.setup(OPTIONS, prometheus=True)
        assert result.success
        assert result.message == "Configured"
        assert result.env_updates == {}
        assert not any(r.method == "POST" and r.url.path == "/api/datasources" for r in seen)


class TestHeimdallClient:
    """Tests for Heimdall tile creation."""

    def test_builds_without_item_api_add_nothing(self, recorder):
        transport, seen = recorder(lambda request: httpx.Response(404))
        with HeimdallClient("localhost", 8082, transport=transport) as client:
            assert client.add_easiarr_apps([AppConfig(id="radarr")]) == 0
        assert [request.method for request in seen] == ["GET"]

    def test_tile_colour_follows_category(self, recorder):
        transport, seen = recorder(lambda request: json_response([] if request.method == "GET" else {"id": 1}))
        apps = [AppConfig(id="radarr"), AppConfig(id="qbittorrent"), AppConfig(id="cloudflared")]
        with HeimdallClient("localhost", 8082, transport=transport) as client:
            assert client.add_easiarr_apps(apps) == 2
        payloads = [body(request) for request in seen if request.method == "POST"]
        assert payloads[0]["colour"] == "#ffc107"
        assert payloads[1]["colour"] == "#28a745"
        assert payloads[0]["pinned"] is True


class TestHuntarrClient:
    """Tests for Huntarr account creation and instance lists."""

    def test_first_run_creates_owner(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/setup/status":
                return json_response({"user_exists": False})
            if request.url.path == "/setup":
                return httpx.Response(200, json={}, headers={"set-cookie": "huntarr_session=s1; Path=/"})
            return json_response({})

        transport, seen = recorder(handler)
        with HuntarrClient("localhost", 9705, transport=transport) as client:
            result = client.setup(OPTIONS)
        assert result.success
        assert result.message == "User created"
        paths = [request.url.path for request in seen]
        assert paths.index("/setup") < paths.index("/api/setup/progress") < paths.index("/api/setup/clear")
        progress = body(seen[paths.index("/api/setup/progress")])["progress"]
        assert progress["account_created"] is True
        assert progress["username"] == "admin"

    def test_new_instance_appended(self, recorder):
        existing = {"name": "Other", "api_url": "http://radarr2:7878", "api_key": "x"}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return json_response({"instances": [existing], "hunt_missing_movies": 1})
            return json_response({})

        transport, seen = recorder(handler)
        with HuntarrClient("localhost", 9705, transport=transport) as client:
            assert client.add_instance("radarr", "Radarr", "http://radarr:7878", "rk")
        saved = body(seen[-1])
        assert saved["hunt_missing_movies"] == 1
        assert [instance["api_url"] for instance in saved["instances"]] == [
            "http://radarr2:7878",
            "http://radarr:7878",
        ]


class TestPlexClient:
    """Tests for the Plex claim and library creation."""

    def test_claim_and_libraries(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/":
                return json_response({"MediaContainer": {"machineIdentifier": "m1", "myPlex": False}})
            if path == "/library/sections" and request.method == "GET":
                sections = [{"key": "1", "Location": [{"id": 1, "path": "/data/media/movies"}]}]
                return json_response({"MediaContainer": {"Directory": sections}})
            if path == "/library/sections" and request.url.params["type"] == "artist":
                return httpx.Response(400, text="missing folder")
            return json_response({})

        transport, seen = recorder(handler)
        options = SetupOptions("admin", "password123", {"PLEX_CLAIM": "abc"})
        with PlexClient("localhost", 32400, transport=transport) as client:
            result = client.setup(options)
        assert result.success
        assert result.data == {"librariesCreated": 1}
        claim = next(request for request in seen if request.url.path == "/myplex/claim")
        assert claim.url.params["token"] == "claim-abc"
        assert claim.headers["X-Plex-Client-Identifier"] == "easiarr"
        created = [r.url.params["name"] for r in seen if r.method == "POST" and r.url.path == "/library/sections"]
        assert created == ["TV Shows", "Music"]

    def test_already_claimed(self, recorder):
        transport, seen = recorder(lambda request: json_response({"MediaContainer": {"myPlexUsername": "me"}}))
        with PlexClient("localhost", 32400, "tok", transport=transport) as client:
            result = client.setup(OPTIONS)
        assert result.message == "Already claimed"
        assert seen[-1].headers["X-Plex-Token"] == "tok"


class TestCloudflareClient:
    """Tests for the Cloudflare tunnel API wrapper."""

    def test_existing_tunnel_and_record_reused(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path.replace("/client/v4", "")
            results = {
                "/accounts": [{"id": "acc"}],
                "/accounts/acc/cfd_tunnel": [{"id": "t9", "name": "easiarr"}],
                "/accounts/acc/cfd_tunnel/t9/token": "tok",
                "/zones": [{"id": "z1"}],
                "/zones/z1/dns_records": [{"id": "r1"}],
            }
            return json_response({"success": True, "errors": [], "result": results.get(path, {})})

        transport, seen = recorder(handler)
        with CloudflareClient("cf", transport=transport) as client:
            tunnel = client.setup_tunnel("example.com")
        assert (tunnel.tunnel_id, tunnel.tunnel_token, tunnel.account_id) == ("t9", "tok", "acc")
        methods = [(r.method, r.url.path.replace("/client/v4", "")) for r in seen]
        assert ("PATCH", "/zones/z1/dns_records/r1") in methods
        assert not any(method == "POST" for method, _ in methods)
        assert [path for _, path in methods].count("/accounts") == 1

    def test_api_errors_raise(self, recorder):
        transport, _ = recorder(
            lambda request: json_response({"success": False, "errors": [{"message": "Invalid token"}]}, 403)
        )
        with CloudflareClient("bad", transport=transport) as client:
            with pytest.raises(CloudflareApiError, match="Invalid token"):
                client.get_zone_id("example.com")


class TestApiKeyExtraction:
    """Tests for reading API keys out of app config volumes."""

    def test_arr_config_xml(self, temp_dir: Path):
        config_dir = temp_dir / "config" / "radarr"
        config_dir.mkdir(parents=True)
        (config_dir / "config.xml").write_text("<Config><ApiKey>abc123</ApiKey></Config>")
        assert read_api_key(temp_dir, get_app("radarr")) == "abc123"

    def test_missing_file(self, temp_dir: Path):
        assert read_api_key(temp_dir, get_app("sonarr")) is None

    def test_seerr_settings_json(self, temp_dir: Path):
        config_dir = temp_dir / "config" / "jellyseerr"
        config_dir.mkdir(parents=True)
        (config_dir / "settings.json").write_text(json.dumps({"main": {"apiKey": "js"}}))
        assert read_api_key(temp_dir, get_app("jellyseerr")) == "js"

    def test_ini_key_generated_when_disabled(self, temp_dir: Path):
        config_file = temp_dir / "config" / "mylar3" / "mylar" / "config.ini"
        config_file.parent.mkdir(parents=True)
        config_file.write_text("[API]\napi_enabled = False\napi_key = None\n")
        key = read_api_key(temp_dir, get_app("mylar3"))
        assert key and len(key) == 32
        content = config_file.read_text()
        assert f"api_key = {key}" in content
        assert "api_enabled = True" in content
