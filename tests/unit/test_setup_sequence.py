"""Tests for the ordered first-run setup sequence."""
from __future__ import annotations

import json
from pathlib import Path
from typing import List

import httpx

from easiarr.converge.services import FullAutoSetup, SetupStep, collect_api_keys
from easiarr.envfile import read_env
from easiarr.models import EasiarrConfig
from easiarr.storage import ConfigRepository


def refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("refused", request=request)


def make_setup(config_repo: ConfigRepository, env: str = "", **kwargs) -> FullAutoSetup:
    config_repo.env_path.write_text(env)
    return FullAutoSetup(config_repo.load_stack(), config_repo, transport=httpx.MockTransport(refuse), **kwargs)


class TestStepOrder:
    """Tests for the fixed order of setup steps."""

    def test_twenty_three_steps(self, config_repo: ConfigRepository):
        setup = make_setup(config_repo)
        assert [step.name for step in setup.steps] == [
            "Root Folders",
            "Download Clients",
            "Naming",
            "Authentication",
            "External URLs",
            "Prowlarr Apps",
            "FlareSolverr",
            "qBittorrent",
            "Portainer",
            "Jellyfin",
            "Jellyseerr",
            "Plex",
            "Overseerr",
            "Tautulli",
            "Bazarr",
            "Uptime Kuma",
            "Grafana",
            "Homarr",
            "Heimdall",
            "Huntarr",
            "Cloudflare Tunnel",
            "Profilarr",
            "Homepage",
        ]

    def test_stage_names(self, config_repo: ConfigRepository):
        setup = make_setup(config_repo)
        assert setup.step("Prowlarr Apps").stage == "setup.prowlarr_apps"
        assert setup.step("Uptime Kuma").stage == "setup.uptime_kuma"
        assert setup.step("Cloudflare Tunnel").stage == "setup.cloudflare_tunnel"


class TestSkipSemantics:
    """Tests for skipped, failed and successful steps."""

    def test_nothing_configured_skips_everything(self, config_repo: ConfigRepository):
        setup = make_setup(config_repo)
        events = setup.run()
        assert {event.status for event in events} == {"skipped"}
        details = {step.name: step.message for step in setup.steps}
        assert details["Root Folders"] == "No API keys found"
        assert details["Portainer"] == "Not enabled"
        assert details["Bazarr"] == "Not enabled"
        assert details["Jellyfin"] == "No PASSWORD_GLOBAL set"
        assert details["qBittorrent"] == "No PASSWORD_QBITTORRENT in .env"
        assert details["Prowlarr Apps"] == "No Prowlarr API key"
        assert details["External URLs"] == "No apps with API keys"

    def test_failure_skips_dependents_and_continues(self, config_repo: ConfigRepository):
        setup = make_setup(config_repo)

        def boom() -> str:
            raise RuntimeError("boom")

        setup.step("Root Folders").handler = boom
        events = {event.stage: event for event in setup.run()}
        assert events["setup.root_folders"].status == "failed"
        assert events["setup.root_folders"].detail == "boom"
        assert setup.step("Download Clients").message == "Root Folders failed"
        assert setup.step("Prowlarr Apps").message == "Root Folders failed"
        assert setup.step("Naming").status == "skipped"

    def test_on_update_sees_running_then_result(self, config_repo: ConfigRepository):
        seen: List[str] = []
        setup = make_setup(config_repo, on_update=lambda step: seen.append(f"{step.name}:{step.status}"))
        setup.step("Root Folders").handler = lambda: "done"
        setup._run_step(setup.step("Root Folders"))
        assert seen == ["Root Folders:running", "Root Folders:success"]
        assert setup.step("Root Folders").event().status == "ok"

    def test_empty_message_becomes_none(self):
        step = SetupStep("Naming", lambda: "")
        step.status = "success"
        assert step.event().detail is None


class TestSteps:
    """Tests for individual steps against mocked apps."""

    def test_root_folders_added_where_missing(self, config_repo: ConfigRepository, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(201, json={"id": 1})
            if request.url.port == 8989:
                return httpx.Response(200, json=[{"path": "/data/media/tv"}])
            return httpx.Response(200, json=[])

        transport, seen = recorder(handler)
        config_repo.env_path.write_text("API_KEY_RADARR=rk\nAPI_KEY_SONARR=sk\n")
        setup = FullAutoSetup(config_repo.load_stack(), config_repo, transport=transport)
        setup._run_step(setup.step("Root Folders"))

        assert setup.step("Root Folders").message == "1 added, 1 existing"
        post = next(request for request in seen if request.method == "POST")
        assert post.url.port == 7878
        assert json.loads(post.content)["path"] == "/data/media/movies"

    def test_jellyfin_env_updates_persisted(self, config_repo: ConfigRepository, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/System/Info/Public":
                return httpx.Response(200, json={"StartupWizardCompleted": True})
            if path == "/Users/AuthenticateByName":
                return httpx.Response(200, json={"AccessToken": "tok"})
            if path == "/Library/VirtualFolders":
                return httpx.Response(200, json=[{"Name": "Movies"}, {"Name": "TV Shows"}, {"Name": "Music"}])
            if path == "/Auth/Keys":
                return httpx.Response(200, json={"Items": [{"AppName": "easiarr", "AccessToken": "jf"}]})
            return httpx.Response(204)

        transport, _ = recorder(handler)
        config_repo.env_path.write_text("PASSWORD_GLOBAL=password123\n")
        setup = FullAutoSetup(config_repo.load_stack(), config_repo, transport=transport)
        setup._run_step(setup.step("Jellyfin"))

        assert setup.step("Jellyfin").status == "success"
        assert setup.step("Jellyfin").message == "already initialized, 0 libraries added"
        assert read_env(config_repo.env_path)["API_KEY_JELLYFIN"] == "jf"
        assert setup.api_key("jellyfin") == "jf"

    def test_unreachable_app_is_an_error(self, config_repo: ConfigRepository):
        setup = make_setup(config_repo, "PASSWORD_GLOBAL=password123\n")
        setup._run_step(setup.step("Jellyfin"))
        assert setup.step("Jellyfin").status == "error"

    def test_routed_apps_use_gluetun_host(self, config_repo: ConfigRepository, sample_config):
        sample_config["apps"].append({"id": "gluetun", "enabled": True})
        sample_config["vpn"] = {"mode": "mini"}
        config_repo.config_path.write_text(json.dumps(sample_config))
        setup = make_setup(config_repo)
        assert setup.service_host("qbittorrent") == "gluetun"
        assert setup.service_host("radarr") == "radarr"
        assert setup.internal_port("jellyseerr") == 5055
        assert setup.port("jellyseerr") == 5056


class TestCollectApiKeys:
    """Tests for reading API keys from config volumes into .env."""

    def test_new_keys_written_once(self, config_repo: ConfigRepository, easiarr_config: EasiarrConfig):
        config_dir = Path(easiarr_config.root_dir) / "config" / "radarr"
        config_dir.mkdir(parents=True)
        (config_dir / "config.xml").write_text("<Config><ApiKey>rk</ApiKey></Config>")
        config_repo.env_path.write_text("PASSWORD_GLOBAL=x\n")

        assert collect_api_keys(easiarr_config, config_repo) == {"API_KEY_RADARR": "rk"}
        assert read_env(config_repo.env_path) == {"PASSWORD_GLOBAL": "x", "API_KEY_RADARR": "rk"}
        assert collect_api_keys(easiarr_config, config_repo) == {}


def enable(config_repo: ConfigRepository, sample_config, *app_ids: str) -> None:
    sample_config["apps"].extend({"id": app_id, "enabled": True} for app_id in app_ids)
    config_repo.config_path.write_text(json.dumps(sample_config))


def run_step(config_repo: ConfigRepository, transport: httpx.BaseTransport, name: str, env: str) -> FullAutoSetup:
    config_repo.env_path.write_text(env)
    setup = FullAutoSetup(config_repo.load_stack(), config_repo, transport=transport)
    setup._run_step(setup.step(name))
    return setup


def cloudflare(result) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "errors": [], "result": result})


class TestDashboardSteps:
    """Tests for the Grafana, Homarr, Heimdall, Huntarr and Plex steps."""

    def test_grafana_fresh_install(self, config_repo: ConfigRepository, sample_config, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/api/datasources" and request.method == "GET":
                return httpx.Response(200, json=[])
            if path == "/api/auth/keys":
                return httpx.Response(200, json={"key": "gk"})
            return httpx.Response(200, json={})

        enable(config_repo, sample_config, "grafana", "prometheus")
        transport, seen = recorder(handler)
        setup = run_step(config_repo, transport, "Grafana", "PASSWORD_GLOBAL=password123\n")

        assert setup.step("Grafana").status == "success"
        assert setup.step("Grafana").message == "Password changed, Prometheus added"
        assert read_env(config_repo.env_path)["API_KEY_GRAFANA"] == "gk"
        change = next(request for request in seen if request.method == "PUT")
        assert json.loads(change.content) == {"oldPassword": "admin", "newPassword": "password123"}
        source = next(r for r in seen if r.method == "POST" and r.url.path == "/api/datasources")
        assert json.loads(source.content)["url"] == "http://prometheus:9090"

    def test_homarr_creates_user_and_tiles(self, config_repo: ConfigRepository, sample_config, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if request.method == "GET" and path == "/api/users":
                return httpx.Response(200, json=[])
            if request.method == "GET" and path == "/api/apps":
                return httpx.Response(200, json=[{"name": "Radarr"}])
            if path == "/api/apps":
                return httpx.Response(200, json={"appId": "a1"})
            return httpx.Response(200, json={})

        enable(config_repo, sample_config, "homarr")
        transport, seen = recorder(handler)
        setup = run_step(config_repo, transport, "Homarr", "PASSWORD_GLOBAL=password123\n")

        assert setup.step("Homarr").message == "User created, ready, 5 apps added"
        tiles = [json.loads(r.content) for r in seen if r.method == "POST" and r.url.path == "/api/apps"]
        assert "Radarr" not in {tile["name"] for tile in tiles}
        assert {"name": "Jellyseerr", "href": "http://jellyseerr:5055"}.items() <= next(
            tile for tile in tiles if tile["name"] == "Jellyseerr"
        ).items()

    def test_heimdall_tile_failure_keeps_step_successful(self, config_repo: ConfigRepository, sample_config, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/items":
                if request.method == "GET":
                    return httpx.Response(200, json=[])
                return httpx.Response(500)
            return httpx.Response(200, text="<html></html>")

        enable(config_repo, sample_config, "heimdall")
        transport, _ = recorder(handler)
        setup = run_step(config_repo, transport, "Heimdall", "")

        assert setup.step("Heimdall").status == "success"
        assert setup.step("Heimdall").message == "Ready - add tiles via UI"

    def test_huntarr_links_arr_instances(self, config_repo: ConfigRepository, sample_config, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path == "/api/setup/status":
                return httpx.Response(200, json={"user_exists": True})
            if path == "/login":
                return httpx.Response(200, json={}, headers={"set-cookie": "huntarr_session=s1; Path=/"})
            if path == "/api/version":
                return httpx.Response(200, json={"version": "7.0"})
            if path == "/api/settings/radarr" and request.method == "GET":
                return httpx.Response(200, json={"instances": [{"name": "Default", "api_url": "", "api_key": ""}]})
            if path == "/api/settings/sonarr" and request.method == "GET":
                return httpx.Response(200, json={"instances": [{"api_url": "http://sonarr:8989", "api_key": "sk"}]})
            return httpx.Response(200, json={})

        enable(config_repo, sample_config, "huntarr")
        transport, seen = recorder(handler)
        env = "PASSWORD_GLOBAL=password123\nAPI_KEY_RADARR=rk\nAPI_KEY_SONARR=sk\n"
        setup = run_step(config_repo, transport, "Huntarr", env)

        assert setup.step("Huntarr").message == "1 *arr apps added"
        saved = [r for r in seen if r.method == "POST" and r.url.path.startswith("/api/settings/")]
        assert [r.url.path for r in saved] == ["/api/settings/radarr"]
        assert json.loads(saved[0].content)["instances"] == [
            {"name": "Radarr", "api_url": "http://radarr:7878", "api_key": "rk", "enabled": True}
        ]

    def test_huntarr_rejected_login_skips(self, config_repo: ConfigRepository, sample_config, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/setup/status":
                return httpx.Response(200, json={"user_exists": True})
            if request.url.path == "/login":
                return httpx.Response(401)
            return httpx.Response(200, json={})

        enable(config_repo, sample_config, "huntarr")
        transport, _ = recorder(handler)
        setup = run_step(config_repo, transport, "Huntarr", "PASSWORD_GLOBAL=password123\n")

        assert setup.step("Huntarr").status == "skipped"
        assert setup.step("Huntarr").message == "Auth failed"

    def test_plex_without_claim_token_skips(self, config_repo: ConfigRepository, sample_config, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"MediaContainer": {"machineIdentifier": "m1"}})

        enable(config_repo, sample_config, "plex")
        transport, _ = recorder(handler)
        setup = run_step(config_repo, transport, "Plex", "")

        assert setup.step("Plex").status == "skipped"
        assert setup.step("Plex").message.startswith("No PLEX_CLAIM token")


class TestCloudflareStep:
    """Tests for the Cloudflare Tunnel step."""

    @staticmethod
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path.replace("/client/v4", "")
        method = request.method
        if path == "/accounts":
            return cloudflare([{"id": "acc"}])
        if path == "/accounts/acc/cfd_tunnel":
            return cloudflare([] if method == "GET" else {"id": "t1", "name": "easiarr"})
        if path == "/accounts/acc/cfd_tunnel/t1/token":
            return cloudflare("tunnel-token")
        if path == "/zones":
            return cloudflare([{"id": "z1"}])
        if path == "/zones/z1/dns_records" and method == "GET":
            return cloudflare([])
        if path.endswith("/policies") and method == "POST":
            return httpx.Response(403, json={"success": False, "errors": [{"message": "denied"}]})
        if path.startswith("/accounts/acc/access/apps") and method == "GET":
            return cloudflare([])
        return cloudflare({"id": "new"})

    def test_tunnel_created_and_config_updated(self, config_repo: ConfigRepository, sample_config, recorder):
        enable(config_repo, sample_config, "cloudflared")
        transport, seen = recorder(self.handler)
        env = "CLOUDFLARE_API_TOKEN=cf\nCLOUDFLARE_DNS_ZONE=example.com\n"
        setup = run_step(config_repo, transport, "Cloudflare Tunnel", env)

        assert setup.step("Cloudflare Tunnel").status == "success"
        assert setup.step("Cloudflare Tunnel").message == "Tunnel created"
        values = read_env(config_repo.env_path)
        assert values["CLOUDFLARE_TUNNEL_TOKEN"] == "tunnel-token"
        assert values["CLOUDFLARE_TUNNEL_ID"] == "t1"
        assert values["CLOUDFLARE_ACCOUNT_ID"] == "acc"
        assert config_repo.load_stack().traefik.domain == "example.com"
        assert (config_repo.config_dir / "docker-compose.yml").exists()
        assert all(r.headers["Authorization"] == "Bearer cf" for r in seen)
        ingress = next(r for r in seen if r.method == "PUT")
        assert json.loads(ingress.content)["config"]["ingress"][-1] == {"service": "http_status:404"}
        record = next(r for r in seen if r.method == "POST" and r.url.path.endswith("/dns_records"))
        assert json.loads(record.content)["content"] == "t1.cfargotunnel.com"

    def test_access_failure_keeps_tunnel(self, config_repo: ConfigRepository, sample_config, recorder):
        enable(config_repo, sample_config, "cloudflared")
        transport, _ = recorder(self.handler)
        env = "CLOUDFLARE_API_TOKEN=cf\nCLOUDFLARE_DNS_ZONE=example.com\nEMAIL_GLOBAL=me@example.com\n"
        setup = run_step(config_repo, transport, "Cloudflare Tunnel", env)

        assert setup.step("Cloudflare Tunnel").status == "success"
        assert setup.step("Cloudflare Tunnel").message == "Tunnel created (Access failed)"

    def test_missing_domain_skips(self, config_repo: ConfigRepository, sample_config, recorder):
        enable(config_repo, sample_config, "cloudflared")
        transport, seen = recorder(self.handler)
        setup = run_step(config_repo, transport, "Cloudflare Tunnel", "CLOUDFLARE_API_TOKEN=cf\n")

        assert setup.step("Cloudflare Tunnel").message == "No domain configured"
        assert seen == []
