"""Tests for the *arr, Prowlarr, qBittorrent and TRaSH profile clients."""
from __future__ import annotations

import json
from typing import Any, Dict, List
from unittest.mock import patch

import httpx
import pytest

from easiarr.clients.arr import (
    ArrApiClient,
    ArrApiError,
    qbittorrent_download_client,
    sabnzbd_download_client,
)
from easiarr.clients.base import SetupOptions
from easiarr.clients.custom_formats import CustomFormatClient, fetch_trash_custom_formats
from easiarr.clients.prowlarr import ProwlarrClient
from easiarr.clients.qb import QBittorrentClient, TEMP_PASSWORD_PATTERN
from easiarr.clients.quality_profiles import QualityProfileClient
from easiarr.clients.retry import retry_request
from easiarr.categories import get_categories_for_apps
from easiarr.converge.profiles import preset_cf_categories
from easiarr.trash import TRASH_NAMING_CONFIG, get_preset_by_id


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def body(request: httpx.Request) -> Any:
    return json.loads(request.content)


class TestArrApiClient:
    """Tests for the shared *arr client."""

    def test_api_key_header_and_base_url(self, recorder):
        transport, seen = recorder(lambda request: json_response({"version": "5.0"}))
        with ArrApiClient("localhost", 7878, "secret", transport=transport) as client:
            assert client.get_system_status() == {"version": "5.0"}
        assert seen[0].url == "http://localhost:7878/api/v3/system/status"
        assert seen[0].headers["X-Api-Key"] == "secret"

    def test_non_2xx_raises(self, recorder):
        transport, _ = recorder(lambda request: httpx.Response(400, text="bad"))
        with ArrApiClient("localhost", 7878, "k", transport=transport, max_retries=0) as client:
            with pytest.raises(ArrApiError) as exc_info:
                client.get_root_folders()
        assert exc_info.value.status_code == 400
        assert exc_info.value.body == "bad"

    def test_is_healthy_never_raises(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with ArrApiClient("localhost", 7878, "k", transport=httpx.MockTransport(refuse), max_retries=0) as client:
            assert client.is_healthy() is False

    def test_update_host_config_skips_existing_password(self, recorder):
        transport, seen = recorder(lambda request: json_response({"id": 1, "password": "set"}))
        with ArrApiClient("localhost", 7878, "k", transport=transport) as client:
            assert client.update_host_config("admin", "pw") is None
        assert [request.method for request in seen] == ["GET"]

    def test_update_host_config_enables_forms(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return json_response({"id": 1, "password": "", "bindAddress": "*"})
            return json_response(body(request))

        transport, seen = recorder(handler)
        with ArrApiClient("localhost", 7878, "k", transport=transport) as client:
            result = client.update_host_config("admin", "pw")
        assert result["authenticationMethod"] == "forms"
        assert result["passwordConfirmation"] == "pw"
        assert result["bindAddress"] == "*"
        assert seen[1].url.path == "/api/v3/config/host"

    def test_trash_naming_is_merged_over_current(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return json_response({"id": 1, "renameMovies": False, "movieFolderFormat": "{Movie Title}"})
            return json_response(body(request))

        transport, seen = recorder(handler)
        with ArrApiClient("localhost", 7878, "k", transport=transport) as client:
            client.configure_trash_naming("radarr")
        sent = body(seen[1])
        assert seen[1].method == "PUT"
        assert sent["id"] == 1
        assert sent["renameMovies"] is True
        assert sent["standardMovieFormat"] == TRASH_NAMING_CONFIG["radarr"]["standardMovieFormat"]

    def test_naming_unknown_app(self, recorder):
        transport, _ = recorder(lambda request: json_response({}))
        with ArrApiClient("localhost", 8686, "k", "v1", transport=transport) as client:
            with pytest.raises(ValueError):
                client.configure_trash_naming("lidarr")

    def test_sonarr_colon_replacement_is_numeric(self):
        assert TRASH_NAMING_CONFIG["sonarr"]["colonReplacementFormat"] == 1
        assert TRASH_NAMING_CONFIG["radarr"]["colonReplacementFormat"] == "dash"


class TestDownloadClientPayloads:
    """Tests for download client definitions."""

    def test_qbittorrent_uses_app_category(self):
        payload = qbittorrent_download_client("qbittorrent", 8080, "admin", "pw", "sonarr")
        fields = {field["name"]: field["value"] for field in payload["fields"]}
        assert payload["implementation"] == "QBittorrent"
        assert fields["tvCategory"] == "tv"
        assert fields["savePath"] == "/data/torrents"

    def test_sabnzbd_payload(self):
        payload = sabnzbd_download_client("sabnzbd", 8080, "key", "radarr")
        fields = {field["name"]: field["value"] for field in payload["fields"]}
        assert fields["movieCategory"] == "movies"
        assert fields["apiKey"] == "key"


class TestRetry:
    """Tests for transient failure retries."""

    def test_retries_5xx_then_succeeds(self):
        responses = iter([httpx.Response(503), httpx.Response(200)])
        with patch("easiarr.clients.retry.time.sleep") as sleep:
            result = retry_request(lambda: next(responses), max_retries=2)
        assert result.status_code == 200
        sleep.assert_called_once_with(1.0)

    def test_4xx_not_retried(self):
        calls: List[int] = []

        def call() -> httpx.Response:
            calls.append(1)
            return httpx.Response(404)

        with patch("easiarr.clients.retry.time.sleep") as sleep:
            assert retry_request(call, max_retries=3).status_code == 404
        assert len(calls) == 1
        sleep.assert_not_called()

    def test_connection_errors_exhaust(self):
        request = httpx.Request("GET", "http://radarr")

        def call() -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with patch("easiarr.clients.retry.time.sleep") as sleep:
            with pytest.raises(httpx.ConnectError):
                retry_request(call, max_retries=2)
        assert sleep.call_count == 2

    def test_write_not_resent_after_read_timeout(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        transport, seen = recorder(handler)
        with patch("easiarr.clients.retry.time.sleep") as sleep:
            with ArrApiClient("localhost", 7878, "k", transport=transport) as client:
                with pytest.raises(httpx.ReadTimeout):
                    client.add_download_client(qbittorrent_download_client("qbittorrent", 8080, "admin", "pw"))
        assert [request.url.path for request in seen] == ["/api/v3/downloadclient"]
        sleep.assert_not_called()

    def test_write_not_resent_after_5xx(self, recorder):
        transport, seen = recorder(lambda request: httpx.Response(503, text="busy"))
        with patch("easiarr.clients.retry.time.sleep"):
            with ArrApiClient("localhost", 7878, "k", transport=transport) as client:
                with pytest.raises(ArrApiError):
                    client.add_root_folder("/data/media/movies")
        assert len(seen) == 1

    def test_write_retried_when_never_sent(self, recorder):
        attempts: List[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return json_response({"id": 4}, 201)

        transport, _ = recorder(handler)
        with patch("easiarr.clients.retry.time.sleep"):
            with ArrApiClient("localhost", 7878, "k", transport=transport) as client:
                assert client.add_root_folder("/data/media/movies") == {"id": 4}
        assert len(attempts) == 2

    def test_reads_are_retried_after_read_timeout(self, recorder):
        attempts: List[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return json_response([])

        transport, _ = recorder(handler)
        with patch("easiarr.clients.retry.time.sleep"):
            with ArrApiClient("localhost", 7878, "k", transport=transport) as client:
                assert client.get_root_folders() == []
        assert len(attempts) == 2

    def test_health_check_does_not_retry(self, recorder):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport, seen = recorder(refuse)
        with patch("easiarr.clients.retry.time.sleep") as sleep:
            with ArrApiClient("localhost", 7878, "k", transport=transport) as client:
                assert client.is_healthy() is False
        assert len(seen) == 1
        sleep.assert_not_called()


class TestProwlarrClient:
    """Tests for Prowlarr applications and proxies."""

    def test_add_arr_app_is_idempotent(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/v1/applications" and request.method == "GET":
                return json_response([{"id": 3, "implementation": "Radarr", "name": "Radarr"}])
            return json_response({}, 201)

        transport, seen = recorder(handler)
        with ProwlarrClient("localhost", 9696, "k", transport=transport) as client:
            result = client.add_arr_app("radarr", "radarr", 7878, "rk", "prowlarr", 9696)
        assert result["id"] == 3
        assert all(request.method == "GET" for request in seen)

    def test_unknown_app_rejected(self, recorder):
        transport, _ = recorder(lambda request: json_response([]))
        with ProwlarrClient("localhost", 9696, "k", transport=transport) as client:
            with pytest.raises(ValueError):
                client.add_arr_app("jellyfin", "jellyfin", 8096, "k", "prowlarr", 9696)


    def test_limited_api_sync_profiles_created_when_missing(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return json_response([{"id": 1, "name": "Standard"}, {"id": 2, "name": "Automatic Search"}])
            return json_response({**body(request), "id": 3}, 201)

        transport, seen = recorder(handler)
        with ProwlarrClient("localhost", 9696, "k", transport=transport) as client:
            profiles = client.create_limited_api_sync_profiles()
        assert profiles["automatic"]["id"] == 2
        assert profiles["interactive"]["id"] == 3
        created = [body(request) for request in seen if request.method == "POST"]
        assert len(created) == 1
        assert created[0]["enableRss"] is False
        assert created[0]["enableAutomaticSearch"] is False


class TestQBittorrentClient:
    """Tests for qBittorrent login and TRaSH setup."""

    def test_temp_password_pattern(self):
        line = "The WebUI administrator password was not set. A temporary password is provided for this session: Ab12Cd34"
        assert TEMP_PASSWORD_PATTERN.search(line).group("password") == "Ab12Cd34"

    def test_setup_falls_back_to_temp_password(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/v2/auth/login":
                form = dict(pair.split("=", 1) for pair in request.content.decode().split("&"))
                if form["password"] == "temp123":
                    return httpx.Response(200, text="Ok.")
                return httpx.Response(200, text="Fails.")
            return httpx.Response(200)

        transport, seen = recorder(handler)
        categories = get_categories_for_apps(["radarr", "sonarr"])
        with patch("easiarr.clients.qb.fetch_temporary_password", return_value="temp123"):
            with QBittorrentClient("localhost", 8080, "admin", "mypassword", transport=transport) as client:
                result = client.setup(SetupOptions("admin", "mypassword"), categories)
        assert result.success
        assert result.data["categories"] == ["movies", "tv"]
        paths = [request.url.path for request in seen]
        assert paths.count("/api/v2/auth/login") == 2
        assert "/api/v2/app/setPreferences" in paths
        assert paths.count("/api/v2/torrents/createCategory") == 2

    def test_setup_fails_when_every_login_rejected(self, recorder):
        transport, _ = recorder(lambda request: httpx.Response(200, text="Fails."))
        with patch("easiarr.clients.qb.fetch_temporary_password", return_value=None):
            with QBittorrentClient("localhost", 8080, "admin", "pw", transport=transport) as client:
                result = client.setup(SetupOptions("admin", "pw"))
        assert not result.success

    def test_existing_category_is_edited(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("createCategory"):
                return httpx.Response(409)
            return httpx.Response(200)

        transport, seen = recorder(handler)
        with QBittorrentClient("localhost", 8080, "admin", "pw", transport=transport) as client:
            assert client.ensure_category("movies", "/data/torrents/movies") is False
        assert seen[-1].url.path == "/api/v2/torrents/editCategory"


class TestTrashProfiles:
    """Tests for custom format import and quality profiles."""

    def test_preset_categories(self):
        assert preset_cf_categories("hd-bluray-web") == ["unwanted", "misc"]
        assert preset_cf_categories("uhd-remux") == ["unwanted", "misc", "hdr", "audio"]

    def test_import_updates_existing_by_name(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return json_response([{"id": 7, "name": "BR-DISK"}])
            if request.method == "POST" and body(request)["name"] == "Broken":
                return httpx.Response(400, text="invalid")
            return json_response(body(request))

        transport, seen = recorder(handler)
        with CustomFormatClient("localhost", 7878, "k", transport=transport, max_retries=0) as client:
            counts = client.import_custom_formats([{"name": "BR-DISK"}, {"name": "LQ"}, {"name": "Broken"}])
        assert counts == {"success": 2, "failed": 1}
        assert any(request.method == "PUT" and request.url.path == "/api/v3/customformat/7" for request in seen)

    def test_fetch_reports_missing_formats(self, recorder):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/br-disk.json"):
                return json_response({"name": "BR-DISK"})
            return httpx.Response(404)

        transport, _ = recorder(handler)
        formats, failed = fetch_trash_custom_formats("radarr", ["br-disk", "nope"], transport=transport)
        assert formats == [{"name": "BR-DISK"}]
        assert failed == ["nope"]

    def test_create_from_preset_rescores_existing(self, recorder):
        preset = get_preset_by_id("radarr", "hd-bluray-web")
        profile: Dict[str, Any] = {
            "id": 4,
            "name": preset.name,
            "formatItems": [{"format": 1, "name": "BR-DISK", "score": 0}, {"format": 2, "name": "Other", "score": 5}],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET" and request.url.path == "/api/v3/qualityprofile":
                return json_response([profile])
            if request.method == "GET":
                return json_response(profile)
            return json_response(body(request))

        transport, seen = recorder(handler)
        with QualityProfileClient("localhost", 7878, "k", transport=transport) as client:
            updated = client.create_from_preset(preset)
        scores = {item["name"]: item["score"] for item in updated["formatItems"]}
        assert scores["BR-DISK"] == preset.cf_scores.get("BR-DISK", 0)
        assert scores["Other"] == preset.cf_scores.get("Other", 5)
        assert seen[-1].method == "PUT"
