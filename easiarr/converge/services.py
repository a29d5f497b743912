"""Fixed first-run setup sequence across the deployed apps."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import httpx

from ..categories import get_categories_for_apps
from ..clients.arr import ArrApiClient, ArrApiError, qbittorrent_download_client, sabnzbd_download_client
from ..clients.base import SetupOptions, SetupResult
from ..clients.bazarr import BazarrClient
from ..clients.cloudflare import CloudflareApiError, CloudflareClient
from ..clients.grafana import GrafanaClient
from ..clients.heimdall import HeimdallClient
from ..clients.homarr import HomarrClient
from ..clients.huntarr import HUNTARR_APP_TYPES, HuntarrClient
from ..clients.jellyfin import JellyfinClient
from ..clients.jellyseerr import JellyseerrClient
from ..clients.overseerr import OverseerrClient
from ..clients.plex import PlexClient
from ..clients.portainer import PortainerClient
from ..clients.profilarr import ProfilarrClient
from ..clients.prowlarr import ProwlarrClient
from ..clients.qb import QBittorrentClient
from ..clients.seerr import SeerrClient
from ..clients.tautulli import TautulliClient
from ..clients.uptime_kuma import UptimeKumaClient
from ..clients.util import read_api_key
from ..constants import (
    ARR_APP_TYPES,
    CLOUDFLARE_ACCESS_EMAIL,
    CLOUDFLARE_API_TOKEN,
    CLOUDFLARE_DNS_ZONE,
    DEFAULT_USERNAME,
    EMAIL_GLOBAL,
    PASSWORD_GLOBAL,
    PASSWORD_QBITTORRENT,
    PLEX_TOKEN,
    USERNAME_GLOBAL,
    USERNAME_QBITTORRENT,
    VPN_ROUTED_CATEGORIES,
    api_key_env,
)
from ..envfile import read_env, update_env
from ..models import AppDefinition, EasiarrConfig, StageEvent
from ..registry import get_app, resolve_port
from ..rendering import ComposeRenderer, container_port
from ..storage import ConfigRepository
from ..urls import get_application_url

log = logging.getLogger(__name__)

STATUS_TO_EVENT = {
    "running": "started",
    "success": "ok",
    "error": "failed",
    "skipped": "skipped",
}


class StepSkipped(Exception):
    """Raised by a step handler when its prerequisites are missing."""


@dataclass
class SetupStep:
    name: str
    handler: Callable[[], str]
    # The step runs when any of these apps is enabled; empty means always
    apps: Tuple[str, ...] = ()
    depends_on: Tuple[str, ...] = ()
    status: str = "pending"
    message: Optional[str] = None

    @property
    def stage(self) -> str:
        return "setup." + self.name.lower().replace(" ", "_")

    def event(self) -> StageEvent:
        return StageEvent(stage=self.stage, status=STATUS_TO_EVENT[self.status], detail=self.message)


def collect_api_keys(config: EasiarrConfig, repo: ConfigRepository) -> Dict[str, str]:
    """Read API keys from the app config volumes into ``.env``. Returns what changed."""
    env = read_env(repo.env_path)
    found: Dict[str, str] = {}
    for app_id in config.enabled_ids():
        definition = get_app(app_id)
        if definition is None or definition.api_key_meta is None:
            continue
        api_key = read_api_key(config.root_dir, definition)
        if api_key and env.get(api_key_env(app_id)) != api_key:
            found[api_key_env(app_id)] = api_key
    if found:
        update_env(repo.env_path, found)
        log.info("Collected API keys: %s", ", ".join(sorted(found)))
    return found


@dataclass
class FullAutoSetup:
    """Runs every setup step in order; each step is idempotent."""

    config: EasiarrConfig
    repo: ConfigRepository
    host: str = "localhost"
    transport: Optional[httpx.BaseTransport] = None
    on_update: Optional[Callable[[SetupStep], None]] = None
    renderer: Optional[ComposeRenderer] = None
    env: Dict[str, str] = field(default_factory=dict)
    steps: List[SetupStep] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.env = read_env(self.repo.env_path)
        arr_with_roots = tuple(app_id for app_id, definition in self._definitions() if definition.root_folder)
        self.steps = [
            SetupStep("Root Folders", self.setup_root_folders, arr_with_roots),
            SetupStep(
                "Download Clients",
                self.setup_download_clients,
                ("qbittorrent", "sabnzbd"),
                depends_on=("Root Folders",),
            ),
            SetupStep("Naming", self.setup_naming, ("radarr", "sonarr")),
            SetupStep("Authentication", self.setup_authentication),
            SetupStep("External URLs", self.setup_external_urls),
            SetupStep("Prowlarr Apps", self.setup_prowlarr_apps, ("prowlarr",), depends_on=("Root Folders",)),
            SetupStep("FlareSolverr", self.setup_flaresolverr, ("flaresolverr",)),
            SetupStep("qBittorrent", self.setup_qbittorrent, ("qbittorrent",)),
            SetupStep("Portainer", self.setup_portainer, ("portainer",)),
            SetupStep("Jellyfin", self.setup_jellyfin, ("jellyfin",)),
            SetupStep("Jellyseerr", self.setup_jellyseerr, ("jellyseerr",), depends_on=("Jellyfin",)),
            SetupStep("Plex", self.setup_plex, ("plex",)),
            SetupStep("Overseerr", self.setup_overseerr, ("overseerr",)),
            SetupStep("Tautulli", self.setup_tautulli, ("tautulli",)),
            SetupStep("Bazarr", self.setup_bazarr, ("bazarr",)),
            SetupStep("Uptime Kuma", self.setup_uptime_kuma, ("uptime-kuma",)),
            SetupStep("Grafana", self.setup_grafana, ("grafana",)),
            SetupStep("Homarr", self.setup_homarr, ("homarr",)),
            SetupStep("Heimdall", self.setup_heimdall, ("heimdall",)),
            SetupStep("Huntarr", self.setup_huntarr, ("huntarr",)),
            SetupStep("Cloudflare Tunnel", self.setup_cloudflare, ("cloudflared",)),
            SetupStep("Profilarr", self.setup_profilarr, ("profilarr",)),
            SetupStep("Homepage", self.setup_homepage, ("homepage",)),
        ]

    # ------------------------------------------------------------------ driver

    def run(self) -> List[StageEvent]:
        events: List[StageEvent] = []
        for step in self.steps:
            self._run_step(step)
            events.append(step.event())
        return events

    def step(self, name: str) -> SetupStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)

    def _update(self, step: SetupStep, status: str, message: Optional[str] = None) -> None:
        step.status = status
        step.message = message
        log.info("[%s] %s%s", step.name, status, f": {message}" if message else "")
        if self.on_update is not None:
            self.on_update(step)

    def _run_step(self, step: SetupStep) -> None:
        if step.apps and not any(self.config.is_enabled(app_id) for app_id in step.apps):
            self._update(step, "skipped", "Not enabled")
            return
        for dependency in step.depends_on:
            if self.step(dependency).status == "error":
                self._update(step, "skipped", f"{dependency} failed")
                return
        self._update(step, "running")
        try:
            message = step.handler()
        except StepSkipped as exc:
            self._update(step, "skipped", str(exc))
        except Exception as exc:
            # Any failure ends this step only; the sequence keeps going
            log.warning("Setup step %s failed", step.name, exc_info=True)
            self._update(step, "error", str(exc) or exc.__class__.__name__)
        else:
            self._update(step, "success", message or None)

    # ------------------------------------------------------------------ helpers

    def _definitions(self) -> List[Tuple[str, AppDefinition]]:
        result = []
        for app_id in self.config.enabled_ids():
            definition = get_app(app_id)
            if definition is not None:
                result.append((app_id, definition))
        return result

    @property
    def username(self) -> str:
        return self.env.get(USERNAME_GLOBAL) or DEFAULT_USERNAME

    @property
    def password(self) -> str:
        return self.env.get(PASSWORD_GLOBAL, "")

    def _require_password(self) -> None:
        if not self.password:
            raise StepSkipped(f"No {PASSWORD_GLOBAL} set")

    def options(self) -> SetupOptions:
        return SetupOptions(username=self.username, password=self.password, env=dict(self.env))

    def port(self, app_id: str) -> int:
        """Host port the app is published on."""
        definition = get_app(app_id)
        app = self.config.get_app(app_id)
        return resolve_port(definition, app.port if app else None)

    def service_host(self, app_id: str) -> str:
        """Container hostname other containers use; routed apps live in gluetun."""
        definition = get_app(app_id)
        routed = VPN_ROUTED_CATEGORIES.get(self.config.vpn.mode, ())
        if definition and definition.category in routed and self.config.is_enabled("gluetun"):
            return "gluetun"
        return app_id

    def internal_port(self, app_id: str) -> int:
        return container_port(get_app(app_id))

    def api_key(self, app_id: str) -> Optional[str]:
        return self.env.get(api_key_env(app_id))

    def persist(self, result: SetupResult) -> None:
        if result.env_updates:
            update_env(self.repo.env_path, result.env_updates)
            self.env.update(result.env_updates)

    def finish(self, result: SetupResult) -> str:
        """Persist env updates; unsuccessful results skip the step."""
        self.persist(result)
        if not result.success:
            raise StepSkipped(result.message)
        return result.message

    def arr_client(self, app_id: str, api_key: str) -> ArrApiClient:
        definition = get_app(app_id)
        if app_id == "prowlarr":
            version = "v1"
        else:
            version = definition.root_folder.api_version if definition.root_folder else "v3"
        return ArrApiClient(self.host, self.port(app_id), api_key, version, transport=self.transport)

    def _arr_apps_with_keys(self, include_prowlarr: bool = False) -> List[Tuple[str, str]]:
        apps = []
        for app_id, definition in self._definitions():
            if not (definition.root_folder or (include_prowlarr and app_id == "prowlarr")):
                continue
            api_key = self.api_key(app_id)
            if api_key:
                apps.append((app_id, api_key))
        return apps

    # ------------------------------------------------------------------ steps

    def setup_root_folders(self) -> str:
        apps = self._arr_apps_with_keys()
        if not apps:
            raise StepSkipped("No API keys found")
        added = 0
        for app_id, api_key in apps:
            definition = get_app(app_id)
            with self.arr_client(app_id, api_key) as client:
                if client.get_root_folders():
                    continue
                extra = {}
                if app_id == "lidarr":
                    quality = client.get_quality_profiles()
                    metadata = client.get_metadata_profiles()
                    extra = {
                        "name": "Music",
                        "defaultQualityProfileId": quality[0]["id"] if quality else 1,
                        "defaultMetadataProfileId": metadata[0]["id"] if metadata else 1,
                    }
                client.add_root_folder(definition.root_folder.path, **extra)
                added += 1
        return f"{added} added, {len(apps) - added} existing"

    def setup_download_clients(self) -> str:
        apps = self._arr_apps_with_keys()
        if not apps:
            raise StepSkipped("No API keys found")
        qb_password = self.env.get(PASSWORD_QBITTORRENT)
        sab_key = self.api_key("sabnzbd")
        use_qb = self.config.is_enabled("qbittorrent") and bool(qb_password)
        use_sab = self.config.is_enabled("sabnzbd") and bool(sab_key)
        if not use_qb and not use_sab:
            raise StepSkipped(f"No {PASSWORD_QBITTORRENT} or SABnzbd API key")
        added = 0
        for app_id, api_key in apps:
            with self.arr_client(app_id, api_key) as client:
                existing = {item.get("implementation") for item in client.get_download_clients()}
                if use_qb and "QBittorrent" not in existing:
                    client.add_download_client(
                        qbittorrent_download_client(
                            self.service_host("qbittorrent"),
                            self.internal_port("qbittorrent"),
                            self.env.get(USERNAME_QBITTORRENT) or DEFAULT_USERNAME,
                            qb_password,
                            app_id,
                        )
                    )
                    added += 1
                if use_sab and "Sabnzbd" not in existing:
                    client.add_download_client(
                        sabnzbd_download_client(
                            self.service_host("sabnzbd"), self.internal_port("sabnzbd"), sab_key, app_id
                        )
                    )
                    added += 1
        return f"{added} download clients added"

    def setup_naming(self) -> str:
        configured = []
        for app_id in ("radarr", "sonarr"):
            api_key = self.api_key(app_id)
            if not self.config.is_enabled(app_id) or not api_key:
                continue
            with self.arr_client(app_id, api_key) as client:
                client.configure_trash_naming(app_id)
            configured.append(app_id)
        if not configured:
            raise StepSkipped("No API keys found")
        return ", ".join(configured)

    def setup_authentication(self) -> str:
        self._require_password()
        updated = 0
        for app_id, api_key in self._arr_apps_with_keys(include_prowlarr=True):
            with self.arr_client(app_id, api_key) as client:
                if client.update_host_config(self.username, self.password) is not None:
                    updated += 1
        if self.config.is_enabled("bazarr") and self.api_key("bazarr"):
            with self._bazarr() as bazarr:
                if bazarr.enable_form_auth(self.username, self.password):
                    updated += 1
                self._connect_bazarr(bazarr)
        return f"{updated} apps secured"

    def setup_external_urls(self) -> str:
        configured = 0
        for app_id, api_key in self._arr_apps_with_keys(include_prowlarr=True):
            with self.arr_client(app_id, api_key) as client:
                client.set_application_url(get_application_url(app_id, self.port(app_id), self.config))
            configured += 1
        if self.config.is_enabled("bazarr") and self.api_key("bazarr"):
            with self._bazarr() as bazarr:
                bazarr.set_base_url(get_application_url("bazarr", self.port("bazarr"), self.config))
            configured += 1
        if not configured:
            raise StepSkipped("No apps with API keys")
        return f"{configured} apps configured"

    def _prowlarr(self) -> ProwlarrClient:
        api_key = self.api_key("prowlarr")
        if not api_key:
            raise StepSkipped("No Prowlarr API key")
        return ProwlarrClient(self.host, self.port("prowlarr"), api_key, transport=self.transport)

    def setup_prowlarr_apps(self) -> str:
        linked = []
        with self._prowlarr() as prowlarr:
            for app_id in self.config.enabled_ids():
                api_key = self.api_key(app_id)
                if app_id not in ARR_APP_TYPES or not api_key:
                    continue
                definition = get_app(app_id)
                prowlarr.add_arr_app(
                    app_id,
                    self.service_host(app_id),
                    self.internal_port(app_id),
                    api_key,
                    self.service_host("prowlarr"),
                    self.internal_port("prowlarr"),
                    definition.prowlarr_categories if definition else None,
                )
                linked.append(app_id)
            try:
                prowlarr.sync_applications()
            except ArrApiError:
                # Fails until at least one indexer exists
                log.debug("Prowlarr application sync failed", exc_info=True)
        return f"{len(linked)} apps linked"

    def setup_flaresolverr(self) -> str:
        with self._prowlarr() as prowlarr:
            url = f"http://{self.service_host('flaresolverr')}:{self.internal_port('flaresolverr')}"
            added = prowlarr.configure_flaresolverr(url)
        return "proxy added" if added else "already configured"

    def setup_qbittorrent(self) -> str:
        password = self.env.get(PASSWORD_QBITTORRENT)
        if not password:
            raise StepSkipped(f"No {PASSWORD_QBITTORRENT} in .env")
        username = self.env.get(USERNAME_QBITTORRENT) or DEFAULT_USERNAME
        categories = get_categories_for_apps(self.config.enabled_ids())
        with QBittorrentClient(self.host, self.port("qbittorrent"), username, password, transport=self.transport) as client:
            result = client.setup(SetupOptions(username, password, dict(self.env)), categories)
        if not result.success:
            raise RuntimeError(result.message)
        return result.message

    def setup_portainer(self) -> str:
        self._require_password()
        with PortainerClient(self.host, self.port("portainer"), transport=self.transport) as client:
            return self.finish(client.setup(self.options()))

    def setup_jellyfin(self) -> str:
        self._require_password()
        with JellyfinClient(self.host, self.port("jellyfin"), transport=self.transport) as client:
            return self.finish(client.setup(self.options()))

    def _link_seerr(self, client: SeerrClient) -> int:
        linked = 0
        for kind in ("radarr", "sonarr"):
            api_key = self.api_key(kind)
            definition = get_app(kind)
            if not self.config.is_enabled(kind) or not api_key or definition.root_folder is None:
                continue
            external_url = get_application_url(kind, self.port(kind), self.config)
            if client.configure_server(
                kind,
                self.service_host(kind),
                self.internal_port(kind),
                api_key,
                definition.root_folder.path,
                external_url,
            ):
                linked += 1
        return linked

    def setup_jellyseerr(self) -> str:
        if not self.config.is_enabled("jellyfin"):
            if self.config.is_enabled("plex"):
                raise StepSkipped("Plex requires manual setup")
            raise StepSkipped("No media server enabled")
        self._require_password()
        with JellyseerrClient(
            self.host, self.port("jellyseerr"), self.api_key("jellyseerr"), transport=self.transport
        ) as client:
            message = self.finish(
                client.setup(self.options(), self.service_host("jellyfin"), self.internal_port("jellyfin"))
            )
            linked = self._link_seerr(client)
            client.update_jellyfin_settings(
                {"externalHostname": get_application_url("jellyfin", self.port("jellyfin"), self.config)}
            )
            client.set_application_url(get_application_url("jellyseerr", self.port("jellyseerr"), self.config))
        return f"{message}, {linked} services linked"

    def setup_plex(self) -> str:
        with PlexClient(self.host, self.port("plex"), self.env.get(PLEX_TOKEN), transport=self.transport) as client:
            if not client.is_healthy():
                raise StepSkipped("Not reachable yet")
            return self.finish(client.setup(self.options()))

    def setup_overseerr(self) -> str:
        if not self.config.is_enabled("plex"):
            raise StepSkipped("Plex not enabled")
        with OverseerrClient(
            self.host, self.port("overseerr"), self.api_key("overseerr"), transport=self.transport
        ) as client:
            message = self.finish(client.setup(self.options()))
            linked = self._link_seerr(client)
            client.set_application_url(get_application_url("overseerr", self.port("overseerr"), self.config))
        return f"{message}, {linked} services linked"

    def setup_tautulli(self) -> str:
        with TautulliClient(self.host, self.port("tautulli"), transport=self.transport) as client:
            result = client.setup(self.options())
        message = self.finish(result)
        if result.data.get("requiresWizard"):
            message += " (manual Plex setup needed)"
        return message

    def _bazarr(self) -> BazarrClient:
        return BazarrClient(self.host, self.port("bazarr"), self.api_key("bazarr"), transport=self.transport)

    def _connect_bazarr(self, bazarr: BazarrClient) -> int:
        connected = 0
        for kind, configure in (("radarr", bazarr.configure_radarr), ("sonarr", bazarr.configure_sonarr)):
            api_key = self.api_key(kind)
            if self.config.is_enabled(kind) and api_key:
                configure(self.service_host(kind), self.internal_port(kind), api_key)
                connected += 1
        return connected

    def setup_bazarr(self) -> str:
        with self._bazarr() as bazarr:
            message = self.finish(bazarr.setup(self.options()))
            connected = self._connect_bazarr(bazarr)
        return f"{connected} apps connected" if connected else message

    def setup_uptime_kuma(self) -> str:
        self._require_password()
        with UptimeKumaClient(self.host, self.port("uptime-kuma")) as client:
            if not client.is_healthy():
                raise StepSkipped("Not reachable yet")
            message = self.finish(client.setup(self.options()))
            if not client.login(self.username, self.password):
                return message
            added = client.setup_easiarr_monitors(self.config.apps)
        return f"{message}, {added} monitors added"

    def setup_grafana(self) -> str:
        self._require_password()
        with GrafanaClient(self.host, self.port("grafana"), transport=self.transport) as client:
            if not client.is_healthy():
                raise StepSkipped("Not reachable yet")
            return self.finish(client.setup(self.options(), prometheus=self.config.is_enabled("prometheus")))

    def _add_tiles(self, name: str, add: Callable[[], int], message: str) -> str:
        """Append the tile count; a dashboard that rejects tiles keeps the step successful."""
        try:
            added = add()
        except httpx.HTTPError as exc:
            log.warning("Could not add %s tiles: %s", name, exc)
            return message
        return f"{message}, {added} apps added"

    def setup_homarr(self) -> str:
        self._require_password()
        with HomarrClient(
            self.host, self.port("homarr"), self.api_key("homarr"), transport=self.transport
        ) as client:
            message = self.finish(client.setup(self.options()))
            return self._add_tiles("Homarr", lambda: client.add_easiarr_apps(self.config.apps), message)

    def setup_heimdall(self) -> str:
        with HeimdallClient(self.host, self.port("heimdall"), transport=self.transport) as client:
            message = self.finish(client.setup(self.options()))
            return self._add_tiles("Heimdall", lambda: client.add_easiarr_apps(self.config.apps), message)

    def setup_huntarr(self) -> str:
        self._require_password()
        with HuntarrClient(self.host, self.port("huntarr"), transport=self.transport) as client:
            if not client.is_healthy():
                raise StepSkipped("Not reachable yet")
            self.finish(client.setup(self.options()))
            added = 0
            for app_type in HUNTARR_APP_TYPES:
                api_key = self.api_key(app_type)
                definition = get_app(app_type)
                if not self.config.is_enabled(app_type) or not api_key:
                    continue
                api_url = f"http://{self.service_host(app_type)}:{self.internal_port(app_type)}"
                if client.add_instance(app_type, definition.name, api_url, api_key):
                    added += 1
        return f"{added} *arr apps added"

    def setup_cloudflare(self) -> str:
        api_token = self.env.get(CLOUDFLARE_API_TOKEN)
        if not api_token:
            raise StepSkipped(f"No {CLOUDFLARE_API_TOKEN} in .env")
        domain = self.env.get(CLOUDFLARE_DNS_ZONE) or self.config.traefik.domain
        if not domain:
            raise StepSkipped("No domain configured")
        with CloudflareClient(api_token, transport=self.transport) as client:
            tunnel = client.setup_tunnel(domain)
            updates = {
                "CLOUDFLARE_TUNNEL_TOKEN": tunnel.tunnel_token,
                "CLOUDFLARE_TUNNEL_ID": tunnel.tunnel_id,
                "CLOUDFLARE_ACCOUNT_ID": tunnel.account_id,
                CLOUDFLARE_DNS_ZONE: domain,
            }
            update_env(self.repo.env_path, updates)
            self.env.update(updates)
            # Traefik serves the tunnel over plain HTTP
            self.config.traefik.domain = domain
            self.config.traefik.entrypoint = "web"
            self.repo.save_config(self.config)
            (self.renderer or ComposeRenderer()).render(self.config, self.repo.config_dir)

            email = self.env.get(CLOUDFLARE_ACCESS_EMAIL) or self.env.get(EMAIL_GLOBAL)
            if not email:
                return "Tunnel created"
            try:
                client.setup_access_protection(domain, [email])
            except (CloudflareApiError, httpx.HTTPError) as exc:
                log.warning("Cloudflare Access setup failed: %s", exc)
                return "Tunnel created (Access failed)"
        return f"Tunnel + Access for {email}"

    def setup_profilarr(self) -> str:
        self._require_password()
        with ProfilarrClient(self.host, self.port("profilarr"), transport=self.transport) as client:
            message = self.finish(client.setup(self.options()))
            linked = 0
            for kind in ("radarr", "sonarr"):
                api_key = self.api_key(kind)
                if self.config.is_enabled(kind) and api_key:
                    client.configure_arr(kind, self.service_host(kind), self.internal_port(kind), api_key)
                    linked += 1
        return f"{message}, {linked} apps connected"

    def setup_homepage(self) -> str:
        path = (self.renderer or ComposeRenderer()).save_homepage_services(self.config, self.env)
        return f"services.yaml written to {Path(path).parent}"
