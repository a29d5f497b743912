"""Rendering helpers for docker compose, bookmarks, Homepage and Soularr files."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .constants import (
    APP_CATEGORIES,
    PROJECT_NAME,
    PROJECT_REPO_URL,
    ROOT_DOMAIN,
    TRASH_GUIDES_URL,
    VPN_ROUTED_CATEGORIES,
    api_key_env,
)
from .envfile import get_local_ip, update_env
from .models import AppConfig, AppDefinition, EasiarrConfig, RenderResult, TraefikConfig
from .registry import get_app, resolve_port

log = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

# Apps that always get PUID/PGID even without image defaults
FORCE_USER_IDS = ("jellyfin", "tautulli")
NO_TRAEFIK_LABELS = ("plex", "cloudflared")
TRAEFIK_DASHBOARD_PORT = 8080
HUNTARR_WIDGET_APPS = ("radarr", "sonarr", "lidarr", "whisparr", "readarr")

SOULARR_LIDARR_PLACEHOLDER = "yourlidarrapikeygoeshere"
SOULARR_SLSKD_PLACEHOLDER = "yourslskdapikeygoeshere"


@dataclass
class ComposeService:
    image: str
    container_name: str
    environment: Dict[str, str] = field(default_factory=dict)
    volumes: List[str] = field(default_factory=list)
    ports: List[str] = field(default_factory=list)
    restart: str = "unless-stopped"
    command: Optional[str] = None
    network_mode: Optional[str] = None
    depends_on: List[str] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    user: Optional[str] = None
    cap_add: List[str] = field(default_factory=list)
    devices: List[str] = field(default_factory=list)


@dataclass
class Bookmark:
    name: str
    url: str
    description: str


def traefik_labels(service_name: str, port: int, traefik: TraefikConfig) -> List[str]:
    """Router and load balancer labels; the host rule keeps ``${ROOT_DOMAIN}`` for compose."""
    labels = [
        "traefik.enable=true",
        f"traefik.http.routers.{service_name}.service={service_name}",
        f"traefik.http.routers.{service_name}.rule=Host(`{service_name}.${{{ROOT_DOMAIN}}}`)",
        f"traefik.http.routers.{service_name}.entrypoints={traefik.entrypoint}",
    ]
    if traefik.middlewares:
        labels.append(f"traefik.http.routers.{service_name}.middlewares={','.join(traefik.middlewares)}")
    labels.extend(
        [
            f"traefik.http.services.{service_name}.loadbalancer.server.scheme=http",
            f"traefik.http.services.{service_name}.loadbalancer.server.port={port}",
        ]
    )
    return labels


def huntarr_homepage_labels(config: EasiarrConfig) -> List[str]:
    """Homepage docker-discovery labels with one widget mapping per enabled *arr."""
    labels = [
        "homepage.group=Utilities",
        "homepage.name=Huntarr",
        "homepage.icon=huntarr.png",
        "homepage.description=Missing content manager for *arr apps",
        "homepage.widget.type=customapi",
        "homepage.widget.method=GET",
        "homepage.widget.url=http://huntarr:9705/api/cycle/status",
    ]
    enabled = [app_id for app_id in HUNTARR_WIDGET_APPS if config.is_enabled(app_id)]
    for index, app_id in enumerate(enabled):
        labels.extend(
            [
                f"homepage.widget.mappings[{index}].label={app_id.capitalize()}",
                f"homepage.widget.mappings[{index}].field={app_id}.next_cycle",
                f"homepage.widget.mappings[{index}].format=relativeDate",
            ]
        )
    return labels


def container_port(definition: AppDefinition) -> int:
    return definition.internal_port or definition.default_port


def build_service(definition: AppDefinition, app: AppConfig, config: EasiarrConfig) -> ComposeService:
    port = resolve_port(definition, app.port)
    environment = {"TZ": "${TIMEZONE}"}
    if (definition.puid or 0) > 0 or (definition.pgid or 0) > 0 or definition.id in FORCE_USER_IDS:
        environment.update({"PUID": "${PUID}", "PGID": "${PGID}", "UMASK": "${UMASK}"})
    environment.update(definition.environment)
    environment.update(app.env)

    ports: List[str] = []
    if definition.id != "plex" and port != 0 and definition.default_port != 0:
        ports.append(f"{port}:{container_port(definition)}")
    ports.extend(definition.secondary_ports)

    service = ComposeService(
        image=definition.image,
        container_name=definition.id,
        environment=environment,
        volumes=definition.volume_mounts("${ROOT_DIR}"),
        ports=ports,
        command=definition.command,
        network_mode=definition.network_mode,
        depends_on=[dep for dep in definition.depends_on if config.is_enabled(dep)],
        user=definition.user,
        cap_add=list(definition.cap_add),
        devices=list(definition.devices),
    )

    if config.traefik.enabled and definition.id not in NO_TRAEFIK_LABELS:
        label_port = TRAEFIK_DASHBOARD_PORT if definition.id == "traefik" else container_port(definition)
        service.labels = traefik_labels(definition.id, label_port, config.traefik)
    if definition.id == "huntarr":
        service.labels = service.labels + huntarr_homepage_labels(config)
    return service


def apply_vpn_routing(services: Dict[str, ComposeService], config: EasiarrConfig) -> List[str]:
    """Route matching services through gluetun. Returns the ids that were routed."""
    gluetun = services.get("gluetun")
    routed_categories = VPN_ROUTED_CATEGORIES.get(config.vpn.mode, ())
    if gluetun is None or not routed_categories:
        return []
    routed: List[str] = []
    moved_ports: List[str] = []
    for service_id, service in services.items():
        if service_id == "gluetun":
            continue
        definition = get_app(service_id)
        if definition is None or definition.category not in routed_categories:
            continue
        moved_ports.extend(service.ports)
        service.ports = []
        service.network_mode = "service:gluetun"
        routed.append(service_id)
    for port in moved_ports:
        if port not in gluetun.ports:
            gluetun.ports.append(port)
    return routed


def build_services(config: EasiarrConfig) -> Dict[str, ComposeService]:
    services: Dict[str, ComposeService] = {}
    for app in config.apps:
        if not app.enabled:
            continue
        definition = get_app(app.id)
        if definition is None:
            log.warning("Skipping unknown app %s", app.id)
            continue
        services[app.id] = build_service(definition, app, config)
    routed = apply_vpn_routing(services, config)
    if routed:
        log.debug("Routing through gluetun: %s", ", ".join(routed))
    return services


class ComposeRenderer:
    """Renders compose, bookmarks and Soularr files from Jinja templates."""

    def __init__(self, template_dir: Path = TEMPLATE_DIR) -> None:
        self.template_dir = template_dir
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    # Compose -------------------------------------------------------------

    def render_compose(self, config: EasiarrConfig) -> str:
        services = build_services(config)
        log.debug("Generating compose for %d enabled apps", len(services))
        return self.env.get_template("docker-compose.yml.j2").render(services=services)

    def env_values(self, config: EasiarrConfig) -> Dict[str, str]:
        values = {
            "ROOT_DIR": str(config.root_dir),
            "TIMEZONE": config.timezone,
            "PUID": str(config.uid),
            "PGID": str(config.gid),
            "UMASK": config.umask,
            "LOCAL_DOCKER_IP": get_local_ip(),
        }
        if config.traefik.domain:
            values[ROOT_DOMAIN] = config.traefik.domain
        return values

    def render(self, config: EasiarrConfig, output_dir: Path) -> RenderResult:
        """Write docker-compose.yml and refresh the globals in the sibling .env."""
        output_dir.mkdir(parents=True, exist_ok=True)
        compose_path = output_dir / "docker-compose.yml"
        env_path = output_dir / ".env"
        compose_path.write_text(self.render_compose(config), encoding="utf-8")
        update_env(env_path, self.env_values(config))
        return RenderResult(compose_path=compose_path, env_path=env_path)

    # Bookmarks -----------------------------------------------------------

    def bookmark_groups(
        self, config: EasiarrConfig, use_local_urls: bool, local_ip: Optional[str] = None
    ) -> List[Tuple[str, List[Bookmark]]]:
        remote = not use_local_urls and config.traefik.enabled and bool(config.traefik.domain)
        host = local_ip or "localhost"
        grouped: Dict[str, List[Bookmark]] = {}
        for app in config.apps:
            if not app.enabled:
                continue
            definition = get_app(app.id)
            if definition is None:
                continue
            if remote:
                url = f"https://{app.id}.{config.traefik.domain}/"
            else:
                url = f"http://{host}:{resolve_port(definition, app.port)}/"
            grouped.setdefault(definition.category, []).append(
                Bookmark(name=definition.name, url=url, description=definition.description)
            )
        return [(APP_CATEGORIES[category], grouped[category]) for category in APP_CATEGORIES if category in grouped]

    def render_bookmarks(self, config: EasiarrConfig, use_local_urls: bool = False, local_ip: Optional[str] = None) -> str:
        return self.env.get_template("bookmarks.html.j2").render(
            project_name=PROJECT_NAME,
            project_repo_url=PROJECT_REPO_URL,
            trash_guides_url=TRASH_GUIDES_URL,
            groups=self.bookmark_groups(config, use_local_urls, local_ip),
        )

    def save_bookmarks(self, config: EasiarrConfig, output_dir: Path, env: Optional[Mapping[str, str]] = None) -> List[Path]:
        """Always write local bookmarks; remote ones only when Traefik has a domain."""
        local_ip = (env or {}).get("LOCAL_DOCKER_IP")
        output_dir.mkdir(parents=True, exist_ok=True)
        local_path = output_dir / "bookmarks-local.html"
        local_path.write_text(self.render_bookmarks(config, True, local_ip), encoding="utf-8")
        paths = [local_path]
        if config.traefik.enabled and config.traefik.domain:
            remote_path = output_dir / "bookmarks-remote.html"
            remote_path.write_text(self.render_bookmarks(config, False, local_ip), encoding="utf-8")
            paths.append(remote_path)
        return paths

    # Homepage ------------------------------------------------------------

    def homepage_services(self, config: EasiarrConfig, local_ip: Optional[str] = None) -> List[Dict[str, Any]]:
        host = local_ip or "localhost"
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for app in config.apps:
            if not app.enabled or app.id == "homepage":
                continue
            definition = get_app(app.id)
            if definition is None:
                continue
            port = resolve_port(definition, app.port)
            if config.traefik.enabled and config.traefik.domain:
                href = f"https://{app.id}.{config.traefik.domain}"
            else:
                href = f"http://{host}:{port}"
            entry: Dict[str, Any] = {
                "href": href,
                "description": definition.description,
                "container": definition.id,
            }
            meta = definition.homepage
            if meta and meta.icon:
                entry["icon"] = meta.icon
            if meta and meta.widget:
                widget: Dict[str, Any] = {
                    "type": meta.widget,
                    "url": f"http://{definition.id}:{container_port(definition)}",
                }
                if meta.widget_fields:
                    for name, env_key in meta.widget_fields.items():
                        widget[name] = f"{{{{HOMEPAGE_VAR_{env_key}}}}}"
                else:
                    widget["key"] = f"{{{{HOMEPAGE_VAR_{api_key_env(definition.id)}}}}}"
                entry["widget"] = widget
            grouped.setdefault(definition.category, []).append({definition.name: entry})
        return [
            {APP_CATEGORIES[category]: grouped[category]} for category in APP_CATEGORIES if category in grouped
        ]

    def render_homepage_services(self, config: EasiarrConfig, local_ip: Optional[str] = None) -> str:
        return yaml.safe_dump(self.homepage_services(config, local_ip), sort_keys=False, allow_unicode=True)

    def save_homepage_services(self, config: EasiarrConfig, env: Optional[Mapping[str, str]] = None) -> Path:
        path = Path(config.root_dir) / "config" / "homepage" / "services.yaml"
        path.parent.mkdir(parents=True, exist_ok=True)
        content = "---\n" + self.render_homepage_services(config, (env or {}).get("LOCAL_DOCKER_IP"))
        path.write_text(content, encoding="utf-8")
        return path

    # Soularr -------------------------------------------------------------

    def render_soularr_config(self, config: EasiarrConfig, env: Optional[Mapping[str, str]] = None) -> str:
        values = env or {}
        lidarr = config.get_app("lidarr")
        slskd = config.get_app("slskd")
        return self.env.get_template("soularr.ini.j2").render(
            lidarr_api_key=values.get(api_key_env("lidarr")) or SOULARR_LIDARR_PLACEHOLDER,
            slskd_api_key=values.get(api_key_env("slskd")) or SOULARR_SLSKD_PLACEHOLDER,
            lidarr_port=(lidarr.port if lidarr and lidarr.port else 8686),
            slskd_port=(slskd.port if slskd and slskd.port else 5030),
        )

    def save_soularr_config(self, config: EasiarrConfig, env: Optional[Mapping[str, str]] = None) -> Path:
        path = Path(config.root_dir) / "config" / "soularr" / "config.ini"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render_soularr_config(config, env), encoding="utf-8")
        return path
