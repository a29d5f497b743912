"""Registry of every application easiarr can deploy and configure."""
from __future__ import annotations

import platform
from typing import Dict, List, Optional

from .constants import APP_CATEGORIES
from .models import (
    ApiKeyMeta,
    AppDefinition,
    AppSecret,
    ArchCompatibility,
    HomepageMeta,
    RootFolderMeta,
)

DOCKER_SOCK = "/var/run/docker.sock:/var/run/docker.sock"
ARR_API_KEY = ApiKeyMeta(config_file="config.xml", parser="regex", selector="<ApiKey>(.*?)</ApiKey>")


def _arr(
    app_id: str,
    name: str,
    description: str,
    port: int,
    image: str,
    puid: int,
    media_path: Optional[str],
    api_version: str,
    categories: List[int],
    **extra,
) -> AppDefinition:
    return AppDefinition(
        id=app_id,
        name=name,
        description=description,
        category="servarr",
        default_port=port,
        image=image,
        puid=puid,
        pgid=13000,
        volumes=[f"${{root}}/config/{app_id}:/config", "${root}/data:/data"],
        api_key_meta=ARR_API_KEY,
        root_folder=RootFolderMeta(path=media_path, api_version=api_version) if media_path else None,
        prowlarr_categories=categories,
        homepage=HomepageMeta(icon=f"{app_id}.png", widget=app_id),
        **extra,
    )


_DEFINITIONS: List[AppDefinition] = [
    # Media management
    _arr(
        "radarr", "Radarr", "Movie collection manager", 7878,
        "lscr.io/linuxserver/radarr:latest", 13002, "/data/media/movies", "v3",
        [2000, 2010, 2020, 2030, 2040, 2045, 2050, 2060, 2070, 2080, 2090],
        trash_guide="docs/Radarr/",
    ),
    _arr(
        "sonarr", "Sonarr", "TV series collection manager", 8989,
        "lscr.io/linuxserver/sonarr:latest", 13001, "/data/media/tv", "v3",
        [5000, 5010, 5020, 5030, 5040, 5045, 5050, 5060, 5070, 5080, 5090],
        trash_guide="docs/Sonarr/",
    ),
    _arr(
        "lidarr", "Lidarr", "Music collection manager", 8686,
        "lscr.io/linuxserver/lidarr:latest", 13003, "/data/media/music", "v1",
        [3000, 3010, 3020, 3030, 3040, 3050, 3060],
    ),
    _arr(
        "readarr", "Readarr", "Book collection manager", 8787,
        "lscr.io/linuxserver/readarr:develop", 13004, "/data/media/books", "v1",
        [7000, 7010, 7020, 7030, 7040, 7050, 7060],
        arch=ArchCompatibility(
            deprecated=["arm64", "arm32"],
            warning="Readarr is deprecated - no ARM64 support (project abandoned by upstream)",
        ),
    ),
    AppDefinition(
        id="bazarr",
        name="Bazarr",
        description="Subtitle manager for Sonarr/Radarr",
        category="servarr",
        default_port=6767,
        image="lscr.io/linuxserver/bazarr:latest",
        puid=13013,
        pgid=13000,
        volumes=["${root}/config/bazarr:/config", "${root}/data/media:/data/media"],
        depends_on=["sonarr", "radarr"],
        trash_guide="docs/Bazarr/",
        api_key_meta=ApiKeyMeta(config_file="config/config.yaml", parser="yaml", selector="auth.apikey"),
        homepage=HomepageMeta(icon="bazarr.png", widget="bazarr"),
    ),
    AppDefinition(
        id="mylar3",
        name="Mylar3",
        description="Comic book collection manager",
        category="servarr",
        default_port=8090,
        image="lscr.io/linuxserver/mylar3:latest",
        puid=13005,
        pgid=13000,
        volumes=["${root}/config/mylar3:/config", "${root}/data:/data"],
        api_key_meta=ApiKeyMeta(
            config_file="mylar/config.ini",
            parser="ini",
            section="API",
            selector="api_key",
            enabled_key="api_enabled",
            generate_if_missing=True,
        ),
        homepage=HomepageMeta(icon="mylar.png", widget="mylar"),
    ),
    _arr(
        "whisparr", "Whisparr", "Adult media collection manager", 6969,
        "ghcr.io/hotio/whisparr:nightly", 13015, "/data/media/adult", "v3",
        [6000, 6010, 6020, 6030, 6040, 6050, 6060, 6070, 6080, 6090],
    ),
    AppDefinition(
        id="audiobookshelf",
        name="Audiobookshelf",
        description="Audiobook and podcast server",
        category="servarr",
        default_port=13378,
        internal_port=80,
        image="ghcr.io/advplyr/audiobookshelf:latest",
        puid=13014,
        pgid=13000,
        volumes=[
            "${root}/config/audiobookshelf:/config",
            "${root}/data/media/audiobooks:/audiobooks",
            "${root}/data/media/podcasts:/podcasts",
            "${root}/data/media/audiobookshelf-metadata:/metadata",
        ],
        homepage=HomepageMeta(icon="audiobookshelf.png", widget="audiobookshelf"),
    ),
    # Indexers
    AppDefinition(
        id="prowlarr",
        name="Prowlarr",
        description="Indexer manager for *arr apps",
        category="indexer",
        default_port=9696,
        image="lscr.io/linuxserver/prowlarr:develop",
        puid=13006,
        pgid=13000,
        volumes=["${root}/config/prowlarr:/config"],
        trash_guide="docs/Prowlarr/",
        api_key_meta=ARR_API_KEY,
        homepage=HomepageMeta(icon="prowlarr.png", widget="prowlarr"),
    ),
    AppDefinition(
        id="jackett",
        name="Jackett",
        description="Alternative indexer manager",
        category="indexer",
        default_port=9117,
        image="lscr.io/linuxserver/jackett:latest",
        puid=13008,
        pgid=13000,
        volumes=["${root}/config/jackett:/config"],
        api_key_meta=ApiKeyMeta(config_file="Jackett/ServerConfig.json", parser="json", selector="APIKey"),
        homepage=HomepageMeta(icon="jackett.png"),
    ),
    AppDefinition(
        id="flaresolverr",
        name="FlareSolverr",
        description="Cloudflare bypass proxy",
        category="indexer",
        default_port=8191,
        image="ghcr.io/flaresolverr/flaresolverr:latest",
        puid=0,
        pgid=0,
        environment={"LOG_LEVEL": "info", "LOG_HTML": "false", "CAPTCHA_SOLVER": "none"},
    ),
    # Download clients
    AppDefinition(
        id="qbittorrent",
        name="qBittorrent",
        description="BitTorrent client",
        category="downloader",
        default_port=8080,
        image="lscr.io/linuxserver/qbittorrent:latest",
        puid=13007,
        pgid=13000,
        volumes=["${root}/config/qbittorrent:/config", "${root}/data:/data"],
        environment={"WEBUI_PORT": "8080"},
        secrets=[
            AppSecret(
                name="USERNAME_QBITTORRENT",
                description="Username for qBittorrent WebUI",
                default="admin",
            ),
            AppSecret(
                name="PASSWORD_QBITTORRENT",
                description="Password for qBittorrent WebUI",
                mask=True,
            ),
        ],
        trash_guide="docs/Downloaders/qBittorrent/",
        homepage=HomepageMeta(
            icon="qbittorrent.png",
            widget="qbittorrent",
            widget_fields={"username": "USERNAME_QBITTORRENT", "password": "PASSWORD_QBITTORRENT"},
        ),
    ),
    AppDefinition(
        id="sabnzbd",
        name="SABnzbd",
        description="Usenet downloader",
        category="downloader",
        default_port=8081,
        internal_port=8080,
        image="lscr.io/linuxserver/sabnzbd:latest",
        puid=13011,
        pgid=13000,
        volumes=["${root}/config/sabnzbd:/config", "${root}/data:/data"],
        trash_guide="docs/Downloaders/SABnzbd/",
        api_key_meta=ApiKeyMeta(config_file="sabnzbd.ini", parser="regex", selector=r"api_key\s*=\s*(.+)"),
        homepage=HomepageMeta(icon="sabnzbd.png", widget="sabnzbd"),
    ),
    AppDefinition(
        id="slskd",
        name="slskd",
        description="Soulseek client for music downloads",
        category="downloader",
        default_port=5030,
        image="slskd/slskd:latest",
        puid=13016,
        pgid=13000,
        volumes=["${root}/config/slskd:/app", "${root}/data:/data"],
        environment={"SLSKD_REMOTE_CONFIGURATION": "true"},
        homepage=HomepageMeta(icon="slskd.png"),
    ),
    # Media servers
    AppDefinition(
        id="plex",
        name="Plex",
        description="Media server with streaming",
        category="mediaserver",
        default_port=32400,
        image="lscr.io/linuxserver/plex:latest",
        puid=13010,
        pgid=13000,
        volumes=["${root}/config/plex:/config", "${root}/data/media:/data/media"],
        environment={"VERSION": "docker"},
        network_mode="host",
        trash_guide="docs/Plex/",
        api_key_meta=ApiKeyMeta(
            config_file="Library/Application Support/Plex Media Server/Preferences.xml",
            parser="regex",
            selector='PlexOnlineToken="([^"]+)"',
        ),
        homepage=HomepageMeta(icon="plex.png"),
    ),
    AppDefinition(
        id="jellyfin",
        name="Jellyfin",
        description="Free open-source media server",
        category="mediaserver",
        default_port=8096,
        image="lscr.io/linuxserver/jellyfin:latest",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/jellyfin:/config", "${root}/data/media:/data/media"],
        homepage=HomepageMeta(icon="jellyfin.png", widget="jellyfin"),
    ),
    AppDefinition(
        id="tautulli",
        name="Tautulli",
        description="Plex monitoring and statistics",
        category="mediaserver",
        default_port=8181,
        image="lscr.io/linuxserver/tautulli:latest",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/tautulli:/config"],
        depends_on=["plex"],
        api_key_meta=ApiKeyMeta(config_file="config.ini", parser="regex", selector=r"api_key\s*=\s*(.+)"),
        homepage=HomepageMeta(icon="tautulli.png", widget="tautulli"),
    ),
    AppDefinition(
        id="tdarr",
        name="Tdarr",
        description="Audio/video transcoding automation",
        category="mediaserver",
        default_port=8265,
        image="ghcr.io/haveagitgat/tdarr:latest",
        puid=0,
        pgid=13000,
        volumes=[
            "${root}/config/tdarr/server:/app/server",
            "${root}/config/tdarr/configs:/app/configs",
            "${root}/config/tdarr/logs:/app/logs",
            "${root}/data/media:/data",
        ],
        environment={"serverIP": "0.0.0.0", "internalNode": "true"},
        secondary_ports=["8266:8266"],
        homepage=HomepageMeta(icon="tdarr.png", widget="tdarr"),
    ),
    # Request management
    AppDefinition(
        id="overseerr",
        name="Overseerr",
        description="Request management for Plex",
        category="request",
        default_port=5055,
        image="sctx/overseerr:latest",
        puid=13009,
        pgid=13000,
        volumes=["${root}/config/overseerr:/app/config"],
        depends_on=["plex"],
        api_key_meta=ApiKeyMeta(config_file="settings.json", parser="json", selector="main.apiKey"),
        homepage=HomepageMeta(icon="overseerr.png", widget="overseerr"),
    ),
    AppDefinition(
        id="jellyseerr",
        name="Jellyseerr",
        description="Request management for Jellyfin",
        category="request",
        default_port=5056,
        internal_port=5055,
        image="fallenbagel/jellyseerr:latest",
        puid=13012,
        pgid=13000,
        volumes=["${root}/config/jellyseerr:/app/config"],
        depends_on=["jellyfin"],
        api_key_meta=ApiKeyMeta(config_file="settings.json", parser="json", selector="main.apiKey"),
        homepage=HomepageMeta(icon="jellyseerr.png", widget="jellyseerr"),
    ),
    # Dashboards
    AppDefinition(
        id="homarr",
        name="Homarr",
        description="Modern dashboard for all services",
        category="dashboard",
        default_port=7575,
        image="ghcr.io/ajnart/homarr:latest",
        puid=0,
        pgid=0,
        volumes=[
            "${root}/config/homarr/configs:/app/data/configs",
            "${root}/config/homarr/icons:/app/public/icons",
            "${root}/config/homarr/data:/data",
            DOCKER_SOCK,
        ],
    ),
    AppDefinition(
        id="heimdall",
        name="Heimdall",
        description="Application dashboard and launcher",
        category="dashboard",
        default_port=8082,
        internal_port=80,
        image="lscr.io/linuxserver/heimdall:latest",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/heimdall:/config"],
    ),
    AppDefinition(
        id="homepage",
        name="Homepage",
        description="Highly customizable application dashboard",
        category="dashboard",
        default_port=3000,
        image="ghcr.io/gethomepage/homepage:latest",
        puid=0,
        pgid=0,
        volumes=["${root}/config/homepage:/app/config", DOCKER_SOCK],
        environment={"HOMEPAGE_ALLOWED_HOSTS": "*"},
    ),
    # Utilities
    AppDefinition(
        id="portainer",
        name="Portainer",
        description="Docker container management UI",
        category="utility",
        default_port=9000,
        image="portainer/portainer-ce:latest",
        puid=0,
        pgid=0,
        volumes=["${root}/config/portainer:/data", DOCKER_SOCK],
        min_password_length=12,
        homepage=HomepageMeta(icon="portainer.png"),
    ),
    AppDefinition(
        id="huntarr",
        name="Huntarr",
        description="Missing content manager for *arr apps",
        category="utility",
        default_port=9705,
        image="huntarr/huntarr:latest",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/huntarr:/config"],
    ),
    AppDefinition(
        id="unpackerr",
        name="Unpackerr",
        description="Archive extraction for *arr apps",
        category="utility",
        default_port=5656,
        image="golift/unpackerr",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/unpackerr:/config", "${root}/data:/data"],
    ),
    AppDefinition(
        id="filebot",
        name="FileBot",
        description="Media file renaming and automator",
        category="utility",
        default_port=5452,
        image="rednoah/filebot",
        puid=13000,
        pgid=13000,
        volumes=["${root}/config/filebot:/data", "${root}/data:/data"],
        environment={"DARK_MODE": "1"},
    ),
    AppDefinition(
        id="chromium",
        name="Chromium",
        description="Web browser for secure remote browsing",
        category="utility",
        default_port=3000,
        image="lscr.io/linuxserver/chromium:latest",
        puid=13000,
        pgid=13000,
        volumes=["${root}/config/chromium:/config"],
        environment={"TITLE": "Chromium"},
    ),
    AppDefinition(
        id="guacamole",
        name="Guacamole",
        description="Clientless remote desktop gateway",
        category="utility",
        default_port=8080,
        image="guacamole/guacamole",
        puid=0,
        pgid=0,
        volumes=["${root}/config/guacamole:/config"],
        environment={
            "WEBAPP_CONTEXT": "ROOT",
            "GUACD_HOSTNAME": "guacd",
            "POSTGRESQL_HOSTNAME": "postgresql",
            "POSTGRESQL_DATABASE": "guacamole",
            "POSTGRESQL_USER": "${USERNAME_POSTGRESQL}",
            "POSTGRESQL_PASSWORD": "${PASSWORD_POSTGRESQL}",
        },
        depends_on=["guacd", "postgresql"],
        secrets=[
            AppSecret(name="USERNAME_POSTGRESQL", description="PostgreSQL Username", required=True, default="postgres"),
            AppSecret(name="PASSWORD_POSTGRESQL", description="PostgreSQL Password", required=True, mask=True),
        ],
    ),
    AppDefinition(
        id="guacd",
        name="Guacd",
        description="Guacamole proxy daemon",
        category="utility",
        default_port=4822,
        image="guacamole/guacd",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/guacd:/config"],
        depends_on=["postgresql"],
    ),
    AppDefinition(
        id="ddns-updater",
        name="DDNS-Updater",
        description="Dynamic DNS record updater",
        category="utility",
        default_port=8000,
        image="qmcgaw/ddns-updater",
        puid=13000,
        pgid=13000,
        volumes=["${root}/config/ddns-updater:/data"],
    ),
    AppDefinition(
        id="profilarr",
        name="Profilarr",
        description="Quality profile and custom format manager",
        category="utility",
        default_port=6868,
        image="santiagosayshey/profilarr:latest",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/profilarr:/config"],
    ),
    AppDefinition(
        id="soularr",
        name="Soularr",
        description="Connects Lidarr with Soulseek via slskd",
        category="utility",
        default_port=0,
        image="mrusse08/soularr:latest",
        puid=13000,
        pgid=13000,
        volumes=["${root}/config/soularr:/data", "${root}/data:/data/downloads"],
        environment={"SCRIPT_INTERVAL": "300"},
        depends_on=["lidarr", "slskd"],
    ),
    # VPN
    AppDefinition(
        id="gluetun",
        name="Gluetun",
        description="VPN client container for routing traffic",
        category="vpn",
        default_port=8888,
        image="qmcgaw/gluetun:latest",
        puid=0,
        pgid=0,
        cap_add=["NET_ADMIN"],
        devices=["/dev/net/tun:/dev/net/tun"],
        volumes=["${root}/config/gluetun:/gluetun"],
        environment={
            "VPN_SERVICE_PROVIDER": "${VPN_SERVICE_PROVIDER}",
            "OPENVPN_USER": "${USERNAME_VPN}",
            "OPENVPN_PASSWORD": "${PASSWORD_VPN}",
            "WIREGUARD_PRIVATE_KEY": "${WIREGUARD_PRIVATE_KEY}",
            "HTTPPROXY": "on",
            "SHADOWSOCKS": "on",
        },
        secrets=[
            AppSecret(
                name="VPN_SERVICE_PROVIDER",
                description="VPN Provider (e.g. custom, airvpn)",
                required=True,
                default="custom",
            ),
            AppSecret(name="USERNAME_VPN", description="OpenVPN Username"),
            AppSecret(name="PASSWORD_VPN", description="OpenVPN Password", mask=True),
            AppSecret(name="WIREGUARD_PRIVATE_KEY", description="WireGuard Private Key", mask=True),
        ],
    ),
    # Monitoring
    AppDefinition(
        id="grafana",
        name="Grafana",
        description="Visual monitoring dashboard",
        category="monitoring",
        default_port=3001,
        internal_port=3000,
        image="grafana/grafana-enterprise",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/grafana:/var/lib/grafana"],
        homepage=HomepageMeta(icon="grafana.png"),
    ),
    AppDefinition(
        id="prometheus",
        name="Prometheus",
        description="Systems and service monitoring",
        category="monitoring",
        default_port=9090,
        image="prom/prometheus",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/prometheus:/prometheus"],
    ),
    AppDefinition(
        id="dozzle",
        name="Dozzle",
        description="Real-time log viewer for Docker containers",
        category="monitoring",
        default_port=8888,
        internal_port=8080,
        image="amir20/dozzle",
        puid=0,
        pgid=0,
        volumes=[DOCKER_SOCK],
    ),
    AppDefinition(
        id="uptime-kuma",
        name="Uptime Kuma",
        description="Self-hosted monitoring tool",
        category="monitoring",
        default_port=3001,
        image="louislam/uptime-kuma:1",
        puid=0,
        pgid=0,
        volumes=["${root}/config/uptime-kuma:/app/data", DOCKER_SOCK],
        homepage=HomepageMeta(icon="uptime-kuma.png"),
    ),
    # Infrastructure
    AppDefinition(
        id="traefik",
        name="Traefik",
        description="Reverse proxy and load balancer",
        category="infrastructure",
        default_port=8083,
        internal_port=8080,
        image="traefik:latest",
        puid=0,
        pgid=0,
        volumes=[
            "${root}/config/traefik:/etc/traefik",
            "${root}/config/traefik/letsencrypt:/letsencrypt",
            "/var/run/docker.sock:/var/run/docker.sock:ro",
        ],
        secondary_ports=["80:80", "443:443"],
        secrets=[
            AppSecret(name="CLOUDFLARE_DNS_ZONE", description="Root Domain (e.g. example.com)", required=True),
        ],
        homepage=HomepageMeta(icon="traefik.png", widget="traefik"),
    ),
    AppDefinition(
        id="traefik-certs-dumper",
        name="Traefik Certs Dumper",
        description="Extracts certificates from Traefik",
        category="infrastructure",
        default_port=0,
        image="ldez/traefik-certs-dumper:latest",
        puid=0,
        pgid=0,
        volumes=["${root}/config/traefik/letsencrypt:/traefik:ro", "${root}/config/traefik/certs:/output"],
        depends_on=["traefik"],
    ),
    AppDefinition(
        id="cloudflared",
        name="Cloudflared",
        description="Cloudflare Tunnel connector",
        category="infrastructure",
        default_port=0,
        image="cloudflare/cloudflared:latest",
        command="tunnel --no-autoupdate run --token ${CLOUDFLARE_TUNNEL_TOKEN}",
        secrets=[
            AppSecret(name="CLOUDFLARE_TUNNEL_TOKEN", description="Cloudflare Tunnel Token", required=True, mask=True),
        ],
    ),
    AppDefinition(
        id="crowdsec",
        name="CrowdSec",
        description="Intrusion prevention system",
        category="infrastructure",
        default_port=8080,
        image="crowdsecurity/crowdsec:latest",
        puid=0,
        pgid=0,
        volumes=["${root}/config/crowdsec:/etc/crowdsec", "/var/run/docker.sock:/var/run/docker.sock:ro"],
    ),
    AppDefinition(
        id="headscale",
        name="Headscale",
        description="Open-source Tailscale control server",
        category="infrastructure",
        default_port=8084,
        internal_port=8080,
        image="headscale/headscale:latest",
        puid=0,
        pgid=0,
        volumes=["${root}/config/headscale:/etc/headscale", "${root}/config/headscale/data:/var/lib/headscale"],
        command="serve",
    ),
    AppDefinition(
        id="headplane",
        name="Headplane",
        description="Headscale web UI",
        category="infrastructure",
        default_port=3000,
        image="ghcr.io/tale/headplane:latest",
        puid=0,
        pgid=0,
        volumes=["${root}/config/headplane:/config"],
        depends_on=["headscale"],
    ),
    AppDefinition(
        id="tailscale",
        name="Tailscale",
        description="VPN mesh network client",
        category="infrastructure",
        default_port=0,
        image="tailscale/tailscale:latest",
        puid=0,
        pgid=0,
        cap_add=["NET_ADMIN"],
        devices=["/dev/net/tun:/dev/net/tun"],
        volumes=["${root}/config/tailscale:/var/lib/tailscale"],
        secrets=[AppSecret(name="TAILSCALE_AUTHKEY", description="Tailscale Auth Key", required=True, mask=True)],
    ),
    AppDefinition(
        id="authentik",
        name="Authentik",
        description="Identity provider and SSO (Server)",
        category="infrastructure",
        default_port=9001,
        internal_port=9000,
        image="ghcr.io/goauthentik/server:latest",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/authentik/media:/media", "${root}/config/authentik/templates:/templates"],
        environment={
            "AUTHENTIK_REDIS__HOST": "valkey",
            "AUTHENTIK_POSTGRESQL__HOST": "postgresql",
            "AUTHENTIK_POSTGRESQL__NAME": "authentik",
            "AUTHENTIK_POSTGRESQL__USER": "${USERNAME_POSTGRESQL}",
            "AUTHENTIK_POSTGRESQL__PASSWORD": "${PASSWORD_POSTGRESQL}",
            "AUTHENTIK_SECRET_KEY": "${AUTHENTIK_SECRET_KEY}",
        },
        command="server",
        depends_on=["postgresql", "valkey", "authentik-worker"],
        secrets=[
            AppSecret(
                name="AUTHENTIK_SECRET_KEY",
                description="Authentik Secret Key",
                required=True,
                mask=True,
                generate=True,
            ),
        ],
    ),
    AppDefinition(
        id="authentik-worker",
        name="Authentik Worker",
        description="Identity provider background worker",
        category="infrastructure",
        default_port=0,
        image="ghcr.io/goauthentik/server:latest",
        puid=0,
        pgid=13000,
        volumes=[
            "${root}/config/authentik/media:/media",
            "${root}/config/authentik/templates:/templates",
            "${root}/config/authentik/certs:/certs",
            DOCKER_SOCK,
        ],
        environment={
            "AUTHENTIK_REDIS__HOST": "valkey",
            "AUTHENTIK_POSTGRESQL__HOST": "postgresql",
            "AUTHENTIK_POSTGRESQL__NAME": "authentik",
            "AUTHENTIK_POSTGRESQL__USER": "${USERNAME_POSTGRESQL}",
            "AUTHENTIK_POSTGRESQL__PASSWORD": "${PASSWORD_POSTGRESQL}",
            "AUTHENTIK_SECRET_KEY": "${AUTHENTIK_SECRET_KEY}",
        },
        command="worker",
        depends_on=["postgresql", "valkey"],
    ),
    AppDefinition(
        id="postgresql",
        name="PostgreSQL",
        description="Database server",
        category="infrastructure",
        default_port=5432,
        image="docker.io/library/postgres:latest",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/postgresql:/var/lib/postgresql/data"],
        environment={
            "POSTGRES_USER": "${USERNAME_POSTGRESQL}",
            "POSTGRES_PASSWORD": "${PASSWORD_POSTGRESQL}",
            "POSTGRES_DB": "authentik",
        },
        secrets=[
            AppSecret(name="USERNAME_POSTGRESQL", description="PostgreSQL Username", required=True, default="postgres"),
            AppSecret(name="PASSWORD_POSTGRESQL", description="PostgreSQL Password", required=True, mask=True),
        ],
    ),
    AppDefinition(
        id="valkey",
        name="Valkey",
        description="Redis-compatible key-value store",
        category="infrastructure",
        default_port=6379,
        image="valkey/valkey:alpine",
        puid=0,
        pgid=13000,
        volumes=["${root}/config/valkey:/data"],
    ),
]

APPS: Dict[str, AppDefinition] = {definition.id: definition for definition in _DEFINITIONS}


def get_app(app_id: str) -> Optional[AppDefinition]:
    return APPS.get(app_id)


def get_all_apps() -> List[AppDefinition]:
    return list(APPS.values())


def get_apps_by_category() -> Dict[str, List[AppDefinition]]:
    """Group apps by category, keeping the display order of APP_CATEGORIES."""
    grouped: Dict[str, List[AppDefinition]] = {category: [] for category in APP_CATEGORIES}
    for definition in APPS.values():
        grouped.setdefault(definition.category, []).append(definition)
    return {category: apps for category, apps in grouped.items() if apps}


def get_current_arch(machine: Optional[str] = None) -> str:
    """Normalise the host machine type to ``x64``, ``arm64`` or ``arm32``."""
    value = (machine or platform.machine()).lower()
    if value in {"x86_64", "amd64", "x64", "i386", "i686", "ia32"}:
        return "x64"
    if value in {"aarch64", "arm64"}:
        return "arm64"
    if value.startswith("arm"):
        return "arm32"
    return "x64"


def is_app_compatible(definition: AppDefinition, arch: str) -> bool:
    if definition.arch is None:
        return True
    if definition.arch.supported is not None and arch not in definition.arch.supported:
        return False
    return True


def get_compatible_apps(arch: Optional[str] = None) -> List[AppDefinition]:
    current = arch or get_current_arch()
    return [definition for definition in APPS.values() if is_app_compatible(definition, current)]


def get_arch_warning(definition: AppDefinition, arch: Optional[str] = None) -> Optional[str]:
    """Return the deprecation warning for ``definition`` on ``arch`` if any."""
    if definition.arch is None:
        return None
    current = arch or get_current_arch()
    if current in definition.arch.deprecated:
        return definition.arch.warning or f"{definition.name} is deprecated on {current}"
    if not is_app_compatible(definition, current):
        return f"{definition.name} does not support {current}"
    return None


def resolve_port(definition: AppDefinition, configured: Optional[int]) -> int:
    """Host port for an app: the configured override or its default."""
    return configured if configured else definition.default_port
