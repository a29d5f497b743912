"""Centralized constants for easiarr.

Config locations, env variable names and category ordering live here so
clients and renderers do not hardcode them.
"""

from __future__ import annotations

CONFIG_VERSION = "0.1.0"
PROJECT_NAME = "easiarr"
PROJECT_REPO_URL = "https://github.com/muhammedaksam/easiarr/"
TRASH_GUIDES_URL = "https://trash-guides.info/"

# ---------------------------------------------------------------------------
# Config directory layout (~/.easiarr unless EASIARR_HOME is set)
# ---------------------------------------------------------------------------
CONFIG_DIR_NAME = ".easiarr"
CONFIG_FILE_NAME = "config.json"
COMPOSE_FILE_NAME = "docker-compose.yml"
ENV_FILE_NAME = ".env"
STATE_FILE_NAME = "state.json"
MIGRATIONS_FILE_NAME = ".migrations.json"
DEBUG_LOG_NAME = "debug.log"
BACKUP_DIR_NAME = "backups"
LOGS_DIR_NAME = "logs"

# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------
ENV_HOME = "EASIARR_HOME"
ENV_DEBUG = "EASIARR_DEBUG"
ENV_LOCAL_IP = "LOCAL_DOCKER_IP"

USERNAME_GLOBAL = "USERNAME_GLOBAL"
PASSWORD_GLOBAL = "PASSWORD_GLOBAL"
USERNAME_QBITTORRENT = "USERNAME_QBITTORRENT"
PASSWORD_QBITTORRENT = "PASSWORD_QBITTORRENT"
PLEX_TOKEN = "PLEX_TOKEN"
EMAIL_GLOBAL = "EMAIL_GLOBAL"
CLOUDFLARE_API_TOKEN = "CLOUDFLARE_API_TOKEN"
CLOUDFLARE_DNS_ZONE = "CLOUDFLARE_DNS_ZONE"
CLOUDFLARE_ACCESS_EMAIL = "CLOUDFLARE_ACCESS_EMAIL"
ROOT_DOMAIN = "ROOT_DOMAIN"

DEFAULT_USERNAME = "admin"


def api_key_env(app_id: str) -> str:
    """Return the .env key holding an app's API key (``API_KEY_RADARR``)."""
    return f"API_KEY_{app_id.upper().replace('-', '_')}"


# ---------------------------------------------------------------------------
# App categories, in display order
# ---------------------------------------------------------------------------
APP_CATEGORIES: dict[str, str] = {
    "servarr": "Media Management",
    "indexer": "Indexers",
    "downloader": "Download Clients",
    "mediaserver": "Media Servers",
    "request": "Request Management",
    "dashboard": "Dashboards",
    "utility": "Utilities",
    "vpn": "VPN",
    "monitoring": "Monitoring & Analytics",
    "infrastructure": "Infrastructure",
}

# ---------------------------------------------------------------------------
# Prowlarr application implementations per *arr app
# ---------------------------------------------------------------------------
ARR_APP_TYPES: dict[str, str] = {
    "radarr": "Radarr",
    "sonarr": "Sonarr",
    "lidarr": "Lidarr",
    "readarr": "Readarr",
    "whisparr": "Whisparr",
    "mylar3": "Mylar",
}

# ---------------------------------------------------------------------------
# VPN routing: categories whose services join gluetun's network namespace
# ---------------------------------------------------------------------------
VPN_ROUTED_CATEGORIES: dict[str, tuple[str, ...]] = {
    "none": (),
    "mini": ("downloader",),
    "full": ("downloader", "indexer", "request", "mediaserver", "servarr"),
}

# ---------------------------------------------------------------------------
# Container paths (TRaSH single /data tree for hardlinks)
# ---------------------------------------------------------------------------
CONTAINER_PATHS = {
    "torrents": "/data/torrents",
    "usenet": "/data/usenet",
    "media": "/data/media",
}

HTTP_TIMEOUT = 10.0
HTTP_CONNECT_TIMEOUT = 5.0
