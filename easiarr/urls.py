"""Build local and Traefik-routed URLs for deployed apps."""
from __future__ import annotations

import os
from typing import Optional

from .constants import ENV_LOCAL_IP
from .envfile import get_local_ip
from .models import EasiarrConfig


def local_host() -> str:
    return os.environ.get(ENV_LOCAL_IP) or get_local_ip()


def get_local_app_url(port: int, host: Optional[str] = None) -> str:
    return f"http://{host or local_host()}:{port}"


def get_external_app_url(app_id: str, config: EasiarrConfig) -> Optional[str]:
    """``https://<app>.<domain>`` when Traefik routes the stack, else None."""
    if not config.traefik.enabled or not config.traefik.domain:
        return None
    return f"https://{app_id}.{config.traefik.domain}"


def get_application_url(app_id: str, port: int, config: EasiarrConfig) -> str:
    return get_external_app_url(app_id, config) or get_local_app_url(port)
