"""Pydantic models for the easiarr configuration, app registry and runs."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .constants import CONFIG_VERSION


class CamelModel(BaseModel):
    """Base model persisted with camelCase keys in config.json."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# User configuration
# ---------------------------------------------------------------------------


class AppConfig(CamelModel):
    id: str
    enabled: bool = True
    port: Optional[int] = Field(default=None, ge=0, le=65535)
    env: Dict[str, str] = Field(default_factory=dict)


class TraefikConfig(CamelModel):
    enabled: bool = False
    domain: str = ""
    entrypoint: str = "web"
    middlewares: List[str] = Field(default_factory=list)


class VpnConfig(CamelModel):
    mode: Literal["none", "mini", "full"] = "none"
    provider: Optional[str] = None


class EasiarrConfig(CamelModel):
    version: str = CONFIG_VERSION
    root_dir: Path
    timezone: str = "UTC"
    uid: int = Field(default=1000, ge=0)
    gid: int = Field(default=1000, ge=0)
    umask: str = "002"
    apps: List[AppConfig] = Field(default_factory=list)
    traefik: TraefikConfig = Field(default_factory=TraefikConfig)
    vpn: VpnConfig = Field(default_factory=VpnConfig)
    use_local_urls: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("root_dir")
    @classmethod
    def ensure_absolute(cls, value: Path) -> Path:
        if not value.is_absolute():
            raise ValueError("root_dir must be absolute")
        return value

    def get_app(self, app_id: str) -> Optional[AppConfig]:
        for app in self.apps:
            if app.id == app_id:
                return app
        return None

    def is_enabled(self, app_id: str) -> bool:
        app = self.get_app(app_id)
        return bool(app and app.enabled)

    def enabled_ids(self) -> List[str]:
        return [app.id for app in self.apps if app.enabled]


# ---------------------------------------------------------------------------
# App registry definitions
# ---------------------------------------------------------------------------


class ApiKeyMeta(BaseModel):
    """Where an app keeps its API key inside its config volume."""

    config_file: str
    parser: Literal["xml", "ini", "json", "yaml", "regex"]
    selector: str
    section: Optional[str] = None
    enabled_key: Optional[str] = None
    generate_if_missing: bool = False


class RootFolderMeta(BaseModel):
    path: str
    api_version: Literal["v1", "v3"] = "v3"


class ArchCompatibility(BaseModel):
    supported: Optional[List[str]] = None
    deprecated: List[str] = Field(default_factory=list)
    warning: Optional[str] = None


class AppSecret(BaseModel):
    name: str
    description: str
    required: bool = False
    default: Optional[str] = None
    mask: bool = False
    generate: bool = False


class HomepageMeta(BaseModel):
    icon: Optional[str] = None
    widget: Optional[str] = None
    widget_fields: Dict[str, str] = Field(default_factory=dict)


class AppDefinition(BaseModel):
    id: str
    name: str
    description: str
    category: str
    default_port: int
    internal_port: Optional[int] = None
    image: str
    puid: Optional[int] = None
    pgid: Optional[int] = None
    volumes: List[str] = Field(default_factory=list)
    environment: Dict[str, str] = Field(default_factory=dict)
    secrets: List[AppSecret] = Field(default_factory=list)
    depends_on: List[str] = Field(default_factory=list)
    trash_guide: Optional[str] = None
    api_key_meta: Optional[ApiKeyMeta] = None
    prowlarr_categories: List[int] = Field(default_factory=list)
    root_folder: Optional[RootFolderMeta] = None
    arch: Optional[ArchCompatibility] = None
    min_password_length: Optional[int] = None
    cap_add: List[str] = Field(default_factory=list)
    devices: List[str] = Field(default_factory=list)
    network_mode: Optional[str] = None
    command: Optional[str] = None
    user: Optional[str] = None
    secondary_ports: List[str] = Field(default_factory=list)
    homepage: Optional[HomepageMeta] = None

    def volume_mounts(self, root_dir: Path | str) -> List[str]:
        return [volume.replace("${root}", str(root_dir)) for volume in self.volumes]


# ---------------------------------------------------------------------------
# API and run history
# ---------------------------------------------------------------------------


class ValidationResult(BaseModel):
    ok: bool
    checks: Dict[str, str]
    warnings: List[str] = Field(default_factory=list)


class RenderResult(BaseModel):
    compose_path: Path
    env_path: Path
    extra_files: Dict[str, Path] = Field(default_factory=dict)


class StageEvent(BaseModel):
    stage: str
    status: Literal["started", "ok", "failed", "skipped"]
    detail: Optional[str] = None


class ApplyResponse(BaseModel):
    ok: bool
    run_id: str
    events: List[StageEvent]


class RunRecord(BaseModel):
    run_id: str
    ok: Optional[bool] = None
    events: List[StageEvent] = Field(default_factory=list)
    summary: Optional[str] = None


class ServiceStatus(BaseModel):
    """Reported health of a managed app."""

    name: str
    status: Literal["up", "down", "unknown"] = "unknown"
    message: Optional[str] = None


class StatusResponse(BaseModel):
    """Wrapper returned from ``GET /api/status``."""

    services: List[ServiceStatus] = Field(default_factory=list)
