"""Helpers for reading and writing easiarr configuration and run state."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .constants import (
    BACKUP_DIR_NAME,
    COMPOSE_FILE_NAME,
    CONFIG_FILE_NAME,
    CONFIG_VERSION,
    ENV_FILE_NAME,
    LOGS_DIR_NAME,
    MIGRATIONS_FILE_NAME,
    STATE_FILE_NAME,
)
from .models import EasiarrConfig, RunRecord, StageEvent
from .registry import get_app
from .system import detect_ids, detect_timezone

log = logging.getLogger(__name__)

# Per-app media folder names under data/{torrents,usenet/complete,media}
CONTENT_TYPES = {
    "radarr": "movies",
    "sonarr": "tv",
    "lidarr": "music",
    "readarr": "books",
    "mylar3": "comics",
    "whisparr": "adult",
}

DEFAULT_CONFIG: dict[str, Any] = {
    "version": CONFIG_VERSION,
    "timezone": "UTC",
    "uid": 1000,
    "gid": 1000,
    "umask": "002",
    "apps": [],
    "traefik": {"enabled": False, "domain": "", "entrypoint": "web", "middlewares": []},
    "vpn": {"mode": "none"},
    "useLocalUrls": False,
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _file_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def _unique_path(directory: Path, prefix: str, suffix: str) -> Path:
    """Timestamped file name in ``directory`` that does not exist yet."""
    stem = f"{prefix}{_file_stamp()}"
    target = directory / f"{stem}{suffix}"
    counter = 1
    while target.exists():
        target = directory / f"{stem}-{counter}{suffix}"
        counter += 1
    return target


def migrate_config(raw: dict[str, Any]) -> dict[str, Any]:
    """Merge a stored config over the defaults and stamp the current version."""
    migrated = {**DEFAULT_CONFIG, **raw}
    migrated["version"] = CONFIG_VERSION
    migrated["umask"] = raw.get("umask") or "002"
    migrated["apps"] = raw.get("apps") or []
    migrated["createdAt"] = raw.get("createdAt") or _now_iso()
    migrated["updatedAt"] = _now_iso()
    return migrated


def create_default_config(root_dir: Path) -> EasiarrConfig:
    uid, gid = detect_ids()
    now = _now_iso()
    return EasiarrConfig.model_validate(
        {
            **DEFAULT_CONFIG,
            "rootDir": str(root_dir),
            "timezone": detect_timezone(),
            "uid": uid,
            "gid": gid,
            "createdAt": now,
            "updatedAt": now,
        }
    )


class ConfigRepository:
    """File-backed persistence for the easiarr config and runtime state."""

    def __init__(self, config_dir: Path) -> None:
        self.config_dir = config_dir
        self.config_path = config_dir / CONFIG_FILE_NAME
        self.backup_dir = config_dir / BACKUP_DIR_NAME
        self.compose_path = config_dir / COMPOSE_FILE_NAME
        self.env_path = config_dir / ENV_FILE_NAME
        self.state_path = config_dir / STATE_FILE_NAME
        self.migrations_path = config_dir / MIGRATIONS_FILE_NAME
        self.logs_dir = config_dir / LOGS_DIR_NAME

    def ensure_config_dir(self) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def config_exists(self) -> bool:
        return self.config_path.exists()

    # Config helpers --------------------------------------------------------

    def load_config(self) -> Optional[EasiarrConfig]:
        """Return the saved config, migrating it when the version changed."""
        if not self.config_path.exists():
            return None
        raw = json.loads(self.config_path.read_text(encoding="utf-8"))
        if raw.get("version") != CONFIG_VERSION:
            log.info("Migrating config from %s to %s", raw.get("version"), CONFIG_VERSION)
            config = EasiarrConfig.model_validate(migrate_config(raw))
            self.save_config(config)
            return config
        return EasiarrConfig.model_validate(raw)

    def load_stack(self) -> EasiarrConfig:
        config = self.load_config()
        if config is None:
            raise FileNotFoundError(f"Missing easiarr configuration at {self.config_path}")
        return config

    def save_config(self, config: EasiarrConfig) -> None:
        self.ensure_config_dir()
        self.backup_config()
        config.updated_at = _now_iso()
        if not config.created_at:
            config.created_at = config.updated_at
        payload = config.model_dump(mode="json", by_alias=True)
        self.config_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def backup_config(self) -> Optional[Path]:
        if not self.config_path.exists():
            return None
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        target = _unique_path(self.backup_dir, "config-", ".json")
        target.write_text(self.config_path.read_text(encoding="utf-8"), encoding="utf-8")
        return target

    def save_container_log(self, app_id: str, content: str) -> Path:
        """Write captured container output to ``logs/<app>/<timestamp>.log``."""
        log_dir = self.logs_dir / app_id
        log_dir.mkdir(parents=True, exist_ok=True)
        target = _unique_path(log_dir, "", ".log")
        target.write_text(content, encoding="utf-8")
        log.debug("Saved log for %s to %s", app_id, target)
        return target

    def list_container_logs(self, app_id: str) -> list[Path]:
        """Saved logs for ``app_id``, newest first."""
        log_dir = self.logs_dir / app_id
        if not log_dir.is_dir():
            return []
        return sorted(log_dir.glob("*.log"), key=lambda path: path.stat().st_mtime, reverse=True)

    def load_state(self) -> dict[str, Any]:
        if not self.state_path.exists():
            return {}
        return json.loads(self.state_path.read_text())

    def save_state(self, state: dict[str, Any]) -> None:
        self.ensure_config_dir()
        self.state_path.write_text(json.dumps(state, indent=2))

    # Filesystem helpers ----------------------------------------------------

    def ensure_directories(self, config: EasiarrConfig) -> list[str]:
        """Create the TRaSH-style data tree and per-app config folders."""
        changes: list[str] = []
        root = Path(config.root_dir)
        data = root / "data"
        config_root = root / "config"
        enabled = set(config.enabled_ids())

        targets = [data, config_root]
        targets += [data / base for base in ("torrents", "usenet", "media")]
        for app_id, content in CONTENT_TYPES.items():
            if app_id in enabled:
                targets += [
                    data / "torrents" / content,
                    data / "usenet" / "complete" / content,
                    data / "media" / content,
                ]
        targets += [data / "media" / "photos", data / "usenet" / "incomplete", data / "usenet" / "complete"]
        for base in ("torrents", "usenet"):
            targets += [data / base / sub for sub in ("console", "software", "watch")]
        if "prowlarr" in enabled:
            targets += [data / "torrents" / "prowlarr", data / "usenet" / "prowlarr"]
        if "filebot" in enabled:
            targets += [data / "filebot" / "input", data / "filebot" / "output"]
        if "audiobookshelf" in enabled:
            targets += [data / "media" / "audiobooks", data / "media" / "podcasts"]
        if "traefik" in enabled:
            targets.append(config_root / "traefik" / "letsencrypt")

        for app_id in sorted(enabled):
            definition = get_app(app_id)
            if definition and any("/config/" in volume for volume in definition.volumes):
                targets.append(config_root / app_id)

        for directory in targets:
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                changes.append(f"created {directory}")
        return changes

    # Run history helpers -------------------------------------------------

    def start_run(self, run_id: str) -> None:
        state = self.load_state()
        runs = state.setdefault("runs", [])
        runs.append({"run_id": run_id, "ok": None, "events": []})
        self.save_state(state)

    def append_run_event(self, run_id: str, event: StageEvent) -> None:
        state = self.load_state()
        runs = state.setdefault("runs", [])
        for record in runs:
            if record["run_id"] == run_id:
                record.setdefault("events", []).append(event.model_dump(mode="json"))
                break
        else:
            runs.append(
                {"run_id": run_id, "ok": None, "events": [event.model_dump(mode="json")]}
            )
        self.save_state(state)

    def finalize_run(self, run_id: str, ok: bool, summary: str | None = None) -> None:
        state = self.load_state()
        runs = state.setdefault("runs", [])
        for record in runs:
            if record["run_id"] == run_id:
                record["ok"] = ok
                if summary:
                    record["summary"] = summary
                break
        else:
            runs.append({"run_id": run_id, "ok": ok, "events": [], "summary": summary})
        self.save_state(state)

    def get_run(self, run_id: str) -> RunRecord | None:
        state = self.load_state()
        for record in state.get("runs", []):
            if record.get("run_id") == run_id:
                events = [
                    StageEvent.model_validate(event)
                    for event in record.get("events", [])
                ]
                return RunRecord(
                    run_id=run_id,
                    ok=record.get("ok"),
                    events=events,
                    summary=record.get("summary"),
                )
        return None
