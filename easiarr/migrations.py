"""One-shot data migrations for ``.env`` and ``config.json``.

Applied migration timestamps are tracked in ``.migrations.json`` so each
runs once per install. A migration that raises is logged and retried on the
next start.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List

from .envfile import read_env, write_env
from .storage import ConfigRepository

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    timestamp: str
    name: str
    up: Callable[[ConfigRepository], bool]
    down: Callable[[ConfigRepository], bool]

    @property
    def label(self) -> str:
        return f"{self.timestamp}_{self.name}"


# 1765626338 -----------------------------------------------------------------

ENV_RENAMES = [
    ("GLOBAL_PASSWORD", "PASSWORD_GLOBAL"),
    ("GLOBAL_USERNAME", "USERNAME_GLOBAL"),
    ("QBITTORRENT_PASSWORD", "PASSWORD_QBITTORRENT"),
    ("QBITTORRENT_USER", "USERNAME_QBITTORRENT"),
    ("QBITTORRENT_PASS", "PASSWORD_QBITTORRENT"),
    ("PORTAINER_PASSWORD", "PASSWORD_PORTAINER"),
    ("POSTGRESQL_USERNAME", "USERNAME_POSTGRESQL"),
    ("POSTGRESQL_PASSWORD", "PASSWORD_POSTGRESQL"),
    ("VPN_USERNAME", "USERNAME_VPN"),
    ("VPN_PASSWORD", "PASSWORD_VPN"),
]


def _rename_env_keys(repo: ConfigRepository, pairs: List[tuple[str, str]]) -> bool:
    if not repo.env_path.exists():
        log.debug("No .env file found, skipping migration")
        return False
    env = read_env(repo.env_path)
    changed = False
    for old_key, new_key in pairs:
        if old_key in env and new_key not in env:
            env[new_key] = env.pop(old_key)
            changed = True
            log.debug("Renamed %s -> %s", old_key, new_key)
    if changed:
        write_env(repo.env_path, env)
    return changed


def rename_env_variables_up(repo: ConfigRepository) -> bool:
    return _rename_env_keys(repo, ENV_RENAMES)


def rename_env_variables_down(repo: ConfigRepository) -> bool:
    return _rename_env_keys(repo, [(new, old) for old, new in ENV_RENAMES])


# 1765707135 -----------------------------------------------------------------


def _rename_app_id(repo: ConfigRepository, old_id: str, new_id: str) -> bool:
    if not repo.config_path.exists():
        log.debug("No config.json file found, skipping migration")
        return False
    raw = json.loads(repo.config_path.read_text(encoding="utf-8"))
    apps = raw.get("apps")
    if not isinstance(apps, list):
        return False
    changed = False
    for app in apps:
        if app.get("id") == old_id:
            app["id"] = new_id
            changed = True
    if changed:
        repo.config_path.write_text(json.dumps(raw, indent=2), encoding="utf-8")
        log.debug("Renamed app %s -> %s", old_id, new_id)
    return changed


def rename_easiarr_status_up(repo: ConfigRepository) -> bool:
    return _rename_app_id(repo, "easiarr-status", "easiarr")


def rename_easiarr_status_down(repo: ConfigRepository) -> bool:
    return _rename_app_id(repo, "easiarr", "easiarr-status")


# 1765732722 -----------------------------------------------------------------


def remove_cloudflare_dns_api_token_up(repo: ConfigRepository) -> bool:
    if not repo.env_path.exists():
        return True
    content = repo.env_path.read_text(encoding="utf-8")
    if "CLOUDFLARE_DNS_API_TOKEN" not in content:
        return True
    kept = [line for line in content.split("\n") if not line.startswith("CLOUDFLARE_DNS_API_TOKEN=")]
    repo.env_path.write_text("\n".join(kept), encoding="utf-8")
    log.debug("Removed CLOUDFLARE_DNS_API_TOKEN from .env")
    return True


def remove_cloudflare_dns_api_token_down(repo: ConfigRepository) -> bool:
    # The token was never read, nothing to restore
    return True


MIGRATIONS: List[Migration] = [
    Migration("1765626338", "rename_env_variables", rename_env_variables_up, rename_env_variables_down),
    Migration("1765707135", "rename_easiarr_status", rename_easiarr_status_up, rename_easiarr_status_down),
    Migration(
        "1765732722",
        "remove_cloudflare_dns_api_token",
        remove_cloudflare_dns_api_token_up,
        remove_cloudflare_dns_api_token_down,
    ),
]


class MigrationRunner:
    """Applies pending migrations in timestamp order."""

    def __init__(self, repo: ConfigRepository, migrations: List[Migration] | None = None) -> None:
        self.repo = repo
        self.migrations = sorted(migrations if migrations is not None else MIGRATIONS, key=lambda m: m.timestamp)

    def load_state(self) -> dict:
        path = self.repo.migrations_path
        if not path.exists():
            return {"applied": [], "lastRun": ""}
        try:
            state = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            log.warning("Ignoring unreadable %s", path)
            return {"applied": [], "lastRun": ""}
        state.setdefault("applied", [])
        return state

    def save_state(self, state: dict) -> None:
        self.repo.ensure_config_dir()
        state["lastRun"] = datetime.now(timezone.utc).isoformat()
        self.repo.migrations_path.write_text(json.dumps(state, indent=2), encoding="utf-8")

    def pending(self) -> List[Migration]:
        applied = set(self.load_state()["applied"])
        return [migration for migration in self.migrations if migration.timestamp not in applied]

    def run(self) -> List[str]:
        """Run pending migrations and return the labels that completed."""
        state = self.load_state()
        completed: List[str] = []
        for migration in self.migrations:
            if migration.timestamp in state["applied"]:
                continue
            log.debug("Running migration %s", migration.label)
            try:
                migration.up(self.repo)
            except (OSError, ValueError) as exc:
                log.warning("Migration %s failed: %s", migration.label, exc, exc_info=True)
                continue
            state["applied"].append(migration.timestamp)
            completed.append(migration.label)

        if completed:
            self.save_state(state)
        else:
            log.debug("No pending migrations")
        return completed

    def rollback(self, timestamp: str) -> bool:
        state = self.load_state()
        for migration in self.migrations:
            if migration.timestamp == timestamp and timestamp in state["applied"]:
                migration.down(self.repo)
                state["applied"].remove(timestamp)
                self.save_state(state)
                return True
        return False
