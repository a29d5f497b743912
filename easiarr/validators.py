"""Validation helpers for easiarr configuration."""
from __future__ import annotations

import json
import logging
import shutil
import socket
import subprocess
from typing import Dict, List

from .models import EasiarrConfig, ValidationResult
from .registry import get_app, get_arch_warning, resolve_port
from .system import validate_path

log = logging.getLogger(__name__)


def run_validation(config: EasiarrConfig) -> ValidationResult:
    """Validate the root dir, app ids, dependencies and host ports."""
    checks: Dict[str, str] = {}
    warnings: List[str] = []
    overall_ok = True

    path_check = validate_path(config.root_dir, config.uid, config.gid)
    if path_check["valid"]:
        checks["root_dir"] = "ok"
    else:
        checks["root_dir"] = "not_writable" if path_check["exists"] else "missing"
        warnings.append(path_check["error"])
        overall_ok = False

    enabled = set(config.enabled_ids())
    claimed: Dict[int, str] = {}
    for app in config.apps:
        key = f"apps.{app.id}"
        definition = get_app(app.id)
        if definition is None:
            checks[key] = "unknown"
            overall_ok = False
            continue
        if not app.enabled:
            checks[f"{key}.port"] = "skipped"
            continue

        missing = [dep for dep in definition.depends_on if dep not in enabled]
        if missing:
            checks[f"{key}.depends_on"] = "missing:" + ",".join(missing)
            overall_ok = False

        arch_warning = get_arch_warning(definition)
        if arch_warning:
            warnings.append(f"{definition.name}: {arch_warning}")

        port = resolve_port(definition, app.port)
        port_key = f"{key}.port"
        if not port:
            checks[port_key] = "none"
            continue
        if port in claimed:
            checks[port_key] = f"conflict:{claimed[port]}"
            overall_ok = False
            continue
        claimed[port] = app.id
        if _port_available(port):
            checks[port_key] = "ok"
        elif _port_owned_by_container(app.id, port):
            checks[port_key] = "in_use_by_stack"
        else:
            checks[port_key] = "in_use"
            overall_ok = False

    docker_cli = shutil.which("docker")
    checks["docker.cli"] = "present" if docker_cli else "missing"

    return ValidationResult(ok=overall_ok, checks=checks, warnings=warnings)


def _port_available(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(0.2)
        result = sock.connect_ex(("127.0.0.1", port))
        if result == 0:
            return False
    return True


def _port_owned_by_container(container_name: str, port: int) -> bool:
    """Check whether the given port is published by the named Docker container."""
    try:
        result = subprocess.run(
            ["docker", "inspect", container_name, "--format", "{{json .NetworkSettings.Ports}}"],
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return False

    if result.returncode != 0 or not result.stdout.strip():
        return False

    try:
        ports = json.loads(result.stdout.strip())
    except json.JSONDecodeError:
        log.debug("Unexpected docker inspect output for %s", container_name)
        return False

    for bindings in (ports or {}).values():
        if not bindings:
            continue
        for binding in bindings:
            host_port = binding.get("HostPort")
            if host_port and int(host_port) == port:
                return True
    return False
