"""Read and update the ``.env`` file that sits next to docker-compose.yml."""
from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import Dict, Mapping, Optional

log = logging.getLogger(__name__)


def parse_env(content: str) -> Dict[str, str]:
    """Parse ``KEY=VALUE`` lines, skipping blanks and ``#`` comments."""
    values: Dict[str, str] = {}
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key:
            values[key] = value.strip()
    return values


def serialize_env(values: Mapping[str, str]) -> str:
    return "\n".join(f"{key}={value}" for key, value in values.items())


def read_env(path: Path) -> Dict[str, str]:
    if not path.exists():
        return {}
    return parse_env(path.read_text(encoding="utf-8"))


def write_env(path: Path, values: Mapping[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_env(values) + "\n", encoding="utf-8")


def update_env(path: Path, updates: Mapping[str, str]) -> Dict[str, str]:
    """Merge ``updates`` over the existing values and write them back."""
    merged = read_env(path)
    merged.update({key: str(value) for key, value in updates.items()})
    write_env(path, merged)
    log.debug("Updated %s keys in %s", ", ".join(sorted(updates)), path)
    return merged


def get_env_value(path: Path, key: str) -> Optional[str]:
    return read_env(path).get(key)


def get_local_ip() -> str:
    """Primary outbound IPv4 address of this host, or 127.0.0.1."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            # UDP connect sends nothing; it only selects a route
            sock.connect(("10.255.255.255", 1))
            address = sock.getsockname()[0]
        except OSError:
            log.debug("Unable to detect local IP", exc_info=True)
            return "127.0.0.1"
    return address or "127.0.0.1"
