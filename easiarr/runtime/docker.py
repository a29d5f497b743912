"""Utilities for invoking docker compose commands."""
from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from ..constants import PROJECT_NAME

log = logging.getLogger(__name__)


@dataclass
class ContainerStatus:
    name: str
    status: str
    ports: str = ""


class DockerComposeRunner:
    """Wrapper around docker compose for the generated stack."""

    def __init__(self, compose_path: Path, project_name: str = PROJECT_NAME) -> None:
        self.compose_path = compose_path
        self.project_name = project_name
        self.workdir = compose_path.parent

    def _compose(self, *args: str) -> List[str]:
        return [
            "docker",
            "compose",
            "-f",
            str(self.compose_path),
            "--project-name",
            self.project_name,
            *args,
        ]

    def up(self) -> Tuple[bool, str]:
        """Run `docker compose up -d --remove-orphans` and return success + detail."""
        return self._run(self._compose("up", "-d", "--remove-orphans"))

    def down(self) -> Tuple[bool, str]:
        return self._run(self._compose("down"))

    def pull(self) -> Tuple[bool, str]:
        return self._run(self._compose("pull"))

    def restart(self, *services: str) -> Tuple[bool, str]:
        """Restart ``services``, or every service when none are named."""
        return self._run(self._compose("restart", *services))

    def stop(self, *services: str) -> Tuple[bool, str]:
        return self._run(self._compose("stop", *services))

    def start(self, *services: str) -> Tuple[bool, str]:
        return self._run(self._compose("start", *services))

    def logs(self, service: str, tail: int = 100) -> Tuple[bool, str]:
        return self._run(self._compose("logs", "--no-color", "--tail", str(tail), service))

    def ps(self) -> List[ContainerStatus]:
        """Container states from `docker compose ps --format json` (one object per line)."""
        success, detail = self._run(self._compose("ps", "--all", "--format", "json"))
        if not success or detail in ("", "ok"):
            return []
        statuses: List[ContainerStatus] = []
        for line in detail.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                container = json.loads(line)
            except ValueError:
                log.debug("Skipping malformed compose ps line: %s", line)
                continue
            statuses.append(
                ContainerStatus(
                    name=container.get("Service") or container.get("Name", ""),
                    status="running" if container.get("State") == "running" else "stopped",
                    ports=container.get("Ports", ""),
                )
            )
        return statuses

    def _run(self, command: list[str]) -> Tuple[bool, str]:
        env = os.environ.copy()
        env.setdefault("COMPOSE_PROJECT_NAME", self.project_name)
        log.debug("Running %s", " ".join(command))
        try:
            process = subprocess.run(
                command,
                cwd=str(self.workdir),
                env=env,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            return False, "docker CLI not found"
        success = process.returncode == 0
        detail = process.stdout.strip() if success else process.stderr.strip()
        if not detail:
            detail = "ok" if success else "failed"
        return success, detail
