"""Converge runner orchestrating validation, deployment, and configuration."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from ..clients.arr import wait_for_http_ready
from ..models import EasiarrConfig, StageEvent
from ..registry import get_app, resolve_port
from ..rendering import ComposeRenderer
from ..runtime.docker import DockerComposeRunner
from ..storage import ConfigRepository
from ..validators import run_validation
from .services import FullAutoSetup, collect_api_keys

log = logging.getLogger(__name__)

READY_TIMEOUT = 180.0


@dataclass
class ApplyRunner:
    repo: ConfigRepository
    renderer: ComposeRenderer = field(default_factory=ComposeRenderer)
    host: str = "localhost"
    compose_factory: Callable[..., DockerComposeRunner] = DockerComposeRunner
    ready_timeout: float = READY_TIMEOUT

    def run(self, run_id: str, config: EasiarrConfig) -> Tuple[bool, List[StageEvent]]:
        events: List[StageEvent] = []
        self.repo.start_run(run_id)
        try:
            return self._run_stages(run_id, events, config)
        except Exception as exc:
            # The run record must always be finalized so event streams end
            stage = events[-1].stage if events else "run"
            log.exception("Run %s failed during %s", run_id, stage)
            self._record(run_id, events, stage, "failed", str(exc))
            self.repo.finalize_run(run_id, ok=False, summary=f"{stage} failed: {exc}")
            return False, events

    def _run_stages(
        self, run_id: str, events: List[StageEvent], config: EasiarrConfig
    ) -> Tuple[bool, List[StageEvent]]:
        self._record(run_id, events, "validate", "started")
        validation = run_validation(config)
        checks_summary = ", ".join(f"{key}={value}" for key, value in validation.checks.items())
        self._record(run_id, events, "validate", "ok" if validation.ok else "failed", checks_summary)
        if not validation.ok:
            self.repo.finalize_run(run_id, ok=False, summary="Validation failed")
            return False, events

        self._record(run_id, events, "prepare.paths", "started")
        fs_changes = self.repo.ensure_directories(config)
        fs_detail = f"{len(fs_changes)} directories created" if fs_changes else "directories ready"
        self._record(run_id, events, "prepare.paths", "ok", fs_detail)

        self._record(run_id, events, "render", "started")
        result = self.renderer.render(config, self.repo.config_dir)
        self._record(run_id, events, "render", "ok", f"{result.compose_path.name},{result.env_path.name}")

        self._record(run_id, events, "persist", "started")
        self.repo.save_config(config)
        self._record(run_id, events, "persist", "ok", str(self.repo.config_path))

        compose_runner = self.compose_factory(result.compose_path)
        self._record(run_id, events, "deploy.compose", "started")
        compose_ok, compose_detail = compose_runner.up()
        self._record(run_id, events, "deploy.compose", "ok" if compose_ok else "failed", compose_detail)
        if not compose_ok:
            self.repo.finalize_run(run_id, ok=False, summary="Compose up failed")
            return False, events

        if not self._wait_for_services(run_id, events, config):
            self.repo.finalize_run(run_id, ok=False, summary="Service readiness failed")
            return False, events

        self._record(run_id, events, "collect.api_keys", "started")
        found = collect_api_keys(config, self.repo)
        self._record(run_id, events, "collect.api_keys", "ok", f"{len(found)} keys updated")

        setup = FullAutoSetup(config, self.repo, host=self.host, renderer=self.renderer)
        configured: List[str] = []
        for event in setup.run():
            self._record(run_id, events, event.stage, event.status, event.detail)
            if event.status == "ok":
                configured.append(event.stage.replace("setup.", ""))

        summary = "Deployed stack"
        if configured:
            summary += f"; configured {', '.join(configured)}"
        self.repo.finalize_run(run_id, ok=True, summary=summary)
        return True, events

    # ------------------------------------------------------------------ helpers

    def _wait_for_services(self, run_id: str, events: List[StageEvent], config: EasiarrConfig) -> bool:
        """Wait for every enabled app that exposes an API key to answer HTTP."""
        for app in config.apps:
            definition = get_app(app.id)
            if not app.enabled or definition is None or definition.api_key_meta is None:
                continue
            port = resolve_port(definition, app.port)
            if not port:
                continue
            stage = f"wait.{app.id}"
            self._record(run_id, events, stage, "started", f"port={port}")
            ok, detail = wait_for_http_ready(f"http://{self.host}:{port}", timeout=self.ready_timeout)
            self._record(run_id, events, stage, "ok" if ok else "failed", detail)
            if not ok:
                return False
        return True

    def _record(
        self,
        run_id: str,
        events: List[StageEvent],
        stage: str,
        status: str,
        detail: Optional[str] = None,
    ) -> None:
        event = StageEvent(stage=stage, status=status, detail=detail)
        events.append(event)
        self.repo.append_run_event(run_id, event)
