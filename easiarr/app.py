"""FastAPI entrypoint for easiarr."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from jinja2 import TemplateError
from sse_starlette.sse import EventSourceResponse

from .constants import CONFIG_VERSION
from .converge.runner import ApplyRunner
from .models import (
    ApplyResponse,
    EasiarrConfig,
    RenderResult,
    ServiceStatus,
    StatusResponse,
    ValidationResult,
)
from .registry import get_all_apps, get_arch_warning
from .rendering import ComposeRenderer
from .runtime.docker import DockerComposeRunner
from .storage import ConfigRepository
from .system import get_config_dir
from .validators import run_validation

log = logging.getLogger(__name__)

app = FastAPI(title="easiarr", version=CONFIG_VERSION)
repo = ConfigRepository(get_config_dir())
renderer = ComposeRenderer()


def _load_config() -> EasiarrConfig:
    try:
        return repo.load_stack()
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/config", response_model=EasiarrConfig, response_model_by_alias=True)
def get_config() -> EasiarrConfig:
    """Return the saved configuration."""
    return _load_config()


@app.put("/api/config", response_model=EasiarrConfig, response_model_by_alias=True)
def update_config(config: EasiarrConfig) -> EasiarrConfig:
    """Persist an updated configuration; the previous one is backed up."""
    repo.save_config(config)
    return config


@app.get("/api/apps")
def list_apps(category: Optional[str] = None) -> List[Dict[str, Any]]:
    """Registry entries, flagged with whether the saved config enables them."""
    config = repo.load_config()
    apps = []
    for definition in get_all_apps():
        if category and definition.category != category:
            continue
        apps.append(
            {
                "id": definition.id,
                "name": definition.name,
                "description": definition.description,
                "category": definition.category,
                "defaultPort": definition.default_port,
                "enabled": bool(config and config.is_enabled(definition.id)),
                "archWarning": get_arch_warning(definition),
            }
        )
    return apps


@app.post("/api/validate", response_model=ValidationResult)
def validate_config(config: EasiarrConfig) -> ValidationResult:
    """Check the root dir, dependencies and host ports."""
    return run_validation(config)


@app.post("/api/render", response_model=RenderResult)
def render_compose(config: EasiarrConfig) -> RenderResult:
    """Render docker-compose.yml and update .env in the config dir."""
    try:
        return renderer.render(config, repo.config_dir)
    except (OSError, TemplateError) as exc:
        log.warning("Render failed", exc_info=True)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.post("/api/apply", response_model=ApplyResponse)
def apply_stack(config: EasiarrConfig) -> ApplyResponse:
    """Run the converge engine for the supplied configuration."""
    run_id = str(uuid4())
    runner = ApplyRunner(repo=repo, renderer=renderer)
    ok, events = runner.run(run_id, config)
    return ApplyResponse(ok=ok, run_id=run_id, events=events)


@app.get("/api/status", response_model=StatusResponse)
def get_status() -> StatusResponse:
    """Report container state for every configured app."""
    config = _load_config()
    containers = {}
    if repo.compose_path.exists():
        containers = {container.name: container for container in DockerComposeRunner(repo.compose_path).ps()}
    services = []
    for app_config in config.apps:
        if not app_config.enabled:
            services.append(
                ServiceStatus(name=app_config.id, status="down", message="disabled in configuration")
            )
            continue
        container = containers.get(app_config.id)
        if container is None:
            services.append(ServiceStatus(name=app_config.id))
            continue
        services.append(
            ServiceStatus(
                name=app_config.id,
                status="up" if container.status == "running" else "down",
                message=container.ports or None,
            )
        )
    return StatusResponse(services=services)


@app.get("/api/runs/{run_id}/events")
async def stream_run_events(run_id: str) -> EventSourceResponse:
    """Stream converge events for a given run identifier."""

    async def event_generator():
        sent = 0
        while True:
            record = repo.get_run(run_id)
            if record is None:
                yield {
                    "event": "error",
                    "data": json.dumps({"message": "run_not_found"}),
                }
                return

            while sent < len(record.events):
                event = record.events[sent]
                sent += 1
                yield {
                    "event": "stage",
                    "data": event.model_dump_json(),
                }

            if record.ok is not None:
                yield {
                    "event": "status",
                    "data": json.dumps({"ok": record.ok, "summary": record.summary or ""}),
                }
                return

            await asyncio.sleep(0.5)

    return EventSourceResponse(event_generator())
