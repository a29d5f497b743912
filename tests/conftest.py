"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Tuple
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from easiarr.app import app
from easiarr.models import EasiarrConfig
from easiarr.storage import ConfigRepository


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> Dict[str, Any]:
    """Return a valid sample configuration (camelCase, as stored)."""
    return {
        "version": "0.1.0",
        "rootDir": str(temp_dir / "root"),
        "timezone": "Europe/Istanbul",
        "uid": 1000,
        "gid": 1000,
        "umask": "002",
        "apps": [
            {"id": "radarr", "enabled": True},
            {"id": "sonarr", "enabled": True},
            {"id": "prowlarr", "enabled": True},
            {"id": "qbittorrent", "enabled": True},
            {"id": "jellyfin", "enabled": True},
            {"id": "jellyseerr", "enabled": True},
            {"id": "bazarr", "enabled": False},
        ],
        "traefik": {"enabled": False, "domain": "", "entrypoint": "web", "middlewares": []},
        "vpn": {"mode": "none"},
    }


@pytest.fixture
def easiarr_config(sample_config: Dict[str, Any]) -> EasiarrConfig:
    return EasiarrConfig.model_validate(sample_config)


@pytest.fixture
def config_repo(temp_dir: Path, sample_config: Dict[str, Any]) -> ConfigRepository:
    """Create a ConfigRepository with the sample config saved."""
    config_dir = temp_dir / "home"
    config_dir.mkdir()
    (config_dir / "config.json").write_text(json.dumps(sample_config))
    (config_dir / "state.json").write_text(json.dumps({}))
    return ConfigRepository(config_dir)


@pytest.fixture
def api_client(config_repo: ConfigRepository) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    # Patch the module-level repo variable used by app routes
    with patch("easiarr.app.repo", config_repo):
        with TestClient(app) as client:
            yield client


@pytest.fixture
def mock_docker() -> Generator[MagicMock, None, None]:
    """Mock Docker operations."""
    with patch("easiarr.runtime.docker.subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield mock_run


Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def recorder() -> Callable[[Handler], Tuple[httpx.MockTransport, List[httpx.Request]]]:
    """Wrap a handler in a MockTransport that records every request."""

    def build(handler: Handler) -> Tuple[httpx.MockTransport, List[httpx.Request]]:
        seen: List[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        return httpx.MockTransport(record), seen

    return build
