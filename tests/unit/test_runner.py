"""Tests for the apply runner's stage sequence."""
from __future__ import annotations

from typing import Iterator, List, Tuple
from unittest.mock import MagicMock, patch

import pytest

from easiarr.converge.runner import ApplyRunner
from easiarr.models import EasiarrConfig, StageEvent, ValidationResult
from easiarr.storage import ConfigRepository

VALID = ValidationResult(ok=True, checks={"root_dir": "ok", "docker.cli": "present"})


def stages(events: List[StageEvent]) -> List[Tuple[str, str]]:
    return [(event.stage, event.status) for event in events]


@pytest.fixture
def compose() -> MagicMock:
    runner = MagicMock()
    runner.up.return_value = (True, "ok")
    return runner


@pytest.fixture
def patched() -> Iterator[MagicMock]:
    with patch("easiarr.rendering.get_local_ip", return_value="10.0.0.2"):
        with patch("easiarr.converge.runner.run_validation", return_value=VALID):
            with patch("easiarr.converge.runner.wait_for_http_ready", return_value=(True, "ready")) as wait:
                yield wait


class TestApplyRunner:
    """Tests for validate, render, deploy, wait and setup stages."""

    def test_successful_run(self, config_repo: ConfigRepository, easiarr_config: EasiarrConfig, compose, patched):
        factory = MagicMock(return_value=compose)
        ok, events = ApplyRunner(config_repo, compose_factory=factory).run("run-1", easiarr_config)

        assert ok
        recorded = stages(events)
        assert recorded[:10] == [
            ("validate", "started"),
            ("validate", "ok"),
            ("prepare.paths", "started"),
            ("prepare.paths", "ok"),
            ("render", "started"),
            ("render", "ok"),
            ("persist", "started"),
            ("persist", "ok"),
            ("deploy.compose", "started"),
            ("deploy.compose", "ok"),
        ]
        assert ("wait.radarr", "ok") in recorded
        assert ("collect.api_keys", "ok") in recorded
        assert recorded[-1] == ("setup.homepage", "skipped")
        factory.assert_called_once_with(config_repo.compose_path)
        patched.assert_any_call("http://localhost:5056", timeout=180.0)
        assert config_repo.compose_path.exists()

        record = config_repo.get_run("run-1")
        assert record.ok is True
        assert record.summary == "Deployed stack"
        assert len(record.events) == len(events)

    def test_validation_failure_stops(self, config_repo: ConfigRepository, easiarr_config: EasiarrConfig, compose):
        factory = MagicMock(return_value=compose)
        invalid = ValidationResult(ok=False, checks={"root_dir": "missing"})
        with patch("easiarr.converge.runner.run_validation", return_value=invalid):
            ok, events = ApplyRunner(config_repo, compose_factory=factory).run("run-2", easiarr_config)

        assert not ok
        assert stages(events) == [("validate", "started"), ("validate", "failed")]
        assert events[-1].detail == "root_dir=missing"
        factory.assert_not_called()
        assert config_repo.get_run("run-2").summary == "Validation failed"

    def test_compose_failure(self, config_repo: ConfigRepository, easiarr_config: EasiarrConfig, compose, patched):
        compose.up.return_value = (False, "pull access denied")
        ok, events = ApplyRunner(config_repo, compose_factory=MagicMock(return_value=compose)).run(
            "run-3", easiarr_config
        )
        assert not ok
        assert stages(events)[-1] == ("deploy.compose", "failed")
        assert events[-1].detail == "pull access denied"
        assert config_repo.get_run("run-3").summary == "Compose up failed"

    def test_readiness_timeout(self, config_repo: ConfigRepository, easiarr_config: EasiarrConfig, compose, patched):
        patched.return_value = (False, "timeout waiting for http://localhost:7878")
        ok, events = ApplyRunner(config_repo, compose_factory=MagicMock(return_value=compose)).run(
            "run-4", easiarr_config
        )
        assert not ok
        assert stages(events)[-1] == ("wait.radarr", "failed")
        assert not any(event.stage == "collect.api_keys" for event in events)
        assert config_repo.get_run("run-4").ok is False

    def test_render_error_finalizes_run(self, config_repo: ConfigRepository, easiarr_config: EasiarrConfig, compose, patched):
        renderer = MagicMock()
        renderer.render.side_effect = PermissionError("config dir is read-only")
        factory = MagicMock(return_value=compose)
        ok, events = ApplyRunner(config_repo, renderer=renderer, compose_factory=factory).run("run-5", easiarr_config)

        assert not ok
        assert stages(events)[-2:] == [("render", "started"), ("render", "failed")]
        assert events[-1].detail == "config dir is read-only"
        factory.assert_not_called()
        record = config_repo.get_run("run-5")
        assert record.ok is False
        assert record.summary == "render failed: config dir is read-only"

    def test_key_collection_error_finalizes_run(
        self, config_repo: ConfigRepository, easiarr_config: EasiarrConfig, compose, patched
    ):
        with patch("easiarr.converge.runner.collect_api_keys", side_effect=OSError("permission denied")):
            ok, events = ApplyRunner(config_repo, compose_factory=MagicMock(return_value=compose)).run(
                "run-6", easiarr_config
            )
        assert not ok
        assert stages(events)[-1] == ("collect.api_keys", "failed")
        assert config_repo.get_run("run-6").ok is False
