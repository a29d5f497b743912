"""Tests for configuration validators."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from easiarr.models import EasiarrConfig
from easiarr.validators import _port_owned_by_container, run_validation


def validate(sample_config: Dict[str, Any], available: bool = True):
    config = EasiarrConfig.model_validate(sample_config)
    with patch("easiarr.validators._port_available", return_value=available):
        with patch("easiarr.validators.shutil.which", return_value="/usr/bin/docker"):
            return run_validation(config)


class TestRootDirValidation:
    """Tests for the root directory check."""

    def test_creatable_root_dir(self, sample_config: Dict[str, Any]):
        """A missing directory under a writable parent passes."""
        result = validate(sample_config)
        assert result.checks["root_dir"] == "ok"
        assert result.ok

    def test_root_dir_is_a_file(self, sample_config: Dict[str, Any], temp_dir: Path):
        target = temp_dir / "file"
        target.write_text("")
        sample_config["rootDir"] = str(target)
        result = validate(sample_config)
        assert result.checks["root_dir"] == "not_writable"
        assert not result.ok
        assert "not a directory" in result.warnings[0]

    def test_relative_root_dir_rejected(self, sample_config: Dict[str, Any]):
        sample_config["rootDir"] = "./relative/path"
        with pytest.raises(ValidationError):
            EasiarrConfig.model_validate(sample_config)


class TestAppValidation:
    """Tests for app ids and dependencies."""

    def test_unknown_app(self, sample_config: Dict[str, Any]):
        sample_config["apps"].append({"id": "nonexistent", "enabled": True})
        result = validate(sample_config)
        assert result.checks["apps.nonexistent"] == "unknown"
        assert not result.ok

    def test_missing_dependency(self, sample_config: Dict[str, Any]):
        sample_config["apps"] = [{"id": "jellyseerr", "enabled": True}]
        result = validate(sample_config)
        assert result.checks["apps.jellyseerr.depends_on"] == "missing:jellyfin"
        assert not result.ok

    def test_disabled_app_port_skipped(self, sample_config: Dict[str, Any]):
        result = validate(sample_config)
        assert result.checks["apps.bazarr.port"] == "skipped"


class TestPortValidation:
    """Tests for host port checks."""

    def test_available_ports(self, sample_config: Dict[str, Any]):
        result = validate(sample_config)
        assert result.checks["apps.radarr.port"] == "ok"
        assert result.checks["apps.jellyseerr.port"] == "ok"

    def test_duplicate_port_conflicts(self, sample_config: Dict[str, Any]):
        sample_config["apps"][1]["port"] = 7878
        result = validate(sample_config)
        assert result.checks["apps.sonarr.port"] == "conflict:radarr"
        assert not result.ok

    def test_port_out_of_range(self, sample_config: Dict[str, Any]):
        sample_config["apps"][0]["port"] = 70000
        with pytest.raises(ValidationError):
            EasiarrConfig.model_validate(sample_config)

    def test_port_in_use_by_other_process(self, sample_config: Dict[str, Any]):
        with patch("easiarr.validators._port_owned_by_container", return_value=False):
            result = validate(sample_config, available=False)
        assert result.checks["apps.radarr.port"] == "in_use"
        assert not result.ok

    def test_port_held_by_own_container(self, sample_config: Dict[str, Any]):
        with patch("easiarr.validators._port_owned_by_container", return_value=True):
            result = validate(sample_config, available=False)
        assert result.checks["apps.radarr.port"] == "in_use_by_stack"
        assert result.ok

    def test_docker_inspect_bindings(self):
        output = '{"7878/tcp": [{"HostIp": "0.0.0.0", "HostPort": "7878"}], "9898/tcp": null}'
        with patch("easiarr.validators.subprocess.run", return_value=MagicMock(returncode=0, stdout=output)):
            assert _port_owned_by_container("radarr", 7878)
            assert not _port_owned_by_container("radarr", 9898)

    def test_docker_missing(self):
        with patch("easiarr.validators.subprocess.run", side_effect=FileNotFoundError):
            assert not _port_owned_by_container("radarr", 7878)


class TestDockerCheck:
    """Tests for the docker CLI presence check."""

    def test_missing_cli_is_reported(self, sample_config: Dict[str, Any]):
        config = EasiarrConfig.model_validate(sample_config)
        with patch("easiarr.validators._port_available", return_value=True):
            with patch("easiarr.validators.shutil.which", return_value=None):
                result = run_validation(config)
        assert result.checks["docker.cli"] == "missing"
