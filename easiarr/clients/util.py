"""Utility helpers shared across app clients: API key extraction and INI edits."""
from __future__ import annotations

import json
import logging
import re
import secrets
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..models import AppDefinition

log = logging.getLogger(__name__)


def app_config_path(root_dir: Path | str, definition: AppDefinition) -> Optional[Path]:
    if definition.api_key_meta is None:
        return None
    return Path(root_dir) / "config" / definition.id / definition.api_key_meta.config_file


def get_nested_value(data: Any, dotted: str) -> Any:
    value = data
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def parse_ini_value(content: str, section: str, key: str) -> Optional[str]:
    """Value of ``key`` in ``[section]``; both matched case-insensitively."""
    in_section = False
    for line in content.split("\n"):
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            in_section = stripped[1:-1].lower() == section.lower()
            continue
        if in_section and "=" in stripped:
            name, _, value = stripped.partition("=")
            if name.strip().lower() == key.lower():
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                    value = value[1:-1]
                return value
    return None


def update_ini_values(content: str, section: str, updates: Dict[str, str]) -> str:
    """Rewrite keys inside ``[section]``, appending any that were missing."""
    result = []
    in_section = False
    seen: set[str] = set()
    lowered = {key.lower(): (key, value) for key, value in updates.items()}

    def flush_missing() -> None:
        for lower, (key, value) in lowered.items():
            if lower not in seen:
                result.append(f"{key} = {value}")
                seen.add(lower)

    for line in content.split("\n"):
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            if in_section:
                flush_missing()
            in_section = stripped[1:-1].lower() == section.lower()
            result.append(line)
            continue
        if in_section and "=" in stripped:
            name = stripped.partition("=")[0].strip()
            if name.lower() in lowered:
                result.append(f"{name} = {lowered[name.lower()][1]}")
                seen.add(name.lower())
                continue
        result.append(line)
    if in_section:
        flush_missing()
    return "\n".join(result)


def _usable(value: Optional[str]) -> bool:
    return bool(value) and value.lower() != "none"


def extract_api_key(definition: AppDefinition, content: str, config_file: Path) -> Optional[str]:
    """Pull the API key out of ``content`` according to the app's ApiKeyMeta.

    INI apps with ``generate_if_missing`` get a fresh key written back to
    ``config_file`` (and their API switched on) when none is configured.
    """
    meta = definition.api_key_meta
    if meta is None:
        return None

    if meta.parser in ("regex", "xml"):
        pattern = meta.selector if meta.parser == "regex" else r"<ApiKey>(.*?)</ApiKey>"
        match = re.search(pattern, content)
        return match.group(1).strip() if match and match.group(1) else None

    if meta.parser in ("json", "yaml"):
        data = json.loads(content) if meta.parser == "json" else yaml.safe_load(content)
        value = get_nested_value(data, meta.selector)
        return value if isinstance(value, str) and value else None

    section = meta.section or "General"
    value = parse_ini_value(content, section, meta.selector)
    if meta.enabled_key and meta.generate_if_missing:
        enabled = parse_ini_value(content, section, meta.enabled_key)
        disabled = not enabled or enabled.lower() == "false" or enabled == "0"
        if disabled or not _usable(value):
            new_key = secrets.token_hex(16)
            updated = update_ini_values(content, section, {meta.selector: new_key, meta.enabled_key: "True"})
            config_file.write_text(updated, encoding="utf-8")
            log.debug("Generated API key for %s in %s", definition.id, config_file)
            return new_key
    return value if _usable(value) else None


def read_api_key(root_dir: Path | str, definition: AppDefinition) -> Optional[str]:
    """Read an app's API key from its config volume, or None if unavailable."""
    config_file = app_config_path(root_dir, definition)
    if config_file is None or not config_file.exists():
        return None
    try:
        content = config_file.read_text(encoding="utf-8")
        return extract_api_key(definition, content, config_file)
    except (OSError, ValueError, yaml.YAMLError):
        log.debug("Unable to read API key for %s from %s", definition.id, config_file, exc_info=True)
        return None
