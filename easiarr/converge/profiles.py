"""Apply a TRaSH quality preset to one *arr app."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from ..clients.custom_formats import CustomFormatClient, fetch_trash_custom_formats
from ..clients.quality_profiles import QualityProfileClient
from ..registry import get_app
from ..trash import LIDARR_CUSTOM_FORMATS, ProfilePreset, get_cf_names_for_categories, get_preset_by_id

log = logging.getLogger(__name__)


@dataclass
class PresetResult:
    preset: ProfilePreset
    profile_id: Optional[int] = None
    imported: int = 0
    failed: List[str] = field(default_factory=list)
    definitions_updated: int = 0


def preset_cf_categories(preset_id: str) -> List[str]:
    """Custom format groups a preset scores: HDR for UHD, audio for remux."""
    categories = ["unwanted", "misc"]
    if "uhd" in preset_id or "2160" in preset_id:
        categories.append("hdr")
    if "remux" in preset_id:
        categories.append("audio")
    return categories


def apply_trash_preset(
    app_id: str,
    preset_id: str,
    host: str,
    port: int,
    api_key: str,
    *,
    transport: Optional[httpx.BaseTransport] = None,
    trash_transport: Optional[httpx.BaseTransport] = None,
) -> PresetResult:
    """Import the preset's custom formats, set quality sizes, then create or rescore the profile."""
    preset = get_preset_by_id(app_id, preset_id)
    if preset is None:
        raise ValueError(f"Unknown preset {preset_id!r} for {app_id}")
    definition = get_app(app_id)
    if definition is None or definition.root_folder is None:
        raise ValueError(f"{app_id} does not support quality profiles")
    api_version = definition.root_folder.api_version
    result = PresetResult(preset=preset)

    if app_id == "lidarr":
        custom_formats = list(LIDARR_CUSTOM_FORMATS)
    else:
        names = get_cf_names_for_categories(app_id, preset_cf_categories(preset_id))
        custom_formats, result.failed = fetch_trash_custom_formats(app_id, names, transport=trash_transport)
        if result.failed:
            log.warning("Could not fetch %d custom formats: %s", len(result.failed), ", ".join(result.failed))

    with CustomFormatClient(host, port, api_key, api_version, transport=transport) as cf_client:
        counts = cf_client.import_custom_formats(custom_formats)
    result.imported = counts["success"]

    with QualityProfileClient(host, port, api_key, api_version, transport=transport) as qp_client:
        result.definitions_updated = qp_client.apply_trash_quality_definitions(app_id)
        profile = qp_client.create_from_preset(preset)
    result.profile_id = profile.get("id")
    log.info("Applied %s to %s (%d custom formats)", preset.name, app_id, result.imported)
    return result
