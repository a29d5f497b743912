"""Quality profiles, quality definitions and custom format scoring."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..trash import TRASH_QUALITY_DEFINITIONS, ProfilePreset
from .arr import ArrApiClient

log = logging.getLogger(__name__)


def _find_quality_id(items: List[Dict[str, Any]], name: str) -> Optional[int]:
    for item in items:
        quality = item.get("quality")
        if quality and quality.get("name") == name:
            return quality["id"]
        if item.get("items"):
            found = _find_quality_id(item["items"], name)
            if found is not None:
                return found
    return None


def _set_allowed(items: List[Dict[str, Any]], allowed: List[str]) -> List[Dict[str, Any]]:
    result = []
    for item in items:
        if item.get("items"):
            result.append({**item, "items": _set_allowed(item["items"], allowed)})
            continue
        quality = item.get("quality")
        result.append({**item, "allowed": bool(quality and quality.get("name") in allowed)})
    return result


class QualityProfileClient(ArrApiClient):
    category = "QualityProfile"

    def get_quality_profiles(self) -> List[Dict[str, Any]]:
        # Unlike the base client, errors propagate here
        return self.get_json("/qualityprofile")

    def get_quality_profile(self, profile_id: int) -> Dict[str, Any]:
        return self.get_json(f"/qualityprofile/{profile_id}")

    def create_quality_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        return self.post_json("/qualityprofile", profile)

    def update_quality_profile(self, profile_id: int, profile: Dict[str, Any]) -> Dict[str, Any]:
        return self.put_json(f"/qualityprofile/{profile_id}", {**profile, "id": profile_id})

    def get_quality_definitions(self) -> List[Dict[str, Any]]:
        return self.get_json("/qualitydefinition")

    def update_quality_definitions(self, definitions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self.put_json("/qualitydefinition/update", definitions)

    def apply_trash_quality_definitions(self, app: str) -> int:
        """Set TRaSH file size limits; returns how many definitions changed."""
        limits = {entry["quality"]: entry for entry in TRASH_QUALITY_DEFINITIONS.get(app, [])}
        if not limits:
            return 0
        updated = []
        for definition in self.get_quality_definitions():
            name = (definition.get("quality") or {}).get("name")
            target = limits.get(name)
            if target is None:
                continue
            updated.append(
                {
                    **definition,
                    "minSize": target["min"],
                    "preferredSize": target["preferred"],
                    "maxSize": target["max"],
                }
            )
        if updated:
            self.update_quality_definitions(updated)
        return len(updated)

    def create_trash_profile(
        self,
        name: str,
        cutoff_quality: str,
        allowed_qualities: List[str],
        cf_scores: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        """Clone the first profile's quality layout into a new scored profile."""
        scores = cf_scores or {}
        profiles = self.get_quality_profiles()
        if not profiles:
            raise ValueError("No existing profiles to clone quality structure from")
        base = profiles[0]
        cutoff_id = _find_quality_id(base.get("items", []), cutoff_quality)
        if cutoff_id is None:
            raise ValueError(f'Quality "{cutoff_quality}" not found')

        format_items = [
            {"format": item["format"], "name": item.get("name"), "score": scores.get(item.get("name") or "", 0)}
            for item in base.get("formatItems", [])
        ]
        profile = {
            "name": name,
            "upgradeAllowed": True,
            "cutoff": cutoff_id,
            "minFormatScore": 0,
            "cutoffFormatScore": 10000,
            "formatItems": format_items,
            "items": _set_allowed(base.get("items", []), allowed_qualities),
        }
        if "language" in base:
            profile["language"] = base["language"]
        return self.create_quality_profile(profile)

    def create_from_preset(self, preset: ProfilePreset) -> Dict[str, Any]:
        for existing in self.get_quality_profiles():
            if existing.get("name") == preset.name:
                log.debug("Quality profile %s already exists", preset.name)
                return self.update_profile_cf_scores(existing["id"], preset.cf_scores)
        return self.create_trash_profile(
            preset.name, preset.cutoff_quality, preset.allowed_qualities, preset.cf_scores
        )

    def update_profile_cf_scores(self, profile_id: int, cf_scores: Dict[str, int]) -> Dict[str, Any]:
        profile = self.get_quality_profile(profile_id)
        profile["formatItems"] = [
            {**item, "score": cf_scores.get(item.get("name") or "", item.get("score", 0))}
            for item in profile.get("formatItems", [])
        ]
        return self.update_quality_profile(profile_id, profile)
