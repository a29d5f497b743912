"""Download category mappings shared by the *arr apps and download clients."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from .constants import CONTAINER_PATHS


@dataclass(frozen=True)
class CategoryInfo:
    name: str
    save_path: str
    # Field carrying the category in an *arr download client definition
    field_name: str


CATEGORY_MAP: dict[str, CategoryInfo] = {
    "radarr": CategoryInfo("movies", f"{CONTAINER_PATHS['torrents']}/movies", "movieCategory"),
    "sonarr": CategoryInfo("tv", f"{CONTAINER_PATHS['torrents']}/tv", "tvCategory"),
    "lidarr": CategoryInfo("music", f"{CONTAINER_PATHS['torrents']}/music", "musicCategory"),
    "readarr": CategoryInfo("books", f"{CONTAINER_PATHS['torrents']}/books", "bookCategory"),
    "whisparr": CategoryInfo("adult", f"{CONTAINER_PATHS['torrents']}/adult", "tvCategory"),
    "mylar3": CategoryInfo("comics", f"{CONTAINER_PATHS['torrents']}/comics", "category"),
}


def get_category_for_app(app_id: str) -> str:
    info = CATEGORY_MAP.get(app_id)
    return info.name if info else "default"


def get_category_field_name(app_id: str) -> str:
    info = CATEGORY_MAP.get(app_id)
    return info.field_name if info else "category"


def get_categories_for_apps(app_ids: Iterable[str]) -> List[CategoryInfo]:
    """Category info for each app id that has one, in the given order."""
    return [CATEGORY_MAP[app_id] for app_id in app_ids if app_id in CATEGORY_MAP]
