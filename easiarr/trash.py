"""TRaSH Guides presets: naming schemes, custom formats and quality profiles.

Radarr and Sonarr data follows https://trash-guides.info. Lidarr has no TRaSH
guide, so its custom formats come from Davo's community guide on the Servarr
wiki.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

TRASH_CF_BASE_URL = "https://raw.githubusercontent.com/TRaSH-Guides/Guides/master/docs/json"

_MEDIA_INFO = (
    "{[Mediainfo AudioCodec}{ Mediainfo AudioChannels]}"
    "{[MediaInfo VideoDynamicRangeType]}{[Mediainfo VideoCodec]}{-Release Group}"
)

TRASH_NAMING_CONFIG: Dict[str, Dict[str, Any]] = {
    "radarr": {
        "renameMovies": True,
        "replaceIllegalCharacters": True,
        "colonReplacementFormat": "dash",
        "standardMovieFormat": (
            "{Movie CleanTitle} ({Release Year}) {edition-{Edition Tags}} "
            "{[Custom Formats]}{[Quality Full]}{[MediaInfo 3D]}" + _MEDIA_INFO
        ),
        "movieFolderFormat": "{Movie CleanTitle} ({Release Year})",
        "includeQuality": True,
        "replaceSpaces": False,
    },
    "sonarr": {
        "renameEpisodes": True,
        "replaceIllegalCharacters": True,
        # Sonarr takes a number here: 1 is "Dash"
        "colonReplacementFormat": 1,
        "multiEpisodeStyle": "prefixedRange",
        "standardEpisodeFormat": (
            "{Series TitleYear} - S{season:00}E{episode:00} - {Episode CleanTitle} "
            "{[Custom Formats]}{[Quality Full]}" + _MEDIA_INFO
        ),
        "dailyEpisodeFormat": (
            "{Series TitleYear} - {Air-Date} - {Episode CleanTitle} "
            "{[Custom Formats]}{[Quality Full]}{[MediaInfo 3D]}" + _MEDIA_INFO
        ),
        "animeEpisodeFormat": (
            "{Series TitleYear} - S{season:00}E{episode:00} - {absolute:000} - {Episode CleanTitle} "
            "{[Custom Formats]}{[Quality Full]}{[MediaInfo 3D]}"
            "{[Mediainfo AudioCodec}{ Mediainfo AudioChannels]}{MediaInfo AudioLanguages}"
            "{[MediaInfo VideoDynamicRangeType]}[{Mediainfo VideoCodec }{MediaInfo VideoBitDepth}bit]"
            "{-Release Group}"
        ),
        "seriesFolderFormat": "{Series TitleYear}",
        "seasonFolderFormat": "Season {season:00}",
        "includeSeriesTitle": True,
        "includeEpisodeTitle": True,
        "includeQuality": True,
        "replaceSpaces": False,
        "separator": " - ",
        "numberStyle": "S{season:00}E{episode:00}",
    },
}

# ---------------------------------------------------------------------------
# Custom format names (file names under docs/json/<app>/cf/ in the guides repo)
# ---------------------------------------------------------------------------

_HDR_CFS = [
    "dv-hdr10plus",
    "dv-hdr10",
    "dv",
    "dv-hlg",
    "dv-sdr",
    "hdr10plus",
    "hdr10",
    "hdr",
    "hdr-undefined",
    "pq",
    "hlg",
]

TRASH_CF_NAMES: Dict[str, Dict[str, List[str]]] = {
    "radarr": {
        "unwanted": ["br-disk", "lq", "lq-release-title", "3d", "x265-hd", "extras"],
        "hdr": list(_HDR_CFS),
        "audio": [
            "truehd-atmos",
            "dts-x",
            "truehd",
            "dts-hd-ma",
            "flac",
            "pcm",
            "dts-hd-hra",
            "ddplus-atmos",
            "ddplus",
            "dts-es",
            "dts",
            "aac",
            "dd",
        ],
        "streaming": ["amzn", "atvp", "dsnp", "hbo", "hmax", "hulu", "ma", "nf", "pcok", "pmtp"],
        "movieVersions": [
            "imax-enhanced",
            "imax",
            "hybrid",
            "criterion-collection",
            "special-edition",
            "theatrical-cut",
        ],
        "misc": ["repack-proper", "repack2", "multi", "hq-remux", "hq-webdl", "hq"],
    },
    "sonarr": {
        "unwanted": ["br-disk", "lq", "lq-release-title", "x265-hd", "extras"],
        "hdr": list(_HDR_CFS),
        "streaming": ["amzn", "atvp", "dsnp", "hbo", "hmax", "hulu", "nf", "pcok", "pmtp"],
        "hqGroups": ["web-tier-01", "web-tier-02", "web-tier-03"],
        "misc": ["repack-proper", "repack2", "multi"],
    },
}

CF_SCORES: Dict[str, int] = {
    # Unwanted
    "BR-DISK": -10000,
    "LQ": -10000,
    "LQ (Release Title)": -10000,
    "3D": -10000,
    "x265": -10000,
    "Extras": -10000,
    # Preferred
    "Repack/Proper": 5,
    "Repack2": 6,
    # HDR
    "DV HDR10Plus": 1600,
    "DV HDR10": 1500,
    "DV": 1400,
    "DV HLG": 1300,
    "DV SDR": 1200,
    "HDR10Plus": 700,
    "HDR10": 600,
    "HDR": 500,
    "HDR (undefined)": 400,
    "PQ": 300,
    "HLG": 200,
    # Audio
    "TrueHD Atmos": 5000,
    "DTS X": 4500,
    "TrueHD": 4000,
    "DTS-HD MA": 3500,
    "FLAC": 3000,
    "PCM": 2500,
    "DTS-HD HRA": 2000,
    "DD+ Atmos": 1500,
    "DD+": 1000,
    "DTS-ES": 800,
    "DTS": 600,
    "AAC": 400,
    "DD": 300,
    # Streaming services
    "AMZN": 0,
    "ATVP": 100,
    "DSNP": 100,
    "HBO": 0,
    "HMAX": 0,
    "Hulu": 0,
    "MA": 0,
    "NF": 0,
    "PCOK": 0,
    "PMTP": 0,
    # Movie versions
    "IMAX Enhanced": 800,
    "IMAX": 700,
    "Hybrid": 100,
    "Criterion Collection": 100,
    "Special Edition": 50,
    "Theatrical Cut": 0,
    # HQ release groups
    "HQ-Remux": 1750,
    "HQ-WEBDL": 1700,
    "HQ": 1600,
}


def get_all_cf_names(app: str) -> List[str]:
    groups = TRASH_CF_NAMES.get(app, {})
    return [name for names in groups.values() for name in names]


def get_cf_names_for_categories(app: str, categories: List[str]) -> List[str]:
    groups = TRASH_CF_NAMES.get(app, {})
    return [name for category in categories for name in groups.get(category, [])]


def trash_cf_url(app: str, cf_name: str) -> str:
    return f"{TRASH_CF_BASE_URL}/{app}/cf/{cf_name}.json"


# ---------------------------------------------------------------------------
# Quality profile presets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProfilePreset:
    id: str
    name: str
    description: str
    app: str
    cutoff_quality: str
    allowed_qualities: List[str]
    cf_scores: Dict[str, int] = field(default_factory=dict)


RADARR_PRESETS: List[ProfilePreset] = [
    ProfilePreset(
        id="hd-bluray-web",
        name="HD Bluray + WEB",
        description="High-Quality HD Encodes (Bluray-720p/1080p). Size: 6-15 GB",
        app="radarr",
        cutoff_quality="Bluray-1080p",
        allowed_qualities=["Bluray-1080p", "Bluray-720p", "WEBDL-1080p", "WEBDL-720p", "WEBRip-1080p", "WEBRip-720p"],
        cf_scores={
            "BR-DISK": -10000,
            "LQ": -10000,
            "LQ (Release Title)": -10000,
            "3D": -10000,
            "x265 (HD)": -10000,
            "Repack/Proper": 5,
            "HQ-WEBDL": 1700,
            "HQ": 1600,
        },
    ),
    ProfilePreset(
        id="uhd-bluray-web",
        name="UHD Bluray + WEB",
        description="High-Quality UHD Encodes (Bluray-2160p). Size: 20-60 GB",
        app="radarr",
        cutoff_quality="Bluray-2160p",
        allowed_qualities=["Bluray-2160p", "WEBDL-2160p", "WEBRip-2160p"],
        cf_scores={
            "BR-DISK": -10000,
            "LQ": -10000,
            "LQ (Release Title)": -10000,
            "DV HDR10Plus": 1600,
            "DV HDR10": 1500,
            "DV": 1400,
            "HDR10Plus": 700,
            "HDR10": 600,
            "Repack/Proper": 5,
            "TrueHD Atmos": 5000,
            "DTS X": 4500,
            "HQ-WEBDL": 1700,
        },
    ),
    ProfilePreset(
        id="remux-web-1080p",
        name="Remux + WEB 1080p",
        description="1080p Remuxes. Size: 20-40 GB",
        app="radarr",
        cutoff_quality="Remux-1080p",
        allowed_qualities=["Remux-1080p", "WEBDL-1080p", "WEBRip-1080p"],
        cf_scores={
            "BR-DISK": -10000,
            "LQ": -10000,
            "x265 (HD)": -10000,
            "HQ-Remux": 1750,
            "Repack/Proper": 5,
            "TrueHD Atmos": 5000,
            "DTS X": 4500,
            "TrueHD": 4000,
            "DTS-HD MA": 3500,
        },
    ),
    ProfilePreset(
        id="remux-web-2160p",
        name="Remux + WEB 2160p",
        description="2160p Remuxes. Size: 40-100 GB",
        app="radarr",
        cutoff_quality="Remux-2160p",
        allowed_qualities=["Remux-2160p", "WEBDL-2160p", "WEBRip-2160p"],
        cf_scores={
            "BR-DISK": -10000,
            "LQ": -10000,
            "DV HDR10Plus": 1600,
            "DV HDR10": 1500,
            "DV": 1400,
            "HDR10Plus": 700,
            "HDR10": 600,
            "HQ-Remux": 1750,
            "Repack/Proper": 5,
            "TrueHD Atmos": 5000,
            "DTS X": 4500,
        },
    ),
]

SONARR_PRESETS: List[ProfilePreset] = [
    ProfilePreset(
        id="web-1080p",
        name="WEB-1080p",
        description="720p/1080p WEBDL. Balanced quality and size",
        app="sonarr",
        cutoff_quality="WEBDL-1080p",
        allowed_qualities=["WEBDL-1080p", "WEBRip-1080p", "WEBDL-720p", "WEBRip-720p"],
        cf_scores={
            "BR-DISK": -10000,
            "LQ": -10000,
            "x265 (HD)": -10000,
            "Repack/Proper": 5,
            "HQ-WEBDL": 1700,
            "AMZN": 100,
            "ATVP": 100,
            "DSNP": 100,
            "NF": 100,
        },
    ),
    ProfilePreset(
        id="web-2160p",
        name="WEB-2160p",
        description="2160p WEBDL with HDR. Premium quality",
        app="sonarr",
        cutoff_quality="WEBDL-2160p",
        allowed_qualities=["WEBDL-2160p", "WEBRip-2160p"],
        cf_scores={
            "BR-DISK": -10000,
            "LQ": -10000,
            "DV HDR10Plus": 1600,
            "DV HDR10": 1500,
            "DV": 1400,
            "HDR10Plus": 700,
            "HDR10": 600,
            "Repack/Proper": 5,
            "HQ-WEBDL": 1700,
            "AMZN": 100,
            "ATVP": 100,
            "NF": 100,
        },
    ),
]

LIDARR_PRESETS: List[ProfilePreset] = [
    ProfilePreset(
        id="lossless",
        name="Lossless",
        description="FLAC first, vinyl rips avoided",
        app="lidarr",
        cutoff_quality="FLAC",
        allowed_qualities=["FLAC", "FLAC 24bit", "ALAC"],
        cf_scores={"Preferred Groups": 5, "CD": 3, "WEB": 2, "Lossless": 1, "Vinyl": -10000},
    ),
    ProfilePreset(
        id="standard",
        name="Standard",
        description="High bitrate lossy with lossless upgrades",
        app="lidarr",
        cutoff_quality="MP3-320",
        allowed_qualities=["MP3-320", "AAC-320", "MP3-VBR-V0", "FLAC"],
        cf_scores={"Preferred Groups": 5, "CD": 3, "WEB": 2, "Vinyl": -10000},
    ),
]

_PRESETS: Dict[str, List[ProfilePreset]] = {
    "radarr": RADARR_PRESETS,
    "sonarr": SONARR_PRESETS,
    "lidarr": LIDARR_PRESETS,
}


def get_presets_for_app(app: str) -> List[ProfilePreset]:
    return list(_PRESETS.get(app, []))


def get_preset_by_id(app: str, preset_id: str) -> Optional[ProfilePreset]:
    for preset in _PRESETS.get(app, []):
        if preset.id == preset_id:
            return preset
    return None


# ---------------------------------------------------------------------------
# Lidarr custom formats (Davo's community guide)
# ---------------------------------------------------------------------------


def _lidarr_cf(name: str, specs: List[tuple[str, str, str]]) -> Dict[str, Any]:
    return {
        "name": name,
        "includeCustomFormatWhenRenaming": False,
        "specifications": [
            {
                "name": spec_name,
                "implementation": implementation,
                "negate": False,
                "required": False,
                "fields": [{"name": "value", "value": pattern}],
            }
            for spec_name, implementation, pattern in specs
        ],
    }


LIDARR_CUSTOM_FORMATS: List[Dict[str, Any]] = [
    _lidarr_cf(
        "Preferred Groups",
        [
            ("DeVOiD", "ReleaseGroupSpecification", r"\bDeVOiD\b"),
            ("PERFECT", "ReleaseGroupSpecification", r"\bPERFECT\b"),
            ("ENRiCH", "ReleaseGroupSpecification", r"\bENRiCH\b"),
        ],
    ),
    _lidarr_cf("CD", [("CD", "ReleaseTitleSpecification", r"\bCD\b")]),
    _lidarr_cf("WEB", [("WEB", "ReleaseTitleSpecification", r"\bWEB\b")]),
    _lidarr_cf("Lossless", [("Flac", "ReleaseTitleSpecification", r"\blossless\b")]),
    _lidarr_cf("Vinyl", [("Vinyl", "ReleaseTitleSpecification", r"\bVinyl\b")]),
]


def get_lidarr_cf_names() -> List[str]:
    return [cf["name"] for cf in LIDARR_CUSTOM_FORMATS]


# ---------------------------------------------------------------------------
# Quality definitions (file size limits in MB per minute)
# ---------------------------------------------------------------------------

TRASH_QUALITY_DEFINITIONS: Dict[str, List[Dict[str, Any]]] = {
    "radarr": [
        {"quality": "HDTV-720p", "min": 17.1, "preferred": 1999, "max": 2000},
        {"quality": "WEBDL-720p", "min": 12.5, "preferred": 1999, "max": 2000},
        {"quality": "WEBRip-720p", "min": 12.5, "preferred": 1999, "max": 2000},
        {"quality": "Bluray-720p", "min": 25.7, "preferred": 1999, "max": 2000},
        {"quality": "HDTV-1080p", "min": 33.8, "preferred": 1999, "max": 2000},
        {"quality": "WEBDL-1080p", "min": 12.5, "preferred": 1999, "max": 2000},
        {"quality": "WEBRip-1080p", "min": 12.5, "preferred": 1999, "max": 2000},
        {"quality": "Bluray-1080p", "min": 50.8, "preferred": 1999, "max": 2000},
        {"quality": "Remux-1080p", "min": 102, "preferred": 1999, "max": 2000},
        {"quality": "HDTV-2160p", "min": 85, "preferred": 1999, "max": 2000},
        {"quality": "WEBDL-2160p", "min": 34.5, "preferred": 1999, "max": 2000},
        {"quality": "WEBRip-2160p", "min": 34.5, "preferred": 1999, "max": 2000},
        {"quality": "Bluray-2160p", "min": 102, "preferred": 1999, "max": 2000},
        {"quality": "Remux-2160p", "min": 187.4, "preferred": 1999, "max": 2000},
    ],
    "sonarr": [
        {"quality": "HDTV-720p", "min": 10, "preferred": 995, "max": 1000},
        {"quality": "HDTV-1080p", "min": 15, "preferred": 995, "max": 1000},
        {"quality": "WEBRip-720p", "min": 10, "preferred": 995, "max": 1000},
        {"quality": "WEBDL-720p", "min": 10, "preferred": 995, "max": 1000},
        {"quality": "Bluray-720p", "min": 17.1, "preferred": 995, "max": 1000},
        {"quality": "WEBRip-1080p", "min": 15, "preferred": 995, "max": 1000},
        {"quality": "WEBDL-1080p", "min": 15, "preferred": 995, "max": 1000},
        {"quality": "Bluray-1080p", "min": 50.4, "preferred": 995, "max": 1000},
        {"quality": "Bluray-1080p Remux", "min": 69.1, "preferred": 995, "max": 1000},
        {"quality": "HDTV-2160p", "min": 25, "preferred": 995, "max": 1000},
        {"quality": "WEBRip-2160p", "min": 25, "preferred": 995, "max": 1000},
        {"quality": "WEBDL-2160p", "min": 25, "preferred": 995, "max": 1000},
        {"quality": "Bluray-2160p", "min": 94.6, "preferred": 995, "max": 1000},
        {"quality": "Bluray-2160p Remux", "min": 187.4, "preferred": 995, "max": 1000},
    ],
}
