"""Host detection helpers: Unraid, timezone, ids and path checks."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import CONFIG_DIR_NAME, ENV_HOME, PROJECT_NAME

log = logging.getLogger(__name__)

UNRAID_IDENTIFIERS = (
    Path("/boot/config/plugins"),
    Path("/etc/unraid-version"),
    Path("/var/local/emhttp"),
)
UNRAID_DATA_PATH = Path("/mnt/user/data")


def is_unraid() -> bool:
    for marker in UNRAID_IDENTIFIERS:
        if marker.exists():
            log.debug("Detected Unraid OS (found %s)", marker)
            return True
    return False


def get_default_root_dir() -> Path:
    if is_unraid():
        return UNRAID_DATA_PATH
    return Path.home() / PROJECT_NAME


def get_config_dir() -> Path:
    """Directory holding config.json, .env, backups and run state."""
    override = os.environ.get(ENV_HOME)
    if override:
        return Path(override).expanduser()
    return Path.home() / CONFIG_DIR_NAME


def detect_timezone() -> str:
    """TZ env var, then /etc/timezone, then the /etc/localtime link, else UTC."""
    tz = os.environ.get("TZ")
    if tz:
        return tz
    timezone_file = Path("/etc/timezone")
    if timezone_file.exists():
        value = timezone_file.read_text().strip()
        if value:
            return value
    localtime = Path("/etc/localtime")
    if localtime.is_symlink():
        target = str(os.readlink(localtime))
        if "zoneinfo/" in target:
            return target.split("zoneinfo/", 1)[1]
    return "UTC"


def detect_ids() -> tuple[int, int]:
    getuid = getattr(os, "getuid", None)
    getgid = getattr(os, "getgid", None)
    uid = getuid() if getuid else 1000
    gid = getgid() if getgid else 1000
    return uid, gid


def _owner_info(p: Path) -> str:
    """Return 'owner:group (mode)' for a path, for diagnostic messages."""
    import grp
    import pwd

    try:
        st = p.stat()
    except OSError:
        return "unknown"
    try:
        owner = pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        owner = str(st.st_uid)
    try:
        group = grp.getgrgid(st.st_gid).gr_name
    except KeyError:
        group = str(st.st_gid)
    return f"{owner}:{group} ({oct(st.st_mode)[-3:]})"


def _fix_command(path: str, uid: Optional[int] = None, gid: Optional[int] = None) -> str:
    """Build the sudo command the user should run to fix permissions."""
    return (
        f"sudo chown -R {uid if uid is not None else '$(id -u)'}:{gid if gid is not None else '$(id -g)'} {path}"
        f" && sudo chmod -R 775 {path}"
    )


def validate_path(path: Path, uid: Optional[int] = None, gid: Optional[int] = None) -> Dict[str, Any]:
    """Check that ``path`` is (or can become) a writable directory.

    Returns a dict with ``valid``, ``exists``, ``writable``, ``error`` and
    ``fix_command`` keys.
    """
    result: Dict[str, Any] = {
        "valid": False,
        "exists": path.exists(),
        "writable": False,
        "error": None,
        "fix_command": None,
    }

    if path.exists():
        if not path.is_dir():
            result["error"] = f"Path exists but is not a directory: {path}"
            return result
        writable = os.access(path, os.W_OK | os.X_OK)
        result["writable"] = writable
        result["valid"] = writable
        if not writable:
            fix_cmd = _fix_command(str(path), uid, gid)
            result["error"] = f"Directory is not writable (owned by {_owner_info(path)}). Run: {fix_cmd}"
            result["fix_command"] = fix_cmd
        return result

    # The nearest existing ancestor decides whether mkdir -p will work
    parent = path.parent
    while not parent.exists() and parent != parent.parent:
        parent = parent.parent
    writable = parent.is_dir() and os.access(parent, os.W_OK | os.X_OK)
    result["writable"] = writable
    result["valid"] = writable
    if not writable:
        fix_cmd = f"sudo mkdir -p {path} && " + _fix_command(str(path), uid, gid)
        result["error"] = f"Parent directory {parent} is not writable. Run: {fix_cmd}"
        result["fix_command"] = fix_cmd
    return result
