from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from mediaprogress.config import PROJECT_ROOT

logger = logging.getLogger(__name__)

APP_DIR_NAME = "mediaprogress"
STATE_DIR_ENV = "MEDIAPROGRESS_STATE_DIR"


def _writable(directory: Path) -> bool:
    try:
        directory.mkdir(parents=True, exist_ok=True)
        marker = directory / ".write_test"
        marker.write_text("ok", encoding="utf-8")
        marker.unlink(missing_ok=True)
    except OSError:
        logger.debug("State dir %s is not writable", directory, exc_info=True)
        return False
    return True


def _user_data_dir() -> Path:
    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA") or Path.home() / "AppData" / "Roaming")
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME") or Path.home() / ".local" / "share")
    return (base / APP_DIR_NAME).resolve()


def get_app_state_dir(app_folder_name: str = ".app_state") -> Path:
    """Writable directory for logs and recorded event streams.

    ``$MEDIAPROGRESS_STATE_DIR`` wins when set; otherwise ``<project>/.app_state``
    when writable (development checkouts), else the per-user data directory.
    """
    override = os.environ.get(STATE_DIR_ENV)
    if override:
        return Path(override).expanduser().resolve()
    local = PROJECT_ROOT / app_folder_name
    if _writable(local):
        return local
    return _user_data_dir()
