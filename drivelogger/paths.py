"""
Filesystem locations for Drive Logger state.

Everything lives under a single .drive-logger/ directory, next to the app
when frozen and in the user's home otherwise. DRIVE_LOGGER_HOME overrides.
"""

import os
import sys
from pathlib import Path


def get_app_dir() -> Path:
    """Get the directory that holds .drive-logger/."""
    override = os.environ.get("DRIVE_LOGGER_HOME")
    if override:
        return Path(override).expanduser()
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    return Path.home()


def get_data_dir() -> Path:
    """Get (and create) the .drive-logger/ directory."""
    path = get_app_dir() / ".drive-logger"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_settings_path() -> Path:
    return get_data_dir() / "settings.json"


def get_store_path() -> Path:
    """Credential Store and Conversation Bindings file."""
    return get_data_dir() / "store.json"
